"""
FreeRADIUS integration.

``RadiusDirectory`` manages NAS client blocks in ``clients.conf`` (one per
RADIUS-basis station) and reloads the daemon after every change.
``RadiusUserStore`` writes subscriber credentials and limits into the
rlm_sql tables (radcheck / radreply / radusergroup).
"""

import logging
import os
import re
import subprocess
import tempfile
from pathlib import Path
from typing import Callable, List, Optional

from django.conf import settings
from django.db import transaction

from .models import RadCheck, RadReply, RadUserGroup
from .utils import file_lock, run_command

logger = logging.getLogger(__name__)

DEFAULT_CLIENTS_CONF_CANDIDATES = [
    "/etc/freeradius/3.0/clients.conf",
    "/etc/freeradius/clients.conf",
    "/etc/raddb/clients.conf",
]

RATE_LIMIT_ATTRIBUTE = "Mikrotik-Rate-Limit"
TOTAL_LIMIT_ATTRIBUTE = "Mikrotik-Total-Limit"
PASSWORD_ATTRIBUTE = "Cleartext-Password"


def sanitize_token(value) -> str:
    """Make a value safe to use as a bare clients.conf token"""
    text = re.sub(r"\s+", "-", str(value or "").strip())
    text = re.sub(r"[^a-zA-Z0-9._-]", "", text)
    text = re.sub(r"-+", "-", text)
    return re.sub(r"^[-.]+|[-.]+$", "", text)


def build_client_block(
    name: str,
    ip: str,
    secret: str,
    shortname: Optional[str] = None,
    description: Optional[str] = None,
) -> str:
    lines = [
        f"client {sanitize_token(name)} {{",
        f"    ipaddr = {ip}",
        f"    secret = {secret}",
        "    require_message_authenticator = yes",
    ]
    if shortname and sanitize_token(shortname):
        lines.append(f"    shortname = {sanitize_token(shortname)}")
    if description and sanitize_token(description):
        lines.append(f"    description = {sanitize_token(description)}")
    lines.append("}")
    return "\n".join(lines)


def has_client(content: str, name: str, ip: str) -> bool:
    name_re = re.compile(rf"\bclient\s+{re.escape(sanitize_token(name))}\b", re.I)
    ip_re = re.compile(rf"\bipaddr\s*=\s*{re.escape(ip)}(?![0-9.])", re.I)
    return bool(name_re.search(content) or ip_re.search(content))


def find_client_block(content: str, name: str) -> Optional[re.Match]:
    pattern = re.compile(
        rf"client\s+{re.escape(sanitize_token(name))}\s*\{{[\s\S]*?\}}", re.I
    )
    return pattern.search(content)


class RadiusDirectory:
    """
    Registers and removes RADIUS clients in FreeRADIUS ``clients.conf``.

    Every method returns a result dict with ``success`` and ``message``.
    """

    def __init__(
        self,
        conf_path: Optional[str] = None,
        service_name: Optional[str] = None,
        use_sudo: Optional[bool] = None,
        lock_path: Optional[str] = None,
        runner: Optional[Callable] = None,
        timeout: Optional[int] = None,
    ):
        configured = conf_path or getattr(settings, "RADIUS_CLIENTS_CONF_PATH", "")
        self.candidates: List[str] = (
            [configured] if configured else list(DEFAULT_CLIENTS_CONF_CANDIDATES)
        )
        self.service_name = service_name or getattr(
            settings, "RADIUS_SERVICE_NAME", "freeradius"
        )
        self.use_sudo = (
            getattr(settings, "RADIUS_USE_SUDO", True) if use_sudo is None else use_sudo
        )
        self.lock_path = lock_path or getattr(
            settings, "RADIUS_LOCK_PATH", "/tmp/novanet-radius-clients.lock"
        )
        self.runner = runner or run_command
        self.timeout = timeout or getattr(settings, "RADIUS_COMMAND_TIMEOUT", 30)

    # public API

    def ensure_radius_client(
        self,
        name: str,
        ip: str,
        secret: str,
        shortname: Optional[str] = None,
        server: Optional[str] = None,
        description: Optional[str] = None,
    ) -> dict:
        """Add a client block unless one with the same name or IP exists."""
        if not name or not ip or not secret:
            return {"success": False, "message": "Missing RADIUS client data"}

        with file_lock(self.lock_path):
            conf_path, content = self._read()
            if conf_path is None:
                return {"success": False, "message": "Failed to read RADIUS clients.conf"}

            if has_client(content, name, ip):
                return {"success": True, "message": "RADIUS client already exists", "added": False}

            block = build_client_block(name, ip, secret, shortname, description)
            updated = f"{content.strip()}\n\n{block}\n" if content.strip() else f"{block}\n"
            try:
                self._write(conf_path, updated)
            except OSError as e:
                logger.error(f"Failed to write {conf_path}: {e}")
                return {"success": False, "message": f"Failed to write RADIUS clients.conf: {e}"}

        logger.info(f"RADIUS client {name} ({ip}) added for server {server or '-'}")
        return {"success": True, "message": "RADIUS client added", "added": True}

    def remove_radius_client(self, name: str) -> dict:
        if not name:
            return {"success": False, "message": "Missing client name", "removed": False}

        with file_lock(self.lock_path):
            conf_path, content = self._read()
            if conf_path is None:
                return {
                    "success": False,
                    "message": "Failed to read RADIUS clients.conf",
                    "removed": False,
                }

            match = find_client_block(content, name)
            if not match:
                return {"success": True, "message": "RADIUS client not found", "removed": False}

            before = content[: match.start()].rstrip()
            after = content[match.end():].lstrip()
            updated = re.sub(r"\n{3,}", "\n\n", f"{before}\n\n{after}\n").strip()
            updated = f"{updated}\n" if updated else ""
            try:
                self._write(conf_path, updated)
            except OSError as e:
                logger.error(f"Failed to write {conf_path}: {e}")
                return {
                    "success": False,
                    "message": f"Failed to update RADIUS clients.conf: {e}",
                    "removed": False,
                }

        logger.info(f"RADIUS client {name} removed")
        return {"success": True, "message": "RADIUS client removed", "removed": True}

    def update_client_ip(self, name: str, ip: str) -> dict:
        if not name or not ip:
            return {"success": False, "message": "Missing client name or ip"}

        with file_lock(self.lock_path):
            conf_path, content = self._read()
            if conf_path is None:
                return {"success": False, "message": "Failed to read RADIUS clients.conf"}

            match = find_client_block(content, name)
            if not match:
                return {"success": False, "message": "RADIUS client not found"}

            block = match.group(0)
            current = re.search(r"ipaddr\s*=\s*([^\s#]+)", block, re.I)
            current_ip = current.group(1).strip() if current else None
            if current_ip == ip:
                return {
                    "success": True,
                    "message": "RADIUS client IP unchanged",
                    "updated": False,
                    "current_ip": current_ip,
                }

            new_block = re.sub(r"ipaddr\s*=\s*([^\s#]+)", f"ipaddr = {ip}", block, count=1, flags=re.I)
            updated = content[: match.start()] + new_block + content[match.end():]
            try:
                self._write(conf_path, updated)
            except OSError as e:
                logger.error(f"Failed to write {conf_path}: {e}")
                return {"success": False, "message": f"Failed to update RADIUS clients.conf: {e}"}

        logger.info(f"RADIUS client {name} moved from {current_ip} to {ip}")
        return {
            "success": True,
            "message": "RADIUS client IP updated",
            "updated": True,
            "current_ip": current_ip,
            "new_ip": ip,
        }

    # internals

    def _sudo(self, cmd: list) -> list:
        return ["sudo", "-n", *cmd] if self.use_sudo else cmd

    def _exec(self, cmd: list):
        try:
            return self.runner(self._sudo(cmd), check=False, timeout=self.timeout)
        except (FileNotFoundError, subprocess.TimeoutExpired) as e:
            logger.error(f"RADIUS command {' '.join(cmd)} failed: {e}")
            return None

    def _read(self):
        for conf_path in self.candidates:
            path = Path(conf_path)
            try:
                return conf_path, path.read_text()
            except PermissionError:
                if not self.use_sudo:
                    continue
            except OSError:
                continue
            proc = self._exec(["cat", conf_path])
            if proc is not None and proc.returncode == 0:
                return conf_path, proc.stdout
        logger.error(f"No readable clients.conf in {self.candidates}")
        return None, ""

    def _write(self, conf_path: str, content: str):
        target = Path(conf_path)
        if os.access(target.parent, os.W_OK) and (
            not target.exists() or os.access(target, os.W_OK)
        ):
            fd, tmp_path = tempfile.mkstemp(dir=str(target.parent), prefix=".clients-", suffix=".conf")
            try:
                with os.fdopen(fd, "w") as handle:
                    handle.write(content)
                os.chmod(tmp_path, 0o640)
                os.replace(tmp_path, target)
            except OSError:
                Path(tmp_path).unlink(missing_ok=True)
                raise
        else:
            if not self.use_sudo:
                raise PermissionError(f"{conf_path} is not writable")
            fd, tmp_path = tempfile.mkstemp(prefix="clients-", suffix=".conf")
            try:
                with os.fdopen(fd, "w") as handle:
                    handle.write(content)
                proc = self._exec(["install", "-m", "640", tmp_path, conf_path])
                if proc is None or proc.returncode != 0:
                    proc = self._exec(["cp", tmp_path, conf_path])
                if proc is None or proc.returncode != 0:
                    err = "" if proc is None else (proc.stderr or "").strip()
                    raise OSError(f"install of {conf_path} failed: {err}")
            finally:
                Path(tmp_path).unlink(missing_ok=True)
        self._reload()

    def _reload(self):
        proc = self._exec(["systemctl", "reload", self.service_name])
        if proc is None or proc.returncode != 0:
            err = "" if proc is None else (proc.stderr or "").strip()
            raise OSError(f"systemctl reload {self.service_name} failed: {err}")


class RadiusUserStore:
    """Subscriber credentials in the FreeRADIUS SQL tables."""

    @transaction.atomic
    def upsert_radius_user(
        self,
        username: str,
        password: str,
        groupname: Optional[str] = None,
        rate_limit: Optional[str] = None,
        data_limit_bytes: Optional[int] = None,
    ) -> bool:
        if not username or not password:
            return False

        RadCheck.objects.filter(username=username).delete()
        RadCheck.objects.create(
            username=username, attribute=PASSWORD_ATTRIBUTE, op=":=", value=password
        )

        if groupname:
            RadUserGroup.objects.filter(username=username).delete()
            RadUserGroup.objects.create(username=username, groupname=groupname, priority=1)

        # Reply attributes are cleared whenever none applies
        RadReply.objects.filter(username=username, attribute=RATE_LIMIT_ATTRIBUTE).delete()
        if rate_limit:
            RadReply.objects.create(
                username=username, attribute=RATE_LIMIT_ATTRIBUTE, op="=", value=rate_limit
            )

        RadReply.objects.filter(username=username, attribute=TOTAL_LIMIT_ATTRIBUTE).delete()
        if data_limit_bytes and int(data_limit_bytes) > 0:
            RadReply.objects.create(
                username=username,
                attribute=TOTAL_LIMIT_ATTRIBUTE,
                op=":=",
                value=str(int(data_limit_bytes)),
            )
        return True

    @transaction.atomic
    def delete_radius_user(self, username: str) -> bool:
        if not username:
            return False
        RadCheck.objects.filter(username=username).delete()
        RadReply.objects.filter(username=username).delete()
        RadUserGroup.objects.filter(username=username).delete()
        return True
