"""
WireGuard Tunnel Peer Management
================================
Keeps the server-side ``wg0.conf`` in step with the station table: one
``[Peer]`` block per station, deduplicated by tunnel address and public key.

Architecture:
    Novanet server wg0 (WIREGUARD_CONF_PATH)
            ↕ management tunnel (UDP 13231 on the router)
    MikroTik station (mikrotik_host, e.g. 10.10.0.12/32)

Every read-modify-write of the config runs under :func:`tunnel_config_lock`
so concurrent requests and worker processes never interleave.
"""

import base64
import binascii
import logging
import os
import re
import subprocess
import tempfile
from contextlib import contextmanager
from pathlib import Path
from typing import Callable, List, Optional

from django.conf import settings
from django.utils import timezone

from .utils import file_lock, is_valid_ip, run_command

logger = logging.getLogger(__name__)

_BLOCK_BOUNDARY = re.compile(r"\n(?=\[Peer\])")
_ALLOWED_IP = re.compile(r"AllowedIPs\s*=\s*([0-9.]+)/32")
_PUBLIC_KEY = re.compile(r"^\s*PublicKey\s*=\s*(\S+)", re.M)


def is_valid_wireguard_key(key: str) -> bool:
    """
    Validate that a string looks like a WireGuard base64 key (44 chars,
    32 bytes decoded). Format check only.
    """
    if not key or not isinstance(key, str):
        return False
    if len(key) != 44:
        return False
    try:
        return len(base64.b64decode(key, validate=True)) == 32
    except (binascii.Error, ValueError):
        return False


# ── Pure config helpers ─────────────────────────────────────────────


def build_peer_block(
    public_key: str,
    endpoint_host: str,
    internal_ip: str,
    port: Optional[int] = None,
    keepalive: Optional[int] = None,
) -> str:
    port = port or getattr(settings, "WIREGUARD_ENDPOINT_PORT", 13231)
    keepalive = keepalive or getattr(settings, "WIREGUARD_KEEPALIVE", 10)
    return "\n".join(
        [
            "[Peer]",
            f"PublicKey = {public_key}",
            f"Endpoint = {endpoint_host}:{port}",
            f"AllowedIPs = {internal_ip}/32",
            f"PersistentKeepalive = {keepalive}",
        ]
    )


def _strip_blank_lines(block: str) -> str:
    return "\n".join(line for line in block.splitlines() if line.strip())


def split_blocks(conf_text: str) -> List[str]:
    """
    Split a config into blocks at every line that starts a ``[Peer]``.
    The ``[Interface]`` section (if any) is the first block.
    """
    blocks = []
    for raw in _BLOCK_BOUNDARY.split(conf_text or ""):
        block = _strip_blank_lines(raw)
        if block:
            blocks.append(block)
    return blocks


def block_allowed_ip(block: str) -> Optional[str]:
    match = _ALLOWED_IP.search(block)
    return match.group(1) if match else None


def block_public_key(block: str) -> Optional[str]:
    match = _PUBLIC_KEY.search(block)
    return match.group(1) if match else None


def dedupe_blocks(blocks: List[str]) -> List[str]:
    """
    Drop peers that repeat a /32 address or public key.

    Walks the list from the end so the last occurrence wins, then restores
    the original order.
    """
    seen_ips = set()
    seen_keys = set()
    kept = []
    for block in reversed(blocks):
        ip = block_allowed_ip(block)
        key = block_public_key(block)
        if (ip and ip in seen_ips) or (key and key in seen_keys):
            continue
        if ip:
            seen_ips.add(ip)
        if key:
            seen_keys.add(key)
        kept.append(block)
    kept.reverse()
    return kept


def render_config(blocks: List[str]) -> str:
    """One blank line between blocks, exactly one trailing newline."""
    cleaned = [_strip_blank_lines(b) for b in blocks]
    cleaned = [b for b in cleaned if b]
    if not cleaned:
        return ""
    return "\n\n".join(cleaned) + "\n"


def merge_peer(conf_text: str, peer_block: str) -> str:
    """Append ``peer_block`` and drop any older block it clashes with."""
    blocks = split_blocks(conf_text)
    blocks.append(_strip_blank_lines(peer_block))
    return render_config(dedupe_blocks(blocks))


def remove_peer(conf_text: str, public_key: str) -> str:
    blocks = [b for b in split_blocks(conf_text) if block_public_key(b) != public_key]
    return render_config(blocks)


@contextmanager
def tunnel_config_lock(lock_path: Optional[str] = None):
    """Serialize every read-modify-write of the tunnel config."""
    path = lock_path or getattr(
        settings, "WIREGUARD_LOCK_PATH", "/tmp/novanet-wg0.lock"
    )
    with file_lock(path):
        yield


# ── Reconciler ──────────────────────────────────────────────────────


class TunnelPeerReconciler:
    """
    Applies station peers to the live WireGuard config and bounces the
    interface with ``wg-quick``.

    ``runner(cmd, check=False, timeout=...)`` defaults to ``subprocess.run``
    and is injectable for tests.
    """

    def __init__(
        self,
        conf_path: Optional[str] = None,
        interface: Optional[str] = None,
        use_sudo: Optional[bool] = None,
        lock_path: Optional[str] = None,
        runner: Optional[Callable] = None,
        timeout: Optional[int] = None,
    ):
        self.interface = interface or getattr(settings, "WIREGUARD_INTERFACE", "wg0")
        self.conf_path = Path(
            conf_path
            or getattr(
                settings, "WIREGUARD_CONF_PATH", f"/etc/wireguard/{self.interface}.conf"
            )
        )
        self.use_sudo = (
            getattr(settings, "WIREGUARD_USE_SUDO", True) if use_sudo is None else use_sudo
        )
        self.lock_path = lock_path
        self.runner = runner or run_command
        self.timeout = timeout or getattr(settings, "WIREGUARD_COMMAND_TIMEOUT", 30)

    # public API

    def upsert_peer(self, station) -> dict:
        """Add or replace the peer block for ``station`` and restart the tunnel."""
        result = {"success": False, "message": "", "backup_path": "", "errors": []}

        if not is_valid_wireguard_key(station.mikrotik_public_key):
            result["errors"].append("mikrotik_public_key is not a valid WireGuard key")
        if not is_valid_ip(station.mikrotik_host):
            result["errors"].append("mikrotik_host must be an IP address")
        if not station.endpoint_host:
            result["errors"].append("A DDNS name or public host is required")
        if result["errors"]:
            result["message"] = "; ".join(result["errors"])
            return result

        block = build_peer_block(
            station.mikrotik_public_key,
            station.endpoint_host,
            station.mikrotik_host,
        )
        with tunnel_config_lock(self.lock_path):
            current = self._read(result)
            if current is None:
                return result
            updated = merge_peer(current, block)
            return self._apply(current, updated, result, f"peer for {station.mikrotik_host}")

    def remove_station_peer(self, station) -> dict:
        """Drop every block carrying the station's public key and restart."""
        result = {"success": False, "message": "", "backup_path": "", "errors": []}
        if not station.mikrotik_public_key:
            result["success"] = True
            result["message"] = "Station has no tunnel key"
            return result

        with tunnel_config_lock(self.lock_path):
            current = self._read(result)
            if current is None:
                return result
            updated = remove_peer(current, station.mikrotik_public_key)
            return self._apply(
                current, updated, result, f"removal of {station.mikrotik_host}"
            )

    def restart_interface(self) -> dict:
        result = {"success": False, "message": ""}
        down = self._exec(["wg-quick", "down", self.interface])
        if down is None or down.returncode != 0:
            # Interface may simply not be up yet
            err = "" if down is None else (down.stderr or "").strip()
            logger.warning(f"wg-quick down {self.interface} failed: {err}")

        up = self._exec(["wg-quick", "up", self.interface])
        if up is None:
            result["message"] = f"wg-quick up {self.interface} could not be run"
            return result
        if up.returncode != 0:
            err = (up.stderr or up.stdout or "").strip()
            result["message"] = f"wg-quick up {self.interface} failed: {err}"
            return result

        result["success"] = True
        result["message"] = f"{self.interface} restarted"
        return result

    # internals

    def _sudo(self, cmd: list) -> list:
        return ["sudo", *cmd] if self.use_sudo else cmd

    def _exec(self, cmd: list):
        try:
            return self.runner(self._sudo(cmd), check=False, timeout=self.timeout)
        except FileNotFoundError:
            logger.error(f"{cmd[0]} binary not found on this host")
        except subprocess.TimeoutExpired:
            logger.error(f"{' '.join(cmd)} timed out after {self.timeout}s")
        return None

    def _read(self, result: dict) -> Optional[str]:
        try:
            return self.conf_path.read_text()
        except PermissionError:
            if not self.use_sudo:
                result["message"] = f"Cannot read {self.conf_path}"
                result["errors"].append(result["message"])
                return None
        except OSError as e:
            result["message"] = f"Cannot read {self.conf_path}: {e}"
            result["errors"].append(result["message"])
            return None

        proc = self._exec(["cat", str(self.conf_path)])
        if proc is None or proc.returncode != 0:
            result["message"] = f"Cannot read {self.conf_path}"
            result["errors"].append(result["message"])
            return None
        return proc.stdout

    def _apply(self, current: str, updated: str, result: dict, label: str) -> dict:
        if updated == current:
            result["success"] = True
            result["message"] = f"Tunnel config already up to date ({label})"
            return result

        backup_path = f"{self.conf_path}.bak-{timezone.now().strftime('%Y%m%d%H%M%S%f')}"
        try:
            self._write_file(Path(backup_path), current)
            result["backup_path"] = backup_path
        except OSError as e:
            logger.warning(f"Could not snapshot {self.conf_path}: {e}")
            result["errors"].append(f"backup failed: {e}")

        try:
            self._write_file(self.conf_path, updated)
        except OSError as e:
            result["message"] = f"Cannot write {self.conf_path}: {e}"
            result["errors"].append(result["message"])
            return result

        restart = self.restart_interface()
        if not restart["success"]:
            result["message"] = (
                f"{restart['message']}. Config was written; previous version at {backup_path}"
            )
            result["errors"].append(restart["message"])
            logger.error(f"Tunnel restart failed after {label}: {restart['message']}")
            return result

        result["success"] = True
        result["message"] = f"Tunnel updated ({label})"
        logger.info(f"WG: applied {label} to {self.conf_path}")
        return result

    def _write_file(self, target: Path, content: str):
        """
        Write via a temp file in the target directory and ``os.replace``;
        falls back to ``sudo install`` + ``sudo mv`` when the directory is
        root-owned.
        """
        try:
            fd, tmp_path = tempfile.mkstemp(
                dir=str(target.parent), prefix=f".{target.name}.", suffix=".tmp"
            )
        except PermissionError:
            if not self.use_sudo:
                raise
            self._sudo_write(target, content)
            return

        try:
            with os.fdopen(fd, "w") as handle:
                handle.write(content)
            os.chmod(tmp_path, 0o600)
            os.replace(tmp_path, target)
        except OSError:
            Path(tmp_path).unlink(missing_ok=True)
            raise

    def _sudo_write(self, target: Path, content: str):
        fd, tmp_path = tempfile.mkstemp(prefix="novanet-wg-", suffix=".conf")
        try:
            with os.fdopen(fd, "w") as handle:
                handle.write(content)
            staged = f"{target}.tmp"
            for cmd in (
                ["install", "-m", "600", tmp_path, staged],
                ["mv", staged, str(target)],
            ):
                proc = self._exec(cmd)
                if proc is None or proc.returncode != 0:
                    err = "" if proc is None else (proc.stderr or "").strip()
                    raise OSError(f"{' '.join(cmd[:1])} failed: {err}")
        finally:
            Path(tmp_path).unlink(missing_ok=True)
