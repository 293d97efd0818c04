"""
MikroTik RouterOS integration for station provisioning.

Every router operation goes through a :class:`RouterChannel`, a thin
``{write, close}`` wrapper around a routeros-api connection. Commands use
RouterOS menu paths (``/ppp/secret/print``, ``/radius/set`` ...) and
arguments are plain dicts, so anything with the same two methods (for
example an in-memory fake in tests) can stand in for a real router.
"""

import logging
import socket
import time
from typing import Dict, List, Optional

import routeros_api
from django.conf import settings

from .crypto import decrypt_password
from .utils import (
    format_uptime,
    is_valid_mikrotik_time,
    normalize_shared_users,
    rate_limit_from_speed,
    usage_to_bytes,
)

logger = logging.getLogger(__name__)


def row_id(row: dict) -> Optional[str]:
    # MikroTik API can return '.id' or 'id'
    return row.get(".id") or row.get("id")


class RouterChannel:
    """
    Management channel to one router.

    ``write("/ip/pool/print")`` returns the matching rows,
    ``write("/radius/set", {"id": "*1", "secret": "x"})`` runs a command.
    """

    def __init__(self, api, pool=None, host: str = ""):
        self.api = api
        self.pool = pool
        self.host = host

    def write(self, command: str, args: Optional[Dict[str, str]] = None) -> List[dict]:
        path, _, verb = command.rpartition("/")
        if not path or not verb:
            raise ValueError(f"Invalid RouterOS command: {command}")
        resource = self.api.get_resource(path)
        arguments = {key: str(value) for key, value in (args or {}).items()}
        if verb == "print":
            rows = resource.get(**arguments)
        else:
            rows = resource.call(verb, arguments)
        return list(rows or [])

    def close(self):
        try:
            if self.pool is not None:
                self.pool.disconnect()
            elif self.api is not None:
                self.api.get_communicator().close()
        except Exception as e:
            logger.debug(f"Error closing channel to {self.host}: {e}")


def safe_close(channel):
    """Safely close a router channel if present."""
    try:
        if channel:
            channel.close()
    except Exception:
        pass


def open_channel(station, retries: Optional[int] = None, timeout: Optional[int] = None):
    """
    Open an authenticated channel to a station's router over the tunnel.

    Args:
        station: Station model instance (mikrotik_host, mikrotik_user, ...)
        retries: Number of connection attempts before giving up
        timeout: Socket timeout in seconds

    Returns:
        RouterChannel or None if the router cannot be reached
    """
    retries = retries or int(getattr(settings, "MIKROTIK_CONNECT_RETRIES", 2))
    timeout = timeout or int(getattr(settings, "MIKROTIK_CONNECT_TIMEOUT", 10))

    host = station.mikrotik_host
    port = int(station.mikrotik_port or getattr(settings, "MIKROTIK_PORT", 8728))
    use_ssl = bool(getattr(settings, "MIKROTIK_USE_SSL", False))
    ssl_verify = bool(getattr(settings, "MIKROTIK_SSL_VERIFY", False))
    password = decrypt_password(station.mikrotik_password or "")

    # Set socket timeout for the connection
    original_timeout = socket.getdefaulttimeout()
    socket.setdefaulttimeout(timeout)

    last_error = None
    try:
        for attempt in range(retries):
            try:
                pool = routeros_api.RouterOsApiPool(
                    host,
                    username=station.mikrotik_user or "admin",
                    password=password,
                    port=port,
                    use_ssl=use_ssl,
                    ssl_verify=ssl_verify,
                    plaintext_login=True,
                )
                api = pool.get_api()
                logger.debug(
                    f"Station router {host}:{port} connected on attempt {attempt + 1}"
                )
                return RouterChannel(api, pool=pool, host=host)
            except Exception as e:
                last_error = e
                logger.warning(
                    f"Station router connection attempt {attempt + 1}/{retries} to {host}:{port} failed: {e}"
                )
                if attempt < retries - 1:
                    time.sleep(1)
    finally:
        socket.setdefaulttimeout(original_timeout)

    logger.error(f"Failed to connect to station router {host}:{port}: {last_error}")
    return None


# ---------------------------------------------------------------------------
# Pools & PPP secrets
# ---------------------------------------------------------------------------


def list_pools(channel) -> List[dict]:
    return channel.write("/ip/pool/print")


def list_secrets(channel) -> List[dict]:
    return channel.write("/ppp/secret/print")


def get_secrets_by_name(channel, name: str) -> List[dict]:
    return channel.write("/ppp/secret/print", {"name": name})


def add_secret(
    channel,
    name: str,
    password: str,
    service: str = "pppoe",
    profile: str = "default",
    disabled: str = "no",
) -> List[dict]:
    return channel.write(
        "/ppp/secret/add",
        {
            "name": name,
            "password": password,
            "service": service,
            "profile": profile or "default",
            "disabled": disabled,
        },
    )


def update_secret(channel, secret_id: str, updates: Dict[str, str]) -> List[dict]:
    return channel.write("/ppp/secret/set", {"id": secret_id, **updates})


# ---------------------------------------------------------------------------
# Hotspot
# ---------------------------------------------------------------------------


def list_hotspot_server_profiles(channel) -> List[dict]:
    """Hotspot server profiles (/ip/hotspot/profile), where use-radius lives."""
    return channel.write("/ip/hotspot/profile/print")


def list_hotspot_user_profiles(channel, name: Optional[str] = None) -> List[dict]:
    args = {"name": name} if name else None
    return channel.write("/ip/hotspot/user/profile/print", args)


def list_hotspot_users(channel, name: Optional[str] = None) -> List[dict]:
    args = {"name": name} if name else None
    return channel.write("/ip/hotspot/user/print", args)


def build_hotspot_profile_params(package) -> Dict[str, str]:
    """
    RouterOS user-profile fields for a package.

    Raises ValueError for an invalid device cap or period.
    """
    params = {
        "name": package.name,
        "rate-limit": rate_limit_from_speed(package.speed),
        "shared-users": normalize_shared_users(package.devices),
        "address-pool": package.pool,
    }

    session_time = ""
    period = (package.period or "").strip()
    if period and period.lower() != "noexpiry":
        session_time = format_uptime(period)
        if not is_valid_mikrotik_time(session_time):
            raise ValueError(
                f'Invalid session-timeout format: {session_time}. Use format like "1h30m" or "1d"'
            )
        params["session-timeout"] = session_time

    # Data bundles are metered per login so they never get a MAC cookie
    if (package.category or "").lower() == "data":
        params["add-mac-cookie"] = "no"
    else:
        params["add-mac-cookie"] = "yes"
        if session_time:
            params["mac-cookie-timeout"] = session_time

    if not params["rate-limit"]:
        params.pop("rate-limit")
    return params


def create_or_update_hotspot_profile(channel, package) -> dict:
    """
    Create the router-local user profile for a package, or update it in place
    when a profile with the same name already exists.
    """
    result = {"success": False, "message": "", "created": False}
    try:
        params = build_hotspot_profile_params(package)
    except ValueError as e:
        result["message"] = str(e)
        return result

    try:
        existing = list_hotspot_user_profiles(channel, package.name)
        if existing and row_id(existing[0]):
            fields = {k: v for k, v in params.items() if k != "name"}
            channel.write(
                "/ip/hotspot/user/profile/set", {"id": row_id(existing[0]), **fields}
            )
            result["message"] = f"Profile '{package.name}' updated"
        else:
            channel.write("/ip/hotspot/user/profile/add", params)
            result["created"] = True
            result["message"] = f"Profile '{package.name}' created"
        result["success"] = True
        logger.info(f"{result['message']} on {getattr(channel, 'host', '')}")
    except Exception as e:
        logger.error(f"Profile sync failed for {package.name}: {e}")
        result["message"] = f"Profile sync failed: {e}"
    return result


def ensure_hotspot_user(channel, package, username: str, password: str) -> dict:
    """
    Make sure a hotspot user exists with the package's profile and limits.
    Existing users are left untouched.
    """
    result = {"success": False, "message": "", "created": False}
    try:
        if not list_hotspot_user_profiles(channel, package.name):
            result["message"] = f"Profile '{package.name}' not found"
            return result

        if list_hotspot_users(channel, username):
            result["success"] = True
            result["message"] = f"User '{username}' already exists"
            return result

        params = {
            "name": username,
            "password": password or username,
            "profile": package.name,
        }
        period = (package.period or "").strip()
        if period and period.lower() != "noexpiry":
            params["limit-uptime"] = format_uptime(period)
        quota = usage_to_bytes(package.usage)
        if quota:
            params["limit-bytes-total"] = str(quota)

        channel.write("/ip/hotspot/user/add", params)
        result["success"] = True
        result["created"] = True
        result["message"] = f"User '{username}' added"
        logger.info(f"Created hotspot user {username} with profile {package.name}")
    except Exception as e:
        logger.error(f"ensure_hotspot_user failed for {username}: {e}")
        result["message"] = str(e)
    return result
