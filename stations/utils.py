"""
Utility functions for station provisioning
"""

import fcntl
import ipaddress
import logging
import re
import subprocess
import threading
from contextlib import contextmanager
from typing import Optional

logger = logging.getLogger(__name__)

_DDNS_PATTERN = re.compile(r"^([a-zA-Z0-9-]+\.)+[a-zA-Z]{2,}$")
_MIKROTIK_TIME_PATTERN = re.compile(r"^(\d+d)?(\d+h)?(\d+m)?$")

BYTE_UNITS = {
    "B": 1,
    "KB": 1024,
    "MB": 1024**2,
    "GB": 1024**3,
    "TB": 1024**4,
}

UPTIME_UNITS = {"minutes": "m", "hours": "h", "days": "d"}


# ---------------------------------------------------------------------------
# Address helpers
# ---------------------------------------------------------------------------


def is_valid_ip(value) -> bool:
    """True for a literal IPv4 or IPv6 address"""
    if not value or not isinstance(value, str):
        return False
    try:
        ipaddress.ip_address(value.strip())
        return True
    except ValueError:
        return False


def is_valid_ddns_host(value) -> bool:
    """True for a dotted hostname such as ``abc123.sn.mynetname.net``"""
    if not value or not isinstance(value, str):
        return False
    return bool(_DDNS_PATTERN.match(value.strip()))


def strip_port(address: str) -> str:
    """Drop a trailing ``:port`` from an IPv4 address or hostname"""
    return (address or "").strip().split(":")[0]


# ---------------------------------------------------------------------------
# Package limits
# ---------------------------------------------------------------------------


def usage_to_bytes(usage) -> Optional[int]:
    """
    Convert a package usage string to a byte quota.

    "2 GB" -> 2147483648, "10 MB" -> 10485760.
    Returns None for "Unlimited", an unknown unit or a malformed string.
    """
    if not usage or not isinstance(usage, str):
        return None
    parts = usage.strip().split()
    if len(parts) != 2:
        return None
    value, unit = parts
    factor = BYTE_UNITS.get(unit.upper())
    if factor is None:
        return None
    try:
        amount = float(value)
    except ValueError:
        return None
    if amount <= 0:
        return None
    return int(round(amount * factor))


def _numeric(value) -> str:
    return re.sub(r"[^0-9.]", "", str(value or ""))


def rate_limit_from_speed(speed) -> str:
    """Package speed "10" (or "10 Mbps") -> "10M/10M"; empty when no digits"""
    digits = _numeric(speed)
    return f"{digits}M/{digits}M" if digits else ""


def rate_limit_from_profile(*sources) -> str:
    """
    Rate limit for a PPPoE account.

    The first non-empty source wins (plan profile, entry profile, plan name,
    entry name) and only its numeric characters are used.
    """
    for source in sources:
        if source:
            return rate_limit_from_speed(source)
    return ""


def format_uptime(period: str) -> str:
    """
    Convert a package period to RouterOS time syntax.

    "30 minutes" -> "30m", "2 hours" -> "2h", "1 days" -> "1d".
    Raises ValueError for an unknown unit.
    """
    parts = (period or "").strip().split()
    if len(parts) != 2 or parts[1] not in UPTIME_UNITS:
        raise ValueError(f"Invalid time unit in '{period}'. Use minutes/hours/days")
    return f"{parts[0]}{UPTIME_UNITS[parts[1]]}"


def is_valid_mikrotik_time(value: str) -> bool:
    return bool(value) and bool(_MIKROTIK_TIME_PATTERN.match(value))


def normalize_shared_users(devices) -> str:
    """
    Map a package device cap to RouterOS ``shared-users``.

    Raises ValueError for anything that is not a positive number or "Unlimited".
    """
    if devices is None or str(devices).strip() == "":
        return "1"
    text = str(devices).strip()
    if text.lower() == "unlimited":
        return "unlimited"
    try:
        count = int(float(text))
    except ValueError:
        raise ValueError(
            "Invalid shared users value. Use a positive number or 'Unlimited'"
        )
    if count < 1:
        raise ValueError(
            "Invalid shared users value. Use a positive number or 'Unlimited'"
        )
    return str(count)


# ---------------------------------------------------------------------------
# File locking
# ---------------------------------------------------------------------------

_process_locks = {}
_process_locks_guard = threading.Lock()


def _process_lock(path: str) -> threading.Lock:
    with _process_locks_guard:
        lock = _process_locks.get(path)
        if lock is None:
            lock = threading.Lock()
            _process_locks[path] = lock
        return lock


@contextmanager
def file_lock(path: str):
    """
    Exclusive lock for a shared config file.

    Holds an in-process lock (threads of this worker) and an ``fcntl`` lock on
    ``path`` (other worker processes) for the duration of the block.
    """
    local = _process_lock(path)
    with local:
        with open(path, "a+") as handle:
            fcntl.flock(handle.fileno(), fcntl.LOCK_EX)
            try:
                yield
            finally:
                fcntl.flock(handle.fileno(), fcntl.LOCK_UN)


# ---------------------------------------------------------------------------
# External commands
# ---------------------------------------------------------------------------


def run_command(cmd: list, check: bool = False, timeout: int = 30):
    logger.debug("cmd: %s", " ".join(cmd))
    return subprocess.run(cmd, capture_output=True, text=True, check=check, timeout=timeout)
