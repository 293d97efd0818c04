"""
Station lifecycle services: save, delete and RADIUS identity handling.

Service functions return result dicts
``{"success", "message", "warnings", "errors", ...}``; views turn them into
HTTP responses.
"""

import logging
import secrets
import socket
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeout
from typing import Optional

from django.conf import settings
from django.db import IntegrityError, transaction

from .crypto import encrypt_password
from .models import PPPoEEntry, Station, Subscriber
from .radius import RadiusDirectory, RadiusUserStore
from .router_backend import RouterBackendConfigurator
from .utils import is_valid_ddns_host, is_valid_ip, strip_port
from .wireguard import TunnelPeerReconciler

logger = logging.getLogger(__name__)

IDENTITY_ATTEMPTS = 5

STATION_FIELDS = [
    "name",
    "mikrotik_host",
    "mikrotik_public_host",
    "mikrotik_ddns",
    "mikrotik_public_key",
    "mikrotik_user",
    "mikrotik_port",
]


# ---------------------------------------------------------------------------
# RADIUS identity
# ---------------------------------------------------------------------------


def _random_suffix() -> str:
    return secrets.token_hex(3)


def generate_radius_client_name(platform) -> str:
    return f"rad-{platform.radius_prefix}-{_random_suffix()}"


def generate_radius_secret() -> str:
    return secrets.token_hex(12)


def radius_server_ip() -> str:
    return strip_port(getattr(settings, "RADIUS_SERVER_IP", ""))


def unique_radius_client_name(platform, exclude_pk=None) -> str:
    """A client name not used by any other station of the platform"""
    taken = Station.objects.filter(platform=platform).exclude(radius_client_name=None)
    if exclude_pk is not None:
        taken = taken.exclude(pk=exclude_pk)
    taken_names = set(taken.values_list("radius_client_name", flat=True))
    name = generate_radius_client_name(platform)
    while name in taken_names:
        name = generate_radius_client_name(platform)
    return name


def issue_radius_credentials(platform) -> dict:
    """Fresh client name, secret and server IP for a router setup script."""
    return {
        "radius_client_name": unique_radius_client_name(platform),
        "radius_client_secret": generate_radius_secret(),
        "radius_server_ip": radius_server_ip(),
    }


def persist_radius_identity(station, public_ip: Optional[str] = None) -> Station:
    """
    Switch the station row to RADIUS basis and store its RADIUS identity.

    An existing client name and secret are kept so re-running is stable.
    Name collisions with another station of the platform are retried against
    the (platform, radius_client_name) unique constraint.
    """
    server_ip = radius_server_ip()
    station.radius_client_secret = station.radius_client_secret or generate_radius_secret()
    station.radius_client_ip = public_ip or station.radius_client_ip or ""
    station.radius_server_ip = server_ip or station.radius_server_ip or ""
    station.system_basis = Station.BASIS_RADIUS

    name = station.radius_client_name
    if name and (
        Station.objects.filter(platform=station.platform, radius_client_name=name)
        .exclude(pk=station.pk)
        .exists()
    ):
        name = None

    for attempt in range(IDENTITY_ATTEMPTS):
        station.radius_client_name = name or unique_radius_client_name(
            station.platform, exclude_pk=station.pk
        )
        try:
            with transaction.atomic():
                station.save()
            return station
        except IntegrityError:
            logger.warning(
                "RADIUS client name %s collided for station %s (attempt %d/%d), retrying...",
                station.radius_client_name,
                station.pk,
                attempt + 1,
                IDENTITY_ATTEMPTS,
            )
            name = None
    raise IntegrityError(
        f"Could not allocate a unique RADIUS client name for station {station.display_name}"
    )


# ---------------------------------------------------------------------------
# Address resolution
# ---------------------------------------------------------------------------


def _resolve_ipv4(host: str) -> Optional[str]:
    infos = socket.getaddrinfo(host, None, socket.AF_INET, socket.SOCK_STREAM)
    return infos[0][4][0] if infos else None


def resolve_host(host: str, timeout: Optional[float] = None) -> Optional[str]:
    """IPv4 address for ``host`` or None; lookups are bounded and never raise."""
    timeout = timeout or getattr(settings, "DNS_RESOLVE_TIMEOUT", 5)
    executor = ThreadPoolExecutor(max_workers=1)
    try:
        return executor.submit(_resolve_ipv4, host).result(timeout=timeout)
    except FutureTimeout:
        logger.warning(f"DNS lookup for {host} timed out after {timeout}s")
    except OSError as e:
        logger.info(f"DNS lookup for {host} failed: {e}")
    finally:
        executor.shutdown(wait=False)
    return None


def resolve_station_public_ip(station, resolver=None) -> Optional[str]:
    """
    Public IP of a station: DDNS name, then public host, then internal host.
    The first literal IP or the first successful lookup wins.
    """
    resolver = resolver or resolve_host
    candidates = [
        station.mikrotik_ddns,
        station.mikrotik_public_host,
        station.mikrotik_host,
    ]
    for candidate in candidates:
        candidate = (candidate or "").strip()
        if not candidate:
            continue
        if is_valid_ip(candidate):
            return candidate
        if is_valid_ddns_host(candidate):
            address = resolver(candidate)
            if address:
                return address
    return None


# ---------------------------------------------------------------------------
# Station save / delete
# ---------------------------------------------------------------------------


def _conflict_message(platform, data: dict, exclude_pk=None) -> Optional[str]:
    stations = Station.objects.filter(platform=platform)
    if exclude_pk is not None:
        stations = stations.exclude(pk=exclude_pk)

    ddns = (data.get("mikrotik_ddns") or "").strip()
    if ddns and stations.filter(mikrotik_ddns=ddns).exists():
        return "DDNS name is already being used by another router."

    host = (data.get("mikrotik_host") or "").strip()
    if host and stations.filter(mikrotik_host=host).exists():
        return "Internal Mikrotik Host address already exists, refresh to get a unique one!"
    return None


def register_radius_client(station, directory=None, resolver=None) -> dict:
    """Resolve the station's public IP and register it with FreeRADIUS."""
    result = {"success": False, "message": "", "public_ip": None}
    directory = directory or RadiusDirectory()

    public_ip = resolve_station_public_ip(station, resolver=resolver)
    result["public_ip"] = public_ip
    if not public_ip:
        result["message"] = f"Station {station.display_name}: missing public IP/DDNS"
        return result
    if not station.radius_server_ip:
        result["message"] = "RADIUS server IP is not configured"
        return result

    sync = sync_radius_client(station, public_ip, directory=directory)
    result["success"] = sync["success"]
    result["message"] = sync["message"]
    return result


def sync_radius_client(station, public_ip: str, directory=None) -> dict:
    """
    Make clients.conf carry the station's client at ``public_ip``.

    A missing client is added; an existing one keeps its secret and only has
    its ipaddr moved when the router's public address changed.
    """
    directory = directory or RadiusDirectory()
    result = {"success": False, "message": "", "added": False, "updated": False}

    add = directory.ensure_radius_client(
        name=station.radius_client_name,
        ip=public_ip,
        secret=station.radius_client_secret,
        shortname=station.display_name,
        server=station.radius_server_ip,
        description=f"Novanet RADIUS client for {station.display_name}",
    )
    result["success"] = add["success"]
    result["message"] = add.get("message", "")
    result["added"] = bool(add.get("added"))
    if not add["success"] or result["added"]:
        return result

    moved = directory.update_client_ip(station.radius_client_name, public_ip)
    if moved["success"]:
        result["updated"] = bool(moved.get("updated"))
        result["message"] = moved["message"]
        if result["updated"]:
            logger.info(
                f"RADIUS client {station.radius_client_name} moved to {public_ip} "
                f"for station {station.display_name}"
            )
    elif moved.get("message") != "RADIUS client not found":
        # Another client already owns this address when the name is unknown
        result["success"] = False
        result["message"] = moved.get("message", "")
    return result


def save_station(
    platform,
    data: dict,
    station: Optional[Station] = None,
    reconciler: Optional[TunnelPeerReconciler] = None,
    directory: Optional[RadiusDirectory] = None,
    configurator: Optional[RouterBackendConfigurator] = None,
    resolver=None,
    channel_factory=None,
) -> dict:
    """
    Create or update a station, then bring the tunnel (and RADIUS wiring
    when the station runs on RADIUS) in line with it.

    ``data`` is validated serializer output.
    """
    result = {
        "success": False,
        "message": "",
        "station": None,
        "created": station is None,
        "backup_path": "",
        "warnings": [],
        "errors": [],
    }

    conflict = _conflict_message(platform, data, exclude_pk=station.pk if station else None)
    if conflict:
        result["message"] = conflict
        result["errors"].append(conflict)
        return result

    if not (data.get("mikrotik_ddns") or data.get("mikrotik_public_host")):
        result["message"] = "Public router host is required."
        result["errors"].append(result["message"])
        return result

    requested_basis = data.get("system_basis") or (
        station.system_basis if station else Station.BASIS_API
    )
    basis_change = station is not None and requested_basis != station.system_basis

    if station is None:
        station = Station(platform=platform)
    for field in STATION_FIELDS:
        if field in data:
            value = data[field]
            setattr(station, field, value.strip() if isinstance(value, str) else value)
    if data.get("mikrotik_password"):
        station.mikrotik_password = encrypt_password(data["mikrotik_password"])

    try:
        if requested_basis == Station.BASIS_RADIUS and not basis_change:
            persist_radius_identity(station)
        else:
            with transaction.atomic():
                station.save()
    except IntegrityError as e:
        logger.error(f"Station save failed for {station.display_name}: {e}")
        result["message"] = "Station could not be saved, a conflicting station exists."
        result["errors"].append(str(e))
        return result

    result["station"] = station
    logger.info(f"Station {station.display_name} {'added' if result['created'] else 'updated'}")

    reconciler = reconciler or TunnelPeerReconciler()
    tunnel = reconciler.upsert_peer(station)
    result["backup_path"] = tunnel.get("backup_path", "")
    if not tunnel["success"]:
        result["message"] = f"WireGuard update failed: {tunnel['message']}"
        result["errors"].extend(tunnel.get("errors") or [tunnel["message"]])
        return result

    if basis_change:
        # Imported here to avoid a cycle; the migrator uses these services
        from .migration import SystemBasisMigrator

        summary = SystemBasisMigrator(
            station,
            configurator=configurator,
            directory=directory,
            channel_factory=channel_factory,
            resolver=resolver,
        ).run(requested_basis)
        result["warnings"].extend(summary["warnings"])
        result["errors"].extend(summary["errors"])
        result["migration"] = summary
    elif station.is_radius:
        register = register_radius_client(station, directory=directory, resolver=resolver)
        if register["public_ip"] and register["public_ip"] != station.radius_client_ip:
            station.radius_client_ip = register["public_ip"]
            station.save(update_fields=["radius_client_ip", "updated_at"])
        if not register["success"]:
            result["warnings"].append(f"RADIUS client add failed: {register['message']}")

        configurator = configurator or RouterBackendConfigurator(channel_factory)
        wiring = configurator.configure_for_radius(
            station, station.radius_server_ip, station.radius_client_secret
        )
        if not wiring["success"]:
            result["warnings"].append(f"Station {station.display_name}: {wiring['message']}")
        if station.router_synced != wiring["success"]:
            station.router_synced = wiring["success"]
            station.save(update_fields=["router_synced", "updated_at"])

    result["success"] = not result["errors"]
    action = "Station added" if result["created"] else "Station updated"
    if result["success"]:
        result["message"] = f"{action} and WireGuard updated."
    else:
        result["message"] = f"{action} but the basis migration reported errors."
    return result


def delete_station(
    station,
    reconciler: Optional[TunnelPeerReconciler] = None,
    directory: Optional[RadiusDirectory] = None,
    radius_users: Optional[RadiusUserStore] = None,
) -> dict:
    """
    Remove the station's tunnel peer, RADIUS client and RADIUS users, then
    the station row with its packages and PPPoE entries.
    """
    result = {"success": False, "message": "", "backup_path": "", "warnings": []}

    reconciler = reconciler or TunnelPeerReconciler()
    tunnel = reconciler.remove_station_peer(station)
    result["backup_path"] = tunnel.get("backup_path", "")
    if not tunnel["success"]:
        result["message"] = f"WireGuard update failed: {tunnel['message']}"
        return result

    if station.is_radius or station.radius_client_name:
        if station.radius_client_name:
            directory = directory or RadiusDirectory()
            removal = directory.remove_radius_client(station.radius_client_name)
            if not removal["success"]:
                result["warnings"].append(f"RADIUS client remove failed: {removal['message']}")

        radius_users = radius_users or RadiusUserStore()
        usernames = [
            s.login_name
            for s in Subscriber.objects.filter(package__station=station)
            if s.login_name
        ]
        usernames += list(
            PPPoEEntry.objects.filter(station=station).values_list("clientname", flat=True)
        )
        for username in usernames:
            try:
                radius_users.delete_radius_user(username)
            except Exception as e:
                logger.warning(f"RADIUS cleanup for {username} failed: {e}")
                result["warnings"].append(f"RADIUS user {username}: {e}")

    name = station.display_name
    station.delete()
    logger.info(f"Station {name} deleted")
    result["success"] = True
    result["message"] = "Station deleted and WireGuard updated."
    return result
