"""
Background tasks for Novanet station provisioning
Re-drives basis migration for stations whose router drifted from the database
and keeps FreeRADIUS clients in step with dynamic router addresses
"""

import logging

from .migration import SystemBasisMigrator
from .models import Station
from .radius import RadiusDirectory
from .router_backend import RouterBackendConfigurator
from .services import resolve_host, sync_radius_client
from .utils import is_valid_ip

logger = logging.getLogger(__name__)


def reconcile_system_basis(configurator=None, migrator_factory=None, platform=None):
    """
    Reconcile every station's router with its persisted system basis.
    This should be run periodically (every 15 minutes via django-crontab).

    A station is re-migrated to its persisted basis when:
    1. The last router push failed (router_synced=False), or
    2. The router's PPP AAA setting disagrees with system_basis

    Unreachable routers are skipped and retried on the next run.
    """
    configurator = configurator or RouterBackendConfigurator()
    migrator_factory = migrator_factory or (
        lambda station: SystemBasisMigrator(station, configurator=configurator)
    )

    stations = Station.objects.select_related("platform").filter(
        platform__status="active"
    )
    if platform is not None:
        stations = stations.filter(platform=platform)

    result = {
        "success": True,
        "checked": 0,
        "reconciled": 0,
        "unreachable": 0,
        "failed": 0,
        "errors": [],
    }

    for station in stations:
        result["checked"] += 1
        try:
            needs_run = not station.router_synced
            if not needs_run:
                observed = configurator.observed_basis(station)
                if observed is None:
                    result["unreachable"] += 1
                    logger.info(f"Station {station.display_name} unreachable, skipping")
                    continue
                needs_run = observed != station.system_basis
                if needs_run:
                    logger.warning(
                        f"Station {station.display_name} router reports {observed}, "
                        f"database says {station.system_basis}"
                    )
            if not needs_run:
                continue

            summary = migrator_factory(station).run(station.system_basis)
            if summary["errors"] or not summary["router_configured"]:
                result["failed"] += 1
                result["errors"].extend(
                    f"{station.display_name}: {e}" for e in summary["errors"]
                )
            else:
                result["reconciled"] += 1
        except Exception as e:
            logger.error(f"Reconciliation failed for {station.display_name}: {e}")
            result["failed"] += 1
            result["errors"].append(f"{station.display_name}: {e}")

    result["success"] = result["failed"] == 0
    logger.info(
        f"Basis reconciliation: {result['checked']} checked, {result['reconciled']} reconciled, "
        f"{result['unreachable']} unreachable, {result['failed']} failed"
    )
    return result


def sync_radius_client_ips(directory=None, resolver=None, platform=None):
    """
    Follow dynamic public addresses of RADIUS-basis stations.
    This should be run periodically (every 10 minutes via django-crontab).

    The station's DDNS name is re-resolved and clients.conf is rewritten
    when the router's public IP moved, so FreeRADIUS keeps accepting it.
    Stations without a DDNS hostname keep their static address.
    """
    directory = directory or RadiusDirectory()
    resolver = resolver or resolve_host

    stations = (
        Station.objects.select_related("platform")
        .filter(platform__status="active", system_basis=Station.BASIS_RADIUS)
        .filter(radius_client_name__gt="")
        .exclude(mikrotik_ddns="")
    )
    if platform is not None:
        stations = stations.filter(platform=platform)

    result = {
        "success": True,
        "checked": 0,
        "updated": 0,
        "unresolved": 0,
        "failed": 0,
        "errors": [],
    }

    for station in stations:
        if is_valid_ip(station.mikrotik_ddns) or not station.radius_server_ip:
            continue
        result["checked"] += 1
        try:
            public_ip = resolver(station.mikrotik_ddns)
            if not public_ip:
                result["unresolved"] += 1
                logger.info(f"DDNS {station.mikrotik_ddns} did not resolve, skipping")
                continue

            sync = sync_radius_client(station, public_ip, directory=directory)
            if not sync["success"]:
                result["failed"] += 1
                result["errors"].append(f"{station.display_name}: {sync['message']}")
                continue

            if station.radius_client_ip != public_ip:
                station.radius_client_ip = public_ip
                station.save(update_fields=["radius_client_ip", "updated_at"])
            if sync["updated"] or sync["added"]:
                result["updated"] += 1
        except Exception as e:
            logger.error(f"RADIUS IP sync failed for {station.display_name}: {e}")
            result["failed"] += 1
            result["errors"].append(f"{station.display_name}: {e}")

    result["success"] = result["failed"] == 0
    logger.info(
        f"RADIUS IP sync: {result['checked']} checked, {result['updated']} updated, "
        f"{result['unresolved']} unresolved, {result['failed']} failed"
    )
    return result
