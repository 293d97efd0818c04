"""
System basis migration.

Moves a live station between router-local authentication (API basis) and
FreeRADIUS (RADIUS basis). There is no transaction spanning the database,
FreeRADIUS and the router, so the migrator:

* persists the new basis (and RADIUS identity) before touching anything
  external, making the database the source of truth;
* never aborts part way. Problems are collected in the run summary as
  ``warnings`` (degraded but usable) or ``errors`` (subscribers that could
  not be provisioned on the router);
* is safe to run again, which is how a partial failure is repaired. The
  station is flagged ``router_synced=False`` when the router push failed so
  the reconciliation task picks it up.
"""

import logging
from typing import Optional

from django.utils import timezone

from . import mikrotik
from .mikrotik import row_id
from .models import Package, PPPoEEntry, Station, Subscriber
from .radius import RadiusDirectory, RadiusUserStore
from .router_backend import RouterBackendConfigurator
from .services import (
    persist_radius_identity,
    radius_server_ip,
    resolve_station_public_ip,
    sync_radius_client,
)
from .utils import rate_limit_from_profile, rate_limit_from_speed, usage_to_bytes

logger = logging.getLogger(__name__)

VALID_TARGETS = (Station.BASIS_API, Station.BASIS_RADIUS)


def new_summary(target: str) -> dict:
    return {
        "target": target,
        "station_updated": False,
        "router_configured": False,
        "users_migrated": 0,
        "pppoe_migrated": 0,
        "packages_updated": 0,
        "radius_client_added": False,
        "radius_client_removed": False,
        "warnings": [],
        "errors": [],
    }


def normalize_target(target) -> Optional[str]:
    value = str(target or "").strip().upper()
    return value if value in VALID_TARGETS else None


class SystemBasisMigrator:
    """
    Switch one station to ``API`` or ``RADIUS`` basis.

    Collaborators are injectable; by default the router is reached through
    :func:`stations.mikrotik.open_channel`.
    """

    def __init__(
        self,
        station: Station,
        configurator: Optional[RouterBackendConfigurator] = None,
        directory: Optional[RadiusDirectory] = None,
        radius_users: Optional[RadiusUserStore] = None,
        channel_factory=None,
        resolver=None,
    ):
        self.station = station
        self.platform = station.platform
        self.channel_factory = channel_factory or mikrotik.open_channel
        self.configurator = configurator or RouterBackendConfigurator(self.channel_factory)
        self.directory = directory or RadiusDirectory()
        self.radius_users = radius_users or RadiusUserStore()
        self.resolver = resolver
        self._pool_cache = {}

    def run(self, target) -> dict:
        normalized = normalize_target(target)
        if normalized is None:
            raise ValueError(f"Invalid target basis: {target}")

        summary = new_summary(normalized)
        logger.info(
            f"Migrating station {self.station.display_name} "
            f"from {self.station.system_basis} to {normalized}"
        )
        if normalized == Station.BASIS_RADIUS:
            self._to_radius(summary)
        else:
            self._to_api(summary)

        self.station.router_synced = summary["router_configured"]
        self.station.last_migrated_at = timezone.now()
        self.station.save(update_fields=["router_synced", "last_migrated_at", "updated_at"])

        log = logger.warning if summary["errors"] else logger.info
        log(
            f"Migration of {self.station.display_name} to {normalized} finished: "
            f"{summary['users_migrated']} users, {summary['pppoe_migrated']} PPPoE, "
            f"{len(summary['warnings'])} warnings, {len(summary['errors'])} errors"
        )
        return summary

    # querysets

    def _packages(self):
        return Package.objects.filter(station=self.station)

    def _active_subscribers(self):
        return (
            Subscriber.objects.filter(
                platform=self.platform, package__station=self.station, status="active"
            )
            .select_related("package")
        )

    def _pppoe_entries(self):
        return PPPoEEntry.objects.filter(station=self.station).select_related("plan")

    # RADIUS direction

    def _to_radius(self, summary: dict):
        station = self.station

        public_ip = resolve_station_public_ip(station, resolver=self.resolver)
        if not public_ip:
            summary["warnings"].append(
                f"Station {station.display_name}: missing public IP/DDNS"
            )

        persist_radius_identity(station, public_ip=public_ip)
        summary["station_updated"] = True

        if public_ip and station.radius_server_ip:
            added = sync_radius_client(station, public_ip, directory=self.directory)
            if added["success"]:
                summary["radius_client_added"] = True
            else:
                summary["warnings"].append(
                    f"RADIUS client add failed: {added.get('message') or 'unknown error'}"
                )

        wiring = self.configurator.configure_for_radius(
            station, station.radius_server_ip, station.radius_client_secret
        )
        if wiring["success"]:
            summary["router_configured"] = True
        else:
            summary["warnings"].append(f"Station {station.display_name}: {wiring['message']}")

        for subscriber in self._active_subscribers():
            package = subscriber.package
            username = subscriber.login_name
            if not username:
                continue
            quota = None
            if package.category == "data" and package.usage != "Unlimited":
                quota = usage_to_bytes(package.usage)
            try:
                self.radius_users.upsert_radius_user(
                    username=username,
                    password=subscriber.password or username,
                    groupname=package.name,
                    rate_limit=rate_limit_from_speed(package.speed),
                    data_limit_bytes=quota,
                )
                summary["users_migrated"] += 1
            except Exception as e:
                logger.error(f"RADIUS upsert failed for {username}: {e}")
                summary["warnings"].append(f"User {username}: RADIUS upsert failed: {e}")

        for entry in self._pppoe_entries():
            plan = entry.plan
            rate_limit = rate_limit_from_profile(
                plan.profile if plan else "",
                entry.profile,
                plan.name if plan else "",
                entry.name,
            )
            try:
                self.radius_users.upsert_radius_user(
                    username=entry.clientname,
                    password=entry.clientpassword or entry.clientname,
                    groupname=(plan.name if plan else "") or entry.name,
                    rate_limit=rate_limit,
                )
                summary["pppoe_migrated"] += 1
            except Exception as e:
                logger.error(f"RADIUS upsert failed for PPPoE {entry.clientname}: {e}")
                summary["warnings"].append(
                    f"PPPoE {entry.clientname}: RADIUS upsert failed: {e}"
                )

    # API direction

    def _to_api(self, summary: dict):
        station = self.station
        station.system_basis = Station.BASIS_API
        station.save(update_fields=["system_basis", "updated_at"])
        summary["station_updated"] = True

        if station.radius_client_name:
            removal = self.directory.remove_radius_client(station.radius_client_name)
            if removal["success"] and removal.get("removed"):
                summary["radius_client_removed"] = True
            elif not removal["success"]:
                summary["warnings"].append(f"RADIUS client remove failed: {removal['message']}")

        wiring = self.configurator.configure_for_api(
            station, station.radius_server_ip or radius_server_ip()
        )
        if wiring["success"]:
            summary["router_configured"] = True
        else:
            summary["warnings"].append(f"Station {station.display_name}: {wiring['message']}")

        self._delete_radius_users(summary)
        profiled = self._sync_package_profiles(summary)
        self._activate_hotspot_users(summary, profiled)
        self._sync_ppp_secrets(summary)

    def _delete_radius_users(self, summary: dict):
        usernames = [
            s.login_name
            for s in Subscriber.objects.filter(package__station=self.station)
            if s.login_name
        ]
        usernames += [e.clientname for e in self._pppoe_entries() if e.clientname]
        for username in usernames:
            try:
                self.radius_users.delete_radius_user(username)
            except Exception as e:
                logger.warning(f"RADIUS delete failed for {username}: {e}")
                summary["warnings"].append(f"User {username}: RADIUS delete failed: {e}")

    def _router_pools(self, host: str) -> list:
        if host in self._pool_cache:
            return self._pool_cache[host]
        pools = []
        channel = None
        try:
            channel = self.channel_factory(self.station)
            if channel is not None:
                pools = mikrotik.list_pools(channel)
        except Exception as e:
            logger.warning(f"Could not list address pools on {host}: {e}")
        finally:
            mikrotik.safe_close(channel)
        self._pool_cache[host] = pools
        return pools

    def _sync_package_profiles(self, summary: dict) -> set:
        """Resolve pools and (re)create router profiles; returns profiled package ids."""
        host = self.station.mikrotik_host
        ready = []
        for package in self._packages():
            if package.category == "homefibre":
                continue
            if not package.pool:
                pools = [p for p in self._router_pools(host) if p.get("name")]
                if not pools:
                    summary["warnings"].append(
                        f"Package {package.name}: no address pool found on {host}"
                    )
                    continue
                package.pool = pools[0]["name"]
                package.save(update_fields=["pool", "updated_at"])
                summary["packages_updated"] += 1
            ready.append(package)

        profiled = set()
        if not ready:
            return profiled

        channel = None
        try:
            channel = self.channel_factory(self.station)
            if channel is None:
                for package in ready:
                    summary["warnings"].append(
                        f"Package {package.name}: No valid MikroTik connection"
                    )
                return profiled
            for package in ready:
                outcome = mikrotik.create_or_update_hotspot_profile(channel, package)
                if outcome["success"]:
                    profiled.add(package.pk)
                else:
                    summary["warnings"].append(
                        f"Package {package.name}: {outcome['message'] or 'profile creation failed'}"
                    )
        finally:
            mikrotik.safe_close(channel)
        return profiled

    def _activate_hotspot_users(self, summary: dict, profiled: set):
        subscribers = []
        for subscriber in self._active_subscribers():
            package = subscriber.package
            if package.category == "homefibre":
                continue
            if not subscriber.login_name:
                continue
            if package.pk not in profiled:
                summary["warnings"].append(
                    f"User {subscriber.login_name}: package {package.name} has no router profile, skipped"
                )
                continue
            subscribers.append(subscriber)
        if not subscribers:
            return

        channel = None
        try:
            channel = self.channel_factory(self.station)
            if channel is None:
                summary["errors"].append(
                    f"Hotspot users: no connection to {self.station.mikrotik_host}"
                )
                return
            for subscriber in subscribers:
                username = subscriber.login_name
                outcome = mikrotik.ensure_hotspot_user(
                    channel,
                    subscriber.package,
                    username,
                    subscriber.password or username,
                )
                if outcome["success"]:
                    summary["users_migrated"] += 1
                else:
                    summary["errors"].append(f"User {username}: {outcome['message']}")
        finally:
            mikrotik.safe_close(channel)

    def _sync_ppp_secrets(self, summary: dict):
        entries = list(self._pppoe_entries())
        if not entries:
            return

        channel = None
        try:
            channel = self.channel_factory(self.station)
            if channel is None:
                summary["errors"].append(f"PPPoE: no connection to {self.station.mikrotik_host}")
                return

            secrets = mikrotik.list_secrets(channel)
            by_name = {s.get("name"): s for s in secrets}
            for entry in entries:
                disabled = "no" if entry.status == "active" else "yes"
                try:
                    existing = by_name.get(entry.clientname)
                    if existing is not None and row_id(existing):
                        mikrotik.update_secret(
                            channel,
                            row_id(existing),
                            {
                                "name": entry.clientname,
                                "password": entry.clientpassword,
                                "service": "pppoe",
                                "profile": entry.profile,
                                "disabled": disabled,
                            },
                        )
                    else:
                        mikrotik.add_secret(
                            channel,
                            name=entry.clientname,
                            password=entry.clientpassword,
                            profile=entry.profile,
                        )
                        # Secrets can only be disabled by id, after creation
                        if disabled == "yes":
                            created = mikrotik.get_secrets_by_name(channel, entry.clientname)
                            if created and row_id(created[0]):
                                mikrotik.update_secret(
                                    channel, row_id(created[0]), {"disabled": "yes"}
                                )
                    summary["pppoe_migrated"] += 1
                except Exception as e:
                    logger.error(f"PPP secret sync failed for {entry.clientname}: {e}")
                    summary["errors"].append(f"PPPoE {entry.clientname}: {e}")
        except Exception as e:
            logger.error(f"PPP secret listing failed on {self.station.mikrotik_host}: {e}")
            summary["errors"].append(f"PPPoE: {e}")
        finally:
            mikrotik.safe_close(channel)
