"""
Router-side authentication backend wiring.

Switches a station's router between RADIUS authentication and router-local
(API) authentication. Both directions are safe to re-run; a failure part way
leaves the router mixed and the remedy is to run the same call again.
"""

import logging
from typing import Optional

from . import mikrotik
from .mikrotik import row_id

logger = logging.getLogger(__name__)

RADIUS_SERVICES = "ppp,hotspot"
RADIUS_TIMEOUT = "300ms"
INTERIM_UPDATE = "1m"


class RouterBackendConfigurator:
    """
    Pushes RADIUS on/off settings to a station router.

    ``channel_factory(station)`` must return an object with
    ``write(command, args)`` and ``close()``, or None when the router is
    unreachable.
    """

    def __init__(self, channel_factory=None):
        self.channel_factory = channel_factory or mikrotik.open_channel

    def _open(self, station):
        return self.channel_factory(station)

    def configure_for_radius(self, station, radius_server_ip: str, secret: str) -> dict:
        result = {"success": False, "message": ""}
        channel = None
        try:
            channel = self._open(station)
            if channel is None:
                result["message"] = "No valid MikroTik connection"
                return result

            entries = channel.write("/radius/print")
            existing = next(
                (e for e in entries if str(e.get("address", "")) == radius_server_ip),
                None,
            )
            if existing is not None and row_id(existing):
                channel.write(
                    "/radius/set",
                    {
                        "id": row_id(existing),
                        "secret": secret,
                        "service": RADIUS_SERVICES,
                        "timeout": RADIUS_TIMEOUT,
                    },
                )
            else:
                channel.write(
                    "/radius/add",
                    {
                        "address": radius_server_ip,
                        "secret": secret,
                        "service": RADIUS_SERVICES,
                        "timeout": RADIUS_TIMEOUT,
                    },
                )

            channel.write("/radius/incoming/set", {"accept": "yes"})
            channel.write(
                "/ppp/aaa/set",
                {
                    "use-radius": "yes",
                    "accounting": "yes",
                    "interim-update": INTERIM_UPDATE,
                },
            )
            self._set_hotspot_use_radius(channel, "yes")

            result["success"] = True
            result["message"] = f"Router {station.mikrotik_host} configured for RADIUS"
            logger.info(result["message"])
        except Exception as e:
            logger.error(f"RADIUS router config failed for {station.mikrotik_host}: {e}")
            result["message"] = str(e) or "Router radius config failed"
        finally:
            mikrotik.safe_close(channel)
        return result

    def configure_for_api(self, station, radius_server_ip: Optional[str]) -> dict:
        result = {"success": False, "message": ""}
        channel = None
        try:
            channel = self._open(station)
            if channel is None:
                result["message"] = "No valid MikroTik connection"
                return result

            # Unknown server address means every RADIUS entry goes
            for entry in channel.write("/radius/print"):
                address = str(entry.get("address", ""))
                if radius_server_ip and address != radius_server_ip:
                    continue
                if row_id(entry):
                    channel.write("/radius/remove", {"id": row_id(entry)})

            channel.write("/radius/incoming/set", {"accept": "no"})
            channel.write("/ppp/aaa/set", {"use-radius": "no"})
            self._set_hotspot_use_radius(channel, "no")

            result["success"] = True
            result["message"] = f"Router {station.mikrotik_host} configured for API"
            logger.info(result["message"])
        except Exception as e:
            logger.error(f"API router config failed for {station.mikrotik_host}: {e}")
            result["message"] = str(e) or "Router API config failed"
        finally:
            mikrotik.safe_close(channel)
        return result

    def observed_basis(self, station) -> Optional[str]:
        """
        Report which backend the router currently uses for PPP: "RADIUS",
        "API", or None when the router cannot be read.
        """
        channel = None
        try:
            channel = self._open(station)
            if channel is None:
                return None
            rows = channel.write("/ppp/aaa/print")
            if not rows:
                return None
            use_radius = str(rows[0].get("use-radius", "")).lower()
            return "RADIUS" if use_radius in ("yes", "true") else "API"
        except Exception as e:
            logger.warning(f"Could not read AAA settings from {station.mikrotik_host}: {e}")
            return None
        finally:
            mikrotik.safe_close(channel)

    @staticmethod
    def _set_hotspot_use_radius(channel, value: str):
        for profile in mikrotik.list_hotspot_server_profiles(channel):
            if not row_id(profile):
                continue
            channel.write(
                "/ip/hotspot/profile/set", {"id": row_id(profile), "use-radius": value}
            )
