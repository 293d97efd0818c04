"""
Station management API: station CRUD, RADIUS credentials and
system basis migration
"""

import logging

from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.response import Response

from .migration import SystemBasisMigrator
from .models import Station
from .permissions import IsPlatformSuperuser
from .serializers import (
    MigrateSystemBasisSerializer,
    StationDeleteSerializer,
    StationSaveSerializer,
    StationSerializer,
)
from .services import delete_station, issue_radius_credentials, save_station

logger = logging.getLogger(__name__)


def _validation_error(serializer):
    return Response(
        {
            "success": False,
            "message": "Missing or invalid station details.",
            "errors": serializer.errors,
        },
        status=status.HTTP_400_BAD_REQUEST,
    )


def _station_not_found():
    return Response(
        {"success": False, "message": "Station not found"},
        status=status.HTTP_404_NOT_FOUND,
    )


# =============================================================================
# STATIONS
# =============================================================================


@api_view(["GET"])
@permission_classes([IsPlatformSuperuser])
def station_list(request):
    """
    List the caller's platform stations

    URL: GET /api/stations/
    """
    stations = Station.objects.filter(platform=request.platform)
    return Response(
        {"success": True, "stations": StationSerializer(stations, many=True).data}
    )


@api_view(["POST"])
@permission_classes([IsPlatformSuperuser])
def station_save(request):
    """
    Create (no id) or update (id given) a station and sync its WireGuard peer.

    URL: POST /api/stations/save/
    """
    serializer = StationSaveSerializer(data=request.data)
    if not serializer.is_valid():
        return _validation_error(serializer)

    data = serializer.validated_data
    station = None
    if data.get("id"):
        station = Station.objects.filter(id=data["id"], platform=request.platform).first()
        if station is None:
            return _station_not_found()

    result = save_station(request.platform, data, station=station)
    payload = {
        "success": result["success"],
        "message": result["message"],
        "warnings": result["warnings"],
    }
    if result["station"] is not None:
        payload["station"] = StationSerializer(result["station"]).data
    if result["backup_path"]:
        payload["backup_path"] = result["backup_path"]
    if "migration" in result:
        payload["migration"] = result["migration"]

    if result["success"]:
        code = status.HTTP_201_CREATED if result["created"] else status.HTTP_200_OK
    elif result["station"] is None:
        # Rejected before anything was written
        code = status.HTTP_400_BAD_REQUEST
    else:
        payload["errors"] = result["errors"]
        code = status.HTTP_500_INTERNAL_SERVER_ERROR
    return Response(payload, status=code)


@api_view(["POST"])
@permission_classes([IsPlatformSuperuser])
def station_delete(request):
    """
    Delete a station, its tunnel peer and its RADIUS registration.

    URL: POST /api/stations/delete/
    """
    serializer = StationDeleteSerializer(data=request.data)
    if not serializer.is_valid():
        return _validation_error(serializer)

    station = Station.objects.filter(
        id=serializer.validated_data["id"], platform=request.platform
    ).first()
    if station is None:
        return _station_not_found()

    result = delete_station(station)
    payload = {
        "success": result["success"],
        "message": result["message"],
        "warnings": result["warnings"],
    }
    if result["backup_path"]:
        payload["backup_path"] = result["backup_path"]
    code = status.HTTP_200_OK if result["success"] else status.HTTP_500_INTERNAL_SERVER_ERROR
    return Response(payload, status=code)


# =============================================================================
# RADIUS
# =============================================================================


@api_view(["POST"])
@permission_classes([IsPlatformSuperuser])
def radius_credentials(request):
    """
    Generate RADIUS client credentials for a router auto-setup script.
    Nothing is persisted.

    URL: POST /api/stations/radius-credentials/
    """
    credentials = issue_radius_credentials(request.platform)
    return Response(
        {"success": True, "message": "RADIUS credentials generated", **credentials}
    )


@api_view(["POST"])
@permission_classes([IsPlatformSuperuser])
def migrate_system_basis(request):
    """
    Switch a station between API and RADIUS basis.

    URL: POST /api/stations/migrate-system-basis/

    Request Body:
    {
        "station_id": 12,
        "target": "RADIUS"
    }
    """
    serializer = MigrateSystemBasisSerializer(data=request.data)
    if not serializer.is_valid():
        return Response(
            {
                "success": False,
                "message": "Missing or invalid station_id / target",
                "errors": serializer.errors,
            },
            status=status.HTTP_400_BAD_REQUEST,
        )

    target = serializer.validated_data["target"]
    station = (
        Station.objects.select_related("platform")
        .filter(id=serializer.validated_data["station_id"], platform=request.platform)
        .first()
    )
    if station is None:
        return _station_not_found()

    summary = SystemBasisMigrator(station).run(target)
    success = not summary["errors"]
    message = (
        f"Migration to {target} completed"
        if success
        else f"Migration to {target} completed with errors"
    )
    logger.info(f"{request.user.username}: {message} for station {station.display_name}")
    return Response({"success": success, "message": message, "summary": summary})
