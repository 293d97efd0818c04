"""
Serializers for the station API
"""

from rest_framework import serializers

from .models import Station
from .utils import is_valid_ddns_host, is_valid_ip
from .wireguard import is_valid_wireguard_key


class StationSerializer(serializers.ModelSerializer):
    """Read-only station representation (router password never leaves the server)"""

    platform = serializers.UUIDField(source="platform_id", read_only=True)

    class Meta:
        model = Station
        fields = [
            "id",
            "platform",
            "name",
            "mikrotik_host",
            "mikrotik_public_host",
            "mikrotik_ddns",
            "mikrotik_public_key",
            "mikrotik_user",
            "mikrotik_port",
            "system_basis",
            "radius_client_name",
            "radius_client_ip",
            "radius_server_ip",
            "router_synced",
            "last_migrated_at",
            "created_at",
            "updated_at",
        ]
        read_only_fields = fields


class StationSaveSerializer(serializers.Serializer):
    """Serializer for creating or updating a station"""

    id = serializers.IntegerField(required=False, allow_null=True)
    name = serializers.CharField(max_length=100)
    mikrotik_host = serializers.CharField(max_length=255)
    mikrotik_public_key = serializers.CharField(max_length=64)
    mikrotik_public_host = serializers.CharField(
        max_length=255, required=False, allow_blank=True, default=""
    )
    mikrotik_ddns = serializers.CharField(
        max_length=255, required=False, allow_blank=True, default=""
    )
    mikrotik_user = serializers.CharField(max_length=100, default="admin")
    mikrotik_password = serializers.CharField(
        max_length=255, write_only=True, required=False, allow_blank=True
    )
    mikrotik_port = serializers.IntegerField(default=8728, min_value=1, max_value=65535)
    system_basis = serializers.CharField(max_length=10, required=False)

    def validate_mikrotik_host(self, value):
        value = value.strip()
        if not is_valid_ip(value):
            raise serializers.ValidationError("Must be the router's tunnel IP address")
        return value

    def validate_mikrotik_public_key(self, value):
        value = value.strip()
        if not is_valid_wireguard_key(value):
            raise serializers.ValidationError("Invalid WireGuard public key")
        return value

    def validate_mikrotik_ddns(self, value):
        value = value.strip()
        if value and not is_valid_ddns_host(value):
            raise serializers.ValidationError("Invalid DDNS hostname")
        return value

    def validate_system_basis(self, value):
        normalized = value.strip().upper()
        if normalized not in (Station.BASIS_API, Station.BASIS_RADIUS):
            raise serializers.ValidationError("Must be API or RADIUS")
        return normalized

    def validate(self, attrs):
        if not (attrs.get("mikrotik_ddns") or attrs.get("mikrotik_public_host")):
            raise serializers.ValidationError(
                {"mikrotik_public_host": "Public router host or DDNS name is required."}
            )
        return attrs


class StationDeleteSerializer(serializers.Serializer):
    id = serializers.IntegerField()


class MigrateSystemBasisSerializer(serializers.Serializer):
    """Serializer for switching a station's authentication backend"""

    station_id = serializers.IntegerField()
    target = serializers.CharField(max_length=10)

    def validate_target(self, value):
        normalized = value.strip().upper()
        if normalized not in (Station.BASIS_API, Station.BASIS_RADIUS):
            raise serializers.ValidationError("Invalid target basis")
        return normalized
