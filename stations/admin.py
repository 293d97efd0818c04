"""
Django admin configuration for Novanet station provisioning with Jazzmin
"""

from django.contrib import admin
from django.utils.html import format_html

from .migration import SystemBasisMigrator
from .models import (
    Package,
    Platform,
    PlatformAdmin,
    PPPoEEntry,
    PPPoEPlan,
    RadCheck,
    RadReply,
    RadUserGroup,
    Station,
    Subscriber,
)


class PlatformAdminInline(admin.TabularInline):
    model = PlatformAdmin
    extra = 0
    fields = ["user", "role", "is_active"]


@admin.register(Platform)
class PlatformModelAdmin(admin.ModelAdmin):
    """Manage ISP platforms"""

    list_display = ["name", "id", "status", "station_count", "created_at"]
    list_filter = ["status"]
    search_fields = ["name", "id"]
    readonly_fields = ["id", "created_at", "updated_at"]
    inlines = [PlatformAdminInline]

    def station_count(self, obj):
        return obj.stations.count()

    station_count.short_description = "Stations"


@admin.register(Station)
class StationAdmin(admin.ModelAdmin):
    """Manage MikroTik stations"""

    list_display = [
        "name",
        "platform",
        "mikrotik_host",
        "basis_badge",
        "router_synced",
        "last_migrated_at",
    ]
    list_filter = ["system_basis", "router_synced", "platform"]
    search_fields = ["name", "mikrotik_host", "mikrotik_ddns", "radius_client_name"]
    # Basis only changes through the migrate actions
    readonly_fields = [
        "system_basis",
        "radius_client_name",
        "radius_client_secret",
        "radius_client_ip",
        "radius_server_ip",
        "router_synced",
        "last_migrated_at",
        "created_at",
        "updated_at",
    ]
    exclude = ["mikrotik_password"]
    actions = ["migrate_to_radius", "migrate_to_api"]

    fieldsets = (
        ("Station", {"fields": ("platform", "name", "system_basis")}),
        (
            "Tunnel",
            {
                "fields": (
                    "mikrotik_host",
                    "mikrotik_public_host",
                    "mikrotik_ddns",
                    "mikrotik_public_key",
                )
            },
        ),
        ("Router API", {"fields": ("mikrotik_user", "mikrotik_port")}),
        (
            "RADIUS",
            {
                "fields": (
                    "radius_client_name",
                    "radius_client_secret",
                    "radius_client_ip",
                    "radius_server_ip",
                ),
                "classes": ("collapse",),
            },
        ),
        (
            "Status",
            {"fields": ("router_synced", "last_migrated_at", "created_at", "updated_at")},
        ),
    )

    def basis_badge(self, obj):
        color = "purple" if obj.is_radius else "teal"
        return format_html(
            '<span style="background: {}; color: white; padding: 2px 8px; border-radius: 4px;">{}</span>',
            color,
            obj.system_basis,
        )

    basis_badge.short_description = "Basis"

    def _migrate(self, request, queryset, target):
        for station in queryset.select_related("platform"):
            summary = SystemBasisMigrator(station).run(target)
            if summary["errors"]:
                self.message_user(
                    request,
                    f"{station.name}: migration to {target} finished with errors: "
                    + "; ".join(summary["errors"]),
                    level="ERROR",
                )
            else:
                self.message_user(
                    request,
                    f"{station.name}: migrated to {target} "
                    f"({len(summary['warnings'])} warnings)",
                )

    def migrate_to_radius(self, request, queryset):
        """Switch selected stations to RADIUS basis"""
        self._migrate(request, queryset, "RADIUS")

    migrate_to_radius.short_description = "Migrate selected stations to RADIUS"

    def migrate_to_api(self, request, queryset):
        """Switch selected stations to router API basis"""
        self._migrate(request, queryset, "API")

    migrate_to_api.short_description = "Migrate selected stations to API"


@admin.register(Package)
class PackageAdmin(admin.ModelAdmin):
    list_display = ["name", "station", "category", "speed", "usage", "period", "pool", "price"]
    list_filter = ["category", "platform"]
    search_fields = ["name", "station__name", "station__mikrotik_host"]


@admin.register(Subscriber)
class SubscriberAdmin(admin.ModelAdmin):
    list_display = ["username", "code", "phone", "package", "status", "created_at"]
    list_filter = ["status", "platform"]
    search_fields = ["username", "code", "phone"]


@admin.register(PPPoEPlan)
class PPPoEPlanAdmin(admin.ModelAdmin):
    list_display = ["name", "profile", "price", "platform"]
    search_fields = ["name"]


@admin.register(PPPoEEntry)
class PPPoEEntryAdmin(admin.ModelAdmin):
    list_display = ["clientname", "station", "plan", "profile", "status"]
    list_filter = ["status", "platform"]
    search_fields = ["clientname", "name"]


@admin.register(RadCheck)
class RadCheckAdmin(admin.ModelAdmin):
    list_display = ["username", "attribute", "op"]
    search_fields = ["username"]


@admin.register(RadReply)
class RadReplyAdmin(admin.ModelAdmin):
    list_display = ["username", "attribute", "op", "value"]
    search_fields = ["username"]


@admin.register(RadUserGroup)
class RadUserGroupAdmin(admin.ModelAdmin):
    list_display = ["username", "groupname", "priority"]
    search_fields = ["username", "groupname"]
