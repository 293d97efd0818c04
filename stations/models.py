"""
Station provisioning models for the Novanet ISP platform
"""

import uuid

from django.contrib.auth.models import User
from django.db import models


class Platform(models.Model):
    """
    ISP tenant. Every station, package and subscriber belongs to one platform.
    """

    STATUS_CHOICES = [
        ("active", "Active"),
        ("inactive", "Inactive"),
    ]

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    name = models.CharField(max_length=200)
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default="active")
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["name"]

    def __str__(self):
        return self.name

    @property
    def radius_prefix(self):
        """First six hex characters of the platform id, used in RADIUS client names"""
        return self.id.hex[:6]


class PlatformAdmin(models.Model):
    """
    Links a Django user to a platform with a role
    """

    ROLE_CHOICES = [
        ("superuser", "Superuser"),
        ("admin", "Admin"),
    ]

    user = models.ForeignKey(
        User, on_delete=models.CASCADE, related_name="platform_memberships"
    )
    platform = models.ForeignKey(
        Platform, on_delete=models.CASCADE, related_name="admins"
    )
    role = models.CharField(max_length=20, choices=ROLE_CHOICES, default="admin")
    is_active = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        unique_together = ["platform", "user"]

    def __str__(self):
        return f"{self.user.username} - {self.platform.name} ({self.role})"


class Station(models.Model):
    """
    Managed MikroTik router reachable over the WireGuard mesh
    """

    BASIS_API = "API"
    BASIS_RADIUS = "RADIUS"
    BASIS_CHOICES = [
        (BASIS_API, "Router API"),
        (BASIS_RADIUS, "RADIUS"),
    ]

    platform = models.ForeignKey(
        Platform, on_delete=models.CASCADE, related_name="stations"
    )
    name = models.CharField(max_length=100)

    # Tunnel / addressing
    mikrotik_host = models.CharField(max_length=255)  # Internal tunnel address
    mikrotik_public_host = models.CharField(max_length=255, blank=True)
    mikrotik_ddns = models.CharField(max_length=255, blank=True)
    mikrotik_public_key = models.CharField(max_length=64)

    # Router API credentials
    mikrotik_user = models.CharField(max_length=100, default="admin")
    mikrotik_password = models.CharField(max_length=512, blank=True)  # Fernet token
    mikrotik_port = models.IntegerField(default=8728)

    # Authentication backend
    system_basis = models.CharField(
        max_length=10, choices=BASIS_CHOICES, default=BASIS_API
    )
    radius_client_name = models.CharField(max_length=64, null=True, blank=True)
    radius_client_secret = models.CharField(max_length=64, blank=True)
    radius_client_ip = models.CharField(max_length=64, blank=True)
    radius_server_ip = models.CharField(max_length=64, blank=True)

    # False when the last router push did not match system_basis
    router_synced = models.BooleanField(default=True)
    last_migrated_at = models.DateTimeField(null=True, blank=True)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["platform", "name"]
        unique_together = [
            ["platform", "mikrotik_host"],
            ["platform", "radius_client_name"],
        ]

    def __str__(self):
        return f"{self.name} ({self.mikrotik_host})"

    @property
    def display_name(self):
        return self.name or self.mikrotik_host

    @property
    def endpoint_host(self):
        return self.mikrotik_ddns or self.mikrotik_public_host

    @property
    def is_radius(self):
        return self.system_basis == self.BASIS_RADIUS


class Package(models.Model):
    """
    Internet package sold on a station (hotspot, data or home fibre)
    """

    CATEGORY_CHOICES = [
        ("hotspot", "Hotspot"),
        ("data", "Data"),
        ("homefibre", "Home Fibre"),
    ]

    platform = models.ForeignKey(
        Platform, on_delete=models.CASCADE, related_name="packages"
    )
    station = models.ForeignKey(
        Station, on_delete=models.CASCADE, related_name="packages"
    )
    name = models.CharField(max_length=100)
    speed = models.CharField(max_length=20, blank=True)  # Mbps, e.g. "10"
    period = models.CharField(max_length=50, blank=True)  # e.g. "1 days", "NoExpiry"
    usage = models.CharField(max_length=50, default="Unlimited")  # e.g. "2 GB"
    category = models.CharField(
        max_length=20, choices=CATEGORY_CHOICES, default="hotspot"
    )
    devices = models.CharField(max_length=20, default="1")  # Shared users
    price = models.DecimalField(max_digits=10, decimal_places=2, default=0)
    pool = models.CharField(max_length=100, blank=True)  # Router address pool
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["station", "name"]

    def __str__(self):
        return f"{self.name} @ {self.station.mikrotik_host}"


class Subscriber(models.Model):
    """
    Hotspot access code / end user
    """

    STATUS_CHOICES = [
        ("active", "Active"),
        ("expired", "Expired"),
        ("suspended", "Suspended"),
    ]

    platform = models.ForeignKey(
        Platform, on_delete=models.CASCADE, related_name="subscribers"
    )
    package = models.ForeignKey(
        Package,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="subscribers",
    )
    username = models.CharField(max_length=100, blank=True)
    password = models.CharField(max_length=100, blank=True)
    code = models.CharField(max_length=50, blank=True)
    phone = models.CharField(max_length=20, blank=True)
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default="active")
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["-created_at"]

    def __str__(self):
        return self.login_name or f"subscriber-{self.pk}"

    @property
    def login_name(self):
        return self.username or self.code or self.phone


class PPPoEPlan(models.Model):
    platform = models.ForeignKey(
        Platform, on_delete=models.CASCADE, related_name="pppoe_plans"
    )
    name = models.CharField(max_length=100)
    profile = models.CharField(max_length=100, blank=True)  # e.g. "20M"
    price = models.DecimalField(max_digits=10, decimal_places=2, default=0)

    class Meta:
        ordering = ["name"]
        verbose_name = "PPPoE plan"

    def __str__(self):
        return self.name


class PPPoEEntry(models.Model):
    """
    PPPoE client account synced to /ppp/secret (API basis) or RADIUS
    """

    STATUS_CHOICES = [
        ("active", "Active"),
        ("inactive", "Inactive"),
        ("suspended", "Suspended"),
    ]

    platform = models.ForeignKey(
        Platform, on_delete=models.CASCADE, related_name="pppoe_entries"
    )
    station = models.ForeignKey(
        Station, on_delete=models.CASCADE, related_name="pppoe_entries"
    )
    plan = models.ForeignKey(
        PPPoEPlan,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="entries",
    )
    name = models.CharField(max_length=100, blank=True)
    clientname = models.CharField(max_length=100)
    clientpassword = models.CharField(max_length=100)
    profile = models.CharField(max_length=100, default="default")
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default="active")
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["clientname"]
        verbose_name = "PPPoE entry"
        verbose_name_plural = "PPPoE entries"

    def __str__(self):
        return f"{self.clientname} @ {self.station.mikrotik_host}"


# FreeRADIUS SQL tables (rlm_sql schema)


class RadCheck(models.Model):
    id = models.AutoField(primary_key=True)
    username = models.CharField(max_length=64, db_index=True)
    attribute = models.CharField(max_length=64)
    op = models.CharField(max_length=2, default=":=")
    value = models.CharField(max_length=253)

    class Meta:
        db_table = "radcheck"

    def __str__(self):
        return f"{self.username} {self.attribute} {self.op}"


class RadReply(models.Model):
    id = models.AutoField(primary_key=True)
    username = models.CharField(max_length=64, db_index=True)
    attribute = models.CharField(max_length=64)
    op = models.CharField(max_length=2, default="=")
    value = models.CharField(max_length=253)

    class Meta:
        db_table = "radreply"

    def __str__(self):
        return f"{self.username} {self.attribute} {self.op} {self.value}"


class RadUserGroup(models.Model):
    id = models.AutoField(primary_key=True)
    username = models.CharField(max_length=64, db_index=True)
    groupname = models.CharField(max_length=64)
    priority = models.IntegerField(default=1)

    class Meta:
        db_table = "radusergroup"

    def __str__(self):
        return f"{self.username} -> {self.groupname}"
