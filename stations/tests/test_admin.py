"""
Tests for the station admin
"""

from django.contrib import admin
from django.contrib.auth.models import User
from django.test import RequestFactory, TestCase

from stations.admin import StationAdmin
from stations.models import Platform, Station

from .fakes import wg_key


class StationAdminTest(TestCase):
    """Test that the admin form cannot switch a station's basis"""

    def setUp(self):
        self.station = Station.objects.create(
            platform=Platform.objects.create(name="Novanet Test ISP"),
            name="Kariakoo",
            mikrotik_host="10.10.0.12",
            mikrotik_public_host="41.1.1.1",
            mikrotik_public_key=wg_key(1),
        )
        self.request = RequestFactory().get("/admin/stations/station/")
        self.request.user = User.objects.create_superuser("root", "root@example.com", "pw")
        self.model_admin = StationAdmin(Station, admin.site)

    def test_system_basis_is_read_only(self):
        self.assertIn(
            "system_basis", self.model_admin.get_readonly_fields(self.request, self.station)
        )

    def test_change_form_has_no_basis_field(self):
        form = self.model_admin.get_form(self.request, self.station)
        self.assertNotIn("system_basis", form.base_fields)
        self.assertIn("mikrotik_host", form.base_fields)
