"""
Tests for moving stations between API and RADIUS basis
"""

import os
import shutil
import tempfile
from unittest.mock import patch

from django.db import IntegrityError
from django.test import TestCase, override_settings

from stations.migration import SystemBasisMigrator, normalize_target
from stations.models import (
    Package,
    Platform,
    PPPoEEntry,
    PPPoEPlan,
    RadCheck,
    RadReply,
    RadUserGroup,
    Station,
    Subscriber,
)
from stations.radius import RadiusDirectory
from stations.services import persist_radius_identity

from .fakes import FakeRouter, FakeRunner, wg_key

PUBLIC_IP = "41.1.1.1"


def resolver(host):
    return PUBLIC_IP


def make_router(**kwargs):
    return FakeRouter(
        tables={
            "/ip/hotspot/profile": [{"name": "hsprof1"}],
            "/ppp/aaa": [{"use-radius": "no"}],
            "/ip/pool": [{"name": "hs-pool"}],
        },
        **kwargs,
    )


@override_settings(RADIUS_SERVER_IP="10.0.0.1")
class MigrationTestCase(TestCase):
    """Shared fixtures: one platform, one API station, a temp clients.conf"""

    def setUp(self):
        self.tmp = tempfile.mkdtemp()
        self.conf = os.path.join(self.tmp, "clients.conf")
        with open(self.conf, "w") as handle:
            handle.write("")
        self.runner = FakeRunner()
        self.directory = RadiusDirectory(
            conf_path=self.conf,
            use_sudo=False,
            lock_path=os.path.join(self.tmp, "radius.lock"),
            runner=self.runner,
        )
        self.router = make_router()
        self.platform = Platform.objects.create(name="Novanet Test ISP")
        self.station = self.make_station("Kariakoo", "10.10.0.12", "abc123.sn.mynetname.net", 1)
        self.package = Package.objects.create(
            platform=self.platform,
            station=self.station,
            name="Daily",
            speed="10",
            period="1 days",
            usage="Unlimited",
            category="hotspot",
            pool="hs-pool",
        )
        self.subscriber = Subscriber.objects.create(
            platform=self.platform,
            package=self.package,
            username="alice",
            password="pw",
            status="active",
        )

    def tearDown(self):
        shutil.rmtree(self.tmp, ignore_errors=True)

    def make_station(self, name, host, ddns, seed):
        return Station.objects.create(
            platform=self.platform,
            name=name,
            mikrotik_host=host,
            mikrotik_ddns=ddns,
            mikrotik_public_key=wg_key(seed),
        )

    def migrator(self, station=None, router=None):
        router = router or self.router
        return SystemBasisMigrator(
            station or self.station,
            directory=self.directory,
            channel_factory=router.factory,
            resolver=resolver,
        )

    def read_conf(self):
        with open(self.conf) as handle:
            return handle.read()


class MigrateToRadiusTest(MigrationTestCase):
    """Test API -> RADIUS migration"""

    def test_hotspot_station_to_radius(self):
        """One unlimited hotspot subscriber is migrated with a rate limit only"""
        summary = self.migrator().run("RADIUS")

        self.assertEqual(summary["target"], "RADIUS")
        self.assertEqual(summary["users_migrated"], 1)
        self.assertEqual(summary["errors"], [])
        self.assertTrue(summary["station_updated"])
        self.assertTrue(summary["router_configured"])
        self.assertTrue(summary["radius_client_added"])

        self.station.refresh_from_db()
        self.assertEqual(self.station.system_basis, "RADIUS")
        self.assertTrue(
            self.station.radius_client_name.startswith(f"rad-{self.platform.radius_prefix}-")
        )
        self.assertEqual(len(self.station.radius_client_secret), 24)
        self.assertEqual(self.station.radius_client_ip, PUBLIC_IP)
        self.assertEqual(self.station.radius_server_ip, "10.0.0.1")
        self.assertTrue(self.station.router_synced)
        self.assertIsNotNone(self.station.last_migrated_at)

        self.assertEqual(RadCheck.objects.get(username="alice").value, "pw")
        self.assertEqual(RadUserGroup.objects.get(username="alice").groupname, "Daily")
        self.assertEqual(
            RadReply.objects.get(username="alice", attribute="Mikrotik-Rate-Limit").value,
            "10M/10M",
        )
        self.assertFalse(
            RadReply.objects.filter(username="alice", attribute="Mikrotik-Total-Limit").exists()
        )

        self.assertIn(f"client {self.station.radius_client_name} {{", self.read_conf())
        self.assertIn(f"ipaddr = {PUBLIC_IP}", self.read_conf())
        self.assertEqual(self.router.rows("/ppp/aaa")[0]["use-radius"], "yes")
        self.assertIsNotNone(self.router.find("/radius", address="10.0.0.1"))

    def test_data_package_gets_quota(self):
        self.package.category = "data"
        self.package.usage = "2 GB"
        self.package.save()

        self.migrator().run("RADIUS")

        total = RadReply.objects.get(username="alice", attribute="Mikrotik-Total-Limit")
        self.assertEqual(total.value, str(2 * 1024**3))

    def test_rerun_is_idempotent(self):
        self.migrator().run("RADIUS")
        self.station.refresh_from_db()
        name, secret = self.station.radius_client_name, self.station.radius_client_secret

        summary = self.migrator().run("radius")

        self.station.refresh_from_db()
        self.assertEqual(summary["errors"], [])
        self.assertEqual(self.station.radius_client_name, name)
        self.assertEqual(self.station.radius_client_secret, secret)
        self.assertEqual(self.read_conf().count("client "), 1)
        self.assertEqual(RadCheck.objects.filter(username="alice").count(), 1)
        self.assertEqual(len(self.router.rows("/radius")), 1)

    def test_rerun_moves_client_to_new_public_ip(self):
        """Test that a changed DDNS address is written to clients.conf"""
        self.migrator().run("RADIUS")
        migrator = self.migrator()
        migrator.resolver = lambda host: "41.2.2.2"

        summary = migrator.run("RADIUS")

        self.station.refresh_from_db()
        self.assertTrue(summary["radius_client_added"])
        self.assertEqual(self.station.radius_client_ip, "41.2.2.2")
        conf = self.read_conf()
        self.assertIn("ipaddr = 41.2.2.2", conf)
        self.assertNotIn(f"ipaddr = {PUBLIC_IP}", conf)
        self.assertEqual(conf.count("client "), 1)

    def test_pppoe_entries_use_plan_profile(self):
        plan = PPPoEPlan.objects.create(platform=self.platform, name="Home 20", profile="20M")
        PPPoEEntry.objects.create(
            platform=self.platform,
            station=self.station,
            plan=plan,
            clientname="bob",
            clientpassword="bobpw",
        )

        summary = self.migrator().run("RADIUS")

        self.assertEqual(summary["pppoe_migrated"], 1)
        self.assertEqual(RadCheck.objects.get(username="bob").value, "bobpw")
        self.assertEqual(RadUserGroup.objects.get(username="bob").groupname, "Home 20")
        self.assertEqual(
            RadReply.objects.get(username="bob", attribute="Mikrotik-Rate-Limit").value,
            "20M/20M",
        )

    def test_subscriber_without_package_is_left_alone(self):
        """Test that package-less subscribers of other stations are not touched"""
        Subscriber.objects.create(platform=self.platform, username="ghost", status="active")

        summary = self.migrator().run("RADIUS")

        self.assertFalse(any("ghost" in w for w in summary["warnings"]))
        self.assertEqual(summary["users_migrated"], 1)
        self.assertFalse(RadCheck.objects.filter(username="ghost").exists())

    def test_inactive_and_foreign_subscribers_are_ignored(self):
        other = self.make_station("Mbezi", "10.10.0.13", "mbz456.sn.mynetname.net", 2)
        other_package = Package.objects.create(
            platform=self.platform, station=other, name="Weekly", speed="5"
        )
        Subscriber.objects.create(
            platform=self.platform, package=other_package, username="carol", status="active"
        )
        Subscriber.objects.create(
            platform=self.platform, package=self.package, username="dave", status="expired"
        )

        summary = self.migrator().run("RADIUS")

        self.assertEqual(summary["users_migrated"], 1)
        self.assertFalse(RadCheck.objects.filter(username__in=["carol", "dave"]).exists())

    def test_unreachable_router_still_persists_basis(self):
        router = make_router(unreachable=True)
        summary = self.migrator(router=router).run("RADIUS")

        self.station.refresh_from_db()
        self.assertEqual(self.station.system_basis, "RADIUS")
        self.assertFalse(summary["router_configured"])
        self.assertFalse(self.station.router_synced)
        self.assertIn("Station Kariakoo: No valid MikroTik connection", summary["warnings"])
        # Database side still provisioned
        self.assertEqual(summary["users_migrated"], 1)
        self.assertEqual(summary["errors"], [])

    def test_unresolvable_station_skips_client(self):
        migrator = self.migrator()
        migrator.resolver = lambda host: None

        summary = migrator.run("RADIUS")

        self.assertIn("Station Kariakoo: missing public IP/DDNS", summary["warnings"])
        self.assertFalse(summary["radius_client_added"])
        self.assertEqual(self.read_conf(), "")

    def test_invalid_target(self):
        with self.assertRaises(ValueError):
            self.migrator().run("LDAP")
        self.assertIsNone(normalize_target(None))
        self.assertEqual(normalize_target(" api "), "API")


class ClientNameUniquenessTest(MigrationTestCase):
    """Test RADIUS client names are unique per platform"""

    def test_two_stations_never_share_a_name(self):
        other = self.make_station("Mbezi", "10.10.0.13", "mbz456.sn.mynetname.net", 2)
        with patch(
            "stations.services._random_suffix", side_effect=["aaaaaa", "aaaaaa", "bbbbbb"]
        ):
            self.migrator().run("RADIUS")
            self.migrator(station=other).run("RADIUS")

        self.station.refresh_from_db()
        other.refresh_from_db()
        prefix = self.platform.radius_prefix
        self.assertEqual(self.station.radius_client_name, f"rad-{prefix}-aaaaaa")
        self.assertEqual(other.radius_client_name, f"rad-{prefix}-bbbbbb")

    def test_collision_on_save_is_retried(self):
        self.station.radius_client_name = "rad-taken"
        self.station.save()
        other = self.make_station("Mbezi", "10.10.0.13", "mbz456.sn.mynetname.net", 2)

        with patch(
            "stations.services.unique_radius_client_name",
            side_effect=["rad-taken", "rad-fresh"],
        ):
            persist_radius_identity(other, public_ip=PUBLIC_IP)

        other.refresh_from_db()
        self.assertEqual(other.radius_client_name, "rad-fresh")
        self.assertEqual(other.system_basis, "RADIUS")

    def test_collision_gives_up_after_retries(self):
        self.station.radius_client_name = "rad-taken"
        self.station.save()
        other = self.make_station("Mbezi", "10.10.0.13", "mbz456.sn.mynetname.net", 2)

        with patch("stations.services.unique_radius_client_name", return_value="rad-taken"):
            with self.assertRaises(IntegrityError):
                persist_radius_identity(other)

    def test_other_platform_may_reuse_name(self):
        platform = Platform.objects.create(name="Other ISP")
        Station.objects.create(
            platform=platform,
            name="Elsewhere",
            mikrotik_host="10.10.0.12",
            mikrotik_public_key=wg_key(9),
            radius_client_name="rad-shared",
        )
        self.station.radius_client_name = "rad-shared"
        persist_radius_identity(self.station)

        self.station.refresh_from_db()
        self.assertEqual(self.station.radius_client_name, "rad-shared")


class MigrateToApiTest(MigrationTestCase):
    """Test RADIUS -> API migration"""

    def setUp(self):
        super().setUp()
        self.migrator().run("RADIUS")
        self.station.refresh_from_db()
        self.router.log.clear()

    def test_back_to_api_restores_router_auth(self):
        summary = self.migrator().run("API")

        self.assertEqual(summary["errors"], [])
        self.assertTrue(summary["router_configured"])
        self.assertTrue(summary["radius_client_removed"])
        self.assertEqual(summary["users_migrated"], 1)

        self.station.refresh_from_db()
        self.assertEqual(self.station.system_basis, "API")
        self.assertTrue(self.station.router_synced)
        # Identity is kept for a later return to RADIUS
        self.assertTrue(self.station.radius_client_name)

        self.assertNotIn("client ", self.read_conf())
        self.assertFalse(RadCheck.objects.filter(username="alice").exists())
        self.assertEqual(self.router.rows("/ppp/aaa")[0]["use-radius"], "no")
        self.assertIsNone(self.router.find("/radius", address="10.0.0.1"))

        profile = self.router.find("/ip/hotspot/user/profile", name="Daily")
        self.assertEqual(profile["rate-limit"], "10M/10M")
        self.assertEqual(profile["address-pool"], "hs-pool")
        user = self.router.find("/ip/hotspot/user", name="alice")
        self.assertEqual(user["profile"], "Daily")
        self.assertEqual(user["password"], "pw")

    def test_missing_pool_is_a_warning(self):
        """Router with no address pools: package skipped, run still succeeds"""
        self.package.pool = ""
        self.package.save()
        self.router.tables["/ip/pool"] = []

        summary = self.migrator().run("API")

        self.assertEqual(summary["errors"], [])
        self.assertEqual(summary["packages_updated"], 0)
        self.assertIn("Package Daily: no address pool found on 10.10.0.12", summary["warnings"])
        self.assertIsNone(self.router.find("/ip/hotspot/user", name="alice"))

    def test_pool_is_filled_from_router(self):
        self.package.pool = ""
        self.package.save()

        summary = self.migrator().run("API")

        self.package.refresh_from_db()
        self.assertEqual(self.package.pool, "hs-pool")
        self.assertEqual(summary["packages_updated"], 1)

    def test_homefibre_packages_are_skipped(self):
        self.package.category = "homefibre"
        self.package.pool = ""
        self.package.save()

        summary = self.migrator().run("API")

        self.assertEqual(summary["warnings"], [])
        self.assertIsNone(self.router.find("/ip/hotspot/user/profile", name="Daily"))
        self.assertIsNone(self.router.find("/ip/hotspot/user", name="alice"))

    def test_pppoe_secrets_created_updated_and_disabled(self):
        PPPoEEntry.objects.create(
            platform=self.platform,
            station=self.station,
            clientname="bob",
            clientpassword="newpw",
            profile="20M",
        )
        PPPoEEntry.objects.create(
            platform=self.platform,
            station=self.station,
            clientname="carol",
            clientpassword="carolpw",
            status="suspended",
        )
        self.router.tables["/ppp/secret"] = [
            {".id": "*S1", "name": "bob", "password": "oldpw", "disabled": "yes"}
        ]

        summary = self.migrator().run("API")

        self.assertEqual(summary["pppoe_migrated"], 2)
        bob = self.router.find("/ppp/secret", name="bob")
        self.assertEqual(bob["password"], "newpw")
        self.assertEqual(bob["profile"], "20M")
        self.assertEqual(bob["disabled"], "no")
        carol = self.router.find("/ppp/secret", name="carol")
        self.assertEqual(carol["disabled"], "yes")
        self.assertEqual(len(self.router.rows("/ppp/secret")), 2)

    def test_user_failure_does_not_stop_run(self):
        router = make_router(fail_on=["/ip/hotspot/user/add"])
        router.tables["/ppp/secret"] = []
        PPPoEEntry.objects.create(
            platform=self.platform,
            station=self.station,
            clientname="bob",
            clientpassword="bobpw",
        )

        summary = self.migrator(router=router).run("API")

        self.assertEqual(len(summary["errors"]), 1)
        self.assertTrue(summary["errors"][0].startswith("User alice:"))
        self.assertEqual(summary["pppoe_migrated"], 1)
        self.assertIsNotNone(router.find("/ppp/secret", name="bob"))

    def test_unreachable_router_is_recorded(self):
        router = make_router(unreachable=True)

        summary = self.migrator(router=router).run("API")

        self.station.refresh_from_db()
        self.assertEqual(self.station.system_basis, "API")
        self.assertFalse(self.station.router_synced)
        self.assertFalse(summary["router_configured"])
        self.assertIn("Station Kariakoo: No valid MikroTik connection", summary["warnings"])
