"""
Tests for FreeRADIUS clients.conf management and the SQL user store
"""

import os
import shutil
import tempfile

from django.test import SimpleTestCase, TestCase

from stations.models import RadCheck, RadReply, RadUserGroup
from stations.radius import (
    RadiusDirectory,
    RadiusUserStore,
    build_client_block,
    has_client,
    sanitize_token,
)

from .fakes import FakeRunner

EXISTING = """client localhost {
    ipaddr = 127.0.0.1
    secret = testing123
}
"""


class ClientBlockTest(SimpleTestCase):
    def test_sanitize_token(self):
        self.assertEqual(sanitize_token(" Kariakoo Main "), "Kariakoo-Main")
        self.assertEqual(sanitize_token("--a$b--"), "ab")

    def test_build_client_block(self):
        block = build_client_block("rad-abc123-ff00aa", "41.1.1.1", "s3cret", shortname="Kariakoo Main")
        self.assertTrue(block.startswith("client rad-abc123-ff00aa {"))
        self.assertIn("ipaddr = 41.1.1.1", block)
        self.assertIn("secret = s3cret", block)
        self.assertIn("shortname = Kariakoo-Main", block)
        self.assertTrue(block.endswith("}"))

    def test_has_client_by_name_or_ip(self):
        self.assertTrue(has_client(EXISTING, "localhost", "10.9.9.9"))
        self.assertTrue(has_client(EXISTING, "other", "127.0.0.1"))
        self.assertFalse(has_client(EXISTING, "other", "127.0.0.10"))


class RadiusDirectoryTest(SimpleTestCase):
    """Test adding and removing NAS clients"""

    def setUp(self):
        self.tmp = tempfile.mkdtemp()
        self.conf = os.path.join(self.tmp, "clients.conf")
        with open(self.conf, "w") as handle:
            handle.write(EXISTING)
        self.runner = FakeRunner()

    def tearDown(self):
        shutil.rmtree(self.tmp, ignore_errors=True)

    def directory(self, runner=None, conf=None):
        return RadiusDirectory(
            conf_path=conf or self.conf,
            service_name="freeradius",
            use_sudo=False,
            lock_path=os.path.join(self.tmp, "radius.lock"),
            runner=runner or self.runner,
        )

    def read_conf(self):
        with open(self.conf) as handle:
            return handle.read()

    def test_ensure_adds_client_and_reloads(self):
        result = self.directory().ensure_radius_client("rad-abc123-ff00aa", "41.1.1.1", "s3cret")

        self.assertTrue(result["success"])
        self.assertTrue(result["added"])
        conf = self.read_conf()
        self.assertIn("client localhost {", conf)
        self.assertIn("client rad-abc123-ff00aa {", conf)
        self.assertTrue(self.runner.ran("systemctl", "reload", "freeradius"))

    def test_ensure_is_idempotent(self):
        self.directory().ensure_radius_client("rad-abc123-ff00aa", "41.1.1.1", "s3cret")
        runner = FakeRunner()
        result = self.directory(runner).ensure_radius_client("rad-abc123-ff00aa", "41.1.1.1", "s3cret")

        self.assertTrue(result["success"])
        self.assertFalse(result["added"])
        self.assertEqual(self.read_conf().count("rad-abc123-ff00aa"), 1)
        self.assertEqual(runner.calls, [])

    def test_ensure_rejects_missing_data(self):
        result = self.directory().ensure_radius_client("rad-x", "", "s3cret")
        self.assertFalse(result["success"])

    def test_reload_failure_is_reported(self):
        runner = FakeRunner(fail=["systemctl reload"])
        result = self.directory(runner).ensure_radius_client("rad-x", "41.1.1.1", "s3cret")
        self.assertFalse(result["success"])
        self.assertIn("reload", result["message"])

    def test_unreadable_config(self):
        result = self.directory(conf=os.path.join(self.tmp, "missing.conf")).ensure_radius_client(
            "rad-x", "41.1.1.1", "s3cret"
        )
        self.assertFalse(result["success"])
        self.assertEqual(result["message"], "Failed to read RADIUS clients.conf")

    def test_remove_client(self):
        self.directory().ensure_radius_client("rad-abc123-ff00aa", "41.1.1.1", "s3cret")
        result = self.directory().remove_radius_client("rad-abc123-ff00aa")

        self.assertTrue(result["removed"])
        conf = self.read_conf()
        self.assertNotIn("rad-abc123-ff00aa", conf)
        self.assertIn("client localhost {", conf)
        self.assertTrue(conf.endswith("}\n"))

    def test_remove_unknown_client(self):
        result = self.directory().remove_radius_client("rad-nope")
        self.assertTrue(result["success"])
        self.assertFalse(result["removed"])

    def test_update_client_ip(self):
        self.directory().ensure_radius_client("rad-abc123-ff00aa", "41.1.1.1", "s3cret")
        result = self.directory().update_client_ip("rad-abc123-ff00aa", "41.2.2.2")

        self.assertTrue(result["updated"])
        self.assertEqual(result["current_ip"], "41.1.1.1")
        self.assertIn("ipaddr = 41.2.2.2", self.read_conf())

        again = self.directory().update_client_ip("rad-abc123-ff00aa", "41.2.2.2")
        self.assertFalse(again["updated"])


class RadiusUserStoreTest(TestCase):
    """Test subscriber rows in radcheck / radreply / radusergroup"""

    def setUp(self):
        self.store = RadiusUserStore()

    def test_upsert_creates_rows(self):
        self.assertTrue(
            self.store.upsert_radius_user(
                "alice", "pw", groupname="Daily", rate_limit="10M/10M", data_limit_bytes=1024
            )
        )
        check = RadCheck.objects.get(username="alice")
        self.assertEqual((check.attribute, check.op, check.value), ("Cleartext-Password", ":=", "pw"))
        self.assertEqual(RadUserGroup.objects.get(username="alice").groupname, "Daily")
        self.assertEqual(
            RadReply.objects.get(username="alice", attribute="Mikrotik-Rate-Limit").value,
            "10M/10M",
        )
        total = RadReply.objects.get(username="alice", attribute="Mikrotik-Total-Limit")
        self.assertEqual((total.op, total.value), (":=", "1024"))

    def test_upsert_replaces_and_clears_quota(self):
        self.store.upsert_radius_user("alice", "pw", "Daily", "10M/10M", 1024)
        self.store.upsert_radius_user("alice", "pw2", "Weekly", "20M/20M")

        self.assertEqual(RadCheck.objects.filter(username="alice").count(), 1)
        self.assertEqual(RadCheck.objects.get(username="alice").value, "pw2")
        self.assertEqual(RadUserGroup.objects.get(username="alice").groupname, "Weekly")
        self.assertEqual(RadReply.objects.filter(username="alice").count(), 1)
        self.assertFalse(
            RadReply.objects.filter(username="alice", attribute="Mikrotik-Total-Limit").exists()
        )

    def test_upsert_without_rate_clears_old_rate(self):
        """Test that a plan without a speed drops the previous rate limit"""
        self.store.upsert_radius_user("alice", "pw", "Daily", "10M/10M")
        self.store.upsert_radius_user("alice", "pw", "Unlimited", "")

        self.assertFalse(
            RadReply.objects.filter(username="alice", attribute="Mikrotik-Rate-Limit").exists()
        )
        self.assertEqual(RadUserGroup.objects.get(username="alice").groupname, "Unlimited")

    def test_upsert_requires_credentials(self):
        self.assertFalse(self.store.upsert_radius_user("", "pw"))
        self.assertFalse(self.store.upsert_radius_user("alice", ""))

    def test_delete_user(self):
        self.store.upsert_radius_user("alice", "pw", "Daily", "10M/10M", 1024)
        self.store.upsert_radius_user("bob", "pw", "Daily")
        self.assertTrue(self.store.delete_radius_user("alice"))

        self.assertFalse(RadCheck.objects.filter(username="alice").exists())
        self.assertFalse(RadReply.objects.filter(username="alice").exists())
        self.assertFalse(RadUserGroup.objects.filter(username="alice").exists())
        self.assertTrue(RadCheck.objects.filter(username="bob").exists())
