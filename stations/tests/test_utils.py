"""
Tests for station utility helpers and router password encryption
"""

import os
import tempfile

from django.test import SimpleTestCase

from stations.crypto import decrypt_password, encrypt_password, is_encrypted
from stations.utils import (
    file_lock,
    format_uptime,
    is_valid_ddns_host,
    is_valid_ip,
    normalize_shared_users,
    rate_limit_from_profile,
    rate_limit_from_speed,
    strip_port,
    usage_to_bytes,
)


class AddressHelpersTest(SimpleTestCase):
    """Test address validation helpers"""

    def test_is_valid_ip(self):
        self.assertTrue(is_valid_ip("10.10.0.12"))
        self.assertTrue(is_valid_ip(" 41.222.1.9 "))
        self.assertFalse(is_valid_ip("10.10.0"))
        self.assertFalse(is_valid_ip("router.example.com"))
        self.assertFalse(is_valid_ip(None))

    def test_is_valid_ddns_host(self):
        self.assertTrue(is_valid_ddns_host("abc123.sn.mynetname.net"))
        self.assertFalse(is_valid_ddns_host("localhost"))
        self.assertFalse(is_valid_ddns_host("bad host.net"))

    def test_strip_port(self):
        self.assertEqual(strip_port("10.0.0.1:1812"), "10.0.0.1")
        self.assertEqual(strip_port("10.0.0.1"), "10.0.0.1")
        self.assertEqual(strip_port(""), "")


class PackageLimitsTest(SimpleTestCase):
    """Test conversion of package fields to router limits"""

    def test_usage_to_bytes(self):
        self.assertEqual(usage_to_bytes("2 GB"), 2 * 1024**3)
        self.assertEqual(usage_to_bytes("10 MB"), 10 * 1024**2)
        self.assertEqual(usage_to_bytes("1.5 gb"), int(1.5 * 1024**3))

    def test_usage_to_bytes_unmetered(self):
        """Unlimited, unknown units and garbage give no quota"""
        self.assertIsNone(usage_to_bytes("Unlimited"))
        self.assertIsNone(usage_to_bytes("5 PB"))
        self.assertIsNone(usage_to_bytes("lots GB"))
        self.assertIsNone(usage_to_bytes("0 GB"))
        self.assertIsNone(usage_to_bytes(""))

    def test_rate_limit_from_speed(self):
        self.assertEqual(rate_limit_from_speed("10"), "10M/10M")
        self.assertEqual(rate_limit_from_speed("20 Mbps"), "20M/20M")
        self.assertEqual(rate_limit_from_speed(""), "")

    def test_rate_limit_from_profile_uses_first_source(self):
        self.assertEqual(rate_limit_from_profile("", "default", "Gold"), "")
        self.assertEqual(rate_limit_from_profile("20M", "default"), "20M/20M")
        self.assertEqual(rate_limit_from_profile("", "", "Home 15"), "15M/15M")

    def test_format_uptime(self):
        self.assertEqual(format_uptime("30 minutes"), "30m")
        self.assertEqual(format_uptime("2 hours"), "2h")
        self.assertEqual(format_uptime("1 days"), "1d")
        with self.assertRaises(ValueError):
            format_uptime("1 weeks")

    def test_normalize_shared_users(self):
        self.assertEqual(normalize_shared_users("3"), "3")
        self.assertEqual(normalize_shared_users(""), "1")
        self.assertEqual(normalize_shared_users("Unlimited"), "unlimited")
        with self.assertRaises(ValueError):
            normalize_shared_users("0")
        with self.assertRaises(ValueError):
            normalize_shared_users("many")


class FileLockTest(SimpleTestCase):
    def test_lock_released_after_block(self):
        with tempfile.TemporaryDirectory() as tmp:
            path = os.path.join(tmp, "x.lock")
            with file_lock(path):
                pass
            with file_lock(path):
                pass
            self.assertTrue(os.path.exists(path))


class CryptoTest(SimpleTestCase):
    """Test router password encryption"""

    def test_round_trip(self):
        token = encrypt_password("s3cret")
        self.assertTrue(is_encrypted(token))
        self.assertEqual(decrypt_password(token), "s3cret")

    def test_already_encrypted_value_is_not_wrapped_again(self):
        token = encrypt_password("s3cret")
        self.assertEqual(encrypt_password(token), token)

    def test_plaintext_passes_through(self):
        self.assertFalse(is_encrypted("plain"))
        self.assertEqual(decrypt_password("plain"), "plain")
