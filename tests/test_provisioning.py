"""Tests for account/provisioning.py - exactly-once profile creation."""

import sys
import threading
import unittest
from pathlib import Path
from unittest.mock import MagicMock

# Add project root and this directory to path
sys.path.insert(0, str(Path(__file__).parent.parent))
sys.path.insert(0, str(Path(__file__).parent))

from account.errors import ServiceError
from account.provisioning import ProfileProvisioner
from fake_store import FakeStore
from store.base import ConflictError, Principal, StoreError


class TestEnsureProfile(unittest.TestCase):
    """Provisioning creates one profile per principal."""

    def setUp(self):
        self.store = FakeStore()
        self.provisioner = ProfileProvisioner(self.store)
        self.principal = Principal(id="user-1", email="ana@example.com")

    def test_creates_missing_profile_with_defaults(self):
        profile = self.provisioner.ensure_profile(self.principal)

        rows = self.store.rows("profiles", id="user-1")
        self.assertEqual(len(rows), 1)
        self.assertEqual(rows[0]["email"], "ana@example.com")
        self.assertFalse(rows[0]["anonymous_mode"])
        self.assertEqual(profile.id, "user-1")

    def test_repeated_calls_do_not_duplicate(self):
        for _ in range(5):
            self.provisioner.ensure_profile(self.principal)

        self.assertEqual(len(self.store.rows("profiles", id="user-1")), 1)
        self.assertEqual(len(self.store.calls_to("insert", "profiles")), 1)

    def test_existing_profile_is_left_alone(self):
        self.store.tables["profiles"].append({"id": "user-1", "email": "old@example.com", "full_name": "Ana"})

        profile = self.provisioner.ensure_profile(self.principal)

        self.assertEqual(profile.full_name, "Ana")
        self.assertEqual(self.store.calls_to("insert"), [])

    def test_concurrent_provisioning_yields_one_profile(self):
        """Many threads reacting to the same session restore."""
        barrier = threading.Barrier(8)
        errors = []

        def worker():
            barrier.wait()
            try:
                ProfileProvisioner(self.store).ensure_profile(self.principal)
            except Exception as e:  # pragma: no cover - would fail the test
                errors.append(e)

        threads = [threading.Thread(target=worker) for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        self.assertEqual(errors, [])
        self.assertEqual(len(self.store.rows("profiles", id="user-1")), 1)

    def test_lost_race_conflict_is_swallowed(self):
        """Read sees nothing, insert hits the unique constraint: treated as success."""
        store = MagicMock()
        store.select.side_effect = [[], [{"id": "user-1", "email": "ana@example.com"}]]
        store.insert.side_effect = ConflictError("duplicate key", "23505")

        profile = ProfileProvisioner(store).ensure_profile(self.principal)

        self.assertEqual(profile.id, "user-1")
        store.insert.assert_called_once()

    def test_other_insert_failure_is_logged_not_raised(self):
        self.store.fail("insert", "profiles")

        with self.assertLogs("account.provisioning", level="ERROR"):
            result = self.provisioner.ensure_profile(self.principal)

        self.assertIsNone(result)

    def test_lookup_failure_is_logged_not_raised(self):
        self.store.fail("select", "profiles")

        with self.assertLogs("account.provisioning", level="WARNING"):
            self.assertIsNone(self.provisioner.ensure_profile(self.principal))
        self.assertEqual(self.store.calls_to("insert"), [])


class TestProfileReadsAndEdits(unittest.TestCase):
    """get_profile, update_profile and the email mirror."""

    def setUp(self):
        self.store = FakeStore()
        self.provisioner = ProfileProvisioner(self.store)
        self.principal = Principal(id="user-1", email="ana@example.com")
        self.provisioner.ensure_profile(self.principal)

    def test_get_profile_retries_failed_mirror(self):
        self.store.fail("update", "profiles")
        with self.assertRaises(StoreError):
            self.provisioner.mirror_email("user-1", "ana.new@example.com")
        self.store.heal("update", "profiles")

        profile = self.provisioner.get_profile(self.principal)

        self.assertEqual(profile.email, "ana.new@example.com")
        self.assertEqual(self.store.rows("profiles", id="user-1")[0]["email"], "ana.new@example.com")

        # Retried once; later reads leave the row alone
        self.provisioner.get_profile(self.principal)
        self.assertEqual(len(self.store.calls_to("update", "profiles")), 2)

    def test_get_profile_never_copies_auth_email_back(self):
        self.store.rows("profiles", id="user-1")[0]["email"] = "ana.new@example.com"

        profile = self.provisioner.get_profile(self.principal)

        self.assertEqual(profile.email, "ana.new@example.com")
        self.assertEqual(self.store.calls_to("update"), [])

    def test_get_profile_keeps_reading_when_reconcile_fails(self):
        self.store.fail("update", "profiles")
        with self.assertRaises(StoreError):
            self.provisioner.mirror_email("user-1", "ana.new@example.com")

        profile = self.provisioner.get_profile(self.principal)

        self.assertEqual(profile.id, "user-1")
        self.assertEqual(profile.email, "ana@example.com")

    def test_get_profile_read_failure_raises_service_error(self):
        self.store.fail("select", "profiles")
        with self.assertRaises(ServiceError):
            self.provisioner.get_profile(self.principal)

    def test_update_profile_writes_only_given_fields(self):
        self.provisioner.update_profile(self.principal, full_name="Ana Ruiz", anonymous_mode=True)

        row = self.store.rows("profiles", id="user-1")[0]
        self.assertEqual(row["full_name"], "Ana Ruiz")
        self.assertTrue(row["anonymous_mode"])
        self.assertNotIn("phone", row)

    def test_update_profile_with_nothing_makes_no_call(self):
        self.provisioner.update_profile(self.principal)
        self.assertEqual(self.store.calls_to("update"), [])

    def test_update_profile_failure_raises_service_error(self):
        self.store.fail("update", "profiles", StoreError("permission denied", "42501"))
        with self.assertRaises(ServiceError) as ctx:
            self.provisioner.update_profile(self.principal, phone="+1 555 0100")
        self.assertEqual(ctx.exception.code, "42501")


if __name__ == "__main__":
    unittest.main()
