"""
Unit tests for the storage service (login / load / save across tiers).

Contract:
- first login registers, a wrong pin later fails with InvalidCredentials
- a remote "wrong pin" is never retried against the local store
- remote failures fall back to the local store
- saves always hit the local store first; remote pushes never raise
"""

import json
import tempfile
import unittest
from pathlib import Path

from fakes import FakeRemote

from studyplanner.errors import InvalidCredentials, StorageFull
from studyplanner.local_store import SESSION_KEY, LocalStore
from studyplanner.model import CourseEvent, User
from studyplanner.storage import StorageService, dump_events


def _event(i: int, **kw) -> CourseEvent:
    base = dict(id=f"e{i}", title=f"Course {i}", date="2024-03-05", start_time="09:00", end_time="10:30", color="red")
    base.update(kw)
    return CourseEvent(**base)


class StorageTestCase(unittest.TestCase):
    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self.addCleanup(self._tmp.cleanup)
        self.dir = Path(self._tmp.name)
        self.local = LocalStore(self.dir)

    def service(self, remote: FakeRemote | None = None) -> StorageService:
        svc = StorageService(self.local, remote)  # type: ignore[arg-type]
        self.addCleanup(svc.close)
        return svc


class TestLocalOnlyLogin(StorageTestCase):
    def test_first_login_registers_then_wrong_pin_fails(self) -> None:
        svc = self.service()
        user = svc.login("ann", "1234")
        self.assertEqual(user.username, "ann")
        self.assertIsNotNone(user.last_login)
        self.assertEqual(self.local.get("auth:ann"), "1234")

        self.assertEqual(svc.login("ann", "1234").username, "ann")
        with self.assertRaises(InvalidCredentials) as ctx:
            svc.login("ann", "0000")
        self.assertEqual(ctx.exception.store, "local")

    def test_pin_check_is_exact_match(self) -> None:
        svc = self.service()
        svc.login("ann", "1234")
        with self.assertRaises(InvalidCredentials):
            svc.login("ann", "1234 ")

    def test_empty_username_rejected(self) -> None:
        with self.assertRaises(ValueError):
            self.service().login("  ", "1234")


class TestRemoteLogin(StorageTestCase):
    def test_unknown_user_registers_remotely(self) -> None:
        remote = FakeRemote()
        svc = self.service(remote)
        svc.login("ann", "1234")
        self.assertEqual(remote.rows["ann"], {"username": "ann", "pin": "1234", "events": []})
        self.assertIsNone(self.local.get("auth:ann"))

    def test_remote_wrong_pin_is_not_retried_locally(self) -> None:
        remote = FakeRemote()
        remote.rows["ann"] = {"username": "ann", "pin": "9999", "events": []}
        self.local.set("auth:ann", "1234")
        svc = self.service(remote)
        with self.assertRaises(InvalidCredentials) as ctx:
            svc.login("ann", "1234")
        self.assertEqual(ctx.exception.store, "remote")

    def test_remote_down_falls_back_to_local(self) -> None:
        remote = FakeRemote()
        remote.down = True
        svc = self.service(remote)
        svc.login("ann", "1234")
        self.assertEqual(self.local.get("auth:ann"), "1234")
        with self.assertRaises(InvalidCredentials) as ctx:
            svc.login("ann", "4321")
        self.assertEqual(ctx.exception.store, "local")

    def test_failed_registration_falls_back_to_local(self) -> None:
        remote = FakeRemote()
        remote.fail_insert = True
        svc = self.service(remote)
        self.assertEqual(svc.login("ann", "1234").username, "ann")
        self.assertNotIn("ann", remote.rows)
        self.assertEqual(self.local.get("auth:ann"), "1234")


class TestReconnect(StorageTestCase):
    def test_offline_events_seed_the_new_remote_row(self) -> None:
        remote = FakeRemote()
        remote.down = True
        svc = self.service(remote)
        svc.login("ann", "1234")
        svc.save_events("ann", [_event(1)])
        self.assertTrue(svc.sync.wait(5))

        remote.down = False
        svc.login("ann", "1234")
        self.assertEqual(remote.rows["ann"]["events"], [_event(1).to_dict()])
        self.assertEqual(svc.load_events("ann"), [_event(1)])

        svc.save_events("ann", [_event(1), _event(2)])
        self.assertTrue(svc.sync.wait(5))
        self.assertEqual(svc.load_events("ann"), [_event(1), _event(2)])
        self.assertEqual(json.loads(self.local.get("data:ann")), [_event(1).to_dict(), _event(2).to_dict()])

    def test_unreadable_local_data_seeds_empty_row(self) -> None:
        self.local.set("data:ann", "{not json")
        remote = FakeRemote()
        self.service(remote).login("ann", "1234")
        self.assertEqual(remote.rows["ann"]["events"], [])


class TestLoadEvents(StorageTestCase):
    def test_missing_collection_is_empty(self) -> None:
        self.assertEqual(self.service().load_events("nobody"), [])

    def test_local_roundtrip(self) -> None:
        svc = self.service()
        events = [_event(1), _event(2, location="B-201", attachments=[])]
        svc.save_events("ann", events)
        self.assertEqual(svc.load_events("ann"), events)

    def test_corrupt_local_payload_is_empty(self) -> None:
        self.local.set("data:ann", "{not json")
        self.assertEqual(self.service().load_events("ann"), [])
        self.local.set_json("data:ann", [{"id": "1"}])
        self.assertEqual(self.service().load_events("ann"), [])

    def test_remote_collection_wins_even_when_empty(self) -> None:
        remote = FakeRemote()
        remote.rows["ann"] = {"username": "ann", "pin": "1", "events": []}
        self.local.set_json("data:ann", [_event(1).to_dict()])
        self.assertEqual(self.service(remote).load_events("ann"), [])

    def test_remote_events_returned_verbatim(self) -> None:
        remote = FakeRemote()
        remote.rows["ann"] = {"username": "ann", "pin": "1", "events": [_event(7).to_dict()]}
        self.assertEqual(self.service(remote).load_events("ann"), [_event(7)])

    def test_remote_failure_falls_back_to_last_local_collection(self) -> None:
        remote = FakeRemote()
        remote.down = True
        self.local.set_json("data:ann", [_event(1).to_dict(), _event(2).to_dict()])
        self.assertEqual(self.service(remote).load_events("ann"), [_event(1), _event(2)])

    def test_remote_row_without_events_falls_back(self) -> None:
        remote = FakeRemote()
        remote.rows["ann"] = {"username": "ann", "pin": "1", "events": None}
        self.local.set_json("data:ann", [_event(3).to_dict()])
        self.assertEqual(self.service(remote).load_events("ann"), [_event(3)])

    def test_unknown_remote_user_falls_back(self) -> None:
        self.local.set_json("data:ann", [_event(4).to_dict()])
        self.assertEqual(self.service(FakeRemote()).load_events("ann"), [_event(4)])


class TestSaveEvents(StorageTestCase):
    def test_local_write_uses_canonical_json(self) -> None:
        svc = self.service()
        events = [_event(1)]
        svc.save_events("ann", events)
        self.assertEqual(self.local.get("data:ann"), dump_events(events))

    def test_push_reaches_remote(self) -> None:
        remote = FakeRemote()
        remote.rows["ann"] = {"username": "ann", "pin": "1", "events": []}
        svc = self.service(remote)
        svc.save_events("ann", [_event(1)])

        self.assertTrue(svc.sync.wait(5))
        result = svc.sync.results.get_nowait()
        self.assertTrue(result.ok)
        self.assertEqual(remote.rows["ann"]["events"], [_event(1).to_dict()])

    def test_push_failure_is_reported_not_raised(self) -> None:
        remote = FakeRemote()
        remote.fail_update = True
        svc = self.service(remote)
        svc.save_events("ann", [_event(1)])

        self.assertEqual(json.loads(self.local.get("data:ann")), [_event(1).to_dict()])
        self.assertTrue(svc.sync.wait(5))
        result = svc.sync.results.get_nowait()
        self.assertFalse(result.ok)
        self.assertIn("RemoteUnavailable", result.error)

    def test_push_for_locally_registered_user_is_reported(self) -> None:
        svc = self.service(FakeRemote())
        svc.save_events("ann", [_event(1)])
        self.assertTrue(svc.sync.wait(5))
        result = svc.sync.results.get_nowait()
        self.assertFalse(result.ok)
        self.assertIn("No remote record", result.error)

    def test_storage_full_keeps_previous_collection(self) -> None:
        self.local.quota_bytes = 400
        svc = self.service()
        svc.save_events("ann", [_event(1)])
        before = self.local.get("data:ann")

        big = _event(2, title="x" * 1000)
        with self.assertRaises(StorageFull):
            svc.save_events("ann", [_event(1), big])
        self.assertEqual(self.local.get("data:ann"), before)

    def test_storage_full_skips_remote_push(self) -> None:
        remote = FakeRemote()
        remote.rows["ann"] = {"username": "ann", "pin": "1", "events": []}
        self.local.quota_bytes = 10
        svc = self.service(remote)
        with self.assertRaises(StorageFull):
            svc.save_events("ann", [_event(1)])
        self.assertTrue(svc.sync.wait(5))
        self.assertEqual(remote.updates, [])


class TestSessionMarker(StorageTestCase):
    def test_remember_restore_forget(self) -> None:
        svc = self.service()
        self.assertIsNone(svc.restore_session())
        user = User(username="ann", last_login="2024-03-05T08:00:00.000+00:00")
        svc.remember_session(user)
        self.assertEqual(svc.restore_session(), user)
        svc.forget_session()
        self.assertIsNone(svc.restore_session())

    def test_corrupt_marker_is_discarded(self) -> None:
        self.local.set(SESSION_KEY, "[1, 2")
        svc = self.service()
        self.assertIsNone(svc.restore_session())
        self.assertIsNone(self.local.get(SESSION_KEY))

        self.local.set_json(SESSION_KEY, ["ann"])
        self.assertIsNone(svc.restore_session())


class TestClose(StorageTestCase):
    def test_close_drains_pushes_and_closes_remote(self) -> None:
        remote = FakeRemote()
        remote.rows["ann"] = {"username": "ann", "pin": "1", "events": []}
        svc = StorageService(self.local, remote)  # type: ignore[arg-type]
        svc.save_events("ann", [_event(1)])
        svc.close()
        self.assertEqual(len(remote.updates), 1)
        self.assertTrue(remote.closed)


if __name__ == "__main__":
    unittest.main()
