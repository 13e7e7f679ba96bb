"""
Unit tests for the background sync worker.
"""

import threading
import unittest

from fakes import FakeRemote

from studyplanner.sync import SyncResult, SyncWorker


class TestSyncWorker(unittest.TestCase):
    def setUp(self) -> None:
        self.remote = FakeRemote()
        self.remote.rows["ann"] = {"username": "ann", "pin": "1", "events": []}

    def worker(self, **kw) -> SyncWorker:
        w = SyncWorker(self.remote, **kw)  # type: ignore[arg-type]
        self.addCleanup(w.shutdown)
        return w

    def test_push_returns_before_network_finishes(self) -> None:
        self.remote.gate = threading.Event()
        w = self.worker()
        ticket = w.push("ann", [{"id": "1"}])
        self.assertEqual(w.pending_count(), 1)

        self.remote.gate.set()
        self.assertTrue(w.wait(5))
        self.assertEqual(w.pending_count(), 0)
        result = w.results.get_nowait()
        self.assertEqual((result.ticket, result.ok, result.count), (ticket, True, 1))
        self.assertTrue(result.finished_at)

    def test_failure_is_reported(self) -> None:
        self.remote.fail_update = True
        w = self.worker()
        w.push("ann", [])
        self.assertTrue(w.wait(5))
        result = w.results.get_nowait()
        self.assertFalse(result.ok)
        self.assertIn("update failed", result.error)

    def test_pushes_arrive_in_order(self) -> None:
        w = self.worker()
        for i in range(5):
            w.push("ann", [{"id": str(i)}])
        self.assertTrue(w.wait(5))
        self.assertEqual([events[0]["id"] for _, events in self.remote.updates], ["0", "1", "2", "3", "4"])
        self.assertEqual(self.remote.rows["ann"]["events"], [{"id": "4"}])

    def test_listener_receives_results(self) -> None:
        seen: list[SyncResult] = []
        w = self.worker(listener=seen.append)
        w.push("ann", [])
        self.assertTrue(w.wait(5))
        self.assertEqual(len(seen), 1)
        self.assertTrue(seen[0].ok)

    def test_failing_listener_does_not_break_worker(self) -> None:
        def boom(result: SyncResult) -> None:
            raise RuntimeError("listener bug")

        w = self.worker(listener=boom)
        with self.assertLogs("studyplanner.sync", level="ERROR"):
            w.push("ann", [])
            self.assertTrue(w.wait(5))
        self.assertTrue(w.results.get_nowait().ok)

    def test_push_after_shutdown_is_reported_not_raised(self) -> None:
        w = self.worker()
        w.shutdown()
        w.push("ann", [{"id": "1"}])
        result = w.results.get_nowait()
        self.assertFalse(result.ok)
        self.assertEqual(self.remote.updates, [])


if __name__ == "__main__":
    unittest.main()
