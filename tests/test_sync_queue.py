import logging
import unittest
from types import SimpleNamespace
from unittest.mock import patch

from reportsync.services.result import ErrorCode, Result
from reportsync.sync_queue import JOB_ID, SyncQueue

logging.disable(logging.CRITICAL)


class _Session:
    def __init__(self):
        self.closed = False

    def close(self):
        self.closed = True


class _Service:
    """Stands in for SyncService; ``outcomes`` scripts sync_report per report id."""

    def __init__(self):
        self.outcomes = {}
        self.synced = []
        self.pending = []
        self.auto_sync_integration = None
        self.retry_integration = Result.fail("Report not found", ErrorCode.NOT_FOUND)
        self.on_sync = None

    def mark_pending(self, report_id):
        self.pending.append(report_id)

    def sync_report(self, report_id, integration_id):
        self.synced.append((report_id, integration_id))
        if self.on_sync:
            self.on_sync(report_id)
        outcome = self.outcomes.get(report_id, Result.ok())
        if isinstance(outcome, list):
            outcome = outcome.pop(0)
        if isinstance(outcome, Exception):
            raise outcome
        return outcome

    def get_auto_sync_integration(self, project_id):
        return self.auto_sync_integration

    def find_retry_integration(self, report_id):
        return self.retry_integration


FAILED = Result.fail("GitHub API error: Server Error", ErrorCode.SYNC_FAILED)


class SyncQueueTestCase(unittest.TestCase):
    def setUp(self):
        self.now = 1000.0
        self.service = _Service()
        self.sessions = []

        def session_factory():
            session = _Session()
            self.sessions.append(session)
            return session

        self.queue = SyncQueue(
            session_factory=session_factory,
            service_factory=lambda db: self.service,
            interval_seconds=3600,
            max_concurrent=3,
            max_attempts=3,
            retry_delays=[1, 5, 15],
            clock=lambda: self.now,
        )


class EnqueueTests(SyncQueueTestCase):
    def test_enqueue_marks_pending_and_deduplicates(self):
        self.assertTrue(self.queue.enqueue("rpt_1", "int_1"))
        self.assertFalse(self.queue.enqueue("rpt_1", "int_1"))

        self.assertEqual(len(self.queue), 1)
        self.assertEqual(self.service.pending, ["rpt_1"])
        task = self.queue.status()["tasks"][0]
        self.assertEqual(task["report_id"], "rpt_1")
        self.assertEqual(task["attempts"], 0)
        self.assertTrue(all(s.closed for s in self.sessions))

    def test_remove_and_clear(self):
        self.queue.enqueue("rpt_1", "int_1")
        self.queue.enqueue("rpt_2", "int_1")

        self.assertTrue(self.queue.remove("rpt_1"))
        self.assertFalse(self.queue.remove("rpt_1"))
        self.assertEqual(len(self.queue), 1)

        self.queue.clear()
        self.assertEqual(self.queue.status(), {"queue_length": 0, "processing": False, "tasks": []})

    def test_enqueue_if_auto_sync(self):
        self.assertFalse(self.queue.enqueue_if_auto_sync("rpt_1", "proj_1"))
        self.assertEqual(len(self.queue), 0)

        self.service.auto_sync_integration = SimpleNamespace(id="int_9")
        self.assertTrue(self.queue.enqueue_if_auto_sync("rpt_1", "proj_1"))

        self.queue.process_queue()
        self.assertEqual(self.service.synced, [("rpt_1", "int_9")])

    def test_retry_sync_for_report(self):
        result = self.queue.retry_sync_for_report("rpt_1")
        self.assertFalse(result.success)
        self.assertEqual(result.code, ErrorCode.NOT_FOUND)

        self.service.retry_integration = Result.fail(
            "No active issue tracker integration found", ErrorCode.INTEGRATION_NOT_FOUND
        )
        self.assertEqual(self.queue.retry_sync_for_report("rpt_1").code, ErrorCode.INTEGRATION_NOT_FOUND)
        self.assertEqual(len(self.queue), 0)

        self.service.retry_integration = Result.ok(SimpleNamespace(id="int_1"))
        self.assertTrue(self.queue.retry_sync_for_report("rpt_1").success)
        self.assertEqual(len(self.queue), 1)
        self.assertEqual(self.service.pending, ["rpt_1"])


class ProcessQueueTests(SyncQueueTestCase):
    def test_success_removes_task(self):
        self.queue.enqueue("rpt_1", "int_1")

        self.queue.process_queue()

        self.assertEqual(self.service.synced, [("rpt_1", "int_1")])
        self.assertEqual(len(self.queue), 0)
        self.assertFalse(self.queue.processing)

    def test_failure_backs_off_then_gives_up(self):
        self.service.outcomes["rpt_1"] = FAILED
        self.queue.enqueue("rpt_1", "int_1")

        self.queue.process_queue()
        task = self.queue.status()["tasks"][0]
        self.assertEqual(task["attempts"], 1)
        self.assertEqual(task["next_attempt"], 1001.0)

        # Not due yet
        self.queue.process_queue()
        self.assertEqual(len(self.service.synced), 1)

        self.now = 1001.0
        self.queue.process_queue()
        task = self.queue.status()["tasks"][0]
        self.assertEqual(task["attempts"], 2)
        self.assertEqual(task["next_attempt"], 1006.0)

        self.now = 1006.0
        self.queue.process_queue()
        self.assertEqual(len(self.service.synced), 3)
        self.assertEqual(len(self.queue), 0)

    def test_retry_after_failure_succeeds(self):
        self.service.outcomes["rpt_1"] = [FAILED, Result.ok()]
        self.queue.enqueue("rpt_1", "int_1")

        self.queue.process_queue()
        self.now += 1
        self.queue.process_queue()

        self.assertEqual(len(self.service.synced), 2)
        self.assertEqual(len(self.queue), 0)

    def test_crashing_task_does_not_affect_others(self):
        self.service.outcomes["rpt_1"] = RuntimeError("connection reset")
        self.queue.enqueue("rpt_1", "int_1")
        self.queue.enqueue("rpt_2", "int_1")

        self.queue.process_queue()

        self.assertEqual(sorted(r for r, _ in self.service.synced), ["rpt_1", "rpt_2"])
        tasks = self.queue.status()["tasks"]
        self.assertEqual([t["report_id"] for t in tasks], ["rpt_1"])
        self.assertEqual(tasks[0]["attempts"], 1)

    def test_batch_is_capped_at_max_concurrent(self):
        for i in range(5):
            self.queue.enqueue(f"rpt_{i}", "int_1")

        self.queue.process_queue()
        self.assertEqual(len(self.service.synced), 3)
        self.assertEqual(len(self.queue), 2)

        self.queue.process_queue()
        self.assertEqual(len(self.service.synced), 5)
        self.assertEqual(len(self.queue), 0)

    def test_overlapping_tick_is_skipped(self):
        nested = []
        self.service.on_sync = lambda report_id: nested.append(self.queue.process_queue())
        self.queue.enqueue("rpt_1", "int_1")

        self.queue.process_queue()

        self.assertEqual(nested, [None])
        self.assertEqual(self.service.synced, [("rpt_1", "int_1")])
        self.assertFalse(self.queue.processing)

    def test_tick_logs_and_swallows_errors(self):
        with patch.object(self.queue, "process_queue", side_effect=RuntimeError("boom")):
            self.queue._tick()


class TimerTests(SyncQueueTestCase):
    def test_start_and_stop(self):
        self.assertFalse(self.queue.running)

        self.queue.start()
        try:
            self.assertTrue(self.queue.running)
            job = self.queue._scheduler.get_job(JOB_ID)
            self.assertIsNotNone(job)
            self.assertEqual(job.max_instances, 1)
            # A second start is a no-op
            self.queue.start()
        finally:
            self.queue.stop()

        self.assertFalse(self.queue.running)
        self.queue.stop()


if __name__ == "__main__":
    unittest.main()
