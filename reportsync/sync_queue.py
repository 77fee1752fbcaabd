"""Background queue for pushing reports to their issue tracker"""

import logging
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterator, List, Optional, Sequence

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.interval import IntervalTrigger

from reportsync.config import settings
from reportsync.models.base import SessionLocal
from reportsync.services.result import ErrorCode, Result
from reportsync.services.sync_service import SyncService

logger = logging.getLogger(__name__)

JOB_ID = "sync_queue"


@dataclass
class SyncTask:
    id: str
    report_id: str
    integration_id: str
    created_at: float
    attempts: int = 0
    next_attempt: float = 0.0


class SyncQueue:
    """In-memory retry queue for report syncs.

    Holds at most one task per report. A timer calls ``process_queue`` every
    ``interval_seconds``; each tick runs up to ``max_concurrent`` due tasks in
    parallel and reschedules failures until ``max_attempts`` is reached.

    Tasks are lost on restart. Reports left in ``pending`` can be queued again from
    the admin UI.
    """

    def __init__(
        self,
        *,
        session_factory: Callable[[], Any] = SessionLocal,
        service_factory: Callable[[Any], SyncService] = SyncService,
        interval_seconds: Optional[float] = None,
        max_concurrent: Optional[int] = None,
        max_attempts: Optional[int] = None,
        retry_delays: Optional[Sequence[float]] = None,
        clock: Callable[[], float] = time.time,
    ):
        self.session_factory = session_factory
        self.service_factory = service_factory
        self.interval_seconds = interval_seconds or settings.sync_queue_interval_seconds
        self.max_concurrent = max_concurrent or settings.sync_queue_max_concurrent
        self.max_attempts = max_attempts or settings.sync_queue_max_attempts
        self.retry_delays = list(retry_delays or settings.sync_retry_delays_seconds)
        self.clock = clock

        self._tasks: List[SyncTask] = []
        self._lock = threading.Lock()
        self._processing = False
        self._scheduler: Optional[BackgroundScheduler] = None

    @contextmanager
    def _service(self) -> Iterator[SyncService]:
        db = self.session_factory()
        try:
            yield self.service_factory(db)
        finally:
            db.close()

    def _retry_delay(self, attempts: int) -> float:
        if not self.retry_delays:
            return 0.0
        return self.retry_delays[min(attempts, len(self.retry_delays)) - 1]

    def _remove_task(self, task_id: str) -> None:
        with self._lock:
            self._tasks = [t for t in self._tasks if t.id != task_id]

    @property
    def processing(self) -> bool:
        return self._processing

    def __len__(self) -> int:
        return len(self._tasks)

    # -- queueing -------------------------------------------------------------

    def enqueue(self, report_id: str, integration_id: str) -> bool:
        """Queue a report for sync and mark it pending. No-op if it is already queued."""
        now = self.clock()
        with self._lock:
            if any(t.report_id == report_id for t in self._tasks):
                logger.debug(f"Report {report_id} already in sync queue")
                return False
            self._tasks.append(
                SyncTask(
                    id=f"{report_id}-{int(now * 1000)}",
                    report_id=report_id,
                    integration_id=integration_id,
                    created_at=now,
                    next_attempt=now,
                )
            )

        with self._service() as service:
            service.mark_pending(report_id)

        logger.info(f"Added report {report_id} to sync queue (integration {integration_id})")
        return True

    def enqueue_if_auto_sync(self, report_id: str, project_id: str) -> bool:
        """Queue a created/updated report when its project syncs automatically."""
        with self._service() as service:
            integration = service.get_auto_sync_integration(project_id)
            integration_id = integration.id if integration is not None else None
        if integration_id is None:
            return False
        return self.enqueue(report_id, integration_id)

    def retry_sync_for_report(self, report_id: str) -> Result[None]:
        """Queue a report through its project's active tracker integration."""
        with self._service() as service:
            found = service.find_retry_integration(report_id)
            integration_id = found.value.id if found.success else None
        if integration_id is None:
            return Result.fail(found.error, found.code)

        self.enqueue(report_id, integration_id)
        return Result.ok()

    def remove(self, report_id: str) -> bool:
        with self._lock:
            before = len(self._tasks)
            self._tasks = [t for t in self._tasks if t.report_id != report_id]
            return len(self._tasks) < before

    def clear(self) -> None:
        with self._lock:
            self._tasks = []
        logger.info("Sync queue cleared")

    def status(self) -> Dict[str, Any]:
        with self._lock:
            tasks = [
                {"report_id": t.report_id, "attempts": t.attempts, "next_attempt": t.next_attempt}
                for t in self._tasks
            ]
        return {"queue_length": len(tasks), "processing": self._processing, "tasks": tasks}

    # -- processing -----------------------------------------------------------

    def _run_task(self, task: SyncTask) -> bool:
        task.attempts += 1
        try:
            with self._service() as service:
                result = service.sync_report(task.report_id, task.integration_id)
        except Exception as e:
            logger.error(f"Sync task for report {task.report_id} raised: {e}")
            result = Result.fail(str(e), ErrorCode.SYNC_FAILED)

        if result.success:
            self._remove_task(task.id)
            logger.info(f"Sync task completed for report {task.report_id}")
            return True

        if task.attempts >= self.max_attempts:
            self._remove_task(task.id)
            logger.error(
                f"Sync task for report {task.report_id} failed after {task.attempts} attempts: "
                f"{result.error}"
            )
            return False

        delay = self._retry_delay(task.attempts)
        task.next_attempt = self.clock() + delay
        logger.warning(
            f"Sync task for report {task.report_id} failed (attempt {task.attempts}), "
            f"retrying in {delay}s: {result.error}"
        )
        return False

    def process_queue(self) -> None:
        """Run one batch of due tasks. Returns at once if a batch is already running."""
        with self._lock:
            if self._processing:
                return
            self._processing = True

        try:
            now = self.clock()
            with self._lock:
                ready = [t for t in self._tasks if t.next_attempt <= now][: self.max_concurrent]
            if not ready:
                return

            logger.debug(f"Processing {len(ready)} sync tasks")
            with ThreadPoolExecutor(max_workers=len(ready), thread_name_prefix="sync-task") as pool:
                futures = {pool.submit(self._run_task, task): task for task in ready}

            succeeded = failed = 0
            for future, task in futures.items():
                try:
                    ok = future.result()
                except Exception as e:
                    logger.error(f"Sync task for report {task.report_id} crashed: {e}")
                    ok = False
                if ok:
                    succeeded += 1
                else:
                    failed += 1

            logger.info(
                f"Sync queue batch completed: {succeeded} succeeded, {failed} failed, "
                f"{len(self._tasks)} remaining"
            )
        finally:
            self._processing = False

    def _tick(self) -> None:
        try:
            self.process_queue()
        except Exception:
            logger.exception("Sync queue processing error")

    def start(self) -> None:
        """Start the timer"""
        if self._scheduler is not None:
            return
        self._scheduler = BackgroundScheduler()
        self._scheduler.add_job(
            func=self._tick,
            trigger=IntervalTrigger(seconds=self.interval_seconds),
            id=JOB_ID,
            max_instances=1,
            coalesce=True,
            replace_existing=True,
        )
        self._scheduler.start()
        logger.info(f"Sync queue processor started (every {self.interval_seconds}s)")

    def stop(self) -> None:
        """Stop the timer; a batch already running is allowed to finish."""
        if self._scheduler is None:
            return
        self._scheduler.shutdown(wait=True)
        self._scheduler = None
        logger.info("Sync queue processor stopped")

    @property
    def running(self) -> bool:
        return self._scheduler is not None
