"""Report to issue tracker synchronization service"""

import logging
import secrets
import time
from dataclasses import dataclass, field
from typing import Any, Callable, List, Mapping, Optional, Sequence

from sqlalchemy.orm import Session

from reportsync.config import settings
from reportsync.models import Integration, ReportStatus, SyncMode, SyncStatus
from reportsync.services.result import ErrorCode, Result
from reportsync.services.stores import AppSettings, FileStore, IntegrationStore, ReportStore
from reportsync.services.tracker import (
    IssueTrackerClient,
    TrackerClientFactory,
    TrackerError,
    create_tracker_client,
)

logger = logging.getLogger(__name__)

WEBHOOK_PATH = "/api/webhooks"

CLOSED_STATUSES = (ReportStatus.RESOLVED.value, ReportStatus.CLOSED.value)


@dataclass
class SyncOutcome:
    report_id: str
    success: bool
    issue_number: Optional[int] = None
    issue_url: Optional[str] = None
    error: Optional[str] = None


@dataclass
class BatchSyncOutcome:
    total: int = 0
    successful: int = 0
    failed: int = 0
    results: List[SyncOutcome] = field(default_factory=list)


@dataclass
class AutoSyncOutcome:
    sync_mode: SyncMode
    webhook_created: bool = False


def webhook_callback_url(base_url: str, integration: Integration) -> str:
    return f"{base_url.strip().rstrip('/')}{WEBHOOK_PATH}/{integration.type}/{integration.id}"


class SyncService:
    """Pushes reports to their tracker and applies tracker events back to reports"""

    def __init__(
        self,
        db: Optional[Session],
        *,
        reports: Optional[ReportStore] = None,
        integrations: Optional[IntegrationStore] = None,
        files: Optional[FileStore] = None,
        app_settings: Optional[AppSettings] = None,
        client_factory: TrackerClientFactory = create_tracker_client,
        sleep: Callable[[float], None] = time.sleep,
        max_attempts: Optional[int] = None,
        retry_delays: Optional[Sequence[float]] = None,
        batch_delay: Optional[float] = None,
    ):
        self.db = db
        self.reports = reports or ReportStore(db)
        self.integrations = integrations or IntegrationStore(db)
        self.files = files or FileStore(db)
        self.app_settings = app_settings or AppSettings()
        self.client_factory = client_factory
        self.sleep = sleep
        self.max_attempts = max_attempts or settings.sync_queue_max_attempts
        self.retry_delays = list(retry_delays or settings.sync_retry_delays_seconds)
        self.batch_delay = settings.batch_sync_delay_seconds if batch_delay is None else batch_delay

    def tracker_client(self, integration: Integration, app_url: Optional[str] = None) -> IssueTrackerClient:
        return self.client_factory(integration, app_url=app_url, file_reader=self.files.read_bytes)

    def _retry_delay(self, attempt: int) -> float:
        """Delay after failed attempt number ``attempt`` (1-based)."""
        if not self.retry_delays:
            return 0.0
        return self.retry_delays[min(attempt, len(self.retry_delays)) - 1]

    def _load_tracker_integration(self, integration_id: str) -> Result[Integration]:
        integration = self.integrations.find_by_id(integration_id)
        if integration is None:
            return Result.fail("Integration not found", ErrorCode.NOT_FOUND)
        if not integration.is_tracker:
            return Result.fail(
                f"Integration type '{integration.type}' does not support issue sync",
                ErrorCode.INVALID_TYPE,
            )
        return Result.ok(integration)

    # -- outbound -------------------------------------------------------------

    def mark_pending(self, report_id: str) -> None:
        self.reports.mark_pending(report_id)

    def sync_report(
        self,
        report_id: str,
        integration_id: str,
        *,
        labels: Optional[List[str]] = None,
        assignees: Optional[List[str]] = None,
    ) -> Result[SyncOutcome]:
        """Create or update the tracker issue for one report.

        ``labels``/``assignees`` are added to the configured ones when an issue is created.
        """
        report = self.reports.find_by_id(report_id)
        if report is None:
            return Result.fail("Report not found", ErrorCode.NOT_FOUND)

        loaded = self._load_tracker_integration(integration_id)
        if not loaded.success:
            return loaded
        integration = loaded.value

        if not integration.is_active:
            return Result.fail("Integration is not active", ErrorCode.INACTIVE)

        try:
            files = self.files.find_by_report(report_id)
            with self.tracker_client(integration, self.app_settings.get_public_base_url()) as client:
                if report.issue_number:
                    issue = client.update_issue(report.issue_number, report, files)
                else:
                    issue = client.create_issue(report, files, labels=labels, assignees=assignees)
        except Exception as e:
            message = str(e) or e.__class__.__name__
            self.reports.update_sync_status(report_id, SyncStatus.ERROR, error=message)
            logger.error(f"Failed to sync report {report_id} via integration {integration_id}: {message}")
            return Result.fail(message, ErrorCode.SYNC_FAILED)

        self.reports.update_sync_status(
            report_id, SyncStatus.SYNCED, issue_number=issue.number, issue_url=issue.url
        )
        self.integrations.touch_last_used(integration_id)
        logger.info(f"Report {report_id} synced to issue #{issue.number} (integration {integration_id})")

        return Result.ok(
            SyncOutcome(report_id=report_id, success=True, issue_number=issue.number, issue_url=issue.url)
        )

    def sync_with_retry(self, report_id: str, integration_id: str, **overrides: Any) -> Result[SyncOutcome]:
        """``sync_report`` with bounded retries on transient failures."""
        last_error: Optional[str] = None

        for attempt in range(1, self.max_attempts + 1):
            result = self.sync_report(report_id, integration_id, **overrides)
            if result.success:
                return result

            last_error = result.error
            if not result.retryable:
                return result

            if attempt < self.max_attempts:
                delay = self._retry_delay(attempt)
                logger.info(f"Retry {attempt}/{self.max_attempts} for report {report_id} in {delay}s")
                self.sleep(delay)

        self.reports.update_sync_status(
            report_id,
            SyncStatus.ERROR,
            error=f"Failed after {self.max_attempts} attempts: {last_error}",
        )
        return Result.fail(last_error or "Sync failed after retries", ErrorCode.SYNC_FAILED)

    def sync_reports(self, report_ids: Sequence[str], integration_id: str) -> Result[BatchSyncOutcome]:
        """Sync reports one after another; individual failures do not stop the batch."""
        batch = BatchSyncOutcome(total=len(report_ids))

        for index, report_id in enumerate(report_ids):
            self.reports.mark_pending(report_id)
            result = self.sync_report(report_id, integration_id)
            if result.success:
                batch.successful += 1
                batch.results.append(result.value)
            else:
                batch.failed += 1
                batch.results.append(SyncOutcome(report_id=report_id, success=False, error=result.error))

            if index < len(report_ids) - 1 and self.batch_delay:
                self.sleep(self.batch_delay)

        logger.info(
            f"Batch sync via integration {integration_id}: "
            f"{batch.successful} succeeded, {batch.failed} failed"
        )
        return Result.ok(batch)

    # -- sync mode ------------------------------------------------------------

    def get_auto_sync_integration(self, project_id: str) -> Optional[Integration]:
        """The project's active integration in automatic sync mode, if any."""
        for integration in self.integrations.find_by_project(project_id):
            if integration.is_tracker and integration.is_active:
                if integration.tracker_config().sync_mode == SyncMode.AUTOMATIC:
                    return integration
        return None

    def find_retry_integration(self, report_id: str) -> Result[Integration]:
        """Integration a manual retry of ``report_id`` should go through."""
        report = self.reports.find_by_id(report_id)
        if report is None:
            return Result.fail("Report not found", ErrorCode.NOT_FOUND)

        for integration in self.integrations.find_by_project(report.project_id):
            if integration.is_tracker and integration.is_active:
                return Result.ok(integration)
        return Result.fail("No active issue tracker integration found", ErrorCode.INTEGRATION_NOT_FOUND)

    def enable_auto_sync(self, integration_id: str) -> Result[AutoSyncOutcome]:
        """Switch to automatic sync and register a tracker webhook for inbound events.

        A failed webhook registration still enables automatic (outbound only) sync.
        """
        loaded = self._load_tracker_integration(integration_id)
        if not loaded.success:
            return loaded
        integration = loaded.value

        try:
            base_url = self.app_settings.get_public_base_url()
        except Exception as e:
            logger.error(f"Failed to read application settings: {e}")
            return Result.fail("Failed to retrieve application settings", ErrorCode.SETTINGS_ERROR)
        if not base_url:
            return Result.fail(
                "Application URL not configured. Set APP_URL in settings.", ErrorCode.CONFIG_ERROR
            )

        secret = secrets.token_hex(16)
        callback_url = webhook_callback_url(base_url, integration)

        webhook_id: Optional[str] = None
        try:
            with self.tracker_client(integration, base_url) as client:
                webhook_id = client.create_webhook(callback_url, secret)
        except TrackerError as e:
            logger.warning(
                f"Failed to create webhook for integration {integration_id}, "
                f"continuing without inbound sync: {e}"
            )

        config = integration.tracker_config().model_copy(
            update={
                "sync_mode": SyncMode.AUTOMATIC,
                "webhook_id": webhook_id,
                "webhook_secret": secret if webhook_id else None,
            }
        )
        self.integrations.update_config(integration_id, config.model_dump(mode="json"))

        logger.info(
            f"Enabled automatic sync for integration {integration_id} "
            f"(webhook created: {webhook_id is not None})"
        )
        return Result.ok(AutoSyncOutcome(sync_mode=SyncMode.AUTOMATIC, webhook_created=webhook_id is not None))

    def disable_auto_sync(self, integration_id: str) -> Result[AutoSyncOutcome]:
        """Switch back to manual sync and drop the tracker webhook."""
        loaded = self._load_tracker_integration(integration_id)
        if not loaded.success:
            return loaded
        integration = loaded.value
        config = integration.tracker_config()

        if config.webhook_id:
            try:
                with self.tracker_client(integration, None) as client:
                    client.delete_webhook(config.webhook_id)
            except TrackerError as e:
                logger.warning(
                    f"Failed to delete webhook {config.webhook_id} for integration {integration_id}: {e}"
                )

        config = config.model_copy(
            update={"sync_mode": SyncMode.MANUAL, "webhook_id": None, "webhook_secret": None}
        )
        self.integrations.update_config(integration_id, config.model_dump(mode="json"))

        logger.info(f"Disabled automatic sync for integration {integration_id}")
        return Result.ok(AutoSyncOutcome(sync_mode=SyncMode.MANUAL))

    # -- inbound --------------------------------------------------------------

    def handle_webhook(self, integration_id: str, action: str, issue: Mapping[str, Any]) -> Result[Optional[str]]:
        """Apply an issue event to the linked report.

        Only close and reopen move the report; the value is the new report status,
        or None when nothing changed.
        """
        integration = self.integrations.find_by_id(integration_id)
        if integration is None:
            return Result.fail("Integration not found", ErrorCode.NOT_FOUND)

        issue_number = issue.get("number")
        state = issue.get("state")
        if not isinstance(issue_number, int) or isinstance(issue_number, bool):
            logger.warning(f"Issue event without a valid issue number (integration {integration_id})")
            return Result.ok(None)

        report = self.reports.find_by_issue_number(integration.project_id, issue_number)
        if report is None:
            logger.debug(f"No report linked to issue #{issue_number} (integration {integration_id})")
            return Result.ok(None)

        new_status: Optional[str] = None
        if action == "closed" and state == "closed":
            if report.status not in CLOSED_STATUSES:
                new_status = ReportStatus.RESOLVED.value
        elif action == "reopened" and state == "open":
            if report.status in CLOSED_STATUSES:
                new_status = ReportStatus.OPEN.value

        if new_status:
            self.reports.update_status(report.id, new_status)
            logger.info(
                f"Report {report.id} set to '{new_status}' from issue #{issue_number} ({action})"
            )
        return Result.ok(new_status)

    # -- read helpers ---------------------------------------------------------

    def get_unsynced_report_ids(self, project_id: str) -> List[str]:
        return [report.id for report in self.reports.list_unsynced(project_id)]

    def get_unsynced_count(self, project_id: str) -> int:
        return len(self.reports.list_unsynced(project_id))
