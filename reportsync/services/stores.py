"""Persistence adapters used by the sync engine.

Report, integration and file CRUD belong to other parts of the product; the sync
engine only needs the narrow set of reads and writes below.
"""

from pathlib import Path
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from reportsync.config import Settings, settings as default_settings
from reportsync.models import Integration, Report, ReportFile, SyncStatus
from reportsync.models.base import utcnow


class IntegrationStore:
    def __init__(self, db: Session):
        self.db = db

    def find_by_id(self, integration_id: str) -> Optional[Integration]:
        return self.db.query(Integration).filter(Integration.id == integration_id).first()

    def find_by_project(self, project_id: str) -> List[Integration]:
        return (
            self.db.query(Integration)
            .filter(Integration.project_id == project_id)
            .order_by(Integration.created_at)
            .all()
        )

    def create(
        self,
        *,
        project_id: str,
        type: str,
        config: Dict[str, Any],
        name: str = "",
        is_active: bool = True,
    ) -> Integration:
        integration = Integration(
            project_id=project_id, type=type, name=name, config=config, is_active=is_active
        )
        self.db.add(integration)
        self.db.commit()
        self.db.refresh(integration)
        return integration

    def update_config(self, integration_id: str, config: Dict[str, Any]) -> Optional[Integration]:
        integration = self.find_by_id(integration_id)
        if integration is None:
            return None
        # Assign a fresh dict so SQLAlchemy notices the JSON change.
        integration.config = dict(config)
        self.db.commit()
        self.db.refresh(integration)
        return integration

    def touch_last_used(self, integration_id: str) -> None:
        integration = self.find_by_id(integration_id)
        if integration is None:
            return
        integration.last_used_at = utcnow()
        integration.usage_count = (integration.usage_count or 0) + 1
        self.db.commit()


class ReportStore:
    def __init__(self, db: Session):
        self.db = db

    def find_by_id(self, report_id: str) -> Optional[Report]:
        return self.db.query(Report).filter(Report.id == report_id).first()

    def find_by_issue_number(self, project_id: str, issue_number: Optional[int]) -> Optional[Report]:
        # Unsynced reports have a NULL issue number and must never match.
        if issue_number is None:
            return None
        return (
            self.db.query(Report)
            .filter(Report.project_id == project_id, Report.issue_number == issue_number)
            .first()
        )

    def list_unsynced(self, project_id: str) -> List[Report]:
        """Reports that were never queued for sync."""
        return (
            self.db.query(Report)
            .filter(Report.project_id == project_id, Report.sync_status.is_(None))
            .order_by(Report.created_at)
            .all()
        )

    def mark_pending(self, report_id: str) -> None:
        report = self.find_by_id(report_id)
        if report is None:
            return
        report.sync_status = SyncStatus.PENDING.value
        self.db.commit()

    def update_sync_status(
        self,
        report_id: str,
        status: SyncStatus,
        *,
        error: Optional[str] = None,
        issue_number: Optional[int] = None,
        issue_url: Optional[str] = None,
    ) -> Optional[Report]:
        """Write sync fields. Issue number/url are only overwritten when given."""
        report = self.find_by_id(report_id)
        if report is None:
            return None
        report.sync_status = SyncStatus(status).value
        report.sync_error = error
        if issue_number is not None:
            report.issue_number = issue_number
        if issue_url is not None:
            report.issue_url = issue_url
        if report.sync_status == SyncStatus.SYNCED.value:
            report.synced_at = utcnow()
        self.db.commit()
        self.db.refresh(report)
        return report

    def update_status(self, report_id: str, status: str) -> Optional[Report]:
        report = self.find_by_id(report_id)
        if report is None:
            return None
        report.status = status
        self.db.commit()
        self.db.refresh(report)
        return report


class FileStore:
    def __init__(self, db: Session, storage_path: Optional[str] = None):
        self.db = db
        self.storage_root = Path(storage_path or default_settings.storage_path)

    def find_by_report(self, report_id: str) -> List[ReportFile]:
        return (
            self.db.query(ReportFile)
            .filter(ReportFile.report_id == report_id)
            .order_by(ReportFile.created_at)
            .all()
        )

    def read_bytes(self, file: ReportFile) -> bytes:
        return (self.storage_root / file.path).read_bytes()


class AppSettings:
    """Runtime lookups of deployment settings."""

    def __init__(self, config: Optional[Settings] = None):
        self._config = config or default_settings

    def get_public_base_url(self) -> Optional[str]:
        value = (self._config.app_url or "").strip()
        return value or None
