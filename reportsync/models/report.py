"""Report and report file models"""
import enum

from sqlalchemy import JSON, Column, DateTime, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import relationship

from reportsync.models.base import Base, new_id, utcnow


class ReportStatus(str, enum.Enum):
    OPEN = "open"
    IN_PROGRESS = "in_progress"
    RESOLVED = "resolved"
    CLOSED = "closed"


class SyncStatus(str, enum.Enum):
    """Tracker sync state of a report. NULL in the database means "never queued"."""

    PENDING = "pending"
    SYNCED = "synced"
    ERROR = "error"


class FileType(str, enum.Enum):
    SCREENSHOT = "screenshot"
    VIDEO = "video"
    ATTACHMENT = "attachment"


class Report(Base):
    """A user-filed bug report"""

    __tablename__ = "reports"
    __table_args__ = (Index("ix_reports_project_issue_number", "project_id", "issue_number"),)

    id = Column(String, primary_key=True, default=lambda: new_id("rpt"))
    project_id = Column(String, nullable=False, index=True)
    title = Column(String, nullable=False)
    description = Column(Text, nullable=True)
    status = Column(String, nullable=False, default=ReportStatus.OPEN.value)
    priority = Column(String, nullable=False, default="medium")
    # `metadata` is reserved on declarative classes
    report_metadata = Column("metadata", JSON, nullable=False, default=dict)

    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    # Tracker sync state
    sync_status = Column(String, nullable=True)
    sync_error = Column(Text, nullable=True)
    issue_number = Column(Integer, nullable=True)
    issue_url = Column(String, nullable=True)
    synced_at = Column(DateTime, nullable=True)

    files = relationship("ReportFile", back_populates="report", cascade="all, delete-orphan")

    def __repr__(self):
        return f"<Report(id='{self.id}', status='{self.status}', sync_status={self.sync_status})>"


class ReportFile(Base):
    """A file captured with a report (screenshot, video, attachment)"""

    __tablename__ = "report_files"

    id = Column(String, primary_key=True, default=lambda: new_id("fil"))
    report_id = Column(String, ForeignKey("reports.id"), nullable=False, index=True)
    type = Column(String, nullable=False, default=FileType.ATTACHMENT.value)
    filename = Column(String, nullable=False)
    # Relative to settings.storage_path
    path = Column(String, nullable=False)
    mime_type = Column(String, nullable=False, default="application/octet-stream")
    size_bytes = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime, default=utcnow)

    report = relationship("Report", back_populates="files")

    def __repr__(self):
        return f"<ReportFile(report_id='{self.report_id}', filename='{self.filename}')>"
