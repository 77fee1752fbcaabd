"""Database models"""

from reportsync.models.base import Base
from reportsync.models.integration import (
    FileTransferMode,
    GitHubIntegrationConfig,
    Integration,
    IntegrationType,
    SyncMode,
    TrackerConfig,
)
from reportsync.models.report import FileType, Report, ReportFile, ReportStatus, SyncStatus

__all__ = [
    "Base",
    "Integration",
    "IntegrationType",
    "SyncMode",
    "FileTransferMode",
    "TrackerConfig",
    "GitHubIntegrationConfig",
    "Report",
    "ReportFile",
    "ReportStatus",
    "SyncStatus",
    "FileType",
]
