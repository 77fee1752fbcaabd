"""Services"""

from reportsync.services.github_client import GitHubClient
from reportsync.services.sync_service import SyncService

__all__ = ["GitHubClient", "SyncService"]
