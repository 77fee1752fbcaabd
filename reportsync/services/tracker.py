"""Issue tracker capability shared by all tracker clients"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Sequence

from reportsync.models import IntegrationType


class TrackerError(Exception):
    """A remote tracker call failed (network or API error)."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


@dataclass(frozen=True)
class IssueRef:
    number: int
    url: str


@dataclass(frozen=True)
class ConnectionCheck:
    ok: bool
    repo_name: Optional[str] = None
    error: Optional[str] = None


class IssueTrackerClient(ABC):
    """Remote operations the sync engine needs from an issue tracker.

    Implementations are plain I/O adapters: every method either returns or raises
    ``TrackerError``; retrying is up to the caller.
    """

    @abstractmethod
    def create_issue(
        self,
        report: Any,
        files: Sequence[Any] = (),
        *,
        labels: Optional[List[str]] = None,
        assignees: Optional[List[str]] = None,
    ) -> IssueRef: ...

    @abstractmethod
    def update_issue(self, issue_number: int, report: Any, files: Sequence[Any] = ()) -> IssueRef: ...

    @abstractmethod
    def get_issue(self, issue_number: int) -> Dict[str, Any]: ...

    @abstractmethod
    def test_connection(self) -> ConnectionCheck: ...

    @abstractmethod
    def create_webhook(self, callback_url: str, secret: str) -> str: ...

    @abstractmethod
    def delete_webhook(self, webhook_id: str) -> None: ...

    @abstractmethod
    def fetch_labels(self) -> List[Dict[str, Any]]: ...

    @abstractmethod
    def fetch_assignees(self) -> List[Dict[str, Any]]: ...

    def close(self) -> None:
        """Release network resources."""

    def __enter__(self):
        return self

    def __exit__(self, *exc_info):
        self.close()


# Builds a client from (integration, app_url, file_reader).
TrackerClientFactory = Callable[..., IssueTrackerClient]


def create_tracker_client(
    integration: Any,
    *,
    app_url: Optional[str] = None,
    file_reader: Optional[Callable[[Any], bytes]] = None,
) -> IssueTrackerClient:
    """Construct the client matching ``integration.type``."""
    # Imported here so tracker implementations can import this module.
    from reportsync.services.github_client import GitHubClient

    if integration.type == IntegrationType.GITHUB.value:
        return GitHubClient(integration.tracker_config(), app_url=app_url, file_reader=file_reader)
    raise ValueError(f"No issue tracker client for integration type '{integration.type}'")
