"""GitHub REST API client"""
import base64
import logging
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence
from urllib.parse import quote

import httpx

from reportsync.config import settings
from reportsync.models import FileTransferMode, FileType, GitHubIntegrationConfig, ReportStatus
from reportsync.services.issue_body import public_file_url, render_issue_body
from reportsync.services.tracker import ConnectionCheck, IssueRef, IssueTrackerClient, TrackerError

logger = logging.getLogger(__name__)

# Uploaded attachments live under this directory of the target repository.
ATTACHMENTS_DIR = ".reportsync"
MAX_UPLOAD_BYTES = 10 * 1024 * 1024

PER_PAGE = 100
MAX_REPOSITORY_PAGES = 5

NOT_FOUND_OR_NO_ACCESS = "Repository not found or no access"
INVALID_TOKEN = "Invalid access token"


class GitHubAPIError(TrackerError):
    """GitHub answered with a non-success status or an unreadable body."""


class GitHubClient(IssueTrackerClient):
    """Issue and webhook operations against one GitHub repository"""

    def __init__(
        self,
        config: GitHubIntegrationConfig,
        *,
        app_url: Optional[str] = None,
        file_reader: Optional[Callable[[Any], bytes]] = None,
        http_client: Optional[httpx.Client] = None,
    ):
        self.config = config
        self.app_url = app_url
        self.file_reader = file_reader
        self._owns_http = http_client is None
        self.http = http_client or self.build_http_client(config.access_token)

    @staticmethod
    def build_http_client(
        access_token: str, *, transport: Optional[httpx.BaseTransport] = None
    ) -> httpx.Client:
        return httpx.Client(
            base_url=settings.github_api_url,
            headers={
                "Accept": "application/vnd.github+json",
                "Authorization": f"Bearer {access_token}",
                "X-GitHub-Api-Version": settings.github_api_version,
            },
            timeout=settings.http_timeout_seconds,
            transport=transport,
        )

    def close(self) -> None:
        if self._owns_http:
            self.http.close()

    # -- plumbing -------------------------------------------------------------

    @property
    def _repo_path(self) -> str:
        return f"/repos/{quote(self.config.owner, safe='')}/{quote(self.config.repo, safe='')}"

    def _require_repo(self) -> None:
        if not (self.config.owner and self.config.repo and self.config.access_token):
            raise TrackerError("GitHub configuration incomplete. Required: owner, repo, access_token")

    def _request(self, method: str, path: str, **kwargs) -> httpx.Response:
        try:
            return self.http.request(method, path, **kwargs)
        except httpx.HTTPError as e:
            logger.error(f"GitHub request {method} {path} failed: {e}")
            raise TrackerError(str(e)) from e

    @staticmethod
    def _error_message(response: httpx.Response) -> str:
        try:
            data = response.json()
        except ValueError:
            data = None
        if isinstance(data, Mapping) and data.get("message"):
            return str(data["message"])
        return f"HTTP {response.status_code}"

    def _raise_for_status(
        self, response: httpx.Response, messages: Optional[Dict[int, str]] = None
    ) -> None:
        if response.is_success:
            return
        message = (messages or {}).get(response.status_code)
        if message is None:
            message = f"GitHub API error: {self._error_message(response)}"
        raise GitHubAPIError(message, status_code=response.status_code)

    @staticmethod
    def _json(response: httpx.Response) -> Any:
        """Decoded body of a successful response; anything unreadable is a ``GitHubAPIError``."""
        try:
            return response.json()
        except ValueError as e:
            raise GitHubAPIError(
                f"GitHub API returned a non-JSON response (HTTP {response.status_code})",
                status_code=response.status_code,
            ) from e

    @classmethod
    def _json_field(cls, response: httpx.Response, *path: str) -> Any:
        data = cls._json(response)
        try:
            for key in path:
                data = data[key]
        except (KeyError, IndexError, TypeError) as e:
            raise GitHubAPIError(
                f"GitHub API response is missing '{'.'.join(path)}'", status_code=response.status_code
            ) from e
        return data

    @classmethod
    def _issue_ref(cls, response: httpx.Response) -> IssueRef:
        return IssueRef(
            number=cls._json_field(response, "number"), url=cls._json_field(response, "html_url")
        )

    # -- attachments ----------------------------------------------------------

    @staticmethod
    def _is_uploadable(file: Any) -> bool:
        if file.type == FileType.VIDEO.value or (file.mime_type or "").startswith("video/"):
            return False
        return (file.size_bytes or 0) <= MAX_UPLOAD_BYTES

    def _upload_file(self, report_id: str, file: Any) -> str:
        """Commit one file into the repository and return a URL that renders it."""
        repo_file = f"{ATTACHMENTS_DIR}/{report_id}/{file.filename}"
        path = f"{self._repo_path}/contents/{quote(repo_file)}"

        existing = self._request("GET", path)
        if existing.status_code == 200:
            logger.debug(f"Reusing uploaded attachment {repo_file}")
            return f"{self._json_field(existing, 'html_url')}?raw=true"
        if existing.status_code != 404:
            self._raise_for_status(existing)

        content = base64.b64encode(self.file_reader(file)).decode("ascii")
        response = self._request(
            "PUT",
            path,
            json={"message": f"Add {file.filename} for report {report_id}", "content": content},
        )
        self._raise_for_status(response)
        return f"{self._json_field(response, 'content', 'html_url')}?raw=true"

    def _upload_attachments(self, report_id: str, files: Sequence[Any]) -> Dict[str, str]:
        uploaded: Dict[str, str] = {}
        for file in files:
            if not self._is_uploadable(file):
                logger.debug(f"Skipping upload of {file.filename} for report {report_id}")
                continue
            try:
                uploaded[file.id] = self._upload_file(report_id, file)
            except GitHubAPIError as e:
                if e.status_code == 403:
                    logger.warning(
                        f"Token cannot write to {self.config.full_name}; "
                        f"skipping remaining uploads for report {report_id}"
                    )
                    break
                logger.warning(f"Failed to upload {file.filename} for report {report_id}: {e}")
            except (TrackerError, OSError) as e:
                logger.warning(f"Failed to upload {file.filename} for report {report_id}: {e}")
        return uploaded

    def _file_urls(self, report: Any, files: Sequence[Any]) -> Dict[str, str]:
        urls: Dict[str, str] = {}
        if self.config.file_transfer_mode == FileTransferMode.UPLOAD and self.file_reader is not None:
            urls.update(self._upload_attachments(report.id, files))
        for file in files:
            if file.id in urls:
                continue
            link = public_file_url(self.app_url, report.id, file.filename)
            if link:
                urls[file.id] = link
        return urls

    def _issue_body(self, report: Any, files: Sequence[Any]) -> str:
        return render_issue_body(
            report, files=files, file_urls=self._file_urls(report, files), app_url=self.app_url
        )

    # -- issues ---------------------------------------------------------------

    def create_issue(
        self,
        report: Any,
        files: Sequence[Any] = (),
        *,
        labels: Optional[List[str]] = None,
        assignees: Optional[List[str]] = None,
    ) -> IssueRef:
        """Create an issue for ``report``.

        Configured labels/assignees are combined with the request-time ones as-is;
        GitHub ignores duplicates.
        """
        self._require_repo()
        payload: Dict[str, Any] = {"title": report.title, "body": self._issue_body(report, files)}
        all_labels = list(self.config.labels) + list(labels or [])
        all_assignees = list(self.config.assignees) + list(assignees or [])
        if all_labels:
            payload["labels"] = all_labels
        if all_assignees:
            payload["assignees"] = all_assignees

        response = self._request("POST", f"{self._repo_path}/issues", json=payload)
        try:
            self._raise_for_status(response)
        except GitHubAPIError as e:
            logger.error(f"Failed to create issue for report {report.id}: {e}")
            raise

        issue = self._issue_ref(response)
        logger.info(f"Created GitHub issue #{issue.number} for report {report.id}")
        return issue

    def update_issue(self, issue_number: int, report: Any, files: Sequence[Any] = ()) -> IssueRef:
        """Re-render issue ``issue_number`` and align its open/closed state with the report."""
        self._require_repo()
        closed = report.status in (ReportStatus.RESOLVED.value, ReportStatus.CLOSED.value)
        payload = {
            "title": report.title,
            "body": self._issue_body(report, files),
            "state": "closed" if closed else "open",
        }
        response = self._request("PATCH", f"{self._repo_path}/issues/{int(issue_number)}", json=payload)
        try:
            self._raise_for_status(response)
        except GitHubAPIError as e:
            logger.error(f"Failed to update issue #{issue_number} for report {report.id}: {e}")
            raise

        issue = self._issue_ref(response)
        logger.info(f"Updated GitHub issue #{issue.number} for report {report.id}")
        return issue

    def get_issue(self, issue_number: int) -> Dict[str, Any]:
        response = self._request("GET", f"{self._repo_path}/issues/{int(issue_number)}")
        self._raise_for_status(response, {404: "Issue not found"})
        return self._json(response)

    # -- repository -----------------------------------------------------------

    def test_connection(self) -> ConnectionCheck:
        """Check that the token can see the repository."""
        if not (self.config.owner and self.config.repo and self.config.access_token):
            return ConnectionCheck(ok=False, error="Missing required fields: owner, repo, access_token")
        try:
            response = self._request("GET", self._repo_path)
            self._raise_for_status(response, {404: NOT_FOUND_OR_NO_ACCESS, 401: INVALID_TOKEN})
            repo_name = self._json_field(response, "full_name")
        except TrackerError as e:
            return ConnectionCheck(ok=False, error=str(e))
        return ConnectionCheck(ok=True, repo_name=repo_name)

    def fetch_labels(self) -> List[Dict[str, Any]]:
        response = self._request("GET", f"{self._repo_path}/labels", params={"per_page": PER_PAGE})
        self._raise_for_status(response, {404: NOT_FOUND_OR_NO_ACCESS})
        return [
            {"name": label["name"], "color": label.get("color"), "description": label.get("description")}
            for label in self._json(response)
        ]

    def fetch_assignees(self) -> List[Dict[str, Any]]:
        response = self._request("GET", f"{self._repo_path}/assignees", params={"per_page": PER_PAGE})
        self._raise_for_status(response, {404: NOT_FOUND_OR_NO_ACCESS})
        return [
            {"login": user["login"], "avatar_url": user.get("avatar_url")} for user in self._json(response)
        ]

    def fetch_repositories(self) -> List[Dict[str, Any]]:
        """Repositories the token can reach (owner, collaborator, org member), capped at 500."""
        repos: List[Dict[str, Any]] = []
        for page in range(1, MAX_REPOSITORY_PAGES + 1):
            response = self._request(
                "GET",
                "/user/repos",
                params={
                    "per_page": PER_PAGE,
                    "page": page,
                    "sort": "full_name",
                    "affiliation": "owner,collaborator,organization_member",
                },
            )
            self._raise_for_status(
                response,
                {401: INVALID_TOKEN, 403: "Token does not have permission to list repositories"},
            )
            batch = self._json(response)
            if not batch:
                break
            repos.extend(batch)
            if 'rel="next"' not in response.headers.get("Link", ""):
                break

        return [
            {
                "owner": repo["owner"]["login"],
                "name": repo["name"],
                "full_name": repo["full_name"],
                "private": repo.get("private", False),
            }
            for repo in repos
        ]

    @classmethod
    def for_token(cls, access_token: str, **kwargs) -> "GitHubClient":
        """Client for account-level calls that need no repository."""
        return cls(GitHubIntegrationConfig(owner="", repo="", access_token=access_token), **kwargs)

    # -- webhooks -------------------------------------------------------------

    def create_webhook(self, callback_url: str, secret: str) -> str:
        """Subscribe ``callback_url`` to issue events; returns the webhook id."""
        response = self._request(
            "POST",
            f"{self._repo_path}/hooks",
            json={
                "name": "web",
                "active": True,
                "events": ["issues"],
                "config": {
                    "url": callback_url,
                    "content_type": "json",
                    "secret": secret,
                    "insecure_ssl": "0",
                },
            },
        )
        self._raise_for_status(
            response,
            {
                404: "Repository not found or token lacks admin:repo_hook permission",
                422: "Webhook already exists or validation failed",
            },
        )
        webhook_id = str(self._json_field(response, "id"))
        logger.info(f"Created GitHub webhook {webhook_id} for {self.config.full_name}")
        return webhook_id

    def delete_webhook(self, webhook_id: str) -> None:
        """Delete a webhook; one that is already gone counts as deleted."""
        response = self._request("DELETE", f"{self._repo_path}/hooks/{quote(str(webhook_id), safe='')}")
        if response.status_code != 404:
            self._raise_for_status(response)
        logger.info(f"Deleted GitHub webhook {webhook_id} from {self.config.full_name}")
