"""Integration sync management endpoints"""
from typing import List, Optional, Union

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel

from reportsync.api.deps import get_sync_queue, get_sync_service, raise_for_result
from reportsync.models import Integration, SyncMode
from reportsync.services.github_client import GitHubClient
from reportsync.services.result import ErrorCode, Result
from reportsync.services.sync_service import SyncService
from reportsync.services.tracker import TrackerError
from reportsync.sync_queue import SyncQueue

router = APIRouter(prefix="/api/integrations", tags=["integrations"])


class SyncModeRequest(BaseModel):
    sync_mode: SyncMode


class SyncExistingRequest(BaseModel):
    # A list of report ids, or "all" for every never-synced report of the project
    report_ids: Union[List[str], str, None] = None


class RepositoriesRequest(BaseModel):
    access_token: str


class SyncStatusResponse(BaseModel):
    sync_mode: SyncMode
    unsynced_count: int
    queue_length: int
    processing: bool


class ConnectionCheckResponse(BaseModel):
    ok: bool
    repo_name: Optional[str] = None
    error: Optional[str] = None


def _get_tracker_integration(service: SyncService, integration_id: str) -> Integration:
    integration = service.integrations.find_by_id(integration_id)
    if integration is None:
        raise_for_result(Result.fail("Integration not found", ErrorCode.NOT_FOUND))
    if not integration.is_tracker:
        raise_for_result(
            Result.fail("Only issue tracker integrations support syncing", ErrorCode.INVALID_TYPE)
        )
    return integration


def _tracker_error(e: TrackerError) -> HTTPException:
    return HTTPException(status_code=400, detail={"error": "TRACKER_ERROR", "message": str(e)})


@router.post("/{integration_id}/sync-mode")
def set_sync_mode(
    integration_id: str,
    body: SyncModeRequest,
    service: SyncService = Depends(get_sync_service),
):
    """Switch an integration between manual and automatic sync"""
    integration = _get_tracker_integration(service, integration_id)

    if integration.tracker_config().sync_mode == body.sync_mode:
        return {
            "success": True,
            "message": f"Sync mode is already {body.sync_mode.value}",
            "sync_mode": body.sync_mode,
        }

    if body.sync_mode == SyncMode.AUTOMATIC:
        result = service.enable_auto_sync(integration_id)
    else:
        result = service.disable_auto_sync(integration_id)
    raise_for_result(result)

    unsynced_count = 0
    if body.sync_mode == SyncMode.AUTOMATIC:
        unsynced_count = service.get_unsynced_count(integration.project_id)

    return {
        "success": True,
        "sync_mode": body.sync_mode,
        "webhook_created": result.value.webhook_created,
        "unsynced_count": unsynced_count,
    }


@router.post("/{integration_id}/sync-existing")
def sync_existing_reports(
    integration_id: str,
    body: SyncExistingRequest,
    service: SyncService = Depends(get_sync_service),
    queue: SyncQueue = Depends(get_sync_queue),
):
    """Queue existing reports for (re-)sync"""
    integration = _get_tracker_integration(service, integration_id)

    if body.report_ids == "all":
        report_ids = service.get_unsynced_report_ids(integration.project_id)
    elif isinstance(body.report_ids, list):
        report_ids = body.report_ids
    else:
        raise HTTPException(
            status_code=400,
            detail={"error": "INVALID_PARAMS", "message": 'report_ids must be a list or "all"'},
        )

    if not report_ids:
        return {"success": True, "message": "No reports to sync", "queued": 0}

    for report_id in report_ids:
        queue.enqueue(report_id, integration_id)

    return {
        "success": True,
        "message": f"Queued {len(report_ids)} reports for sync",
        "queued": len(report_ids),
    }


@router.get("/{integration_id}/sync-status", response_model=SyncStatusResponse)
def get_sync_status(
    integration_id: str,
    service: SyncService = Depends(get_sync_service),
    queue: SyncQueue = Depends(get_sync_queue),
):
    """Sync mode, unsynced report count and queue state"""
    integration = _get_tracker_integration(service, integration_id)
    queue_status = queue.status()
    return SyncStatusResponse(
        sync_mode=integration.tracker_config().sync_mode,
        unsynced_count=service.get_unsynced_count(integration.project_id),
        queue_length=queue_status["queue_length"],
        processing=queue_status["processing"],
    )


@router.post("/{integration_id}/test-connection", response_model=ConnectionCheckResponse)
def test_connection(integration_id: str, service: SyncService = Depends(get_sync_service)):
    """Check the stored credentials against the tracker"""
    integration = _get_tracker_integration(service, integration_id)
    with service.tracker_client(integration) as client:
        check = client.test_connection()
    return ConnectionCheckResponse(ok=check.ok, repo_name=check.repo_name, error=check.error)


@router.get("/{integration_id}/labels")
def list_labels(integration_id: str, service: SyncService = Depends(get_sync_service)):
    """Labels available in the tracker repository"""
    integration = _get_tracker_integration(service, integration_id)
    try:
        with service.tracker_client(integration) as client:
            return {"labels": client.fetch_labels()}
    except TrackerError as e:
        raise _tracker_error(e)


@router.get("/{integration_id}/assignees")
def list_assignees(integration_id: str, service: SyncService = Depends(get_sync_service)):
    """Users issues in the tracker repository can be assigned to"""
    integration = _get_tracker_integration(service, integration_id)
    try:
        with service.tracker_client(integration) as client:
            return {"assignees": client.fetch_assignees()}
    except TrackerError as e:
        raise _tracker_error(e)


@router.post("/github/repositories")
def list_github_repositories(body: RepositoriesRequest):
    """Repositories a GitHub token can reach, for the integration setup form"""
    if not body.access_token.strip():
        raise HTTPException(
            status_code=400,
            detail={"error": "INVALID_PARAMS", "message": "Access token is required"},
        )
    try:
        with GitHubClient.for_token(body.access_token.strip()) as client:
            return {"repositories": client.fetch_repositories()}
    except TrackerError as e:
        raise _tracker_error(e)
