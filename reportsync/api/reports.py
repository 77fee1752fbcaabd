"""Report sync endpoints"""
from typing import List, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from reportsync.api.deps import get_sync_queue, get_sync_service, raise_for_result
from reportsync.services.sync_service import SyncService
from reportsync.sync_queue import SyncQueue

router = APIRouter(prefix="/api/reports", tags=["reports"])


class SyncReportRequest(BaseModel):
    integration_id: str
    labels: Optional[List[str]] = None
    assignees: Optional[List[str]] = None


class SyncReportResponse(BaseModel):
    success: bool
    report_id: str
    issue_number: Optional[int] = None
    issue_url: Optional[str] = None


@router.post("/{report_id}/sync", response_model=SyncReportResponse)
def sync_report(
    report_id: str,
    body: SyncReportRequest,
    service: SyncService = Depends(get_sync_service),
):
    """Sync a report to its tracker now, retrying transient failures"""
    service.mark_pending(report_id)
    result = service.sync_with_retry(
        report_id, body.integration_id, labels=body.labels, assignees=body.assignees
    )
    raise_for_result(result)
    outcome = result.value
    return SyncReportResponse(
        success=True,
        report_id=report_id,
        issue_number=outcome.issue_number,
        issue_url=outcome.issue_url,
    )


@router.post("/{report_id}/retry-sync")
def retry_sync(report_id: str, queue: SyncQueue = Depends(get_sync_queue)):
    """Put a report back on the sync queue"""
    result = queue.retry_sync_for_report(report_id)
    raise_for_result(result)
    return {"success": True, "message": "Report queued for sync"}
