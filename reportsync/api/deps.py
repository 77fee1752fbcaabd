"""Shared route dependencies"""
from fastapi import Depends, HTTPException, Request
from sqlalchemy.orm import Session

from reportsync.models.base import get_db
from reportsync.services.result import ErrorCode, Result
from reportsync.services.sync_service import SyncService
from reportsync.sync_queue import SyncQueue

NOT_FOUND_CODES = (ErrorCode.NOT_FOUND, ErrorCode.INTEGRATION_NOT_FOUND)


def get_sync_service(db: Session = Depends(get_db)) -> SyncService:
    return SyncService(db)


def get_sync_queue(request: Request) -> SyncQueue:
    """The process-wide queue created at startup."""
    return request.app.state.sync_queue


def raise_for_result(result: Result) -> None:
    """Translate a failed service result into an HTTP error."""
    if result.success:
        return
    status_code = 404 if result.code in NOT_FOUND_CODES else 400
    code = result.code.value if result.code else None
    raise HTTPException(status_code=status_code, detail={"error": code, "message": result.error})
