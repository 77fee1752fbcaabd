"""Inbound tracker webhook endpoints"""
import json
import logging

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse
from starlette.concurrency import run_in_threadpool

from reportsync.api.deps import get_sync_service
from reportsync.models import IntegrationType
from reportsync.security import WebhookSignatureError, verify_webhook_signature
from reportsync.services.sync_service import SyncService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/webhooks", tags=["webhooks"])

# Issue actions that can move a report; edits, labels, comments etc. are ignored.
HANDLED_ISSUE_ACTIONS = {"opened", "closed", "reopened"}


def _error(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": message})


@router.post("/github/{integration_id}")
async def github_webhook(
    integration_id: str,
    request: Request,
    service: SyncService = Depends(get_sync_service),
):
    """Receive a GitHub repository webhook delivery"""
    body = await request.body()
    signature = request.headers.get("X-Hub-Signature-256", "")
    event = request.headers.get("X-GitHub-Event", "")
    delivery_id = request.headers.get("X-GitHub-Delivery", "")

    logger.debug(
        f"GitHub webhook received: integration={integration_id} event={event} "
        f"delivery={delivery_id} signed={bool(signature)}"
    )

    integration = await run_in_threadpool(service.integrations.find_by_id, integration_id)
    if integration is None:
        logger.warning(f"GitHub webhook for unknown integration {integration_id}")
        return _error(404, "Integration not found")

    if integration.type != IntegrationType.GITHUB.value:
        logger.warning(f"GitHub webhook for non-GitHub integration {integration_id}")
        return _error(400, "Invalid integration type")

    try:
        verify_webhook_signature(body, signature, integration.tracker_config().webhook_secret)
    except WebhookSignatureError as e:
        logger.warning(f"GitHub webhook rejected for integration {integration_id}: {e}")
        return _error(401, str(e))

    try:
        payload = json.loads(body)
    except ValueError:
        logger.warning(f"GitHub webhook with invalid JSON for integration {integration_id}")
        return _error(400, "Invalid JSON")

    if event == "ping":
        logger.info(f"GitHub webhook ping received for integration {integration_id}")
        return {"message": "pong"}

    issue = payload.get("issue") if isinstance(payload, dict) else None
    if event != "issues" or not isinstance(issue, dict):
        return {"message": "Event ignored"}

    action = payload.get("action") or ""
    if action not in HANDLED_ISSUE_ACTIONS:
        return {"message": "Action ignored"}

    try:
        result = await run_in_threadpool(
            service.handle_webhook,
            integration_id,
            action,
            {"number": issue.get("number"), "state": issue.get("state")},
        )
    except Exception as e:
        logger.error(f"Failed to apply GitHub webhook for integration {integration_id}: {e}")
        return _error(500, "Failed to update report")

    if not result.success:
        logger.error(f"Failed to handle GitHub webhook for integration {integration_id}: {result.error}")
        return _error(500, result.error)

    logger.info(
        f"GitHub webhook processed: integration={integration_id} event={event} "
        f"action={action} issue=#{issue.get('number')} delivery={delivery_id}"
    )
    return {"message": "Webhook processed"}
