"""FastAPI endpoints for the Pluggy Sync service.

This module defines the `/pluggy/*` routes the dashboard calls: connect-token creation, item listing and deletion, item refresh, on-demand credit-card bills, item health, the aggregator webhook receiver, and the fire-and-forget sync endpoint with its job-status companion. It wires together the aggregator client and the sync job runner.
"""

from typing import Any

from fastapi import APIRouter, Body, Depends, Header, HTTPException, Query
from fastapi.responses import JSONResponse

from pluggy_sync.aggregator.base import AggregatorClient
from pluggy_sync.api.dependencies import (
    SyncRuntime,
    ensure_same_user,
    get_aggregator,
    get_identity,
    get_runner,
    get_runtime,
)
from pluggy_sync.core.errors import AggregatorError, AuthError
from pluggy_sync.core.models import CreateTokenRequest, SyncRequest, SyncStartResponse, TriggerSyncRequest
from pluggy_sync.core.utils import get_logger, utcnow_iso
from pluggy_sync.services.bills import fetch_item_bills
from pluggy_sync.services.items import describe_webhook_event, item_health, summarize_item
from pluggy_sync.workers.job_runner import SyncJobRunner

router = APIRouter()
logger = get_logger("pluggy-sync.api")

HTTP_NOT_FOUND = 404


def _http_error(exc: Exception) -> HTTPException:
    """Translate aggregator failures into HTTP errors for the dashboard."""
    if isinstance(exc, AuthError):
        return HTTPException(503, f"Aggregator authentication failed: {exc}")
    if isinstance(exc, AggregatorError) and exc.status_code == HTTP_NOT_FOUND:
        return HTTPException(404, str(exc))
    return HTTPException(502, str(exc))


def _ensure_item_owner(client: AggregatorClient, identity: dict | None, item_id: str) -> None:
    """Reject operations on items that belong to another user when auth is enabled."""
    if identity is None:
        return
    try:
        item = client.get_item(item_id)
    except (AggregatorError, AuthError) as exc:
        logger.exception(f"Error looking up item {item_id}")
        raise _http_error(exc) from exc
    if item.get("clientUserId") != identity.get("uid"):
        logger.warning(f"User {identity.get('uid')} denied access to item {item_id}")
        raise HTTPException(403, "Cannot act on another user's item")


@router.post(
    "/pluggy/create-token",
    summary="Create a connect token for the aggregator widget",
    description=(
        "Creates a short-lived token the frontend uses to open the aggregator's connect widget. "
        "Pass `itemId` to reconnect an existing item."
    ),
)
def create_token(
    body: CreateTokenRequest,
    client: AggregatorClient = Depends(get_aggregator),
    identity: dict | None = Depends(get_identity),
) -> dict:
    """Create a connect token."""
    ensure_same_user(identity, body.user_id)
    try:
        token = client.create_connect_token(body.user_id, body.item_id)
    except (AggregatorError, AuthError) as exc:
        logger.exception("Error in create_token")
        raise _http_error(exc) from exc
    return {"accessToken": token}


@router.get("/pluggy/items", summary="List the user's bank connections")
def list_items(
    user_id: str | None = Query(default=None, alias="userId"),
    client: AggregatorClient = Depends(get_aggregator),
    identity: dict | None = Depends(get_identity),
) -> dict:
    """List aggregator items, optionally for one user."""
    ensure_same_user(identity, user_id)
    try:
        items = client.list_items(user_id)
    except (AggregatorError, AuthError) as exc:
        logger.exception("Error in list_items")
        raise _http_error(exc) from exc
    return {"items": [summarize_item(item).model_dump(by_alias=True) for item in items]}


@router.post("/pluggy/trigger-sync", summary="Ask the aggregator to re-collect an item")
def trigger_sync(
    body: TriggerSyncRequest,
    client: AggregatorClient = Depends(get_aggregator),
    identity: dict | None = Depends(get_identity),
) -> dict:
    """Trigger an aggregator-side refresh of an item."""
    _ensure_item_owner(client, identity, body.item_id)
    try:
        item = client.refresh_item(body.item_id)
    except (AggregatorError, AuthError) as exc:
        logger.exception(f"Error triggering refresh of item {body.item_id}")
        raise _http_error(exc) from exc
    logger.info(f"Triggered aggregator refresh of item {body.item_id}")
    return {"success": True, "item": summarize_item({"id": body.item_id, **item}).model_dump(by_alias=True)}


@router.post(
    "/pluggy/sync",
    status_code=202,
    response_model=SyncStartResponse,
    summary="Start a background sync of an item into the user's documents",
    description=(
        "Creates a sync job and returns its id immediately; accounts, transactions and credit-card bills "
        "are synced in the background.\n\n"
        "**Response:**\n"
        "- 202 Accepted: `{ 'success': true, 'syncJobId': '<id>' }`\n"
        "- 422 Unprocessable Entity: missing `itemId` or `userId`.\n\n"
        "Poll `GET /pluggy/sync/{jobId}?userId=` for progress."
    ),
    responses={
        202: {
            "description": "Sync job accepted.",
            "content": {"application/json": {"example": {"success": True, "syncJobId": "9f0c2d1e4b5a"}}},
        },
    },
)
def start_sync(
    body: SyncRequest,
    runner: SyncJobRunner = Depends(get_runner),
    client: AggregatorClient = Depends(get_aggregator),
    identity: dict | None = Depends(get_identity),
) -> JSONResponse:
    """Create a sync job and run it in the background."""
    ensure_same_user(identity, body.user_id)
    _ensure_item_owner(client, identity, body.item_id)
    logger.info(f"Received sync request: user={body.user_id}, item={body.item_id}")
    job_id = runner.start(body.user_id, body.item_id)
    response = SyncStartResponse(success=True, sync_job_id=job_id)
    return JSONResponse(response.model_dump(by_alias=True), status_code=202)


@router.get("/pluggy/sync/{job_id}", summary="Get sync job progress")
def get_sync_job(
    job_id: str,
    user_id: str = Query(alias="userId"),
    runner: SyncJobRunner = Depends(get_runner),
    identity: dict | None = Depends(get_identity),
) -> dict:
    """Return the SyncJob document for polling."""
    ensure_same_user(identity, user_id)
    job = runner.get_job(user_id, job_id)
    if not job:
        raise HTTPException(404, "Sync job not found")
    return job


@router.delete("/pluggy/item/{item_id}", summary="Delete a bank connection at the aggregator")
def delete_item(
    item_id: str,
    client: AggregatorClient = Depends(get_aggregator),
    identity: dict | None = Depends(get_identity),
) -> dict:
    """Delete an aggregator item."""
    _ensure_item_owner(client, identity, item_id)
    try:
        client.delete_item(item_id)
    except (AggregatorError, AuthError) as exc:
        logger.exception(f"Error deleting item {item_id}")
        raise _http_error(exc) from exc
    logger.info(f"Deleted item {item_id}")
    return {"success": True}


@router.post(
    "/pluggy/item/{item_id}/refresh-bills",
    summary="Fetch the bills of every credit card of an item",
    description=(
        "Reads the bills of each credit account of the item straight from the aggregator, oldest due date first. "
        "Nothing is stored; a card whose bills cannot be fetched is listed with an `error`."
    ),
)
def refresh_item_bills(
    item_id: str,
    client: AggregatorClient = Depends(get_aggregator),
    identity: dict | None = Depends(get_identity),
) -> dict:
    """Return the current bills of an item's credit cards."""
    _ensure_item_owner(client, identity, item_id)
    try:
        accounts = fetch_item_bills(client, item_id)
    except (AggregatorError, AuthError) as exc:
        logger.exception(f"Error refreshing bills of item {item_id}")
        raise _http_error(exc) from exc
    logger.info(f"Fetched bills of {len(accounts)} credit accounts for item {item_id}")
    return {"success": True, "itemId": item_id, "creditAccountsCount": len(accounts), "accounts": accounts}


@router.post("/pluggy/webhook", summary="Receive aggregator notifications")
def webhook(payload: dict[str, Any] | None = Body(default=None)) -> dict[str, Any]:
    """Log an aggregator notification. Always acknowledged so the aggregator does not redeliver it."""
    event = payload or {}
    logger.info(f"Pluggy webhook: {describe_webhook_event(event)}")
    return {"received": True, "event": event.get("event")}


@router.get("/pluggy/items-status", summary="Connection health of the user's items")
def items_status(
    user_id: str | None = Query(default=None, alias="userId"),
    client: AggregatorClient = Depends(get_aggregator),
    identity: dict | None = Depends(get_identity),
) -> dict:
    """Report which items need user action or have consent about to expire."""
    ensure_same_user(identity, user_id)
    try:
        items = client.list_items(user_id)
    except (AggregatorError, AuthError) as exc:
        logger.exception("Error in items_status")
        raise _http_error(exc) from exc
    health = [item_health(item) for item in items]
    return {
        "items": [entry.model_dump(by_alias=True) for entry in health],
        "needsUserAction": any(entry.needs_user_action for entry in health),
    }


@router.get("/pluggy/webhook-worker", summary="Periodic external trigger (observational)")
def webhook_worker(
    authorization: str | None = Header(default=None),
    runtime: SyncRuntime = Depends(get_runtime),
) -> dict[str, Any]:
    """Heartbeat for the external scheduler; reports activity without starting syncs."""
    secret = runtime.settings.cron_secret
    if secret and authorization != f"Bearer {secret}":
        logger.warning("Unauthorized webhook-worker call")
        raise HTTPException(401, "Unauthorized")
    active = runtime.runner.active_jobs
    logger.info(f"webhook-worker ping: {active} sync jobs running")
    return {"success": True, "mode": "observational", "activeJobs": active, "timestamp": utcnow_iso()}


@router.get(
    "/health",
    summary="Health check",
    description="Simple health check endpoint. Returns status ok.",
    response_description="Status ok.",
    responses={200: {"description": "API is healthy.", "content": {"application/json": {"example": {"status": "ok"}}}}},
)
async def health() -> dict:
    """Health check endpoint."""
    return {"status": "ok"}
