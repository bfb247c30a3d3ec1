"""Views over aggregator items (bank connections) for the HTTP API."""

from datetime import datetime
from typing import Any

from pluggy_sync.core.models import ItemHealth, ItemSummary
from pluggy_sync.core.utils import utcnow

USER_ACTION_STATUSES = frozenset({"WAITING_USER_INPUT", "LOGIN_ERROR"})
CONSENT_WARNING_DAYS = 7
SECONDS_PER_DAY = 86400


def summarize_item(item: dict[str, Any]) -> ItemSummary:
    """Reduce a raw item to the fields the dashboard shows."""
    connector = item.get("connector")
    return ItemSummary(
        id=str(item.get("id")),
        client_user_id=item.get("clientUserId"),
        connector={"name": connector.get("name"), "imageUrl": connector.get("imageUrl")}
        if isinstance(connector, dict)
        else None,
        status=item.get("status"),
        execution_status=item.get("executionStatus"),
        created_at=item.get("createdAt"),
        updated_at=item.get("updatedAt"),
    )


def _parse_timestamp(value: object) -> datetime | None:
    if not isinstance(value, str):
        return None
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None


def item_health(item: dict[str, Any], now: datetime | None = None) -> ItemHealth:
    """Flag items whose connection needs the user's attention or whose consent is about to expire."""
    now = now or utcnow()
    status = item.get("status")
    needs_action = status in USER_ACTION_STATUSES
    expiring_soon = False
    expires_at = _parse_timestamp(item.get("consentExpiresAt"))
    if expires_at is not None:
        if expires_at.tzinfo is None:
            expires_at = expires_at.replace(tzinfo=now.tzinfo)
        days_left = (expires_at - now).total_seconds() / SECONDS_PER_DAY
        if days_left <= 0:
            needs_action = True
        elif days_left <= CONSENT_WARNING_DAYS:
            expiring_soon = True
    return ItemHealth(
        id=str(item.get("id")),
        status=status,
        status_detail=item.get("statusDetail"),
        execution_status=item.get("executionStatus"),
        last_updated_at=item.get("lastUpdatedAt") or item.get("updatedAt"),
        consent_expires_at=item.get("consentExpiresAt"),
        needs_user_action=needs_action,
        consent_expiring_soon=expiring_soon,
    )


def describe_webhook_event(event: dict[str, Any]) -> str:
    """One-line description of an aggregator webhook notification."""
    event_type = event.get("event")
    item_id = event.get("itemId")
    if event_type == "item/created":
        return f"item {item_id} created for user {event.get('clientUserId')}"
    if event_type == "item/updated":
        return f"item {item_id} updated, status {event.get('status')}"
    if event_type == "item/error":
        error = event.get("error")
        message = error.get("message") if isinstance(error, dict) else error
        return f"item {item_id} error: {message or 'unknown'}"
    if event_type == "item/login_succeeded":
        return f"item {item_id} login succeeded"
    if event_type == "item/deleted":
        return f"item {item_id} deleted"
    if event_type == "connector/status_updated":
        return f"connector {event.get('connectorId')} status updated"
    return f"unknown event type {event_type}"
