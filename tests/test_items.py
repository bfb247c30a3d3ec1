"""Tests for item summaries and connection health."""

from datetime import UTC, datetime

from pluggy_sync.services.items import describe_webhook_event, item_health, summarize_item

NOW = datetime(2024, 3, 15, 12, 0, tzinfo=UTC)


def test_summarize_item_reduces_connector() -> None:
    """Only the connector's name and logo are exposed."""
    summary = summarize_item(
        {
            "id": "item-1",
            "clientUserId": "user-1",
            "status": "UPDATED",
            "connector": {"id": 201, "name": "Banco Exemplo", "imageUrl": "https://cdn/logo.png", "credentials": []},
        }
    ).model_dump(by_alias=True)
    if summary["connector"] != {"name": "Banco Exemplo", "imageUrl": "https://cdn/logo.png"}:
        msg = f"Unexpected connector: {summary['connector']}"
        raise AssertionError(msg)
    if summary["clientUserId"] != "user-1" or summary["status"] != "UPDATED":
        msg = f"Unexpected summary: {summary}"
        raise AssertionError(msg)


def test_login_error_needs_user_action() -> None:
    """Items waiting for the user are flagged."""
    for status in ("LOGIN_ERROR", "WAITING_USER_INPUT"):
        if not item_health({"id": "item-1", "status": status}, now=NOW).needs_user_action:
            msg = f"Expected {status} to need user action"
            raise AssertionError(msg)
    if item_health({"id": "item-1", "status": "UPDATED"}, now=NOW).needs_user_action:
        msg = "Healthy item flagged"
        raise AssertionError(msg)


def test_consent_expiring_soon() -> None:
    """Consent ending within a week is a warning; expired consent needs action."""
    soon = item_health({"id": "i", "status": "UPDATED", "consentExpiresAt": "2024-03-18T00:00:00.000Z"}, now=NOW)
    if not soon.consent_expiring_soon or soon.needs_user_action:
        msg = f"Expected an expiry warning, got {soon}"
        raise AssertionError(msg)
    expired = item_health({"id": "i", "status": "UPDATED", "consentExpiresAt": "2024-03-01T00:00:00Z"}, now=NOW)
    if not expired.needs_user_action or expired.consent_expiring_soon:
        msg = f"Expected expired consent to need action, got {expired}"
        raise AssertionError(msg)
    later = item_health({"id": "i", "status": "UPDATED", "consentExpiresAt": "2024-06-01T00:00:00Z"}, now=NOW)
    if later.consent_expiring_soon or later.needs_user_action:
        msg = f"Expected no flags, got {later}"
        raise AssertionError(msg)


def test_describe_webhook_events() -> None:
    """Known notifications are described with their item; unknown ones are named as such."""
    cases = [
        ({"event": "item/created", "itemId": "item-1", "clientUserId": "user-1"}, "item item-1 created for user user-1"),
        ({"event": "item/error", "itemId": "item-1", "error": {"message": "bad login"}}, "item item-1 error: bad login"),
        ({"event": "connector/status_updated", "connectorId": 201}, "connector 201 status updated"),
        ({"event": "something/new"}, "unknown event type something/new"),
    ]
    for event, expected in cases:
        described = describe_webhook_event(event)
        if described != expected:
            msg = f"Expected {expected!r}, got {described!r}"
            raise AssertionError(msg)
