"""Tests for credit-card bill normalization and aggregation."""

import pytest

from fakes import CREDIT_CARD, FakeAggregator, MemoryDocumentStore
from pluggy_sync.core.errors import AggregatorError, AuthError, BillFetchError
from pluggy_sync.services.batch_writer import BatchedWriter
from pluggy_sync.services.bills import BillAggregator, fetch_item_bills, normalize_bill, summarize_bills
from pluggy_sync.services.document_store import ACCOUNTS


def test_current_and_previous_bill_ordering() -> None:
    """The latest due date is the current bill, the one before it the previous bill."""
    summary = summarize_bills(
        [
            {"id": "feb", "dueDate": "2024-02-10", "totalAmount": 800},
            {"id": "mar", "dueDate": "2024-03-10T00:00:00.000Z", "totalAmount": 950.5},
        ]
    )
    if summary is None:
        msg = "Expected a bill summary"
        raise AssertionError(msg)
    if summary["currentBill"]["dueDate"] != "2024-03-10" or summary["previousBill"]["dueDate"] != "2024-02-10":
        msg = f"Unexpected ordering: {summary['currentBill']} / {summary['previousBill']}"
        raise AssertionError(msg)
    if [bill["id"] for bill in summary["bills"]] != ["mar", "feb"]:
        msg = f"Expected history [mar, feb], got {summary['bills']}"
        raise AssertionError(msg)


def test_history_is_capped_at_six() -> None:
    """Only the six most recent bills are kept, newest first."""
    raw = [{"id": f"b{month}", "dueDate": f"2023-{month:02d}-10"} for month in range(1, 11)]
    summary = summarize_bills(raw)
    ids = [bill["id"] for bill in summary["bills"]]
    if ids != ["b10", "b9", "b8", "b7", "b6", "b5"]:
        msg = f"Unexpected history: {ids}"
        raise AssertionError(msg)
    if set(summary["bills"][0]) != {"id", "dueDate", "totalAmount", "minimumPaymentAmount", "status"}:
        msg = f"Unexpected history fields: {summary['bills'][0]}"
        raise AssertionError(msg)


def test_single_bill_has_no_previous() -> None:
    """With one bill there is no previous bill."""
    summary = summarize_bills([{"id": "only", "dueDate": "2024-03-10"}])
    if summary["previousBill"] is not None:
        msg = f"Expected no previous bill, got {summary['previousBill']}"
        raise AssertionError(msg)


def test_no_bills_means_no_summary() -> None:
    """Empty or undated bill lists produce nothing to write."""
    if summarize_bills([]) is not None or summarize_bills([{"id": "x", "totalAmount": 1}]) is not None:
        msg = "Expected None for missing bills"
        raise AssertionError(msg)


def test_normalize_bill_field_fallbacks() -> None:
    """Alternative field names used by some institutions are recognized."""
    bill = normalize_bill(
        {
            "id": 7,
            "balanceDueDate": "2024-04-10",
            "amount": "310.20",
            "minimumPayment": 31,
            "state": "OPEN",
            "balanceCloseDate": "2024-04-03",
        }
    )
    expected = ("7", "2024-04-10", 310.2, 31.0, "OPEN", "2024-04-03")
    actual = (bill.id, bill.due_date, bill.total_amount, bill.minimum_payment_amount, bill.status, bill.close_date)
    if actual != expected:
        msg = f"Expected {expected}, got {actual}"
        raise AssertionError(msg)


def test_update_bills_merges_summary_into_account(memory_store: MemoryDocumentStore) -> None:
    """Bill fields are merged into the existing credit account document."""
    memory_store.set("user-1", ACCOUNTS, "card-1", {"id": "card-1", "creditLimit": 5000})
    client = FakeAggregator(bills={"card-1": [{"id": "mar", "dueDate": "2024-03-10", "totalAmount": 950}]})
    writer = BatchedWriter(memory_store, "user-1")
    BillAggregator(client, writer).update_bills(CREDIT_CARD)
    writer.flush()
    doc = memory_store.get("user-1", ACCOUNTS, "card-1")
    if doc["creditLimit"] != 5000 or doc["currentBill"]["id"] != "mar" or "billsUpdatedAt" not in doc:
        msg = f"Unexpected account document: {doc}"
        raise AssertionError(msg)


def test_update_bills_skips_accounts_without_bills(memory_store: MemoryDocumentStore) -> None:
    """Nothing is staged when the card has no bills."""
    writer = BatchedWriter(memory_store, "user-1")
    BillAggregator(FakeAggregator(), writer).update_bills(CREDIT_CARD)
    if writer.pending != 0:
        msg = f"Expected nothing staged, got {writer.pending}"
        raise AssertionError(msg)


def test_update_bills_wraps_fetch_errors(memory_store: MemoryDocumentStore) -> None:
    """Aggregator failures become BillFetchError; authentication failures propagate unchanged."""
    client = FakeAggregator()
    writer = BatchedWriter(memory_store, "user-1")
    client.bill_errors["card-1"] = AggregatorError("boom", 500)
    with pytest.raises(BillFetchError, match="card-1"):
        BillAggregator(client, writer).update_bills(CREDIT_CARD)
    client.bill_errors["card-1"] = AuthError("bad credentials")
    with pytest.raises(AuthError):
        BillAggregator(client, writer).update_bills(CREDIT_CARD)


def test_fetch_item_bills_propagates_auth_errors() -> None:
    """Authentication failures abort the whole lookup instead of being reported per card."""
    client = FakeAggregator(accounts=[CREDIT_CARD])
    client.bill_errors["card-1"] = AuthError("bad credentials")
    with pytest.raises(AuthError):
        fetch_item_bills(client, "item-1")
