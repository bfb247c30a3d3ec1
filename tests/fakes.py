"""In-memory collaborators shared by the test suite."""

from datetime import date
from typing import Any

from pluggy_sync.aggregator.base import AggregatorClient
from pluggy_sync.core.errors import AggregatorError
from pluggy_sync.services.document_store import DocumentStore, WriteBatch, merge_document


class MemoryWriteBatch(WriteBatch):
    def __init__(self, store: "MemoryDocumentStore", user_id: str) -> None:
        self.store = store
        self.user_id = user_id
        self.ops: list[tuple[str, str, dict[str, Any], bool]] = []

    def set(self, collection: str, doc_id: str, data: dict[str, Any], *, merge: bool = True) -> None:
        self.ops.append((collection, str(doc_id), data, merge))

    def commit(self) -> None:
        if self.store.fail_commits:
            msg = "commit rejected"
            raise RuntimeError(msg)
        if len(self.ops) > self.store.max_batch_operations:
            msg = f"too many operations: {len(self.ops)}"
            raise ValueError(msg)
        for collection, doc_id, data, merge in self.ops:
            key = (self.user_id, collection, doc_id)
            self.store.docs[key] = merge_document(self.store.docs.get(key), data, merge=merge)
        self.store.commits.append(len(self.ops))
        self.ops = []

    def __len__(self) -> int:
        return len(self.ops)


class MemoryDocumentStore(DocumentStore):
    """Dict-backed store that records the size of every commit."""

    def __init__(self) -> None:
        self.docs: dict[tuple[str, str, str], dict[str, Any]] = {}
        self.commits: list[int] = []
        self.fail_commits = False

    def batch(self, user_id: str) -> MemoryWriteBatch:
        return MemoryWriteBatch(self, user_id)

    def get(self, user_id: str, collection: str, doc_id: str) -> dict[str, Any] | None:
        doc = self.docs.get((user_id, collection, str(doc_id)))
        return dict(doc) if doc is not None else None

    def scan(self, user_id: str, collection: str) -> list[dict[str, Any]]:
        return [dict(doc) for (uid, coll, _), doc in sorted(self.docs.items()) if uid == user_id and coll == collection]


class FakeAggregator(AggregatorClient):
    """Scripted aggregator: accounts, transactions per account and bills per account."""

    def __init__(
        self,
        accounts: list[dict[str, Any]] | None = None,
        transactions: dict[str, list[dict[str, Any]]] | None = None,
        bills: dict[str, list[dict[str, Any]]] | None = None,
        items: list[dict[str, Any]] | None = None,
    ) -> None:
        self.accounts = accounts or []
        self.transactions = transactions or {}
        self.bills = bills or {}
        self.items = items or []
        self.account_list_error: Exception | None = None
        self.transaction_errors: dict[str, Exception] = {}
        self.bill_errors: dict[str, Exception] = {}
        self.transaction_calls: list[tuple[str, date | None]] = []
        self.refreshed: list[str] = []
        self.deleted: list[str] = []

    def list_accounts(self, item_id: str) -> list[dict[str, Any]]:
        if self.account_list_error is not None:
            raise self.account_list_error
        return [dict(account) for account in self.accounts]

    def list_transactions(self, account_id: str, from_date: date | None = None) -> list[dict[str, Any]]:
        self.transaction_calls.append((account_id, from_date))
        if account_id in self.transaction_errors:
            raise self.transaction_errors[account_id]
        return [dict(tx) for tx in self.transactions.get(account_id, [])]

    def list_bills(self, account_id: str) -> list[dict[str, Any]]:
        if account_id in self.bill_errors:
            raise self.bill_errors[account_id]
        return [dict(bill) for bill in self.bills.get(account_id, [])]

    def create_connect_token(self, client_user_id: str | None = None, item_id: str | None = None) -> str:
        return f"connect-{client_user_id or 'anon'}"

    def list_items(self, client_user_id: str | None = None) -> list[dict[str, Any]]:
        return [item for item in self.items if client_user_id is None or item.get("clientUserId") == client_user_id]

    def get_item(self, item_id: str) -> dict[str, Any]:
        for item in self.items:
            if item.get("id") == item_id:
                return item
        msg = f"GET /items/{item_id} returned HTTP 404: not found"
        raise AggregatorError(msg, 404)

    def refresh_item(self, item_id: str) -> dict[str, Any]:
        item = self.get_item(item_id)
        self.refreshed.append(item_id)
        return {**item, "status": "UPDATING"}

    def delete_item(self, item_id: str) -> None:
        self.get_item(item_id)
        self.deleted.append(item_id)
        self.items = [item for item in self.items if item.get("id") != item_id]


CHECKING = {
    "id": "acc-1",
    "type": "BANK",
    "subtype": "CHECKING_ACCOUNT",
    "name": "Conta Corrente",
    "number": "0001/12345-6",
    "balance": 1000,
    "currencyCode": "BRL",
    "itemId": "item-1",
}

CREDIT_CARD = {
    "id": "card-1",
    "type": "CREDIT",
    "subtype": "CREDIT_CARD",
    "name": "Mastercard Black",
    "number": "1234",
    "balance": 2000,
    "currencyCode": "BRL",
    "itemId": "item-1",
    "creditData": {
        "creditLimit": 5000,
        "availableCreditLimit": 3000,
        "balanceCloseDate": "2024-03-03",
        "balanceDueDate": "2024-03-10",
        "brand": "MASTERCARD",
    },
}

SAVINGS = {
    "id": "sav-1",
    "type": "BANK",
    "subtype": "SAVINGS_ACCOUNT",
    "name": "Poupanca",
    "balance": 300,
    "itemId": "item-1",
}

CHECKING_TRANSACTIONS = [
    {"id": "tx-1", "amount": -50, "date": "2024-03-01T10:00:00.000Z", "description": "Market", "status": "POSTED"},
    {"id": "tx-2", "amount": 200, "date": "2024-03-02T12:00:00.000Z", "description": "Refund", "status": "POSTED"},
]


def scenario_aggregator() -> FakeAggregator:
    """One checking account with two transactions and one credit card without activity."""
    return FakeAggregator(accounts=[CHECKING, CREDIT_CARD], transactions={"acc-1": CHECKING_TRANSACTIONS})
