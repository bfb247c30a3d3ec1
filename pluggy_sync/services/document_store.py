"""Document store contract used by the sync engine.

The store is a per-user collection/document key-value store. The engine only needs batched upserts, get-by-id and a collection scan; backends live in `pluggy_sync.core.db` (SQLAlchemy) and `pluggy_sync.services.firestore_store` (Firestore).
"""

from abc import ABC, abstractmethod
from typing import Any

ACCOUNTS = "accounts"
TRANSACTIONS = "transactions"
CREDIT_CARD_TRANSACTIONS = "creditCardTransactions"
INVESTMENTS = "investments"
SYNC_JOBS = "sync_jobs"

# Hard per-commit operation limit of the provider (Firestore).
PROVIDER_BATCH_LIMIT = 500


def merge_document(existing: dict[str, Any] | None, data: dict[str, Any], *, merge: bool) -> dict[str, Any]:
    """Apply a set operation to an existing document: shallow merge or overwrite."""
    if merge and existing:
        return {**existing, **data}
    return dict(data)


class WriteBatch(ABC):
    """An atomic group of upserts scoped to a single user."""

    @abstractmethod
    def set(self, collection: str, doc_id: str, data: dict[str, Any], *, merge: bool = True) -> None:
        """Stage an upsert of one document."""

    @abstractmethod
    def commit(self) -> None:
        """Atomically apply all staged operations."""

    @abstractmethod
    def __len__(self) -> int:
        """Number of staged operations."""


class DocumentStore(ABC):
    """Abstract per-user document store."""

    max_batch_operations: int = PROVIDER_BATCH_LIMIT

    @abstractmethod
    def batch(self, user_id: str) -> WriteBatch:
        """Start a new write batch for a user."""

    @abstractmethod
    def get(self, user_id: str, collection: str, doc_id: str) -> dict[str, Any] | None:
        """Return a document by id, or None when it does not exist."""

    @abstractmethod
    def scan(self, user_id: str, collection: str) -> list[dict[str, Any]]:
        """Return every document of a user's collection."""

    def set(self, user_id: str, collection: str, doc_id: str, data: dict[str, Any], *, merge: bool = True) -> None:
        """Write a single document outside of any caller-managed batch."""
        batch = self.batch(user_id)
        batch.set(collection, doc_id, data, merge=merge)
        batch.commit()
