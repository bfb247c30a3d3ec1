"""Batched upserts kept under the document store's per-commit operation limit."""

from typing import Any

from pluggy_sync.core.errors import BatchCommitError
from pluggy_sync.core.utils import get_logger
from pluggy_sync.services.document_store import DocumentStore, WriteBatch

logger = get_logger("pluggy-sync.writer")

DEFAULT_BATCH_LIMIT = 450


class BatchedWriter:
    """Accumulates upserts for one user and commits them in bounded batches.

    A batch is committed as soon as it holds `limit` operations, so no commit ever carries more than `limit` writes. A failed commit discards that batch, raises `BatchCommitError` and leaves the writer ready for the next phase.
    """

    def __init__(self, store: DocumentStore, user_id: str, limit: int = DEFAULT_BATCH_LIMIT) -> None:
        """Initialize the writer; the limit must be positive and within the store's hard limit."""
        if limit < 1 or limit > store.max_batch_operations:
            msg = f"batch limit must be between 1 and {store.max_batch_operations}, got {limit}"
            raise ValueError(msg)
        self.store = store
        self.user_id = user_id
        self.limit = limit
        self.committed_batches = 0
        self.committed_operations = 0
        self._batch: WriteBatch = store.batch(user_id)
        self._count = 0

    @property
    def pending(self) -> int:
        """Number of staged operations not yet committed."""
        return self._count

    def stage_upsert(self, collection: str, doc_id: str, doc: dict[str, Any]) -> None:
        """Stage a merge-upsert, committing first if the current batch is full."""
        if self._count >= self.limit:
            self._commit()
        self._batch.set(collection, doc_id, doc, merge=True)
        self._count += 1
        if self._count >= self.limit:
            self._commit()

    def flush(self) -> None:
        """Commit any remaining partial batch."""
        if self._count:
            self._commit()

    def _commit(self) -> None:
        count = self._count
        batch = self._batch
        self._batch = self.store.batch(self.user_id)
        self._count = 0
        try:
            batch.commit()
        except Exception as exc:
            logger.exception(f"Batch commit of {count} operations failed for user {self.user_id}")
            msg = f"commit of {count} operations failed: {exc}"
            raise BatchCommitError(msg) from exc
        self.committed_batches += 1
        self.committed_operations += count
        logger.info(f"Committed batch of {count} operations for user {self.user_id}")
