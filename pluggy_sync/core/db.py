"""SQLAlchemy-backed document store for the Pluggy Sync service."""

from typing import Any

from sqlalchemy import JSON, Column, MetaData, String, Table, create_engine, insert, select, update
from sqlalchemy.engine import Connection, Engine

from pluggy_sync.core.utils import utcnow_iso
from pluggy_sync.services.document_store import DocumentStore, WriteBatch, merge_document

metadata = MetaData()

documents_table = Table(
    "documents",
    metadata,
    Column("user_id", String, primary_key=True),
    Column("collection", String, primary_key=True),
    Column("doc_id", String, primary_key=True),
    Column("data", JSON, nullable=False),
    Column("updated_at", String, nullable=False),
)


def get_engine(database_url: str | None = None) -> Engine:
    """Create a SQLAlchemy engine using the given or configured database URL."""
    if database_url is None:
        from pluggy_sync.core.settings import get_settings

        database_url = get_settings().database_url
    connect_args = {"check_same_thread": False} if database_url.startswith("sqlite") else {}
    return create_engine(database_url, connect_args=connect_args)


def create_tables(engine: Engine) -> None:
    """Create the documents table if it does not exist."""
    metadata.create_all(engine, tables=[documents_table])


class SqlWriteBatch(WriteBatch):
    """Write batch applied inside a single database transaction."""

    def __init__(self, store: "SqlDocumentStore", user_id: str) -> None:
        """Initialize an empty batch for one user."""
        self.store = store
        self.user_id = user_id
        self._ops: list[tuple[str, str, dict[str, Any], bool]] = []

    def set(self, collection: str, doc_id: str, data: dict[str, Any], *, merge: bool = True) -> None:
        """Stage an upsert of one document."""
        self._ops.append((collection, str(doc_id), data, merge))

    def commit(self) -> None:
        """Apply all staged upserts in one transaction."""
        if len(self._ops) > self.store.max_batch_operations:
            msg = f"batch has {len(self._ops)} operations, limit is {self.store.max_batch_operations}"
            raise ValueError(msg)
        with self.store.engine.begin() as conn:
            for collection, doc_id, data, merge in self._ops:
                self.store.upsert(conn, self.user_id, collection, doc_id, data, merge=merge)
        self._ops = []

    def __len__(self) -> int:
        """Number of staged operations."""
        return len(self._ops)


class SqlDocumentStore(DocumentStore):
    """Document store keeping every document as a JSON row keyed by (user, collection, id)."""

    def __init__(self, engine: Engine) -> None:
        """Initialize the store with a SQLAlchemy engine."""
        self.engine = engine

    def batch(self, user_id: str) -> SqlWriteBatch:
        """Start a new write batch for a user."""
        return SqlWriteBatch(self, user_id)

    def upsert(
        self, conn: Connection, user_id: str, collection: str, doc_id: str, data: dict[str, Any], *, merge: bool
    ) -> None:
        """Insert or merge/overwrite a document within an open transaction."""
        table = documents_table
        key = (table.c.user_id == user_id) & (table.c.collection == collection) & (table.c.doc_id == doc_id)
        row = conn.execute(select(table.c.data).where(key)).first()
        now = utcnow_iso()
        if row is None:
            stmt = insert(table).values(
                user_id=user_id, collection=collection, doc_id=doc_id, data=dict(data), updated_at=now
            )
        else:
            stmt = update(table).where(key).values(data=merge_document(row.data, data, merge=merge), updated_at=now)
        conn.execute(stmt)

    def get(self, user_id: str, collection: str, doc_id: str) -> dict[str, Any] | None:
        """Return a document by id, or None when it does not exist."""
        table = documents_table
        stmt = select(table.c.data).where(
            table.c.user_id == user_id, table.c.collection == collection, table.c.doc_id == str(doc_id)
        )
        with self.engine.connect() as conn:
            row = conn.execute(stmt).first()
        return dict(row.data) if row else None

    def scan(self, user_id: str, collection: str) -> list[dict[str, Any]]:
        """Return every document of a user's collection, ordered by id."""
        table = documents_table
        stmt = (
            select(table.c.data)
            .where(table.c.user_id == user_id, table.c.collection == collection)
            .order_by(table.c.doc_id)
        )
        with self.engine.connect() as conn:
            return [dict(row.data) for row in conn.execute(stmt)]

    def count(self, user_id: str, collection: str) -> int:
        """Count documents in a user's collection."""
        return len(self.scan(user_id, collection))
