"""Tests for the Firestore document store against a mocked Firestore client."""

from unittest.mock import MagicMock

from pluggy_sync.services.firestore_store import FirestoreDocumentStore


def _doc_ref(client: MagicMock) -> MagicMock:
    return client.collection.return_value.document.return_value.collection.return_value.document.return_value


def test_set_uses_native_batch_with_merge() -> None:
    """Single writes go through a native batch under users/{uid}/{collection}/{doc}."""
    client = MagicMock()
    store = FirestoreDocumentStore(client)
    store.set("user-1", "accounts", "acc-1", {"balance": 10})
    client.collection.assert_called_with("users")
    client.collection.return_value.document.assert_called_with("user-1")
    client.collection.return_value.document.return_value.collection.assert_called_with("accounts")
    native = client.batch.return_value
    native.set.assert_called_once_with(_doc_ref(client), {"balance": 10}, merge=True)
    native.commit.assert_called_once()


def test_batch_counts_staged_operations() -> None:
    """The wrapper tracks staged operations and resets after commit."""
    store = FirestoreDocumentStore(MagicMock())
    batch = store.batch("user-1")
    batch.set("transactions", "tx-1", {})
    batch.set("transactions", "tx-2", {}, merge=False)
    if len(batch) != 2:
        msg = f"Expected 2 staged operations, got {len(batch)}"
        raise AssertionError(msg)
    batch.commit()
    if len(batch) != 0:
        msg = "Expected an empty batch after commit"
        raise AssertionError(msg)


def test_get_missing_document_returns_none() -> None:
    """A snapshot that does not exist maps to None."""
    client = MagicMock()
    _doc_ref(client).get.return_value.exists = False
    if FirestoreDocumentStore(client).get("user-1", "accounts", "nope") is not None:
        msg = "Expected None for a missing document"
        raise AssertionError(msg)


def test_scan_streams_collection() -> None:
    """Scanning returns the dict of every streamed document."""
    client = MagicMock()
    docs = [MagicMock(), MagicMock()]
    docs[0].to_dict.return_value = {"id": "a"}
    docs[1].to_dict.return_value = {"id": "b"}
    client.collection.return_value.document.return_value.collection.return_value.stream.return_value = docs
    result = FirestoreDocumentStore(client).scan("user-1", "accounts")
    if result != [{"id": "a"}, {"id": "b"}]:
        msg = f"Unexpected scan result: {result}"
        raise AssertionError(msg)
