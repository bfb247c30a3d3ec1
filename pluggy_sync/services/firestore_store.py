"""Firestore-backed document store, laid out as users/{uid}/{collection}/{doc}."""

import json
from typing import Any

import firebase_admin
from firebase_admin import credentials, firestore

from pluggy_sync.services.document_store import DocumentStore, WriteBatch


def init_firebase_app(service_account_json: str) -> None:
    """Initialize the default Firebase app from a service-account JSON string, once per process."""
    if not firebase_admin._apps:
        cred = credentials.Certificate(json.loads(service_account_json))
        firebase_admin.initialize_app(cred)


class FirestoreWriteBatch(WriteBatch):
    """Thin wrapper over a native Firestore write batch."""

    def __init__(self, store: "FirestoreDocumentStore", user_id: str) -> None:
        """Open a native batch for one user."""
        self.store = store
        self.user_id = user_id
        self._batch = store.client.batch()
        self._count = 0

    def set(self, collection: str, doc_id: str, data: dict[str, Any], *, merge: bool = True) -> None:
        """Stage an upsert of one document."""
        self._batch.set(self.store.document(self.user_id, collection, doc_id), data, merge=merge)
        self._count += 1

    def commit(self) -> None:
        """Commit the native batch."""
        self._batch.commit()
        self._count = 0

    def __len__(self) -> int:
        """Number of staged operations."""
        return self._count


class FirestoreDocumentStore(DocumentStore):
    """Document store on top of a `google.cloud.firestore.Client`."""

    def __init__(self, client: Any) -> None:
        """Initialize with a Firestore client."""
        self.client = client

    @classmethod
    def from_service_account(cls, service_account_json: str) -> "FirestoreDocumentStore":
        """Initialize the default Firebase app from a service-account JSON string."""
        init_firebase_app(service_account_json)
        return cls(firestore.client())

    def document(self, user_id: str, collection: str, doc_id: str) -> Any:
        """Return the document reference for a user's document."""
        return self.client.collection("users").document(user_id).collection(collection).document(str(doc_id))

    def batch(self, user_id: str) -> FirestoreWriteBatch:
        """Start a new write batch for a user."""
        return FirestoreWriteBatch(self, user_id)

    def get(self, user_id: str, collection: str, doc_id: str) -> dict[str, Any] | None:
        """Return a document by id, or None when it does not exist."""
        snapshot = self.document(user_id, collection, doc_id).get()
        return snapshot.to_dict() if snapshot.exists else None

    def scan(self, user_id: str, collection: str) -> list[dict[str, Any]]:
        """Return every document of a user's collection."""
        ref = self.client.collection("users").document(user_id).collection(collection)
        return [doc.to_dict() for doc in ref.stream()]
