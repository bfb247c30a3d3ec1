"""Integration test for the sync job lifecycle: start, poll, and inspect the synced documents."""

import time

from fastapi.testclient import TestClient

from pluggy_sync.core.db import SqlDocumentStore
from pluggy_sync.services.document_store import TRANSACTIONS

HTTP_200_OK = 200
HTTP_202_ACCEPTED = 202


def test_job_lifecycle(client: TestClient, sql_store: SqlDocumentStore) -> None:
    """Test the full job lifecycle: start a sync, poll its status, and check the stored transactions."""
    # Start sync
    response = client.post("/pluggy/sync", json={"itemId": "item-1", "userId": "user-1"})
    if response.status_code != HTTP_202_ACCEPTED:
        msg = f"Expected status {HTTP_202_ACCEPTED}, got {response.status_code}"
        raise AssertionError(msg)
    body = response.json()
    job_id = body.get("syncJobId")
    if body.get("success") is not True or not job_id:
        msg = f"Expected success and a syncJobId in the response, got {body}"
        raise AssertionError(msg)

    # Poll status until completed or failed
    for _ in range(50):
        status_resp = client.get(f"/pluggy/sync/{job_id}", params={"userId": "user-1"})
        if status_resp.status_code != HTTP_200_OK:
            msg = f"Expected status {HTTP_200_OK}, got {status_resp.status_code}"
            raise AssertionError(msg)
        job = status_resp.json()
        if job["status"] in ("completed", "failed"):
            break
        time.sleep(0.1)
    if job["status"] != "completed":
        msg = f"Expected status 'completed', got '{job['status']}' ({job.get('error')})"
        raise AssertionError(msg)
    if job["progress"] != 100 or job["itemId"] != "item-1" or not job["completedAt"]:
        msg = f"Unexpected final job document: {job}"
        raise AssertionError(msg)

    # Synced documents
    descriptions = sorted(doc["description"] for doc in sql_store.scan("user-1", TRANSACTIONS))
    if descriptions != ["Market", "Refund"]:
        msg = f"Expected Market and Refund transactions, got {descriptions}"
        raise AssertionError(msg)
