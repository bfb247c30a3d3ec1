"""FastAPI dependencies for DI (runtime, aggregator client, runner, identity).

The `SyncRuntime` is built once when the application starts and stored on `app.state`; endpoints receive its parts through the helpers below, which keeps them testable with fake collaborators.
"""

from dataclasses import dataclass
from typing import Any

from fastapi import Depends, Header, HTTPException, Request

from pluggy_sync.aggregator.base import AggregatorClient
from pluggy_sync.aggregator.pluggy_client import PluggyClient
from pluggy_sync.core.db import SqlDocumentStore, create_tables, get_engine
from pluggy_sync.core.settings import Settings, get_settings
from pluggy_sync.core.utils import get_logger
from pluggy_sync.services.document_store import DocumentStore
from pluggy_sync.workers.job_runner import SyncJobRunner, SyncWorker

logger = get_logger("pluggy-sync.api")


@dataclass
class SyncRuntime:
    """Process-wide collaborators shared by every request and job."""

    settings: Settings
    store: DocumentStore
    client: AggregatorClient
    worker: SyncWorker
    runner: SyncJobRunner

    def close(self) -> None:
        """Wait for running jobs, then release the aggregator HTTP client."""
        self.worker.shutdown(wait=True)
        if isinstance(self.client, PluggyClient):
            self.client.close()


def build_store(settings: Settings) -> DocumentStore:
    """Create the configured document store backend."""
    if settings.store_backend == "firestore":
        from pluggy_sync.services.firestore_store import FirestoreDocumentStore

        return FirestoreDocumentStore.from_service_account(settings.firebase_service_account)
    engine = get_engine(settings.database_url)
    create_tables(engine)
    return SqlDocumentStore(engine)


def build_runtime(
    settings: Settings | None = None,
    *,
    store: DocumentStore | None = None,
    client: AggregatorClient | None = None,
) -> SyncRuntime:
    """Wire settings, store, aggregator client, worker pool and job runner together."""
    settings = settings or get_settings()
    if settings.require_auth:
        from pluggy_sync.services.firestore_store import init_firebase_app

        init_firebase_app(settings.firebase_service_account)
    store = store or build_store(settings)
    client = client or PluggyClient.from_settings(settings)
    worker = SyncWorker(max_workers=settings.sync_max_workers)
    runner = SyncJobRunner(
        store,
        client,
        worker,
        batch_limit=settings.batch_write_limit,
        lookback_days=settings.default_lookback_days,
    )
    logger.info(f"Runtime ready (store={type(store).__name__}, aggregator={type(client).__name__})")
    return SyncRuntime(settings=settings, store=store, client=client, worker=worker, runner=runner)


def get_runtime(request: Request) -> SyncRuntime:
    """Provide the runtime built at startup."""
    return request.app.state.runtime


def get_aggregator(runtime: SyncRuntime = Depends(get_runtime)) -> AggregatorClient:
    """Provide the shared aggregator client."""
    return runtime.client


def get_runner(runtime: SyncRuntime = Depends(get_runtime)) -> SyncJobRunner:
    """Provide the shared sync job runner."""
    return runtime.runner


def get_identity(
    authorization: str | None = Header(default=None),
    runtime: SyncRuntime = Depends(get_runtime),
) -> dict[str, Any] | None:
    """Verify the Firebase ID token in the Authorization header when auth is required."""
    if not runtime.settings.require_auth:
        return None
    if not authorization or not authorization.startswith("Bearer "):
        raise HTTPException(401, "Missing bearer token")
    from firebase_admin import auth

    try:
        return auth.verify_id_token(authorization.removeprefix("Bearer ").strip())
    except Exception as exc:
        logger.warning(f"Rejected bearer token: {exc}")
        raise HTTPException(401, "Invalid bearer token") from exc


def ensure_same_user(identity: dict[str, Any] | None, user_id: str | None) -> None:
    """Reject requests acting on another user's data."""
    if identity is not None and user_id and identity.get("uid") != user_id:
        raise HTTPException(403, "Cannot act on another user's data")
