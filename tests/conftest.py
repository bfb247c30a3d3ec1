"""Shared fixtures: document stores, a scripted aggregator and an app wired to them."""

from collections.abc import Iterator
from datetime import date

import pytest
from fastapi.testclient import TestClient

from fakes import FakeAggregator, MemoryDocumentStore, scenario_aggregator
from main import create_app
from pluggy_sync.api.dependencies import SyncRuntime, build_runtime
from pluggy_sync.core.db import SqlDocumentStore, create_tables, get_engine
from pluggy_sync.core.settings import Settings
from pluggy_sync.workers.job_runner import SyncJobRunner, SyncWorker

TODAY = date(2024, 3, 15)
CRON_SECRET = "cron-secret"


@pytest.fixture
def memory_store() -> MemoryDocumentStore:
    return MemoryDocumentStore()


@pytest.fixture
def sql_store(tmp_path) -> SqlDocumentStore:
    engine = get_engine(f"sqlite:///{tmp_path / 'documents.db'}")
    create_tables(engine)
    return SqlDocumentStore(engine)


@pytest.fixture
def aggregator() -> FakeAggregator:
    return scenario_aggregator()


@pytest.fixture
def worker() -> Iterator[SyncWorker]:
    pool = SyncWorker(max_workers=2)
    yield pool
    pool.shutdown(wait=True)


@pytest.fixture
def runner(sql_store: SqlDocumentStore, aggregator: FakeAggregator, worker: SyncWorker) -> SyncJobRunner:
    return SyncJobRunner(sql_store, aggregator, worker, today=lambda: TODAY)


@pytest.fixture
def runtime(sql_store: SqlDocumentStore, aggregator: FakeAggregator) -> SyncRuntime:
    settings = Settings(_env_file=None, cron_secret=CRON_SECRET, require_auth=False, sync_max_workers=2)
    return build_runtime(settings, store=sql_store, client=aggregator)


@pytest.fixture
def client(runtime: SyncRuntime) -> Iterator[TestClient]:
    with TestClient(create_app(runtime)) as test_client:
        yield test_client
