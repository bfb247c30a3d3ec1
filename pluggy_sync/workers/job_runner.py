"""Background orchestration of bank-account sync jobs.

`SyncJobRunner.start` records a SyncJob and hands the pipeline to the `SyncWorker` thread pool, so the HTTP caller gets the job id before any aggregator call is made. From then on the worker is the only writer of the job document.
"""

import concurrent.futures
import uuid
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import date
from typing import Any

from pluggy_sync.aggregator.base import AggregatorClient
from pluggy_sync.core.errors import AccountListError, AccountSyncError, AuthError, BatchCommitError
from pluggy_sync.core.models import AccountFailure, JobOutcome, JobStatus, SyncJob
from pluggy_sync.core.utils import get_logger, utcnow_iso
from pluggy_sync.services.batch_writer import DEFAULT_BATCH_LIMIT, BatchedWriter
from pluggy_sync.services.bills import BillAggregator
from pluggy_sync.services.classifier import Classification, classify
from pluggy_sync.services.document_store import ACCOUNTS, SYNC_JOBS, DocumentStore
from pluggy_sync.services.mapper import map_account, map_transaction
from pluggy_sync.services.planner import DEFAULT_LOOKBACK_DAYS, WATERMARK_FIELD, IncrementalFetchPlanner

logger = get_logger("pluggy-sync.worker")

PROGRESS_ACCOUNTS = 10
PROGRESS_TRANSACTIONS = 20
PROGRESS_BILLS = 80
PROGRESS_DONE = 100


class SyncWorker:
    """Bounded thread pool running sync jobs off the request cycle."""

    def __init__(self, max_workers: int = 4) -> None:
        """Initialize the pool."""
        self.executor = concurrent.futures.ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="pluggy-sync")

    def submit(self, fn: Callable[..., Any], *args: Any) -> concurrent.futures.Future:
        """Schedule a call on the pool and log anything that escapes it."""
        future = self.executor.submit(fn, *args)
        future.add_done_callback(_log_unhandled)
        return future

    def shutdown(self, wait: bool = True) -> None:
        """Stop accepting jobs and optionally wait for running ones."""
        self.executor.shutdown(wait=wait)


def _log_unhandled(future: concurrent.futures.Future) -> None:
    exc = future.exception()
    if exc is not None:
        logger.error("Sync job crashed outside of its own error handling", exc_info=exc)


@dataclass
class SyncContext:
    """Mutable bookkeeping for one running job."""

    user_id: str
    item_id: str
    job_id: str
    accounts: int = 0
    transactions: int = 0
    credit_accounts: int = 0
    account_errors: list[AccountFailure] = field(default_factory=list)
    failed_phases: list[str] = field(default_factory=list)

    def record_failure(self, account_id: str, phase: str, exc: Exception) -> None:
        """Remember a non-fatal per-account failure."""
        self.account_errors.append(AccountFailure(account_id=account_id, phase=phase, error=str(exc)))

    @property
    def outcome(self) -> JobOutcome:
        """Success unless some account or phase failed along the way."""
        if self.account_errors or self.failed_phases:
            return JobOutcome.PARTIAL_FAILURE
        return JobOutcome.SUCCESS

    def summary(self) -> str:
        """Human-readable completion message."""
        msg = f"Synced {self.accounts} accounts and {self.transactions} transactions"
        if self.credit_accounts:
            msg += f" ({self.credit_accounts} credit cards)"
        if self.account_errors:
            msg += f"; {len(self.account_errors)} account errors"
        if self.failed_phases:
            msg += f"; failed phases: {', '.join(self.failed_phases)}"
        return msg


class SyncJobRunner:
    """Runs the account, transaction and bill pipeline for one aggregator item."""

    def __init__(
        self,
        store: DocumentStore,
        client: AggregatorClient,
        worker: SyncWorker,
        *,
        batch_limit: int = DEFAULT_BATCH_LIMIT,
        lookback_days: int = DEFAULT_LOOKBACK_DAYS,
        today: Callable[[], date] = date.today,
    ) -> None:
        """Initialize the runner with its collaborators."""
        self.store = store
        self.client = client
        self.worker = worker
        self.batch_limit = batch_limit
        self.lookback_days = lookback_days
        self.today = today
        self._futures: dict[str, concurrent.futures.Future] = {}

    def start(self, user_id: str, item_id: str) -> str:
        """Create the SyncJob, schedule the pipeline and return the job id without waiting."""
        job_id = uuid.uuid4().hex
        now = utcnow_iso()
        job = SyncJob(
            id=job_id,
            item_id=item_id,
            user_id=user_id,
            status=JobStatus.PROCESSING,
            progress=0,
            step="Starting sync...",
            created_at=now,
            updated_at=now,
        )
        self.store.set(user_id, SYNC_JOBS, job_id, job.model_dump(by_alias=True, mode="json"), merge=False)
        logger.info(f"Created sync job {job_id} for user {user_id}, item {item_id}")
        future = self.worker.submit(self.run_job, user_id, item_id, job_id)
        self._futures[job_id] = future
        future.add_done_callback(lambda _: self._futures.pop(job_id, None))
        return job_id

    def wait(self, job_id: str, timeout: float | None = None) -> None:
        """Block until a scheduled job has finished (returns at once if it already has)."""
        future = self._futures.get(job_id)
        if future is not None:
            concurrent.futures.wait([future], timeout=timeout)

    @property
    def active_jobs(self) -> int:
        """Number of scheduled jobs that have not finished yet."""
        return len(self._futures)

    def get_job(self, user_id: str, job_id: str) -> dict[str, Any] | None:
        """Return the stored SyncJob document."""
        return self.store.get(user_id, SYNC_JOBS, job_id)

    def run_job(self, user_id: str, item_id: str, job_id: str) -> dict[str, Any]:
        """Run the full pipeline, moving the job to `completed` or `failed`."""
        ctx = SyncContext(user_id=user_id, item_id=item_id, job_id=job_id)
        logger.info(f"Starting sync job {job_id} (user {user_id}, item {item_id})")
        try:
            self._sync(ctx)
        except Exception as exc:
            logger.exception(f"Sync job {job_id} failed")
            fields = {
                "status": JobStatus.FAILED.value,
                "outcome": JobOutcome.FAILED.value,
                "error": str(exc),
                "message": "Sync failed",
                "completedAt": utcnow_iso(),
            }
        else:
            fields = {
                "status": JobStatus.COMPLETED.value,
                "outcome": ctx.outcome.value,
                "progress": PROGRESS_DONE,
                "step": "Done",
                "message": ctx.summary(),
                "completedAt": utcnow_iso(),
            }
            logger.info(f"Sync job {job_id} completed: {fields['message']}")
        fields["accountErrors"] = [failure.model_dump(by_alias=True) for failure in ctx.account_errors]
        fields["failedPhases"] = list(ctx.failed_phases)
        self._update(ctx, **fields)
        return self.get_job(user_id, job_id) or {}

    def _update(self, ctx: SyncContext, **fields: Any) -> None:
        fields["updatedAt"] = utcnow_iso()
        self.store.set(ctx.user_id, SYNC_JOBS, ctx.job_id, fields, merge=True)

    def _progress(self, ctx: SyncContext, progress: int, step: str) -> None:
        self._update(ctx, progress=progress, step=step)

    def _writer(self, user_id: str) -> BatchedWriter:
        return BatchedWriter(self.store, user_id, limit=self.batch_limit)

    def _sync(self, ctx: SyncContext) -> None:
        try:
            raw_accounts = self.client.list_accounts(ctx.item_id)
        except AuthError:
            raise
        except Exception as exc:
            msg = f"Could not list accounts for item {ctx.item_id}: {exc}"
            raise AccountListError(msg) from exc
        accounts = [(raw, classify(raw)) for raw in raw_accounts if raw.get("id")]
        logger.info(f"[JOB {ctx.job_id}] {len(accounts)} accounts listed for item {ctx.item_id}")

        self._progress(ctx, PROGRESS_ACCOUNTS, "Saving accounts...")
        planner = IncrementalFetchPlanner(self.store, ctx.user_id, today=self.today)
        planner.load_watermarks()
        synced_at = utcnow_iso()
        self._save_accounts(ctx, accounts, synced_at)

        self._progress(ctx, PROGRESS_TRANSACTIONS, "Fetching transactions...")
        self._save_transactions(ctx, accounts, planner, synced_at)

        credit_accounts = [raw for raw, classification in accounts if classification.is_credit]
        ctx.credit_accounts = len(credit_accounts)
        self._progress(ctx, PROGRESS_BILLS, "Fetching credit card bills...")
        self._save_bills(ctx, credit_accounts)

    def _save_accounts(
        self, ctx: SyncContext, accounts: list[tuple[dict[str, Any], Classification]], synced_at: str
    ) -> None:
        writer = self._writer(ctx.user_id)
        try:
            for raw, classification in accounts:
                writer.stage_upsert(ACCOUNTS, str(raw["id"]), map_account(raw, classification, synced_at))
            writer.flush()
        except BatchCommitError:
            logger.exception(f"[JOB {ctx.job_id}] Account phase aborted")
            ctx.failed_phases.append("accounts")
            return
        ctx.accounts = len(accounts)

    def _save_transactions(
        self,
        ctx: SyncContext,
        accounts: list[tuple[dict[str, Any], Classification]],
        planner: IncrementalFetchPlanner,
        synced_at: str,
    ) -> None:
        writer = self._writer(ctx.user_id)
        total = len(accounts)
        try:
            for index, (raw, classification) in enumerate(accounts, start=1):
                account_id = str(raw["id"])
                try:
                    ctx.transactions += self._sync_account(raw, classification, planner, writer, synced_at)
                except (AuthError, BatchCommitError):
                    raise
                except Exception as exc:
                    logger.exception(f"[JOB {ctx.job_id}] Skipping transactions of account {account_id}")
                    ctx.record_failure(account_id, "transactions", exc)
                span = PROGRESS_BILLS - PROGRESS_TRANSACTIONS
                self._progress(
                    ctx, PROGRESS_TRANSACTIONS + span * index // (total + 1), f"Fetching transactions ({index}/{total})..."
                )
            writer.flush()
        except BatchCommitError:
            logger.exception(f"[JOB {ctx.job_id}] Transaction phase aborted")
            ctx.failed_phases.append("transactions")

    def _sync_account(
        self,
        raw_account: dict[str, Any],
        classification: Classification,
        planner: IncrementalFetchPlanner,
        writer: BatchedWriter,
        synced_at: str,
    ) -> int:
        account_id = str(raw_account["id"])
        from_date = planner.plan_from_date(account_id, self.lookback_days)
        try:
            raw_transactions = self.client.list_transactions(account_id, from_date)
        except AuthError:
            raise
        except Exception as exc:
            raise AccountSyncError(account_id, str(exc)) from exc
        staged = 0
        for raw_tx in raw_transactions:
            mapped = map_transaction(raw_tx, raw_account, classification, synced_at)
            if mapped.doc_id is None:
                logger.warning(f"Transaction without id on account {account_id} skipped: {raw_tx.get('description')}")
                continue
            writer.stage_upsert(mapped.collection, mapped.doc_id, mapped.data)
            staged += 1
        # Staged after the transactions, so a failed commit never advances it past them.
        writer.stage_upsert(ACCOUNTS, account_id, {"id": raw_account["id"], WATERMARK_FIELD: synced_at})
        logger.info(
            f"Account {account_id} ({classification.bucket}): staged {staged} transactions from {from_date.isoformat()}"
        )
        return staged

    def _save_bills(self, ctx: SyncContext, credit_accounts: list[dict[str, Any]]) -> None:
        writer = self._writer(ctx.user_id)
        aggregator = BillAggregator(self.client, writer)
        try:
            for raw in credit_accounts:
                try:
                    aggregator.update_bills(raw)
                except (AuthError, BatchCommitError):
                    raise
                except Exception as exc:
                    logger.exception(f"[JOB {ctx.job_id}] Skipping bills of account {raw['id']}")
                    ctx.record_failure(str(raw["id"]), "bills", exc)
            writer.flush()
        except BatchCommitError:
            logger.exception(f"[JOB {ctx.job_id}] Bill phase aborted")
            ctx.failed_phases.append("bills")
