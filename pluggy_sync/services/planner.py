"""Incremental fetch planning from the previous sync's watermark."""

from collections.abc import Callable
from datetime import date, timedelta

from pluggy_sync.core.utils import get_logger, parse_day
from pluggy_sync.services.document_store import ACCOUNTS, DocumentStore

logger = get_logger("pluggy-sync.planner")

DEFAULT_LOOKBACK_DAYS = 90
WATERMARK_FIELD = "transactionsSyncedAt"


class IncrementalFetchPlanner:
    """Decides the earliest date to re-fetch transactions from, per account.

    The watermark is the account document's `transactionsSyncedAt`, committed only after that account's transactions were. The boundary day is re-fetched on purpose; upserts by provider id make the overlap harmless.
    """

    def __init__(self, store: DocumentStore, user_id: str, today: Callable[[], date] = date.today) -> None:
        """Initialize the planner for one user's accounts."""
        self.store = store
        self.user_id = user_id
        self.today = today
        self._watermarks: dict[str, object] | None = None

    def load_watermarks(self) -> None:
        """Snapshot the stored watermarks of every account at the start of a sync."""
        accounts = self.store.scan(self.user_id, ACCOUNTS)
        self._watermarks = {str(doc["id"]): doc.get(WATERMARK_FIELD) for doc in accounts if doc.get("id")}

    def _watermark(self, account_id: str) -> object:
        if self._watermarks is not None:
            return self._watermarks.get(str(account_id))
        doc = self.store.get(self.user_id, ACCOUNTS, account_id)
        return doc.get(WATERMARK_FIELD) if doc else None

    def plan_from_date(self, account_id: str, default_lookback_days: int = DEFAULT_LOOKBACK_DAYS) -> date:
        """Return the fetch lower bound: the watermark's day, or today minus the lookback."""
        try:
            watermark = parse_day(self._watermark(account_id))
        except Exception:
            logger.warning(f"Could not read watermark for account {account_id}, using default lookback", exc_info=True)
            watermark = None
        today = self.today()
        if watermark is not None:
            return min(watermark, today)
        return today - timedelta(days=default_lookback_days)
