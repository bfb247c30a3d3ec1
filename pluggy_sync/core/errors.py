"""Exception hierarchy for the sync engine.

Fatal errors (`AuthError`, `AccountListError`) fail the whole job. Per-account
errors (`AccountSyncError`, `BillFetchError`) are logged and the account is
skipped. `BatchCommitError` aborts the current write phase only.
"""

RETRYABLE_STATUS_CODES = frozenset({429, 500, 502, 503, 504})


class SyncError(Exception):
    """Base class for all sync engine errors."""


class AggregatorError(SyncError):
    """An aggregator HTTP call failed."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        """Initialize with a message and the HTTP status code, if any."""
        super().__init__(message)
        self.status_code = status_code

    @property
    def retryable(self) -> bool:
        """Whether the failure is transient (transport error, 429 or 5xx)."""
        return self.status_code is None or self.status_code in RETRYABLE_STATUS_CODES


class AuthError(SyncError):
    """The aggregator rejected the client credentials or returned no token."""


class AccountListError(SyncError):
    """The account list for an item could not be fetched."""


class AccountSyncError(SyncError):
    """Syncing a single account's transactions failed."""

    def __init__(self, account_id: str, message: str) -> None:
        """Initialize with the failing account id."""
        super().__init__(f"account {account_id}: {message}")
        self.account_id = account_id


class BillFetchError(SyncError):
    """Fetching bills for a credit account failed."""

    def __init__(self, account_id: str, message: str) -> None:
        """Initialize with the failing account id."""
        super().__init__(f"bills for account {account_id}: {message}")
        self.account_id = account_id


class BatchCommitError(SyncError):
    """A batched write could not be committed to the document store."""
