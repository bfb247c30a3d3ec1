"""PluggyClient: HTTP client for the Pluggy Open-Finance API.

Every call carries the cached API key in the `X-API-KEY` header. A 401 forces one credential refresh; transport errors, 429 and 5xx responses are retried with exponential backoff up to `max_attempts`; other 4xx responses fail immediately. List endpoints are paginated until `totalPages` is exhausted; bills are looked up along a chain of institution-specific routes.
"""

import math
import time
from collections.abc import Callable
from datetime import date, timedelta
from typing import Any

import httpx

from pluggy_sync.aggregator.base import AggregatorClient
from pluggy_sync.aggregator.credentials import CredentialCache
from pluggy_sync.core.errors import AggregatorError
from pluggy_sync.core.settings import Settings
from pluggy_sync.core.utils import get_logger

logger = get_logger("pluggy-sync.aggregator")

ACCOUNTS_PAGE_SIZE = 200
TRANSACTIONS_PAGE_SIZE = 500
BILLS_PAGE_SIZE = 200
ITEMS_PAGE_SIZE = 200
MAX_ERROR_DETAIL_LEN = 300
HTTP_UNAUTHORIZED = 401

# Institutions expose bills under different routes; tried in order. The flag marks routes filtered by `accountId`.
BILL_ENDPOINTS = (
    ("/bills", True),
    ("/accounts/{account_id}/bills", False),
    ("/accounts/{account_id}/credit-card-bills", False),
    ("/credit_card_bills", True),
    ("/credit-card-bills", True),
    ("/creditCardBills", True),
)


def _results(payload: Any) -> list[dict[str, Any]]:
    if isinstance(payload, list):
        return payload
    if isinstance(payload, dict):
        for key in ("results", "bills"):
            if isinstance(payload.get(key), list):
                return payload[key]
    return []


def _total_pages(payload: Any, page_size: int) -> int:
    if not isinstance(payload, dict):
        return 1
    total_pages = payload.get("totalPages")
    if isinstance(total_pages, int):
        return total_pages
    total = payload.get("total")
    if isinstance(total, int) and page_size:
        return max(1, math.ceil(total / page_size))
    return 1


def _error_detail(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        detail = response.text
    else:
        detail = body.get("message", body) if isinstance(body, dict) else body
    detail = str(detail)
    if len(detail) > MAX_ERROR_DETAIL_LEN:
        detail = detail[: MAX_ERROR_DETAIL_LEN - 3] + "..."
    return detail


class PluggyClient(AggregatorClient):
    """Aggregator client for the Pluggy REST API."""

    def __init__(
        self,
        http: httpx.Client,
        credentials: CredentialCache,
        *,
        max_attempts: int = 3,
        retry_base_delay: float = 0.5,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        """Initialize the client with an HTTP client bound to the API base URL and a credential cache."""
        self.http = http
        self.credentials = credentials
        self.max_attempts = max(1, max_attempts)
        self.retry_base_delay = retry_base_delay
        self.sleep = sleep

    @classmethod
    def from_settings(cls, settings: Settings) -> "PluggyClient":
        """Build the HTTP client, credential cache and aggregator client from settings."""
        http = httpx.Client(
            base_url=settings.pluggy_api_url,
            timeout=settings.pluggy_timeout_seconds,
            headers={"Content-Type": "application/json"},
        )
        credentials = CredentialCache(
            http,
            settings.pluggy_client_id,
            settings.pluggy_client_secret,
            static_api_key=settings.pluggy_api_key,
            ttl=timedelta(hours=settings.credential_ttl_hours),
        )
        return cls(
            http,
            credentials,
            max_attempts=settings.pluggy_max_attempts,
            retry_base_delay=settings.pluggy_retry_base_delay,
        )

    def close(self) -> None:
        """Close the underlying HTTP client."""
        self.http.close()

    def request(
        self,
        method: str,
        path: str,
        *,
        params: dict[str, Any] | None = None,
        json: dict[str, Any] | None = None,
    ) -> Any:
        """Perform an authenticated request and return the decoded JSON body."""
        attempt = 0
        refreshed = False
        force_refresh = False
        while True:
            token = self.credentials.get_credential(force_refresh=force_refresh).token
            force_refresh = False
            try:
                response = self.http.request(method, path, params=params, json=json, headers={"X-API-KEY": token})
            except httpx.TransportError as exc:
                error = AggregatorError(f"{method} {path} failed: {exc}")
            else:
                if response.status_code == HTTP_UNAUTHORIZED and not refreshed:
                    logger.warning(f"{method} {path} returned 401, refreshing API key and retrying")
                    refreshed = force_refresh = True
                    continue
                if response.is_success:
                    return response.json() if response.content else {}
                error = AggregatorError(
                    f"{method} {path} returned HTTP {response.status_code}: {_error_detail(response)}",
                    response.status_code,
                )
            attempt += 1
            if not error.retryable or attempt >= self.max_attempts:
                raise error
            delay = self.retry_base_delay * 2 ** (attempt - 1)
            logger.warning(f"{error}; retrying in {delay:.2f}s (attempt {attempt}/{self.max_attempts})")
            self.sleep(delay)

    def _paginate(self, path: str, params: dict[str, Any], page_size: int) -> list[dict[str, Any]]:
        collected: list[dict[str, Any]] = []
        page = 1
        total_pages = 1
        while page <= total_pages:
            payload = self.request("GET", path, params={**params, "page": page, "pageSize": page_size})
            collected.extend(_results(payload))
            total_pages = _total_pages(payload, page_size)
            page += 1
        return collected

    def list_accounts(self, item_id: str) -> list[dict[str, Any]]:
        """Return every account of an item."""
        return self._paginate("/accounts", {"itemId": item_id}, ACCOUNTS_PAGE_SIZE)

    def list_transactions(self, account_id: str, from_date: date | None = None) -> list[dict[str, Any]]:
        """Return every transaction of an account, optionally from a date onwards."""
        params: dict[str, Any] = {"accountId": account_id}
        if from_date is not None:
            params["from"] = from_date.isoformat()
        return self._paginate("/transactions", params, TRANSACTIONS_PAGE_SIZE)

    def list_bills(self, account_id: str) -> list[dict[str, Any]]:
        """Return the bills of a credit-card account from the first bill route that has any.

        A route that fails or answers with no bills hands over to the next one. An empty list means some route answered without bills; when none answered at all, the last error is raised.
        """
        last_error: AggregatorError | None = None
        answered = False
        for template, filter_by_query in BILL_ENDPOINTS:
            path = template.format(account_id=account_id)
            params = {"accountId": account_id} if filter_by_query else {}
            try:
                bills = self._paginate(path, params, BILLS_PAGE_SIZE)
            except AggregatorError as exc:
                logger.warning(f"Bills route {path} failed for account {account_id}: {exc}")
                last_error = exc
                continue
            if bills:
                return bills
            answered = True
            logger.info(f"Bills route {path} returned no bills for account {account_id}")
        if not answered and last_error is not None:
            raise last_error
        return []

    def create_connect_token(self, client_user_id: str | None = None, item_id: str | None = None) -> str:
        """Create a token for the aggregator's connect widget."""
        body: dict[str, Any] = {}
        if client_user_id:
            body["clientUserId"] = client_user_id
        if item_id:
            body["itemId"] = item_id
        payload = self.request("POST", "/connect_token", json=body)
        token = payload.get("accessToken") if isinstance(payload, dict) else None
        if not token:
            msg = "connect_token response has no accessToken"
            raise AggregatorError(msg)
        return token

    def list_items(self, client_user_id: str | None = None) -> list[dict[str, Any]]:
        """Return the items (bank connections), optionally filtered by client user id."""
        params: dict[str, Any] = {"pageSize": ITEMS_PAGE_SIZE}
        if client_user_id:
            params["clientUserId"] = client_user_id
        items = _results(self.request("GET", "/items", params=params))
        if client_user_id:
            return [item for item in items if item.get("clientUserId") == client_user_id]
        return items

    def get_item(self, item_id: str) -> dict[str, Any]:
        """Return one item."""
        return self.request("GET", f"/items/{item_id}")

    def refresh_item(self, item_id: str) -> dict[str, Any]:
        """Ask the aggregator to re-collect data for an item."""
        return self.request("PATCH", f"/items/{item_id}", json={})

    def delete_item(self, item_id: str) -> None:
        """Delete an item at the aggregator."""
        self.request("DELETE", f"/items/{item_id}")
