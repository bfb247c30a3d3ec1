"""Base abstraction for Open-Finance aggregator clients.

This module defines the abstract interface the sync engine consumes from the aggregator: account, transaction and bill listings, plus the item management calls used by the HTTP API.
"""

from abc import ABC, abstractmethod
from datetime import date
from typing import Any


class AggregatorClient(ABC):
    """Abstract base class for aggregator API clients."""

    @abstractmethod
    def list_accounts(self, item_id: str) -> list[dict[str, Any]]:
        """Return every account of an item."""

    @abstractmethod
    def list_transactions(self, account_id: str, from_date: date | None = None) -> list[dict[str, Any]]:
        """Return every transaction of an account, optionally from a date onwards."""

    @abstractmethod
    def list_bills(self, account_id: str) -> list[dict[str, Any]]:
        """Return the billing statements of a credit-card account."""

    @abstractmethod
    def create_connect_token(self, client_user_id: str | None = None, item_id: str | None = None) -> str:
        """Create a token for the aggregator's connect widget."""

    @abstractmethod
    def list_items(self, client_user_id: str | None = None) -> list[dict[str, Any]]:
        """Return the items (bank connections), optionally filtered by client user id."""

    @abstractmethod
    def get_item(self, item_id: str) -> dict[str, Any]:
        """Return one item."""

    @abstractmethod
    def refresh_item(self, item_id: str) -> dict[str, Any]:
        """Ask the aggregator to re-collect data for an item."""

    @abstractmethod
    def delete_item(self, item_id: str) -> None:
        """Delete an item at the aggregator."""
