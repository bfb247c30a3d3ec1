"""Aggregator package: provides the client interface, the Pluggy HTTP client and its credential cache."""

from .base import AggregatorClient  # noqa: F401
from .credentials import CredentialCache  # noqa: F401
from .pluggy_client import PluggyClient  # noqa: F401
