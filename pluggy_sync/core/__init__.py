"""Core package: provides models, errors, the SQL document store, settings, and shared utilities."""

from .db import SqlDocumentStore  # noqa: F401
from .errors import SyncError  # noqa: F401
from .models import SyncJob  # noqa: F401
from .settings import Settings  # noqa: F401
from .utils import get_logger  # noqa: F401
