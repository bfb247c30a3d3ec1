"""API package: provides FastAPI dependencies and route definitions for the application."""

from .dependencies import SyncRuntime, build_runtime, get_runtime  # noqa: F401
from .routes import router  # noqa: F401
