"""Main entrypoint and application factory for the Pluggy Sync API.

This module initializes the FastAPI application, configures logging, builds the shared sync runtime (document store, aggregator client, worker pool) in the lifespan handler, and exposes the Scalar API reference endpoint for interactive OpenAPI documentation. It also includes the main entrypoint for running the app with Uvicorn.
"""

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.responses import JSONResponse
from scalar_fastapi import get_scalar_api_reference

from pluggy_sync.api.dependencies import SyncRuntime, build_runtime
from pluggy_sync.api.routes import router
from pluggy_sync.core.settings import get_settings
from pluggy_sync.core.utils import ensure_dir, get_logger


# --- Logging Setup ---
def setup_logging() -> None:
    """Configure logging to file and console, and ensure jobs directory exists."""
    ensure_dir("jobs")
    logger = get_logger("pluggy-sync")
    logger.setLevel(logging.INFO)
    # Add file handler for persistent logs (not colorized)
    if not any(isinstance(h, logging.FileHandler) for h in logger.handlers):
        file_handler = logging.FileHandler("jobs/sync.log")
        file_handler.setLevel(logging.INFO)
        file_handler.setFormatter(logging.Formatter("%(asctime)s [%(levelname)s] %(name)s: %(message)s"))
        logger.addHandler(file_handler)
    logger.propagate = False


setup_logging()


def create_app(runtime: SyncRuntime | None = None) -> FastAPI:
    """Create the FastAPI app; a prebuilt runtime (e.g. with fake collaborators) may be supplied."""

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        """Build the sync runtime on startup and drain the worker pool on shutdown."""
        app.state.runtime = runtime or build_runtime(get_settings())
        yield
        app.state.runtime.close()

    app = FastAPI(
        lifespan=lifespan,
        docs_url="/docs",
        redoc_url="/redoc",
        title="Pluggy Sync API",
        description="""
    The Pluggy Sync API synchronizes Open-Finance bank accounts, transactions and credit-card bills into each user's documents.

    **Endpoints:**
    - `POST /pluggy/sync`: Start a background sync of an item. Returns a `syncJobId`.
    - `GET /pluggy/sync/{job_id}`: Poll the progress of a sync job.
    - `POST /pluggy/create-token`, `GET /pluggy/items`, `POST /pluggy/trigger-sync`, `DELETE /pluggy/item/{item_id}`: Connection management.
    - `POST /pluggy/item/{item_id}/refresh-bills`: Current bills of the item's credit cards.
    - `GET /pluggy/items-status`: Connection health.
    - `POST /pluggy/webhook`: Aggregator notifications (logged).
    - `GET /pluggy/webhook-worker`: Periodic external trigger.
    - `GET /health`: Health check endpoint.
    - `GET /scalar`: Interactive Scalar OpenAPI documentation.
    """,
        version="1.0.0",
    )
    app.include_router(router)

    @app.get("/scalar", include_in_schema=False)
    async def scalar_docs() -> JSONResponse:
        """Return Scalar API reference."""
        return get_scalar_api_reference(openapi_url=app.openapi_url, title=app.title)

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    settings = get_settings()
    uvicorn.run("main:app", host=settings.server_host, port=settings.server_port, reload=True)
