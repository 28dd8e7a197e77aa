"""FastAPI server for receivables sync and payment reconciliation.

Main entry point for the API server.
"""

import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from api.routes import (
    health,
    sync,
    receivables,
    payment_matches,
)
from core import __version__
from core.config import Settings, get_settings
from core.observability.logging import configure_logging, get_logger
from storage.db import ReceivablesStore


logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan handler."""
    # Startup
    app.state.store.init_db()
    logger.info(f"Receivables API starting up (db: {app.state.settings.db_path})")

    yield

    # Shutdown
    logger.info("Receivables API shutting down...")


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        settings: Settings to use (defaults to the environment)
    """
    settings = settings or get_settings()

    app = FastAPI(
        title="Receivables API",
        description="Invoice sync from accounting systems and payment reconciliation",
        version=__version__,
        lifespan=lifespan,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
    )
    app.state.settings = settings
    app.state.store = ReceivablesStore(settings.db_path)

    # CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],  # Configure for production
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Include routers
    app.include_router(health.router, tags=["Health"])
    app.include_router(sync.router, prefix="/sync", tags=["Sync"])
    app.include_router(receivables.router, prefix="/receivables", tags=["Receivables"])
    app.include_router(payment_matches.router, prefix="/payment-matches", tags=["Payment Matches"])

    return app


if __name__ == "__main__":
    import uvicorn

    settings = get_settings()
    configure_logging(
        level=getattr(logging, settings.log_level, logging.INFO),
        json_format=settings.log_json,
    )
    uvicorn.run("api.server:create_app", factory=True, host="0.0.0.0", port=8000, reload=True)
