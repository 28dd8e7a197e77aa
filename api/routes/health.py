"""Health check endpoints."""

import sqlite3
from datetime import datetime
from typing import Dict

from fastapi import APIRouter, Depends, Response
from pydantic import BaseModel

from api.deps import get_app_settings, get_store
from core import __version__
from core.config import Settings
from storage.db import ReceivablesStore


router = APIRouter()


class HealthResponse(BaseModel):
    """Health check response."""
    status: str
    timestamp: str
    version: str
    services: Dict[str, str]


def _storage_status(store: ReceivablesStore) -> str:
    try:
        store.ping()
    except sqlite3.Error:
        return "down"
    return "up"


@router.get("/health", response_model=HealthResponse)
async def health_check(
    store: ReceivablesStore = Depends(get_store),
    settings: Settings = Depends(get_app_settings),
) -> HealthResponse:
    """Health check endpoint."""
    storage = _storage_status(store)
    return HealthResponse(
        status="healthy" if storage == "up" else "degraded",
        timestamp=datetime.utcnow().isoformat(),
        version=__version__,
        services={
            "api": "up",
            "storage": storage,
            "temporal": "configured" if settings.temporal_endpoint else "not_configured",
        }
    )


@router.get("/ready")
async def readiness_check(response: Response, store: ReceivablesStore = Depends(get_store)) -> Dict[str, str]:
    """Readiness probe for Kubernetes."""
    if _storage_status(store) != "up":
        response.status_code = 503
        return {"status": "not_ready"}
    return {"status": "ready"}


@router.get("/live")
async def liveness_check() -> Dict[str, str]:
    """Liveness probe for Kubernetes."""
    return {"status": "alive"}
