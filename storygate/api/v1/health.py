"""
StoryGate API v1 - Health Endpoints

- GET /healthz (operational)
- GET /v1/health (service contract)
"""

import time
from typing import Dict

from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel
import structlog

from storygate import __version__
from storygate.api.dependencies import get_store
from storygate.storage.graph_store import GraphStore

logger = structlog.get_logger()

router = APIRouter()


class HealthCheckResult(BaseModel):
    """Health check result for a single dependency."""
    status: str  # "up" or "down"
    latency_ms: float


class HealthResponse(BaseModel):
    ok: bool
    status: str  # "healthy" or "degraded"
    platform_id: str
    store: str
    checks: Dict[str, HealthCheckResult]
    version: str


def check_store(store: GraphStore) -> HealthCheckResult:
    start_time = time.time()
    available = store.is_available()
    latency_ms = (time.time() - start_time) * 1000

    if not available:
        logger.error("health.store.down", store=store.get_store_name())
        return HealthCheckResult(status="down", latency_ms=0.0)

    logger.debug("health.store.up", store=store.get_store_name(), latency_ms=latency_ms)
    return HealthCheckResult(status="up", latency_ms=round(latency_ms, 2))


def _health(request: Request, store: GraphStore) -> HealthResponse:
    checks = {"store": check_store(store)}
    healthy = all(c.status == "up" for c in checks.values())

    return HealthResponse(
        ok=healthy,
        status="healthy" if healthy else "degraded",
        platform_id=request.app.state.config.platform_id,
        store=store.get_store_name(),
        checks=checks,
        version=__version__
    )


@router.get("/healthz", response_model=HealthResponse)
def healthz(request: Request, store: GraphStore = Depends(get_store)):
    """Operational health check."""
    return _health(request, store)


@router.get("/v1/health", response_model=HealthResponse)
def health(request: Request, store: GraphStore = Depends(get_store)):
    """Service health for the v1 contract."""
    return _health(request, store)
