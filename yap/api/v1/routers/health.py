"""Health check endpoint."""

from fastapi import APIRouter

from yap.api.v1.schemas import MetricsHealth
from yap.metrics.store import get_metrics_store

router = APIRouter(tags=["health"])


@router.get("/health", response_model=MetricsHealth)
async def health_check() -> MetricsHealth:
    """Liveness check; also reports whether metrics collection is on."""
    return MetricsHealth(metrics_enabled=get_metrics_store().config.enabled)
