"""Local usage metrics endpoints."""

from typing import Any

from fastapi import APIRouter, HTTPException, Query, status

from yap.api.v1.schemas import ClearResponse, MetricsHistoryResponse
from yap.metrics.store import (
    MetricEvent,
    MetricEventIn,
    MetricsConfig,
    MetricsDisabledError,
    SummaryRange,
    get_metrics_store,
)

router = APIRouter(prefix="/api/metrics", tags=["metrics"])


def _disabled(err: MetricsDisabledError) -> HTTPException:
    return HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(err))


@router.get("/config", response_model=MetricsConfig)
async def get_config() -> MetricsConfig:
    return get_metrics_store().config


@router.post("/event", response_model=MetricEvent)
async def record_event(event: MetricEventIn) -> MetricEvent:
    try:
        return await get_metrics_store().record(event)
    except MetricsDisabledError as err:
        raise _disabled(err) from err


@router.get("/summary")
async def get_summary(
    range_: SummaryRange = Query("7d", alias="range"),
) -> dict[str, Any]:
    try:
        return await get_metrics_store().summary(range_)
    except MetricsDisabledError as err:
        raise _disabled(err) from err


@router.get("/history", response_model=MetricsHistoryResponse)
async def get_history(
    limit: int = Query(50, ge=1, le=1000),
    offset: int = Query(0, ge=0),
    event_type: str | None = None,
) -> MetricsHistoryResponse:
    try:
        events, total = await get_metrics_store().history(limit, offset, event_type)
    except MetricsDisabledError as err:
        raise _disabled(err) from err
    return MetricsHistoryResponse(events=events, total=total, limit=limit, offset=offset)


@router.get("/export")
async def export_events() -> dict[str, Any]:
    try:
        return await get_metrics_store().export_all()
    except MetricsDisabledError as err:
        raise _disabled(err) from err


@router.delete("/history", response_model=ClearResponse)
async def clear_history(clear_text_only: bool = False) -> ClearResponse:
    try:
        affected = await get_metrics_store().clear(clear_text_only)
    except MetricsDisabledError as err:
        raise _disabled(err) from err

    what = "Cleared stored text from" if clear_text_only else "Deleted"
    return ClearResponse(success=True, message=f"{what} {affected} events")
