"""User settings endpoints."""

from typing import Any

from fastapi import APIRouter, Body, HTTPException, status
import pydantic
import structlog

from yap.metrics.store import get_metrics_store
from yap.settings_store import UserSettings, get_settings_store

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/api/v1/settings", tags=["settings"])


def _apply(user_settings: UserSettings) -> dict[str, Any]:
    get_metrics_store().configure(user_settings.metrics.to_config())
    return user_settings.to_record()


@router.get("")
async def get_settings() -> dict[str, Any]:
    return get_settings_store().load().to_record()


@router.put("")
async def update_settings(changes: dict[str, Any] = Body(...)) -> dict[str, Any]:
    """Partial update; omitted keys keep their saved or default values."""
    try:
        updated = get_settings_store().update(changes)
    except pydantic.ValidationError as err:
        logger.info("Settings update rejected", errors=err.error_count())
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=err.errors(include_url=False, include_context=False),
        ) from err
    return _apply(updated)


@router.post("/reset")
async def reset_settings() -> dict[str, Any]:
    return _apply(get_settings_store().reset())
