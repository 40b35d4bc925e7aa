"""Export dispatch endpoints."""

import uuid

from fastapi import APIRouter, HTTPException, status
from fastapi.concurrency import run_in_threadpool
import structlog

from yap.api.v1.schemas import ExportRequest
from yap.config import settings
from yap.export.errors import NotFoundError
from yap.export.models import ExportOutcome
from yap.export.orchestrator import ExportConfig, ExportOrchestrator
from yap.export.profiles import get_profile_store
from yap.metrics.store import get_metrics_store, threadsafe_recorder

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/api/v1/exports", tags=["exports"])

# Exports currently dispatching, keyed by export id
running_exports: dict[str, ExportOrchestrator] = {}


def export_config() -> ExportConfig:
    return ExportConfig(
        app_version=settings.api_version,
        relay_url=settings.exporter_relay_url,
        timeout_seconds=settings.export_timeout_seconds,
    )


@router.post("", response_model=ExportOutcome)
async def run_export(request: ExportRequest) -> ExportOutcome:
    """
    Export a transcript to a stored profile's target.

    Returns 200 with the settled outcome whether or not the target accepted
    it; 404 when the profile does not exist; 409 when ``export_id`` names an
    export that is still running. ``DELETE /api/v1/exports/{export_id}``
    cancels it.
    """
    profile = await get_profile_store().get(request.profile_id)
    if profile is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=str(NotFoundError(request.profile_id)),
        )

    export_id = request.export_id or str(uuid.uuid4())
    if export_id in running_exports:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=f"Export '{export_id}' is already running",
        )

    metrics_store = get_metrics_store()
    recorder = threadsafe_recorder(metrics_store) if metrics_store.config.enabled else None
    orchestrator = ExportOrchestrator(export_config(), metrics=recorder)
    running_exports[export_id] = orchestrator

    logger.info("Export requested", export_id=export_id, profile_id=profile.id, kind=profile.kind)
    try:
        outcome = await run_in_threadpool(
            orchestrator.run, profile, request.transcript, request.clips
        )
    finally:
        running_exports.pop(export_id, None)

    outcome.export_id = export_id
    return outcome


@router.delete("/{export_id}", status_code=status.HTTP_202_ACCEPTED)
async def cancel_export(export_id: str) -> dict[str, str]:
    """Cancel a running export; its POST settles as ``cancelled``."""
    orchestrator = running_exports.get(export_id)
    if orchestrator is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Export not found or already settled",
        )

    orchestrator.cancel()
    logger.info("Export cancelled", export_id=export_id)
    return {"export_id": export_id, "message": "Export cancelled"}
