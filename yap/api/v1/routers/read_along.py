"""Read-along chunking endpoint."""

from fastapi import APIRouter, HTTPException, status

from yap.api.v1.schemas import ReadAlongRequest, ReadAlongResponse
from yap.settings_store import get_settings_store
from yap.tts.read_along import check_limits, chunk_text

router = APIRouter(prefix="/api/v1/read-along", tags=["read-along"])


@router.post("/chunks", response_model=ReadAlongResponse)
async def chunk(request: ReadAlongRequest) -> ReadAlongResponse:
    """Split text for synthesis; limits default to the user's saved settings."""
    preferences = get_settings_store().load()
    chunks = chunk_text(request.text, request.mode or preferences.chunk_mode)
    if not chunks:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="No text to synthesize")

    check = check_limits(
        chunks,
        max_chunks=request.max_chunks or preferences.max_chunks,
        max_chars=request.max_chars or preferences.max_chars_per_chunk,
    )
    return ReadAlongResponse(chunks=chunks, valid=check.valid, message=check.message)
