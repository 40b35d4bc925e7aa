"""Export profile CRUD endpoints."""

from typing import Any

from fastapi import APIRouter, Body, HTTPException, Query, status
import structlog

from yap.export.errors import ConflictError, NotFoundError, ValidationError
from yap.export.models import SECRET_FIELDS, SECRET_MASK, TargetKind
from yap.export.profiles import get_profile_store

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/api/v1/profiles", tags=["profiles"])


def _validation_failed(err: ValidationError) -> HTTPException:
    logger.info("Profile rejected", kind=err.kind, missing_fields=err.missing_fields)
    return HTTPException(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=err.to_dict()
    )


@router.get("")
async def list_profiles(kind: TargetKind | None = Query(None)) -> list[dict[str, Any]]:
    profiles = await get_profile_store().list_profiles(kind)
    return [profile.to_public_record() for profile in profiles]


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_profile(profile: dict[str, Any] = Body(...)) -> dict[str, Any]:
    """
    Store a new export profile.

    - **422**: missing or malformed fields for the profile kind
    - **409**: a profile with the same id already exists
    """
    try:
        stored = await get_profile_store().store(profile)
    except ValidationError as err:
        raise _validation_failed(err) from err
    except ConflictError as err:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(err)) from err
    return stored.to_public_record()


@router.get("/{profile_id}")
async def get_profile(profile_id: str) -> dict[str, Any]:
    profile = await get_profile_store().get(profile_id)
    if profile is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND, detail=str(NotFoundError(profile_id))
        )
    return profile.to_public_record()


@router.put("/{profile_id}")
async def update_profile(
    profile_id: str, profile: dict[str, Any] = Body(...)
) -> dict[str, Any]:
    """Replace a profile; the path id wins over any id in the body.

    A masked credential sent back unchanged keeps the stored value.
    """
    store = get_profile_store()
    changes = {**profile, "id": profile_id}
    existing = await store.get(profile_id)
    if existing is not None:
        stored = existing.to_record()
        for key in SECRET_FIELDS:
            if changes.get(key) == SECRET_MASK and key in stored:
                changes[key] = stored[key]

    try:
        updated = await store.update(changes)
    except ValidationError as err:
        raise _validation_failed(err) from err
    except NotFoundError as err:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(err)) from err
    return updated.to_public_record()


@router.delete("/{profile_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_profile(profile_id: str) -> None:
    if not await get_profile_store().remove(profile_id):
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND, detail=str(NotFoundError(profile_id))
        )
