"""Canonical export payloads built from a transcript and its clips."""

from __future__ import annotations

from collections.abc import Sequence
from datetime import datetime, timezone
from typing import Any

import pydantic

from yap import __version__
from yap.export.errors import ValidationError
from yap.export.models import ClipRef, PayloadMode

SOURCE = "yap"


def isoformat_utc(instant: datetime) -> str:
    """Format as ISO-8601 UTC with millisecond precision and a Z suffix.

    Naive datetimes are taken as local time.
    """
    return (
        instant.astimezone(timezone.utc)
        .isoformat(timespec="milliseconds")
        .replace("+00:00", "Z")
    )


def build_payload(
    transcript: str,
    clips: Sequence[ClipRef | dict[str, Any]] | None,
    mode: PayloadMode | str,
    *,
    now: datetime | None = None,
    app_version: str | None = None,
) -> dict[str, Any]:
    """Build the wire body for an export.

    Args:
        transcript: Full transcript text
        clips: Captured clips; ignored for transcript_only, required for full_session
        mode: transcript_only or full_session
        now: Build instant (defaults to the current time)
        app_version: Version stamped into meta (defaults to the package version)

    Returns:
        The payload dict, ready for JSON serialization

    Raises:
        ValidationError: Unknown mode, missing clip list, or a malformed clip
    """
    try:
        mode = PayloadMode(mode)
    except ValueError as err:
        raise ValidationError(
            None, ["payloadMode"], f"Unknown payload mode: {mode!r}"
        ) from err

    created_at = isoformat_utc(now or datetime.now(timezone.utc))
    payload: dict[str, Any] = {
        "source": SOURCE,
        "created_at": created_at,
        "transcript": transcript,
    }

    if mode == PayloadMode.TRANSCRIPT_ONLY:
        return payload

    if clips is None:
        raise ValidationError(
            None, ["clips"], "Full-session export requires a clip list"
        )

    payload["clips"] = [
        _clip_entry(index, clip, created_at) for index, clip in enumerate(clips)
    ]
    payload["meta"] = {"app_version": app_version or __version__}
    return payload


def _clip_entry(index: int, clip: ClipRef | dict[str, Any], created_at: str) -> dict[str, Any]:
    if not isinstance(clip, ClipRef):
        try:
            clip = ClipRef.model_validate(clip)
        except pydantic.ValidationError as err:
            fields = [f"clips[{index}].{error['loc'][-1]}" for error in err.errors()]
            raise ValidationError(None, fields, f"Invalid clip at position {index}") from err

    # Clips are stamped with the build instant, not their capture time.
    return {
        "id": clip.id,
        "created_at": created_at,
        "duration_ms": clip.duration_ms,
        "text": clip.text,
    }
