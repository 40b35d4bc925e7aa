"""
Export profile validation and persistence.

Validation is purely shape-based and runs before any network code: a profile
that is missing its kind's required fields never reaches the dispatcher.
"""

from __future__ import annotations

from collections.abc import Mapping
from datetime import datetime
import json
from pathlib import Path
from typing import Any

import duckdb
import pydantic
from pydantic import BaseModel
import structlog

from yap.export.errors import ConflictError, NotFoundError, ValidationError
from yap.export.models import (
    LEGACY_KINDS,
    ExportProfile,
    GitLabMode,
    TargetKind,
    profile_adapter,
)
from yap.repositories.duckdb_repository import DuckDBRepository

logger = structlog.get_logger(__name__)

COMMON_FIELDS = ("id", "name", "kind")
WEBHOOK_METHODS = ("POST", "PUT")
GITLAB_DIRECT_FIELDS = ("gitlabUrl", "projectId", "branch", "filePath", "token")
GITLAB_RELAY_FIELDS = ("webhookUrl", "projectId", "branch", "filePath")


def _blank(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def _is_http_url(value: str) -> bool:
    return value.startswith("http://") or value.startswith("https://")


def validate_profile(profile: Mapping[str, Any] | BaseModel) -> ExportProfile:
    """Check a profile's shape and return the typed variant for its kind.

    Accepts the legacy ``type`` key as an alias for ``kind``.

    Raises:
        ValidationError: With the profile kind and the offending fields
    """
    if isinstance(profile, BaseModel):
        data = profile.model_dump(by_alias=True, mode="json", exclude_none=True)
    else:
        data = dict(profile)

    if "kind" not in data and "type" in data:
        data["kind"] = data.pop("type")

    kind = data.get("kind")
    missing = [field for field in COMMON_FIELDS if _blank(data.get(field))]
    if missing:
        raise ValidationError(kind, missing)

    try:
        target_kind = TargetKind(kind)
    except ValueError as err:
        raise ValidationError(
            kind, ["kind"], f"Unknown export target kind: {kind!r}"
        ) from err

    if target_kind == TargetKind.WEBHOOK:
        _check_webhook(data)
    elif target_kind == TargetKind.GITLAB_COMMIT:
        _check_gitlab_commit(data)
    # Legacy kinds are owned by the exporter relay; their fields pass through.

    try:
        return profile_adapter.validate_python(data)
    except pydantic.ValidationError as err:
        fields = [str(error["loc"][-1]) for error in err.errors()]
        raise ValidationError(kind, fields, f"Invalid {kind} profile: {', '.join(fields)}") from err


def _check_webhook(data: dict[str, Any]) -> None:
    url = data.get("url")
    if _blank(url):
        raise ValidationError("webhook", ["url"])
    if not _is_http_url(str(url).strip()):
        raise ValidationError(
            "webhook", ["url"], "Webhook URL must start with http:// or https://"
        )
    data["url"] = str(url).strip()

    method = data.get("method")
    if _blank(method):
        data["method"] = "POST"
    else:
        method = str(method).upper()
        if method not in WEBHOOK_METHODS:
            raise ValidationError(
                "webhook", ["method"], f"Webhook method must be POST or PUT, got {method}"
            )
        data["method"] = method

    headers = data.get("headers")
    if _blank(headers):
        data.pop("headers", None)
        return
    if isinstance(headers, Mapping):
        data["headers"] = json.dumps(dict(headers))
        return
    try:
        parsed = json.loads(headers)
    except (TypeError, ValueError) as err:
        raise ValidationError(
            "webhook", ["headers"], "Webhook headers must be valid JSON"
        ) from err
    if not isinstance(parsed, dict):
        raise ValidationError(
            "webhook", ["headers"], "Webhook headers must be a JSON object"
        )


def _check_gitlab_commit(data: dict[str, Any]) -> None:
    kind = TargetKind.GITLAB_COMMIT.value
    try:
        mode = GitLabMode(data.get("mode"))
    except ValueError as err:
        raise ValidationError(
            kind, ["mode"], "GitLab commit mode must be 'direct' or 'webhook'"
        ) from err

    if mode == GitLabMode.DIRECT:
        missing = [field for field in GITLAB_DIRECT_FIELDS if _blank(data.get(field))]
        if missing:
            raise ValidationError(kind, missing)
        if not _is_http_url(data["gitlabUrl"]):
            raise ValidationError(
                kind, ["gitlabUrl"], "GitLab URL must start with http:// or https://"
            )
        # A direct profile may name a relay used only when the browser blocks the call.
        if _blank(data.get("webhookUrl")):
            data.pop("webhookUrl", None)
        elif not _is_http_url(data["webhookUrl"]):
            raise ValidationError(
                kind, ["webhookUrl"], "Relay URL must start with http:// or https://"
            )
        return

    if not _blank(data.get("token")):
        raise ValidationError(
            kind,
            ["token"],
            "GitLab webhook-mode profiles must not carry a token; the relay holds it",
        )
    data.pop("token", None)
    missing = [field for field in GITLAB_RELAY_FIELDS if _blank(data.get(field))]
    if missing:
        raise ValidationError(kind, missing)
    if not _is_http_url(data["webhookUrl"]):
        raise ValidationError(
            kind, ["webhookUrl"], "Relay URL must start with http:// or https://"
        )


def is_legacy(profile: ExportProfile) -> bool:
    return profile.target_kind in LEGACY_KINDS


class ProfileStore(DuckDBRepository):
    """Persistent export profiles keyed by id.

    Profiles are validated on every write; ``id`` is unique.
    """

    schema = (
        """
        CREATE TABLE IF NOT EXISTS export_profiles (
            id VARCHAR PRIMARY KEY,
            name VARCHAR NOT NULL,
            kind VARCHAR NOT NULL,
            config JSON NOT NULL,
            created_at TIMESTAMP NOT NULL,
            updated_at TIMESTAMP NOT NULL
        )
        """,
        "CREATE INDEX IF NOT EXISTS idx_export_profiles_kind ON export_profiles(kind)",
    )

    def __init__(self, db_path: str | Path = "data/profiles.duckdb"):
        super().__init__(db_path)
        logger.info("Profile store initialized", db_path=str(self.db_path))

    async def store(self, profile: Mapping[str, Any] | BaseModel) -> ExportProfile:
        """Insert a new profile.

        Raises:
            ValidationError: Profile shape is invalid
            ConflictError: A profile with this id already exists
        """
        validated = validate_profile(profile)
        await self._init_db()

        if await self._fetch_one(
            "SELECT id FROM export_profiles WHERE id = ?", (validated.id,)
        ):
            raise ConflictError("id", validated.id)

        now = datetime.now()
        try:
            await self._execute(
                """
                INSERT INTO export_profiles (id, name, kind, config, created_at, updated_at)
                VALUES (?, ?, ?, ?, ?, ?)
                """,
                (
                    validated.id,
                    validated.name,
                    validated.kind,
                    json.dumps(validated.to_record()),
                    now,
                    now,
                ),
            )
        except duckdb.ConstraintException as err:
            raise ConflictError("id", validated.id) from err

        logger.info("Profile stored", profile_id=validated.id, kind=validated.kind)
        return validated

    async def update(self, profile: Mapping[str, Any] | BaseModel) -> ExportProfile:
        """Replace an existing profile.

        Raises:
            ValidationError: Profile shape is invalid
            NotFoundError: No profile with this id
        """
        validated = validate_profile(profile)
        await self._init_db()

        if not await self._fetch_one(
            "SELECT id FROM export_profiles WHERE id = ?", (validated.id,)
        ):
            raise NotFoundError(validated.id)

        await self._execute(
            """
            UPDATE export_profiles SET name = ?, kind = ?, config = ?, updated_at = ?
            WHERE id = ?
            """,
            (
                validated.name,
                validated.kind,
                json.dumps(validated.to_record()),
                datetime.now(),
                validated.id,
            ),
        )

        logger.info("Profile updated", profile_id=validated.id, kind=validated.kind)
        return validated

    async def remove(self, profile_id: str) -> bool:
        """Delete a profile; returns False if it did not exist."""
        await self._init_db()

        if not await self._fetch_one(
            "SELECT id FROM export_profiles WHERE id = ?", (profile_id,)
        ):
            return False

        await self._execute("DELETE FROM export_profiles WHERE id = ?", (profile_id,))
        logger.info("Profile removed", profile_id=profile_id)
        return True

    async def get(self, profile_id: str) -> ExportProfile | None:
        await self._init_db()

        row = await self._fetch_one(
            "SELECT config FROM export_profiles WHERE id = ?", (profile_id,)
        )
        return self._row_to_profile(row) if row else None

    async def list_profiles(self, kind: TargetKind | str | None = None) -> list[ExportProfile]:
        """All profiles, oldest first, optionally filtered by kind."""
        await self._init_db()

        if kind is None:
            rows = await self._fetch_all(
                "SELECT config FROM export_profiles ORDER BY created_at, id"
            )
        else:
            rows = await self._fetch_all(
                "SELECT config FROM export_profiles WHERE kind = ? ORDER BY created_at, id",
                (TargetKind(kind).value,),
            )
        return [self._row_to_profile(row) for row in rows]

    @staticmethod
    def _row_to_profile(row: tuple) -> ExportProfile:
        config = row[0]
        if isinstance(config, str):
            config = json.loads(config)
        return profile_adapter.validate_python(config)


# Global store instance (initialized once at startup)
_profile_store: ProfileStore | None = None


def get_profile_store() -> ProfileStore:
    """Return the global profile store.

    Raises:
        RuntimeError: If the store has not been initialized
    """
    if _profile_store is None:
        raise RuntimeError(
            "Profile store not initialized. Call initialize_profile_store() first."
        )
    return _profile_store


def initialize_profile_store(db_path: str | Path) -> ProfileStore:
    global _profile_store
    _profile_store = ProfileStore(db_path)
    return _profile_store


def reset_profile_store() -> None:
    """Reset the global store (for testing)."""
    global _profile_store
    _profile_store = None
