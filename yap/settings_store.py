"""User preferences: defaults plus a shallow merge of what the user saved."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, StrictBool, StrictInt
import structlog

from yap.metrics.store import MetricsConfig

logger = structlog.get_logger(__name__)


class MetricsPreferences(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    enabled: StrictBool = True
    store_text: StrictBool = Field(False, alias="storeText")
    retention_days: StrictInt = Field(30, gt=0, alias="retentionDays")
    max_events: StrictInt = Field(5000, gt=0, alias="maxEvents")

    def to_config(self) -> MetricsConfig:
        return MetricsConfig(
            enabled=self.enabled,
            store_text=self.store_text,
            retention_days=self.retention_days,
            max_events=self.max_events,
        )


class UserSettings(BaseModel):
    """All user-adjustable preferences with their defaults."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    # ASR
    auto_transcribe: StrictBool = Field(False, alias="autoTranscribe")
    auto_copy: StrictBool = Field(False, alias="autoCopy")
    confirm_clear: StrictBool = Field(True, alias="confirmClear")
    confirm_delete: StrictBool = Field(True, alias="confirmDelete")

    # Transcript formatting
    show_separators: StrictBool = Field(False, alias="showSeparators")
    collapse_blank_lines: StrictBool = Field(True, alias="collapseBlankLines")
    trim_whitespace: StrictBool = Field(True, alias="trimWhitespace")
    clip_joiner: Literal["blank_line", "single_newline"] = Field(
        "blank_line", alias="clipJoiner"
    )

    # TTS read-along
    markdown_preview: StrictBool = Field(False, alias="markdownPreview")
    chunk_mode: Literal["paragraph", "line"] = Field("paragraph", alias="chunkMode")
    max_chunks: StrictInt = Field(30, gt=0, alias="maxChunks")
    max_chars_per_chunk: StrictInt = Field(1200, gt=0, alias="maxCharsPerChunk")

    metrics: MetricsPreferences = Field(default_factory=MetricsPreferences)

    def to_record(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True)


DEFAULT_SETTINGS: dict[str, Any] = UserSettings().to_record()

_WIRE_NAMES = {
    name: field.alias or name for name, field in UserSettings.model_fields.items()
}


def _to_wire_keys(values: dict[str, Any]) -> dict[str, Any]:
    """Accept snake_case keys alongside the camelCase ones the UI sends."""
    return {_WIRE_NAMES.get(key, key): value for key, value in values.items()}


class SettingsStore:
    """JSON-file settings persistence.

    Saved values override defaults key by key; a nested section such as
    ``metrics`` is replaced as a whole and re-filled from its own defaults.
    """

    def __init__(self, path: str | Path = "data/settings.json"):
        self.path = Path(path)

    def _load_saved(self) -> dict[str, Any]:
        if not self.path.exists():
            return {}
        try:
            saved = json.loads(self.path.read_text(encoding="utf-8"))
        except json.JSONDecodeError as err:
            logger.warning("Settings file unreadable, using defaults", path=str(self.path), error=str(err))
            return {}
        return saved if isinstance(saved, dict) else {}

    def load(self) -> UserSettings:
        merged = {**DEFAULT_SETTINGS, **_to_wire_keys(self._load_saved())}
        return UserSettings.model_validate(merged)

    def update(self, changes: dict[str, Any]) -> UserSettings:
        """Apply a partial update and persist the result.

        Raises:
            pydantic.ValidationError: A value has the wrong type or range
        """
        merged = {**self.load().to_record(), **_to_wire_keys(changes)}
        updated = UserSettings.model_validate(merged)
        self._save(updated)
        logger.info("Settings updated", keys=sorted(changes))
        return updated

    def reset(self) -> UserSettings:
        if self.path.exists():
            self.path.unlink()
        logger.info("Settings reset to defaults")
        return UserSettings()

    def _save(self, settings: UserSettings) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text(json.dumps(settings.to_record(), indent=2), encoding="utf-8")


# Global store instance (initialized once at startup)
_settings_store: SettingsStore | None = None


def get_settings_store() -> SettingsStore:
    if _settings_store is None:
        raise RuntimeError(
            "Settings store not initialized. Call initialize_settings_store() first."
        )
    return _settings_store


def initialize_settings_store(path: str | Path) -> SettingsStore:
    global _settings_store
    _settings_store = SettingsStore(path)
    return _settings_store


def reset_settings_store() -> None:
    """Reset the global store (for testing)."""
    global _settings_store
    _settings_store = None
