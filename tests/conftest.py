"""Shared test configuration and fixtures for all tests."""

from datetime import datetime, timezone
import os
from unittest.mock import Mock

import pytest
import requests

# Keep tests away from any developer .env relay or Ollama settings
os.environ["EXPORTER_RELAY_URL"] = ""
os.environ["OLLAMA_URL"] = "http://ollama.test:11434"

from yap.export.models import ClipRef
from yap.export.profiles import ProfileStore
from yap.metrics.store import MetricsConfig, MetricsStore
from yap.settings_store import SettingsStore


@pytest.fixture
def fixed_instant() -> datetime:
    """2024-01-15 10:30 UTC."""
    return datetime(2024, 1, 15, 10, 30, tzinfo=timezone.utc)


@pytest.fixture
def webhook_profile() -> dict:
    return {
        "id": "hook-1",
        "name": "Team inbox",
        "kind": "webhook",
        "url": "https://hooks.example.com/yap",
        "method": "POST",
        "headers": '{"X-Token": "abc"}',
        "payloadMode": "transcript_only",
    }


@pytest.fixture
def gitlab_direct_profile() -> dict:
    return {
        "id": "gl-direct",
        "name": "Notes repo",
        "kind": "gitlab_commit",
        "mode": "direct",
        "gitlabUrl": "https://gitlab.example.com",
        "projectId": "group/notes",
        "branch": "main",
        "filePath": "inbox/{year}/{month}/export.json",
        "token": "glpat-secret",
        "payloadMode": "full_session",
    }


@pytest.fixture
def gitlab_webhook_profile() -> dict:
    return {
        "id": "gl-relay",
        "name": "Notes via relay",
        "kind": "gitlab_commit",
        "mode": "webhook",
        "webhookUrl": "https://relay.example.com/gitlab",
        "projectId": "42",
        "branch": "main",
        "filePath": "inbox/{timestamp}.md",
        "fileFormat": "text",
    }


@pytest.fixture
def legacy_profile() -> dict:
    return {
        "id": "sftp-1",
        "name": "Archive server",
        "kind": "sftp",
        "host": "sftp.example.com",
        "remotePath": "/archive",
    }


@pytest.fixture
def sample_clips() -> list[ClipRef]:
    return [
        ClipRef(id="clip-1", text="First thought.", duration_ms=1500),
        ClipRef(id="clip-2", text="Second thought.", duration_ms=2750),
    ]


@pytest.fixture
def make_response():
    """Build real requests.Response objects for transport tests."""

    def _make(status_code: int = 200, text: str = "", reason: str | None = None):
        response = requests.Response()
        response.status_code = status_code
        response._content = text.encode("utf-8")
        response.encoding = "utf-8"
        response.reason = reason
        return response

    return _make


@pytest.fixture
def mock_session() -> Mock:
    """Mock requests session for transport testing."""
    return Mock(spec=requests.Session)


@pytest.fixture
def profile_store(tmp_path) -> ProfileStore:
    return ProfileStore(tmp_path / "profiles.duckdb")


@pytest.fixture
def metrics_store(tmp_path) -> MetricsStore:
    return MetricsStore(tmp_path / "metrics.duckdb", MetricsConfig())


@pytest.fixture
def settings_store(tmp_path) -> SettingsStore:
    return SettingsStore(tmp_path / "settings.json")
