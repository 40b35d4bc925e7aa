"""Tests for export payload construction."""

from datetime import datetime, timedelta, timezone

import pytest

from yap import __version__
from yap.export.errors import ValidationError
from yap.export.payload import build_payload, isoformat_utc


class TestIsoformatUtc:
    def test_utc_with_milliseconds_and_z(self, fixed_instant):
        assert isoformat_utc(fixed_instant) == "2024-01-15T10:30:00.000Z"

    def test_offset_converted_to_utc(self):
        instant = datetime(2024, 1, 15, 12, 30, 5, 123456, tzinfo=timezone(timedelta(hours=2)))
        assert isoformat_utc(instant) == "2024-01-15T10:30:05.123Z"


class TestTranscriptOnly:
    def test_clips_key_absent(self, fixed_instant, sample_clips):
        payload = build_payload("Hello", sample_clips, "transcript_only", now=fixed_instant)

        assert payload == {
            "source": "yap",
            "created_at": "2024-01-15T10:30:00.000Z",
            "transcript": "Hello",
        }
        assert "clips" not in payload
        assert "meta" not in payload

    def test_clips_may_be_none(self, fixed_instant):
        payload = build_payload("Hello", None, "transcript_only", now=fixed_instant)
        assert "clips" not in payload

    def test_empty_transcript_allowed(self, fixed_instant):
        assert build_payload("", None, "transcript_only", now=fixed_instant)["transcript"] == ""


class TestFullSession:
    def test_clip_count_matches_input(self, fixed_instant, sample_clips):
        payload = build_payload("Hello", sample_clips, "full_session", now=fixed_instant)

        assert len(payload["clips"]) == len(sample_clips)
        assert payload["clips"][0] == {
            "id": "clip-1",
            "created_at": "2024-01-15T10:30:00.000Z",
            "duration_ms": 1500,
            "text": "First thought.",
        }

    def test_meta_carries_app_version(self, fixed_instant):
        payload = build_payload("x", [], "full_session", now=fixed_instant, app_version="9.9.9")
        assert payload["clips"] == []
        assert payload["meta"] == {"app_version": "9.9.9"}

    def test_meta_defaults_to_package_version(self, fixed_instant):
        payload = build_payload("x", [], "full_session", now=fixed_instant)
        assert payload["meta"]["app_version"] == __version__

    def test_dict_clips_accepted(self, fixed_instant):
        payload = build_payload(
            "x", [{"id": "c", "text": "t", "duration_ms": 10}], "full_session", now=fixed_instant
        )
        assert payload["clips"][0]["id"] == "c"

    def test_missing_clip_list_rejected(self, fixed_instant):
        with pytest.raises(ValidationError) as exc_info:
            build_payload("x", None, "full_session", now=fixed_instant)
        assert exc_info.value.missing_fields == ["clips"]

    def test_malformed_clip_reports_position(self, fixed_instant):
        with pytest.raises(ValidationError) as exc_info:
            build_payload("x", [{"id": "ok"}, {"text": "no id"}], "full_session", now=fixed_instant)
        assert exc_info.value.missing_fields == ["clips[1].id"]


def test_unknown_mode_rejected(fixed_instant):
    with pytest.raises(ValidationError) as exc_info:
        build_payload("x", None, "everything", now=fixed_instant)
    assert exc_info.value.missing_fields == ["payloadMode"]
