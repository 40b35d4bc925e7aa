"""Tests for the CORS failure heuristic."""

from yap.export.cors import CORSFailureDetector, is_cors_blocked
from yap.export.models import DispatchResult, DispatchStatus


def test_status_zero_is_blocked():
    assert is_cors_blocked(0, None) is True


def test_failed_to_fetch_message_is_blocked():
    assert is_cors_blocked(None, "TypeError: Failed to fetch") is True


def test_real_http_status_is_not_blocked():
    assert is_cors_blocked(404, "Not found") is False


def test_plain_network_error_is_not_blocked():
    assert is_cors_blocked(None, "Connection refused") is False


class TestCORSFailureDetector:
    def setup_method(self):
        self.detector = CORSFailureDetector()

    def test_opaque_network_error(self):
        result = DispatchResult(status=DispatchStatus.NETWORK_ERROR, status_code=0)
        assert self.detector.is_blocked(result)

    def test_http_error_never_blocked(self):
        # Even a message that looks like a fetch failure
        result = DispatchResult(
            status=DispatchStatus.HTTP_ERROR, status_code=502, message="Failed to fetch upstream"
        )
        assert not self.detector.is_blocked(result)

    def test_success_never_blocked(self):
        result = DispatchResult(status=DispatchStatus.SUCCESS, status_code=200)
        assert not self.detector.is_blocked(result)
