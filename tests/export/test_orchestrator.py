"""Tests for the export orchestrator state machine and relay fallback."""

from datetime import datetime
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
import threading
import time

import pytest

from yap.export.models import DispatchResult, DispatchStatus
from yap.export.orchestrator import (
    CORS_REASON,
    ExportConfig,
    ExportOrchestrator,
    ExportState,
)

SUCCESS = DispatchResult(status=DispatchStatus.SUCCESS, status_code=200)
OPAQUE = DispatchResult(status=DispatchStatus.NETWORK_ERROR, status_code=0)
FAILED_TO_FETCH = DispatchResult(
    status=DispatchStatus.NETWORK_ERROR, message="TypeError: Failed to fetch"
)
REFUSED = DispatchResult(status=DispatchStatus.NETWORK_ERROR, message="Connection refused")
SERVER_ERROR = DispatchResult(
    status=DispatchStatus.HTTP_ERROR, status_code=500, message="Internal Server Error"
)


class FakeDispatcher:
    """Returns scripted results and records every send."""

    def __init__(self, *results, on_send=None):
        self.results = list(results)
        self.calls = []
        self.closed = False
        self.on_send = on_send

    def send(self, payload, resolved_path, profile, *, via_relay=False):
        self.calls.append(
            {"payload": payload, "path": resolved_path, "profile": profile, "via_relay": via_relay}
        )
        if self.on_send:
            self.on_send()
        result = self.results.pop(0)
        return result.model_copy(update={"via_relay": via_relay})

    def close(self):
        self.closed = True


class SlowHandler(BaseHTTPRequestHandler):
    """Answers every POST after a delay longer than any test waits."""

    delay = 3.0

    def do_POST(self):
        time.sleep(self.delay)
        try:
            self.send_response(200)
            self.end_headers()
            self.wfile.write(b"ok")
        except OSError:
            pass

    def log_message(self, format, *args):
        pass


@pytest.fixture
def slow_server():
    server = ThreadingHTTPServer(("127.0.0.1", 0), SlowHandler)
    thread = threading.Thread(target=server.serve_forever, daemon=True)
    thread.start()
    yield f"http://127.0.0.1:{server.server_address[1]}/hook"
    server.shutdown()
    server.server_close()


@pytest.fixture
def clock():
    return lambda: datetime(2024, 1, 15, 9, 5)


def make_orchestrator(dispatcher, clock, relay_url=None, metrics=None):
    return ExportOrchestrator(
        ExportConfig(app_version="2.0.0", relay_url=relay_url),
        dispatcher=dispatcher,
        metrics=metrics,
        clock=clock,
    )


class TestDirectSuccess:
    def test_webhook_success(self, clock, webhook_profile):
        dispatcher = FakeDispatcher(SUCCESS)
        orchestrator = make_orchestrator(dispatcher, clock)
        outcome = orchestrator.run(webhook_profile, "Hello")

        assert outcome.success
        assert outcome.reason == "Exported to Team inbox"
        assert outcome.profile_id == "hook-1"
        assert outcome.target_kind == "webhook"
        assert len(outcome.attempts) == 1
        assert not outcome.relay_attempted
        assert orchestrator.state == ExportState.SETTLED
        assert "clips" not in dispatcher.calls[0]["payload"]

    def test_gitlab_path_resolved_from_clock(self, clock, gitlab_direct_profile, sample_clips):
        dispatcher = FakeDispatcher(SUCCESS)
        outcome = make_orchestrator(dispatcher, clock).run(
            gitlab_direct_profile, "Hello", sample_clips
        )

        assert outcome.resolved_path == "inbox/2024/01/export.json"
        call = dispatcher.calls[0]
        assert call["path"] == "inbox/2024/01/export.json"
        assert len(call["payload"]["clips"]) == 2
        assert call["payload"]["meta"] == {"app_version": "2.0.0"}

    def test_injected_dispatcher_left_open(self, clock, webhook_profile):
        dispatcher = FakeDispatcher(SUCCESS)
        make_orchestrator(dispatcher, clock).run(webhook_profile, "Hello")
        assert not dispatcher.closed


class TestValidationFailures:
    def test_invalid_profile_never_dispatches(self, clock, webhook_profile):
        webhook_profile["url"] = ""
        dispatcher = FakeDispatcher()
        outcome = make_orchestrator(dispatcher, clock).run(webhook_profile, "Hello")

        assert not outcome.success
        assert outcome.error_code == "validation"
        assert outcome.validation["missing_fields"] == ["url"]
        assert outcome.profile_id == "hook-1"
        assert dispatcher.calls == []

    def test_full_session_without_clips(self, clock, gitlab_direct_profile):
        dispatcher = FakeDispatcher()
        events = []
        outcome = make_orchestrator(dispatcher, clock, metrics=events.append).run(
            gitlab_direct_profile, "Hello", None
        )

        assert outcome.error_code == "validation"
        assert outcome.target_kind == "gitlab_commit"
        assert events[0]["target_kind"] == "gitlab_commit"
        assert dispatcher.calls == []

    def test_invalid_profile_keeps_its_declared_kind(self, clock, webhook_profile):
        webhook_profile["url"] = ""
        outcome = make_orchestrator(FakeDispatcher(), clock).run(webhook_profile, "Hello")
        assert outcome.target_kind == "webhook"

    def test_legacy_without_relay(self, clock, legacy_profile):
        dispatcher = FakeDispatcher()
        outcome = make_orchestrator(dispatcher, clock).run(legacy_profile, "Hello")

        assert outcome.error_code == "validation"
        assert outcome.validation["missing_fields"] == ["exporter_relay_url"]
        assert dispatcher.calls == []


class TestFailureClassification:
    def test_gitlab_direct_500_never_relays(self, clock, gitlab_direct_profile, sample_clips):
        gitlab_direct_profile["webhookUrl"] = "https://relay.example.com/gitlab"
        dispatcher = FakeDispatcher(SERVER_ERROR)
        outcome = make_orchestrator(dispatcher, clock).run(
            gitlab_direct_profile, "Hello", sample_clips
        )

        assert not outcome.success
        assert outcome.error_code == "http"
        assert outcome.reason == "Target rejected request: 500 Internal Server Error"
        assert not outcome.relay_attempted
        assert len(dispatcher.calls) == 1

    def test_webhook_opaque_failure_without_relay(self, clock, webhook_profile):
        dispatcher = FakeDispatcher(OPAQUE)
        outcome = make_orchestrator(dispatcher, clock).run(webhook_profile, "Hello")

        assert not outcome.success
        assert outcome.error_code == "cors_blocked"
        assert outcome.reason == f"{CORS_REASON}; no relay configured"
        assert not outcome.relay_attempted
        assert len(dispatcher.calls) == 1

    def test_unclassified_network_error(self, clock, webhook_profile):
        dispatcher = FakeDispatcher(REFUSED)
        outcome = make_orchestrator(dispatcher, clock).run(webhook_profile, "Hello")

        assert outcome.error_code == "network"
        assert outcome.reason == "Cannot reach target: Connection refused"
        assert len(dispatcher.calls) == 1

    def test_relay_primary_opaque_failure_is_not_cors(self, clock, gitlab_webhook_profile):
        dispatcher = FakeDispatcher(OPAQUE)
        outcome = make_orchestrator(dispatcher, clock).run(gitlab_webhook_profile, "Hello")

        assert not outcome.success
        assert outcome.error_code == "network"
        assert outcome.reason.startswith("Cannot reach target: ")
        assert not outcome.relay_attempted
        assert len(dispatcher.calls) == 1

    def test_legacy_failed_to_fetch_is_not_cors(self, clock, legacy_profile):
        dispatcher = FakeDispatcher(FAILED_TO_FETCH)
        outcome = make_orchestrator(
            dispatcher, clock, relay_url="https://exporter.example.com"
        ).run(legacy_profile, "Hello")

        assert outcome.error_code == "network"
        assert not outcome.relay_attempted
        assert len(dispatcher.calls) == 1


class TestRelayFallback:
    @pytest.fixture
    def profile(self, gitlab_direct_profile):
        return {
            **gitlab_direct_profile,
            "payloadMode": "transcript_only",
            "webhookUrl": "https://relay.example.com/gitlab",
        }

    def test_cors_blocked_retried_via_relay(self, clock, profile):
        dispatcher = FakeDispatcher(FAILED_TO_FETCH, SUCCESS)
        outcome = make_orchestrator(dispatcher, clock).run(profile, "Hello")

        assert outcome.success
        assert outcome.relay_attempted
        assert outcome.reason == f"{CORS_REASON}, retried via relay: exported to Notes repo"
        assert [call["via_relay"] for call in dispatcher.calls] == [False, True]
        assert dispatcher.calls[0]["payload"] is dispatcher.calls[1]["payload"]

    def test_relay_failure_settles_without_second_fallback(self, clock, profile):
        dispatcher = FakeDispatcher(OPAQUE, OPAQUE)
        outcome = make_orchestrator(dispatcher, clock).run(profile, "Hello")

        assert not outcome.success
        assert outcome.error_code == "network"
        assert outcome.reason.startswith(f"{CORS_REASON}, retried via relay: ")
        assert len(dispatcher.calls) == 2

    def test_relay_http_error(self, clock, profile):
        dispatcher = FakeDispatcher(OPAQUE, SERVER_ERROR)
        outcome = make_orchestrator(dispatcher, clock).run(profile, "Hello")

        assert outcome.error_code == "http"
        assert outcome.reason.endswith("Target rejected request: 500 Internal Server Error")


class TestCancellation:
    def test_cancel_before_run(self, clock, webhook_profile):
        dispatcher = FakeDispatcher(SUCCESS)
        orchestrator = make_orchestrator(dispatcher, clock)
        orchestrator.cancel()
        outcome = orchestrator.run(webhook_profile, "Hello")

        assert outcome.error_code == "cancelled"
        assert outcome.reason == "Export cancelled"
        assert dispatcher.calls == []
        assert dispatcher.closed

    def test_cancel_during_failed_attempt_skips_relay(self, clock, gitlab_direct_profile):
        profile = {
            **gitlab_direct_profile,
            "payloadMode": "transcript_only",
            "webhookUrl": "https://relay.example.com/gitlab",
        }
        dispatcher = FakeDispatcher(OPAQUE, SUCCESS)
        orchestrator = make_orchestrator(dispatcher, clock)
        dispatcher.on_send = orchestrator.cancel
        outcome = orchestrator.run(profile, "Hello")

        assert outcome.error_code == "cancelled"
        assert len(dispatcher.calls) == 1

    def test_success_after_cancel_is_discarded(self, clock, webhook_profile):
        dispatcher = FakeDispatcher(SUCCESS)
        orchestrator = make_orchestrator(dispatcher, clock)
        dispatcher.on_send = orchestrator.cancel
        outcome = orchestrator.run(webhook_profile, "Hello")

        assert not outcome.success
        assert outcome.error_code == "cancelled"
        assert outcome.attempts == []

    def test_cancel_interrupts_slow_target(self, slow_server, webhook_profile):
        webhook_profile["url"] = slow_server
        events = []
        orchestrator = ExportOrchestrator(
            ExportConfig(timeout_seconds=10), metrics=events.append
        )
        timer = threading.Timer(0.3, orchestrator.cancel)

        started = time.monotonic()
        timer.start()
        outcome = orchestrator.run(webhook_profile, "Hello")
        elapsed = time.monotonic() - started

        assert elapsed < 2
        assert not outcome.success
        assert outcome.error_code == "cancelled"
        assert outcome.reason == "Export cancelled"
        assert events[0]["status"] == "failure"


class TestMetrics:
    def test_success_recorded(self, clock, webhook_profile):
        events = []
        make_orchestrator(FakeDispatcher(SUCCESS), clock, metrics=events.append).run(
            webhook_profile, "Hello"
        )
        assert events == [
            {"event_type": "export_attempt", "status": "success", "target_kind": "webhook"}
        ]

    def test_failure_recorded(self, clock, webhook_profile):
        events = []
        make_orchestrator(FakeDispatcher(SERVER_ERROR), clock, metrics=events.append).run(
            webhook_profile, "Hello"
        )
        assert events[0]["status"] == "failure"

    def test_recorder_errors_do_not_change_outcome(self, clock, webhook_profile):
        def broken(event):
            raise RuntimeError("metrics down")

        outcome = make_orchestrator(FakeDispatcher(SUCCESS), clock, metrics=broken).run(
            webhook_profile, "Hello"
        )
        assert outcome.success


def test_orchestrator_is_single_use(clock, webhook_profile):
    orchestrator = make_orchestrator(FakeDispatcher(SUCCESS, SUCCESS), clock)
    orchestrator.run(webhook_profile, "Hello")
    with pytest.raises(RuntimeError):
        orchestrator.run(webhook_profile, "Hello")
