"""
Export orchestration: build, validate, dispatch, and fall back to a relay.

State machine per export action:

    Idle -> Building -> Dispatching(direct) -> [Dispatching(relay)] -> Settled

- Validation failures settle before any network call.
- HTTP errors from the target settle as failure; they are never retried.
- Network errors on a direct attempt are classified; a CORS-blocked attempt
  is retried once through the profile's relay when it has one.
"""

from __future__ import annotations

from collections.abc import Callable, Mapping, Sequence
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
import threading
from typing import Any

from pydantic import BaseModel
import structlog

from yap import __version__
from yap.export.cors import CORSFailureDetector
from yap.export.errors import ExportCancelled, ValidationError
from yap.export.models import (
    ClipRef,
    DispatchResult,
    DispatchStatus,
    ExportOutcome,
    ExportProfile,
    GitLabCommitProfile,
    WebhookProfile,
)
from yap.export.paths import resolve_path
from yap.export.payload import build_payload
from yap.export.profiles import is_legacy, validate_profile
from yap.export.transport import TransportDispatcher

logger = structlog.get_logger(__name__)

CORS_REASON = "Cannot reach target - blocked by browser security policy"

# How often a waiting export checks for cancellation.
CANCEL_POLL_SECONDS = 0.05

MetricsRecorder = Callable[[dict[str, Any]], Any]


@dataclass(frozen=True)
class ExportConfig:
    """Resolved configuration for one export action."""

    app_version: str = __version__
    relay_url: str | None = None
    timeout_seconds: float = 15.0


class ExportState(str, Enum):
    IDLE = "idle"
    BUILDING = "building"
    DISPATCHING_DIRECT = "dispatching_direct"
    DISPATCHING_RELAY = "dispatching_relay"
    SETTLED = "settled"


def relay_target(profile: ExportProfile) -> str | None:
    """Relay used when a direct attempt is CORS-blocked, if the profile has one."""
    if isinstance(profile, GitLabCommitProfile) and profile.is_direct:
        return profile.webhook_url
    return None


def is_direct_attempt(profile: ExportProfile) -> bool:
    """Whether the primary attempt goes straight to the external target."""
    if isinstance(profile, WebhookProfile):
        return True
    return isinstance(profile, GitLabCommitProfile) and profile.is_direct


class ExportOrchestrator:
    """Runs a single export action to a settled outcome.

    Instances are single-use: a new user action needs a new orchestrator.

    Example:
        >>> orchestrator = ExportOrchestrator(ExportConfig(relay_url="http://relay"))
        >>> outcome = orchestrator.run(profile, "Hello world", clips=[])
        >>> outcome.success
        True
    """

    def __init__(
        self,
        config: ExportConfig | None = None,
        *,
        dispatcher: TransportDispatcher | None = None,
        detector: CORSFailureDetector | None = None,
        metrics: MetricsRecorder | None = None,
        clock: Callable[[], datetime] | None = None,
    ):
        self.config = config or ExportConfig()
        self._owns_dispatcher = dispatcher is None
        self.dispatcher = dispatcher or TransportDispatcher(
            relay_url=self.config.relay_url, timeout=self.config.timeout_seconds
        )
        self.detector = detector or CORSFailureDetector()
        self.metrics = metrics
        self.clock = clock or (lambda: datetime.now().astimezone())
        self.state = ExportState.IDLE
        self._cancel_event = threading.Event()
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="export")

    def cancel(self) -> None:
        """Abort the export.

        A waiting ``run`` returns within ``CANCEL_POLL_SECONDS`` and settles as
        cancelled. An in-flight request is abandoned: it finishes or times out
        on the worker thread and its result is discarded.
        """
        self._cancel_event.set()
        logger.info("Export cancellation requested", state=self.state.value)
        # Drops pooled connections; the abandoned request keeps its own.
        self.dispatcher.close()

    @property
    def cancelled(self) -> bool:
        return self._cancel_event.is_set()

    def run(
        self,
        profile: ExportProfile | Mapping[str, Any] | BaseModel,
        transcript: str,
        clips: Sequence[ClipRef | dict[str, Any]] | None = None,
    ) -> ExportOutcome:
        """Export ``transcript`` (and ``clips``) to ``profile``'s target."""
        if self.state != ExportState.IDLE:
            raise RuntimeError("ExportOrchestrator instances are single-use")

        self.state = ExportState.BUILDING
        raw_id = getattr(profile, "id", None) or (
            profile.get("id") if isinstance(profile, Mapping) else None
        )

        validated = None
        try:
            validated = validate_profile(profile)
            if is_legacy(validated) and not self.config.relay_url:
                raise ValidationError(
                    validated.kind,
                    ["exporter_relay_url"],
                    "Legacy exporter relay is not configured",
                )
            instant = self.clock()
            payload = build_payload(
                transcript,
                clips,
                validated.payload_mode,
                now=instant,
                app_version=self.config.app_version,
            )
            template = validated.file_path
            resolved_path = resolve_path(template, instant) if template else None
        except ValidationError as err:
            return self._settle(
                ExportOutcome(
                    success=False,
                    profile_id=raw_id,
                    # Payload errors carry no kind; the profile already named one.
                    target_kind=validated.kind if validated is not None else err.kind,
                    reason=str(err),
                    error_code=err.code,
                    validation=err.to_dict(),
                )
            )

        outcome = ExportOutcome(
            success=False,
            profile_id=validated.id,
            target_kind=validated.kind,
            resolved_path=resolved_path,
            reason="",
        )

        if self.cancelled:
            return self._settle_cancelled(outcome)

        self.state = ExportState.DISPATCHING_DIRECT
        primary = self._attempt(payload, resolved_path, validated, outcome)
        if primary is None:
            return self._settle_cancelled(outcome)

        if primary.ok:
            return self._settle_success(outcome, f"Exported to {validated.name}")

        if primary.status == DispatchStatus.HTTP_ERROR:
            return self._settle_failure(outcome, str(primary.to_error()), "http")

        if not is_direct_attempt(validated) or not self.detector.is_blocked(primary):
            return self._settle_failure(
                outcome, f"Cannot reach target: {primary.to_error()}", "network"
            )

        if relay_target(validated) is None:
            return self._settle_failure(
                outcome, f"{CORS_REASON}; no relay configured", "cors_blocked"
            )

        logger.info(
            "Direct export blocked, retrying via relay",
            profile_id=validated.id,
            status_code=primary.status_code,
        )
        self.state = ExportState.DISPATCHING_RELAY
        outcome.relay_attempted = True
        relayed = self._attempt(payload, resolved_path, validated, outcome, via_relay=True)
        if relayed is None:
            return self._settle_cancelled(outcome)

        if relayed.ok:
            return self._settle_success(
                outcome, f"{CORS_REASON}, retried via relay: exported to {validated.name}"
            )
        # No second fallback, whatever the relay failure looks like.
        error_code = "http" if relayed.status == DispatchStatus.HTTP_ERROR else "network"
        return self._settle_failure(
            outcome,
            f"{CORS_REASON}, retried via relay: {relayed.to_error()}",
            error_code,
        )

    def _attempt(
        self,
        payload: dict[str, Any],
        resolved_path: str | None,
        profile: ExportProfile,
        outcome: ExportOutcome,
        *,
        via_relay: bool = False,
    ) -> DispatchResult | None:
        """One dispatch on the worker thread; None once the export is cancelled.

        A result that lands after cancellation is discarded, even a success.
        """
        if self.cancelled:
            return None
        future = self._executor.submit(
            self.dispatcher.send, payload, resolved_path, profile, via_relay=via_relay
        )
        while not future.done():
            if self._cancel_event.wait(CANCEL_POLL_SECONDS):
                logger.info(
                    "Export cancelled in flight", profile_id=profile.id, via_relay=via_relay
                )
                return None

        result = future.result()
        if self.cancelled:
            return None
        outcome.attempts.append(result)
        return result

    def _settle_success(self, outcome: ExportOutcome, reason: str) -> ExportOutcome:
        outcome.success = True
        outcome.reason = reason
        return self._settle(outcome)

    def _settle_failure(
        self, outcome: ExportOutcome, reason: str, error_code: str
    ) -> ExportOutcome:
        outcome.success = False
        outcome.reason = reason
        outcome.error_code = error_code
        return self._settle(outcome)

    def _settle_cancelled(self, outcome: ExportOutcome) -> ExportOutcome:
        cancelled = ExportCancelled()
        return self._settle_failure(outcome, str(cancelled), cancelled.code)

    def _settle(self, outcome: ExportOutcome) -> ExportOutcome:
        self.state = ExportState.SETTLED
        self._executor.shutdown(wait=False)
        if self._owns_dispatcher:
            self.dispatcher.close()

        log = logger.info if outcome.success else logger.warning
        log(
            "Export settled",
            profile_id=outcome.profile_id,
            kind=outcome.target_kind,
            success=outcome.success,
            error_code=outcome.error_code,
            relay_attempted=outcome.relay_attempted,
            reason=outcome.reason,
        )
        self._emit_metrics(outcome)
        return outcome

    def _emit_metrics(self, outcome: ExportOutcome) -> None:
        if self.metrics is None:
            return
        event = {
            "event_type": "export_attempt",
            "status": "success" if outcome.success else "failure",
            "target_kind": outcome.target_kind,
        }
        try:
            self.metrics(event)
        except Exception as err:
            # Recording is fire-and-forget; the export outcome stands.
            logger.warning("Failed to record export metrics", error=str(err))
