"""Export dispatch: payloads, profiles, transports and the CORS relay fallback."""

from yap.export.cors import CORSFailureDetector, is_cors_blocked
from yap.export.errors import (
    ConflictError,
    ExportCancelled,
    ExportError,
    HTTPError,
    NetworkError,
    NotFoundError,
    ValidationError,
)
from yap.export.models import (
    ClipRef,
    DispatchResult,
    DispatchStatus,
    ExportOutcome,
    ExportProfile,
    PayloadMode,
    TargetKind,
)
from yap.export.orchestrator import ExportConfig, ExportOrchestrator, ExportState
from yap.export.paths import resolve_path
from yap.export.payload import build_payload
from yap.export.profiles import ProfileStore, validate_profile
from yap.export.transport import TransportDispatcher

__all__ = [
    "CORSFailureDetector",
    "ClipRef",
    "ConflictError",
    "DispatchResult",
    "DispatchStatus",
    "ExportCancelled",
    "ExportConfig",
    "ExportError",
    "ExportOrchestrator",
    "ExportOutcome",
    "ExportProfile",
    "ExportState",
    "HTTPError",
    "NetworkError",
    "NotFoundError",
    "PayloadMode",
    "ProfileStore",
    "TargetKind",
    "TransportDispatcher",
    "ValidationError",
    "build_payload",
    "is_cors_blocked",
    "resolve_path",
    "validate_profile",
]
