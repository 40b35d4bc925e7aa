"""Error taxonomy for export dispatch."""

from collections.abc import Iterable


class ExportError(Exception):
    """Base class for export failures."""

    code = "export_error"


class ValidationError(ExportError):
    """A profile or payload request has the wrong shape; raised before any network call."""

    code = "validation"

    def __init__(
        self,
        kind: str | None,
        missing_fields: Iterable[str] = (),
        message: str | None = None,
    ):
        self.kind = kind
        self.missing_fields = list(missing_fields)
        if message is None:
            label = kind or "export"
            if self.missing_fields:
                message = f"Invalid {label} profile: missing {', '.join(self.missing_fields)}"
            else:
                message = f"Invalid {label} profile"
        self.message = message
        super().__init__(message)

    def to_dict(self) -> dict:
        return {
            "code": self.code,
            "kind": self.kind,
            "missing_fields": self.missing_fields,
            "message": self.message,
        }


class ConflictError(ExportError):
    """A profile with the same unique field already exists."""

    code = "conflict"

    def __init__(self, field: str, value: str):
        self.field = field
        self.value = value
        super().__init__(f"Profile with {field} '{value}' already exists")


class NotFoundError(ExportError):
    code = "not_found"

    def __init__(self, profile_id: str):
        self.profile_id = profile_id
        super().__init__(f"Profile '{profile_id}' not found")


class HTTPError(ExportError):
    """The target answered with a non-2xx status."""

    code = "http"

    def __init__(self, status_code: int, reason: str | None = None, snippet: str | None = None):
        self.status_code = status_code
        self.reason = reason
        self.snippet = snippet
        detail = f"{status_code} {reason}".strip() if reason else str(status_code)
        super().__init__(f"Target rejected request: {detail}")


class NetworkError(ExportError):
    """Transport-level failure: connection refused, timeout or CORS-blocked."""

    code = "network"

    def __init__(self, message: str | None, status_code: int | None = None):
        self.status_code = status_code
        super().__init__(message or "Network request failed")


class ExportCancelled(ExportError):
    code = "cancelled"

    def __init__(self, message: str = "Export cancelled"):
        super().__init__(message)
