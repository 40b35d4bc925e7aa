"""
CORS failure classification.

Browsers hide cross-origin rejections behind opaque network errors. The only
observable symptoms are a status of 0 or a "Failed to fetch" message, so the
heuristic matches exactly those. It is known to be fragile; keep it behind
CORSFailureDetector so it can be replaced without touching orchestration.
"""

from yap.export.models import DispatchResult, DispatchStatus

CORS_ERROR_MARKER = "Failed to fetch"


def is_cors_blocked(response_status: int | None, error_message: str | None) -> bool:
    if response_status == 0:
        return True
    if error_message is not None and CORS_ERROR_MARKER in error_message:
        return True
    return False


class CORSFailureDetector:
    """Decides whether a failed direct attempt looks CORS-blocked."""

    def is_blocked(self, result: DispatchResult) -> bool:
        # Only transport-level failures can be CORS; a real HTTP status never is.
        if result.status != DispatchStatus.NETWORK_ERROR:
            return False
        return is_cors_blocked(result.status_code, result.message)
