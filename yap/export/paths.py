"""Placeholder expansion for destination paths such as ``inbox/{year}/{timestamp}.json``."""

from datetime import datetime

PATH_TOKENS = ("{year}", "{month}", "{day}", "{timestamp}")


def _local(instant: datetime) -> datetime:
    # Naive instants are already local time.
    return instant.astimezone() if instant.tzinfo is not None else instant


def format_timestamp(instant: datetime) -> str:
    """Compact stamp used by ``{timestamp}``: YYYYMMDD-HHmm."""
    return _local(instant).strftime("%Y%m%d-%H%M")


def token_values(instant: datetime) -> dict[str, str]:
    local = _local(instant)
    return {
        "{year}": f"{local.year:04d}",
        "{month}": f"{local.month:02d}",
        "{day}": f"{local.day:02d}",
        "{timestamp}": format_timestamp(local),
    }


def resolve_path(template: str, instant: datetime) -> str:
    """Expand every known token in ``template``; unknown ``{...}`` tokens are kept verbatim."""
    resolved = template
    for token, value in token_values(instant).items():
        resolved = resolved.replace(token, value)
    return resolved
