"""
Network transport for export profiles.

Each ``send`` performs exactly one logical attempt and never retries; the
orchestrator owns retry and fallback policy.
"""

from __future__ import annotations

import json
import time
from typing import Any
from urllib.parse import quote

import requests
import structlog

from yap.export.errors import ValidationError
from yap.export.models import (
    LEGACY_KINDS,
    DispatchResult,
    DispatchStatus,
    ExportProfile,
    FileFormat,
    GitLabCommitProfile,
    LegacyProfile,
    WebhookProfile,
)

logger = structlog.get_logger(__name__)

SNIPPET_LENGTH = 200
DEFAULT_HEADERS = {"Content-Type": "application/json"}


def render_file_content(payload: dict[str, Any], file_format: FileFormat | str) -> str:
    """File body for a GitLab commit: pretty JSON, or the bare transcript for text."""
    if FileFormat(file_format) == FileFormat.TEXT:
        return payload["transcript"]
    return json.dumps(payload, indent=2, ensure_ascii=False)


def gitlab_file_url(gitlab_url: str, project_id: str, file_path: str) -> str:
    """Repository Files API address; project id and path are fully URL-encoded."""
    return (
        f"{gitlab_url.rstrip('/')}/api/v4/projects/{quote(project_id, safe='')}"
        f"/repository/files/{quote(file_path, safe='')}"
    )


class TransportDispatcher:
    """Performs export network calls through a shared requests session."""

    def __init__(
        self,
        session: requests.Session | None = None,
        *,
        relay_url: str | None = None,
        timeout: float = 15.0,
    ):
        """
        Args:
            session: HTTP session; a new one is created when omitted
            relay_url: Base URL of the legacy exporter relay
            timeout: Attempt-level timeout in seconds
        """
        self.session = session or requests.Session()
        self.relay_url = relay_url
        self.timeout = timeout

    def send(
        self,
        payload: dict[str, Any],
        resolved_path: str | None,
        profile: ExportProfile,
        *,
        via_relay: bool = False,
    ) -> DispatchResult:
        """Deliver ``payload`` to the profile's target.

        Args:
            payload: Export body from build_payload
            resolved_path: Expanded file path for profiles that write files
            profile: Validated export profile
            via_relay: Use the profile's relay instead of its direct target

        Returns:
            DispatchResult for the single attempt made
        """
        if isinstance(profile, WebhookProfile):
            if via_relay:
                raise ValueError("Webhook profiles have no relay")
            result = self._send_webhook(payload, profile)
        elif isinstance(profile, GitLabCommitProfile):
            if via_relay or not profile.is_direct:
                result = self._send_gitlab_relay(payload, resolved_path, profile)
            else:
                result = self._send_gitlab_direct(payload, resolved_path, profile)
        elif isinstance(profile, LegacyProfile) and profile.target_kind in LEGACY_KINDS:
            result = self._send_legacy(payload, profile)
        else:
            raise TypeError(f"Unsupported profile type: {type(profile).__name__}")

        logger.info(
            "Export attempt finished",
            profile_id=profile.id,
            kind=profile.kind,
            status=result.status.value,
            status_code=result.status_code,
            via_relay=result.via_relay,
        )
        return result

    def close(self) -> None:
        self.session.close()

    def _send_webhook(self, payload: dict[str, Any], profile: WebhookProfile) -> DispatchResult:
        headers = {**DEFAULT_HEADERS, **profile.parsed_headers()}
        return self._request(profile.method, profile.url, json=payload, headers=headers)

    def _send_gitlab_direct(
        self,
        payload: dict[str, Any],
        resolved_path: str | None,
        profile: GitLabCommitProfile,
    ) -> DispatchResult:
        file_path = resolved_path or profile.file_path
        url = gitlab_file_url(profile.gitlab_url, profile.project_id, file_path)
        body = {
            "branch": profile.branch,
            "content": render_file_content(payload, profile.file_format),
            "commit_message": f"YAP export: {file_path}",
        }
        headers = {**DEFAULT_HEADERS, "Authorization": f"Bearer {profile.token}"}

        started = time.monotonic()
        result = self._request("POST", url, json=body, headers=headers)
        # Re-exporting to the same path overwrites the file instead of failing.
        if (
            result.status == DispatchStatus.HTTP_ERROR
            and result.status_code == 400
            and "already exists" in (result.body_snippet or "")
        ):
            # Create and update share one attempt-level timeout.
            remaining = self.timeout - (time.monotonic() - started)
            if remaining <= 0:
                return DispatchResult(
                    status=DispatchStatus.NETWORK_ERROR,
                    message=f"Request timed out after {self.timeout:g}s: no time left to update {file_path}",
                )
            logger.debug("GitLab file exists, updating", file_path=file_path, remaining=remaining)
            result = self._request("PUT", url, timeout=remaining, json=body, headers=headers)
        return result

    def _send_gitlab_relay(
        self,
        payload: dict[str, Any],
        resolved_path: str | None,
        profile: GitLabCommitProfile,
    ) -> DispatchResult:
        if not profile.webhook_url:
            raise ValidationError(profile.kind, ["webhookUrl"], "No relay configured for this profile")
        body = {
            "projectId": profile.project_id,
            "branch": profile.branch,
            "filePath": resolved_path or profile.file_path,
            "fileFormat": profile.file_format,
            "payload": payload,
        }
        result = self._request("POST", profile.webhook_url, json=body, headers=DEFAULT_HEADERS)
        return result.model_copy(update={"via_relay": True})

    def _send_legacy(self, payload: dict[str, Any], profile: LegacyProfile) -> DispatchResult:
        if not self.relay_url:
            raise ValidationError(
                profile.kind, ["exporter_relay_url"], "Legacy exporter relay is not configured"
            )
        url = f"{self.relay_url.rstrip('/')}/export/{profile.kind}"
        body = {**profile.to_record(), "payload": payload}
        result = self._request("POST", url, json=body, headers=DEFAULT_HEADERS)
        return result.model_copy(update={"via_relay": True})

    def _request(
        self, method: str, url: str, *, timeout: float | None = None, **kwargs
    ) -> DispatchResult:
        timeout = self.timeout if timeout is None else timeout
        try:
            response = self.session.request(method, url, timeout=timeout, **kwargs)
        except requests.exceptions.Timeout as err:
            logger.warning("Export request timed out", url=url, timeout=timeout)
            return DispatchResult(
                status=DispatchStatus.NETWORK_ERROR,
                message=f"Request timed out after {timeout:g}s: {err}",
            )
        except requests.exceptions.RequestException as err:
            logger.warning("Export request failed", url=url, error=str(err))
            return DispatchResult(status=DispatchStatus.NETWORK_ERROR, message=str(err))

        return self._classify(response)

    @staticmethod
    def _classify(response: requests.Response) -> DispatchResult:
        code = response.status_code
        snippet = (response.text or "")[:SNIPPET_LENGTH] or None

        # Opaque response: the runtime withheld the real outcome.
        if code == 0:
            return DispatchResult(
                status=DispatchStatus.NETWORK_ERROR,
                status_code=0,
                message=response.reason or None,
            )
        if 200 <= code < 300:
            return DispatchResult(
                status=DispatchStatus.SUCCESS, status_code=code, body_snippet=snippet
            )
        return DispatchResult(
            status=DispatchStatus.HTTP_ERROR,
            status_code=code,
            message=response.reason or None,
            body_snippet=snippet,
        )
