"""Export profile, payload and dispatch result models."""

from __future__ import annotations

from datetime import datetime
from enum import Enum
import json
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, field_validator

from yap.export.errors import ExportError, HTTPError, NetworkError


class TargetKind(str, Enum):
    """Closed set of export destinations."""

    WEBHOOK = "webhook"
    GITLAB_COMMIT = "gitlab_commit"
    GITLAB = "gitlab"
    GITHUB = "github"
    SFTP = "sftp"


LEGACY_KINDS = frozenset({TargetKind.GITLAB, TargetKind.GITHUB, TargetKind.SFTP})

# Credential fields never echoed back to clients.
SECRET_FIELDS = ("token", "password", "privateKey")
SECRET_MASK = "********"


class PayloadMode(str, Enum):
    TRANSCRIPT_ONLY = "transcript_only"
    FULL_SESSION = "full_session"


class GitLabMode(str, Enum):
    DIRECT = "direct"
    WEBHOOK = "webhook"


class FileFormat(str, Enum):
    JSON = "json"
    TEXT = "text"


class _ProfileBase(BaseModel):
    """Fields shared by every profile kind."""

    model_config = ConfigDict(populate_by_name=True, use_enum_values=True)

    id: str = Field(..., min_length=1)
    name: str = Field(..., min_length=1)
    payload_mode: PayloadMode = Field(PayloadMode.TRANSCRIPT_ONLY, alias="payloadMode")

    @property
    def target_kind(self) -> TargetKind:
        return TargetKind(self.kind)

    @property
    def file_path(self) -> str | None:
        return None

    def to_record(self) -> dict[str, Any]:
        """Wire representation (camelCase keys, unset optionals dropped)."""
        return self.model_dump(by_alias=True, mode="json", exclude_none=True)

    def to_public_record(self) -> dict[str, Any]:
        """Wire representation with credentials masked."""
        record = self.to_record()
        for key in SECRET_FIELDS:
            if record.get(key):
                record[key] = SECRET_MASK
        return record


class WebhookProfile(_ProfileBase):
    kind: Literal["webhook"] = "webhook"
    url: str
    method: Literal["POST", "PUT"] = "POST"
    headers: str | None = None

    def parsed_headers(self) -> dict[str, str]:
        if not self.headers or not self.headers.strip():
            return {}
        return {str(key): str(value) for key, value in json.loads(self.headers).items()}


class GitLabCommitProfile(_ProfileBase):
    kind: Literal["gitlab_commit"] = "gitlab_commit"
    mode: GitLabMode
    project_id: str = Field(..., alias="projectId")
    branch: str
    file_path_template: str = Field(..., alias="filePath")
    file_format: FileFormat = Field(FileFormat.JSON, alias="fileFormat")
    gitlab_url: str | None = Field(None, alias="gitlabUrl")
    token: str | None = None
    # Relay endpoint: the primary target in webhook mode, the CORS fallback in direct mode.
    webhook_url: str | None = Field(None, alias="webhookUrl")

    @field_validator("project_id", mode="before")
    @classmethod
    def numeric_project_id(cls, v: Any) -> Any:
        # GitLab accepts either the numeric id or the url-encoded path.
        if isinstance(v, int) and not isinstance(v, bool):
            return str(v)
        return v

    @property
    def file_path(self) -> str:
        return self.file_path_template

    @property
    def is_direct(self) -> bool:
        return self.mode == GitLabMode.DIRECT.value


class LegacyProfile(_ProfileBase):
    """gitlab/github/sftp exporter config; everything past id/name/kind is opaque."""

    model_config = ConfigDict(populate_by_name=True, use_enum_values=True, extra="allow")

    kind: Literal["gitlab", "github", "sftp"]

    def opaque_config(self) -> dict[str, Any]:
        return dict(self.model_extra or {})


ExportProfile = Annotated[
    Union[WebhookProfile, GitLabCommitProfile, LegacyProfile],
    Field(discriminator="kind"),
]

profile_adapter: TypeAdapter[ExportProfile] = TypeAdapter(ExportProfile)


class ClipRef(BaseModel):
    """A captured audio clip and its transcription."""

    id: str
    text: str = ""
    duration_ms: int = Field(0, ge=0)
    created_at: datetime | None = None


class DispatchStatus(str, Enum):
    SUCCESS = "success"
    HTTP_ERROR = "http_error"
    NETWORK_ERROR = "network_error"


class DispatchResult(BaseModel):
    """Outcome of exactly one network attempt."""

    status: DispatchStatus
    status_code: int | None = None
    message: str | None = None
    body_snippet: str | None = None
    via_relay: bool = False

    @property
    def ok(self) -> bool:
        return self.status == DispatchStatus.SUCCESS

    def to_error(self) -> ExportError | None:
        if self.status == DispatchStatus.HTTP_ERROR:
            return HTTPError(self.status_code or 0, self.message, self.body_snippet)
        if self.status == DispatchStatus.NETWORK_ERROR:
            return NetworkError(self.message, self.status_code)
        return None


class ExportOutcome(BaseModel):
    """Settled result of one export action."""

    export_id: str | None = None
    success: bool
    profile_id: str | None = None
    target_kind: str | None = None
    resolved_path: str | None = None
    attempts: list[DispatchResult] = Field(default_factory=list)
    relay_attempted: bool = False
    reason: str
    error_code: str | None = None
    validation: dict[str, Any] | None = None
