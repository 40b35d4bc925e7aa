"""Pydantic schemas for API v1 - Simple DTOs only."""

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

from yap.export.models import ClipRef
from yap.metrics.store import MetricEvent


class MetricsHealth(BaseModel):
    status: str = "ok"
    metrics_enabled: bool


# Exports


class ExportRequest(BaseModel):
    profile_id: str = Field(..., min_length=1)
    # Client-chosen handle so the export can be cancelled while it runs.
    export_id: str | None = Field(None, min_length=1)
    transcript: str
    clips: list[ClipRef] | None = None


# Metrics


class MetricsHistoryResponse(BaseModel):
    events: list[MetricEvent]
    total: int
    limit: int
    offset: int


class ClearResponse(BaseModel):
    success: bool
    message: str


# LLM assistant


class ChatMessage(BaseModel):
    role: Literal["system", "user", "assistant"]
    content: str


class ChatRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True, protected_namespaces=())

    message: str = Field(..., min_length=1)
    conversation_history: list[ChatMessage] = Field(
        default_factory=list, alias="conversationHistory"
    )
    model: str | None = None
    temperature: float | None = Field(None, ge=0.0, le=2.0)


class ChatResponse(BaseModel):
    model_config = ConfigDict(protected_namespaces=())

    response: str
    model: str
    timestamp: datetime


class ModelsResponse(BaseModel):
    models: list[str]
    default: str


class LLMHealth(BaseModel):
    status: str = "ok"
    provider: str = "ollama"
    ollama_url: str
    default_model: str


# Read-along


class ReadAlongRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    text: str
    mode: Literal["paragraph", "line"] | None = None
    max_chunks: int | None = Field(None, gt=0, alias="maxChunks")
    max_chars: int | None = Field(None, gt=0, alias="maxCharsPerChunk")


class ReadAlongResponse(BaseModel):
    chunks: list[str]
    valid: bool
    message: str

