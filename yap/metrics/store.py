"""
Local usage metrics: event log plus aggregate summaries.

Events are appended to DuckDB. Transcript text is only kept when the user
opted in, and retention prunes by age and by total count after each write.
"""

from __future__ import annotations

from datetime import datetime, timedelta
import json
from pathlib import Path
from typing import Any, Literal
import uuid

import anyio.from_thread
from pydantic import BaseModel, Field
import structlog

from yap.repositories.duckdb_repository import DuckDBRepository

logger = structlog.get_logger(__name__)

SummaryRange = Literal["today", "7d", "30d", "all"]

EVENT_COLUMNS = (
    "id, event_type, created_at, duration_seconds, input_chars, "
    "output_chars, status, text, metadata"
)


class MetricsDisabledError(RuntimeError):
    """Raised when an operation needs metrics collection and it is off."""


class MetricsConfig(BaseModel):
    enabled: bool = True
    store_text: bool = False
    retention_days: int = Field(30, gt=0)
    max_events: int = Field(5000, gt=0)


class MetricEventIn(BaseModel):
    """Event as reported by a client."""

    event_type: str = Field(..., min_length=1)
    duration_seconds: float = Field(0.0, ge=0.0)
    input_chars: int = Field(0, ge=0)
    output_chars: int = Field(0, ge=0)
    status: str = "success"
    text: str | None = None
    metadata: dict[str, Any] | None = None


class MetricEvent(MetricEventIn):
    id: str
    created_at: datetime


def range_start(range_: SummaryRange, now: datetime | None = None) -> datetime | None:
    now = now or datetime.now()
    if range_ == "today":
        return now.replace(hour=0, minute=0, second=0, microsecond=0)
    if range_ == "7d":
        return now - timedelta(days=7)
    if range_ == "30d":
        return now - timedelta(days=30)
    return None


class MetricsStore(DuckDBRepository):
    """DuckDB-backed metrics event store."""

    schema = (
        """
        CREATE TABLE IF NOT EXISTS metric_events (
            id VARCHAR PRIMARY KEY,
            event_type VARCHAR NOT NULL,
            created_at TIMESTAMP NOT NULL,
            duration_seconds DOUBLE DEFAULT 0.0,
            input_chars INTEGER DEFAULT 0,
            output_chars INTEGER DEFAULT 0,
            status VARCHAR DEFAULT 'success',
            text VARCHAR,
            metadata JSON
        )
        """,
        "CREATE INDEX IF NOT EXISTS idx_metric_events_created_at ON metric_events(created_at)",
        "CREATE INDEX IF NOT EXISTS idx_metric_events_type ON metric_events(event_type)",
    )

    def __init__(self, db_path: str | Path = "data/metrics.duckdb", config: MetricsConfig | None = None):
        super().__init__(db_path)
        self.config = config or MetricsConfig()
        logger.info(
            "Metrics store initialized",
            db_path=str(self.db_path),
            enabled=self.config.enabled,
        )

    def configure(self, config: MetricsConfig) -> None:
        self.config = config
        logger.info("Metrics configuration updated", **config.model_dump())

    def _require_enabled(self) -> None:
        if not self.config.enabled:
            raise MetricsDisabledError("Metrics collection is disabled")

    async def record(self, event: MetricEventIn) -> MetricEvent:
        """Append an event and apply retention.

        Raises:
            MetricsDisabledError: Collection is turned off
        """
        self._require_enabled()
        await self._init_db()

        stored = MetricEvent(
            **event.model_dump(),
            id=str(uuid.uuid4()),
            created_at=datetime.now(),
        )
        if not self.config.store_text:
            stored.text = None

        await self._execute(
            f"INSERT INTO metric_events ({EVENT_COLUMNS}) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)",
            (
                stored.id,
                stored.event_type,
                stored.created_at,
                stored.duration_seconds,
                stored.input_chars,
                stored.output_chars,
                stored.status,
                stored.text,
                json.dumps(stored.metadata) if stored.metadata is not None else None,
            ),
        )
        logger.debug("Metric event recorded", event_type=stored.event_type, id=stored.id)

        await self.prune()
        return stored

    async def prune(self) -> int:
        """Drop events past the retention window or beyond max_events."""
        await self._init_db()
        before = await self._count()

        cutoff = datetime.now() - timedelta(days=self.config.retention_days)
        await self._execute("DELETE FROM metric_events WHERE created_at < ?", (cutoff,))
        await self._execute(
            f"""
            DELETE FROM metric_events WHERE id NOT IN (
                SELECT id FROM metric_events ORDER BY created_at DESC LIMIT {int(self.config.max_events)}
            )
            """
        )

        removed = before - await self._count()
        if removed:
            logger.info("Metric events pruned", removed=removed)
        return removed

    async def summary(self, range_: SummaryRange = "7d") -> dict[str, Any]:
        """Aggregate counters over the requested range."""
        self._require_enabled()
        await self._init_db()

        start = range_start(range_)
        where, params = ("WHERE created_at >= ?", (start,)) if start else ("", ())
        row = await self._fetch_one(
            f"""
            SELECT
                COUNT(*),
                COUNT(*) FILTER (WHERE event_type LIKE 'asr%'),
                COUNT(*) FILTER (WHERE event_type LIKE 'tts%'),
                COUNT(*) FILTER (WHERE event_type LIKE 'export%'),
                COUNT(*) FILTER (WHERE event_type LIKE 'export%' AND status <> 'success'),
                COALESCE(SUM(duration_seconds) FILTER (WHERE event_type LIKE 'asr%'), 0),
                COALESCE(SUM(duration_seconds) FILTER (WHERE event_type LIKE 'tts%'), 0),
                COALESCE(SUM(input_chars), 0),
                COALESCE(SUM(output_chars), 0)
            FROM metric_events {where}
            """,
            params,
        )
        return {
            "range": range_,
            "since": start.isoformat() if start else None,
            "total_events": row[0],
            "asr_events": row[1],
            "tts_events": row[2],
            "export_events": row[3],
            "export_failures": row[4],
            "asr_seconds_recorded": float(row[5]),
            "tts_seconds_generated": float(row[6]),
            "total_input_chars": int(row[7]),
            "total_output_chars": int(row[8]),
        }

    async def history(
        self, limit: int = 50, offset: int = 0, event_type: str | None = None
    ) -> tuple[list[MetricEvent], int]:
        """Newest-first page of events and the total matching count."""
        self._require_enabled()
        await self._init_db()

        where, params = ("WHERE event_type = ?", (event_type,)) if event_type else ("", ())
        total_row = await self._fetch_one(
            f"SELECT COUNT(*) FROM metric_events {where}", params
        )
        rows = await self._fetch_all(
            f"""
            SELECT {EVENT_COLUMNS} FROM metric_events {where}
            ORDER BY created_at DESC LIMIT {int(limit)} OFFSET {int(offset)}
            """,
            params,
        )
        return [self._row_to_event(row) for row in rows], total_row[0]

    async def export_all(self) -> dict[str, Any]:
        self._require_enabled()
        await self._init_db()

        rows = await self._fetch_all(
            f"SELECT {EVENT_COLUMNS} FROM metric_events ORDER BY created_at"
        )
        events = [self._row_to_event(row).model_dump(mode="json") for row in rows]
        return {
            "exported_at": datetime.now().isoformat(),
            "total_events": len(events),
            "events": events,
        }

    async def clear(self, clear_text_only: bool = False) -> int:
        """Delete events, or only blank their stored text. Returns rows affected."""
        self._require_enabled()
        await self._init_db()

        if clear_text_only:
            row = await self._fetch_one(
                "SELECT COUNT(*) FROM metric_events WHERE text IS NOT NULL"
            )
            await self._execute("UPDATE metric_events SET text = NULL WHERE text IS NOT NULL")
            logger.info("Metric event text cleared", events=row[0])
        else:
            row = await self._fetch_one("SELECT COUNT(*) FROM metric_events")
            await self._execute("DELETE FROM metric_events")
            logger.info("Metric history cleared", events=row[0])
        return row[0]

    async def _count(self) -> int:
        row = await self._fetch_one("SELECT COUNT(*) FROM metric_events")
        return row[0]

    @staticmethod
    def _row_to_event(row: tuple) -> MetricEvent:
        metadata = row[8]
        if isinstance(metadata, str):
            metadata = json.loads(metadata)
        return MetricEvent(
            id=row[0],
            event_type=row[1],
            created_at=row[2],
            duration_seconds=row[3] or 0.0,
            input_chars=row[4] or 0,
            output_chars=row[5] or 0,
            status=row[6] or "success",
            text=row[7],
            metadata=metadata,
        )


def threadsafe_recorder(store: MetricsStore):
    """Adapt the async store into a recorder callable from a worker thread.

    The returned callable must run in a thread started by anyio (for example
    FastAPI's threadpool).
    """

    def record(event: dict[str, Any]) -> MetricEvent:
        metric = MetricEventIn(
            event_type=event["event_type"],
            status=event.get("status", "success"),
            metadata={
                key: value
                for key, value in event.items()
                if key not in ("event_type", "status")
            },
        )
        return anyio.from_thread.run(store.record, metric)

    return record


# Global store instance (initialized once at startup)
_metrics_store: MetricsStore | None = None


def get_metrics_store() -> MetricsStore:
    if _metrics_store is None:
        raise RuntimeError(
            "Metrics store not initialized. Call initialize_metrics_store() first."
        )
    return _metrics_store


def initialize_metrics_store(
    db_path: str | Path, config: MetricsConfig | None = None
) -> MetricsStore:
    global _metrics_store
    _metrics_store = MetricsStore(db_path, config)
    return _metrics_store


def reset_metrics_store() -> None:
    """Reset the global store (for testing)."""
    global _metrics_store
    _metrics_store = None
