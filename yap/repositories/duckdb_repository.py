"""
Shared DuckDB access for the profile and metrics stores.

Each query opens a short-lived connection in the default executor; a single
lock per repository serializes access to the database file.
"""

import asyncio
from collections.abc import Callable
from pathlib import Path
from typing import Any, TypeVar

import duckdb
import structlog

logger = structlog.get_logger(__name__)

T = TypeVar("T")


class DuckDBRepository:
    """Base class for stores backed by one DuckDB file.

    Subclasses list their DDL in ``schema``; it runs once, on first use.
    """

    schema: tuple[str, ...] = ()

    def __init__(self, db_path: str | Path):
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._db_lock = asyncio.Lock()
        self._initialized = False

    async def _init_db(self) -> None:
        if self._initialized:
            return
        for statement in self.schema:
            await self._execute(statement)
        self._initialized = True
        logger.debug("DuckDB schema ready", db_path=str(self.db_path))

    async def _with_connection(self, work: Callable[[duckdb.DuckDBPyConnection], T]) -> T:
        def _run() -> T:
            with duckdb.connect(str(self.db_path)) as conn:
                return work(conn)

        async with self._db_lock:
            return await asyncio.get_running_loop().run_in_executor(None, _run)

    async def _execute(self, query: str, params: tuple = ()) -> None:
        await self._with_connection(lambda conn: conn.execute(query, params))

    async def _fetch_one(self, query: str, params: tuple = ()) -> tuple[Any, ...] | None:
        return await self._with_connection(lambda conn: conn.execute(query, params).fetchone())

    async def _fetch_all(self, query: str, params: tuple = ()) -> list[tuple[Any, ...]]:
        return await self._with_connection(lambda conn: conn.execute(query, params).fetchall())
