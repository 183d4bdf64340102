"""Async access to the corpus store (Postgres + pgvector).

Thin wrapper over a SQLAlchemy async engine (psycopg driver). Every failure
leaving this module is an ``EmbedLabError``: unique violations (SQLSTATE
23505) become ``ConflictError``, everything else ``BackingStoreError``.
"""

from __future__ import annotations

from collections.abc import AsyncGenerator, Mapping
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING, Any

import structlog
from sqlalchemy import text
from sqlalchemy.engine import make_url
from sqlalchemy.exc import DBAPIError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncConnection, AsyncEngine, create_async_engine

from embedlab.core.errors import BackingStoreError, ConflictError, EmbedLabError

if TYPE_CHECKING:
    from embedlab.config.models import DatabaseConfig

log = structlog.get_logger(__name__)

STORE_NAME = "Corpus database"
UNIQUE_VIOLATION = "23505"


def normalize_url(url: str) -> str:
    """Force the async psycopg driver on plain postgres URLs."""
    parsed = make_url(url.strip())
    if parsed.drivername in ("postgres", "postgresql", "postgresql+psycopg2"):
        parsed = parsed.set(drivername="postgresql+psycopg")
    return parsed.render_as_string(hide_password=False)


def sqlstate_of(error: BaseException) -> str | None:
    """SQLSTATE of a driver error, if the driver exposes one."""
    orig = getattr(error, "orig", error)
    for attr in ("sqlstate", "pgcode", "code"):
        value = getattr(orig, attr, None)
        if isinstance(value, str):
            return value
    return None


def translate_error(error: Exception, *, query: bool = True) -> EmbedLabError:
    if sqlstate_of(error) == UNIQUE_VIOLATION:
        return ConflictError.unique_violation(error)
    if query and isinstance(error, DBAPIError) and not error.connection_invalidated:
        return BackingStoreError.query_failed(STORE_NAME, error)
    return BackingStoreError.unavailable(STORE_NAME, error)


class Database:
    """Connection pool plus the last observed connectivity state."""

    def __init__(self, engine: AsyncEngine) -> None:
        self.engine = engine
        self._connected = False
        self._last_error: str | None = None

    @classmethod
    def from_config(cls, config: DatabaseConfig) -> Database | None:
        """Build the pool, or return None when no URL is configured."""
        if not config.url:
            return None
        engine = create_async_engine(
            normalize_url(config.url),
            pool_size=config.pool_size,
            pool_pre_ping=config.pool_pre_ping,
        )
        return cls(engine)

    @asynccontextmanager
    async def connect(self) -> AsyncGenerator[AsyncConnection, None]:
        """Transactional connection; commits on success, rolls back on error."""
        try:
            async with self.engine.begin() as conn:
                yield conn
        except EmbedLabError:
            raise
        except (SQLAlchemyError, OSError) as e:
            self._record_failure(e)
            raise translate_error(e) from e
        else:
            self._connected = True
            self._last_error = None

    def _record_failure(self, error: Exception) -> None:
        if sqlstate_of(error) == UNIQUE_VIOLATION:
            return
        self._connected = False
        self._last_error = str(error)
        log.warning("db.operation_failed", error=str(error))

    async def fetch_all(self, sql: str, params: Mapping[str, Any] | None = None) -> list[dict[str, Any]]:
        async with self.connect() as conn:
            result = await conn.execute(text(sql), dict(params or {}))
            return [dict(row) for row in result.mappings()]

    async def execute(self, sql: str, params: Mapping[str, Any] | None = None) -> None:
        async with self.connect() as conn:
            await conn.execute(text(sql), dict(params or {}))

    async def execute_script(self, sql: str) -> None:
        """Run raw statement text (may hold several statements, no parameters)."""
        async with self.connect() as conn:
            await conn.exec_driver_sql(sql)

    async def ping(self) -> bool:
        try:
            await self.fetch_all("SELECT 1")
        except EmbedLabError:
            return False
        return True

    def status(self) -> dict[str, Any]:
        return {
            "url_configured": True,
            "connected": self._connected,
            "last_error": self._last_error,
        }

    async def dispose(self) -> None:
        await self.engine.dispose()
