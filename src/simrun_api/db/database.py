"""Database engine + session factory (SQLite via aiosqlite).

Standard behavior:
- One engine per application (created in the lifespan)
- One short transaction per store operation
- SQLite: WAL + busy_timeout so concurrent cascades queue instead of failing
"""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from sqlalchemy import event
from sqlalchemy.engine import URL, make_url
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import StaticPool

from simrun_api.settings import Settings

from .base import metadata

__all__ = [
    "DatabaseConfig",
    "Database",
    "build_async_url",
    "session_scope",
]


@dataclass(frozen=True, slots=True)
class DatabaseConfig:
    """Minimal DB config.

    SQLite:
      sqlite+aiosqlite:///./data/db/simrun.sqlite

    A plain ``sqlite://`` URL is upgraded to the aiosqlite driver at runtime.
    """

    url: str

    echo: bool = False

    pool_timeout: int = 30

    sqlite_journal_mode: str = "WAL"
    sqlite_synchronous: str = "NORMAL"
    sqlite_busy_timeout_ms: int = 30_000

    @classmethod
    def from_settings(cls, settings: Settings) -> DatabaseConfig:
        return cls(
            url=settings.database_url or "sqlite+aiosqlite:///./data/db/simrun.sqlite",
            echo=bool(settings.database_echo),
        )


# ---- URL helpers ------------------------------------------------------------

def _supported_backend(url: URL) -> str:
    backend = url.get_backend_name()
    if backend != "sqlite":
        raise ValueError("Only SQLite is supported for the run store.")
    return backend


def _is_sqlite_memory(url: URL) -> bool:
    db = (url.database or "").strip()
    if not db or db == ":memory:":
        return True
    if db.startswith("file:") and (url.query or {}).get("mode") == "memory":
        return True
    return False


def _ensure_sqlite_parent_dir(url: URL) -> None:
    db = (url.database or "").strip()
    if not db or db == ":memory:" or db.startswith("file:"):
        return
    path = Path(db)
    if not path.is_absolute():
        path = (Path.cwd() / path).resolve()
    path.parent.mkdir(parents=True, exist_ok=True)


def build_async_url(cfg: DatabaseConfig) -> str:
    """Return the *async* SQLAlchemy URL string (for runtime)."""
    url = make_url(cfg.url)
    _supported_backend(url)
    return url.set(drivername="sqlite+aiosqlite").render_as_string(hide_password=False)


def _build_engine_kwargs(url: URL, cfg: DatabaseConfig) -> dict[str, Any]:
    kwargs: dict[str, Any] = {
        "echo": cfg.echo,
        "pool_pre_ping": True,
        "connect_args": {
            "check_same_thread": False,
            "timeout": cfg.sqlite_busy_timeout_ms / 1000.0,
        },
    }
    if _is_sqlite_memory(url):
        kwargs["poolclass"] = StaticPool
    else:
        kwargs["pool_timeout"] = max(1, cfg.pool_timeout)
    return kwargs


# ---- Database object --------------------------------------------------------

class Database:
    """Holds an engine + sessionmaker.

    Call `init(cfg)` once on startup, `await create_schema()` to make sure the
    tables exist, and `await dispose()` on shutdown.
    """

    def __init__(self) -> None:
        self._cfg: DatabaseConfig | None = None
        self._engine: AsyncEngine | None = None
        self._sessionmaker: async_sessionmaker[AsyncSession] | None = None

    @property
    def engine(self) -> AsyncEngine:
        if self._engine is None:
            raise RuntimeError("Database not initialized. Call init(...) at startup.")
        return self._engine

    @property
    def sessionmaker(self) -> async_sessionmaker[AsyncSession]:
        if self._sessionmaker is None:
            raise RuntimeError("Database not initialized. Call init(...) at startup.")
        return self._sessionmaker

    def init(self, cfg: DatabaseConfig) -> None:
        """Create engine + sessionmaker (idempotent for identical config)."""
        if self._cfg == cfg and self._engine is not None:
            return

        self._cfg = cfg
        async_url = build_async_url(cfg)
        url_obj = make_url(async_url)
        _ensure_sqlite_parent_dir(url_obj)

        engine = create_async_engine(async_url, **_build_engine_kwargs(url_obj, cfg))

        jm = cfg.sqlite_journal_mode
        sync = cfg.sqlite_synchronous
        busy_ms = int(cfg.sqlite_busy_timeout_ms)
        in_memory = _is_sqlite_memory(url_obj)

        @event.listens_for(engine.sync_engine, "connect")
        def _sqlite_on_connect(dbapi_conn, _):
            cur = dbapi_conn.cursor()
            try:
                cur.execute(f"PRAGMA busy_timeout={busy_ms}")
                if not in_memory:
                    cur.execute(f"PRAGMA journal_mode={jm}")
                cur.execute(f"PRAGMA synchronous={sync}")
            finally:
                cur.close()

        self._engine = engine
        self._sessionmaker = async_sessionmaker(
            bind=engine,
            expire_on_commit=False,
            autoflush=False,
        )

    async def create_schema(self) -> None:
        """Create missing tables. The store schema is additive only."""

        # Models register themselves on the shared metadata when imported.
        from simrun_api.features.store import models  # noqa: F401

        async with self.engine.begin() as conn:
            await conn.run_sync(metadata.create_all)

    async def dispose(self) -> None:
        """Dispose engine (call on shutdown)."""
        if self._engine is not None:
            await self._engine.dispose()
        self._engine = None
        self._sessionmaker = None
        self._cfg = None


async def close_session(session: AsyncSession) -> None:
    await asyncio.shield(session.close())


@asynccontextmanager
async def session_scope(
    session_factory: async_sessionmaker[AsyncSession],
) -> AsyncIterator[AsyncSession]:
    """Yield a session that commits on success and rolls back on error."""
    session = session_factory()
    try:
        yield session
        await session.commit()
    except Exception:
        await session.rollback()
        raise
    finally:
        await close_session(session)
