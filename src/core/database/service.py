"""
Async engine and session lifecycle for the ranking core.

``DatabaseService`` is a class-level singleton: ``initialize()`` once at
startup, then every store and service opens work through

- ``get_transaction()``: commits on clean exit, rolls back and re-raises on
  any exception. All mutations go through it; service code never commits.
- ``get_session()``: reads only; nothing is committed.

PostgreSQL sessions get ``SET LOCAL statement_timeout``. SQLite connections
run with the driver's implicit transactions disabled and every transaction
opened as ``BEGIN IMMEDIATE``: the write lock is taken up front, so two
readers can never both upgrade to writers and deadlock. Writers queue for up
to DATABASE_SQLITE_BUSY_TIMEOUT seconds. A consequence is that sessions must
not be nested inside an open transaction on SQLite.

>>> async with DatabaseService.get_transaction() as session:
...     rows = await store.lock_user_rankings(session, user_id, scope)
"""

from __future__ import annotations

import asyncio
import time
from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator, Dict, Optional

from sqlalchemy import event, text
from sqlalchemy.exc import DBAPIError
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import AsyncAdaptedQueuePool, NullPool

from src.core.config.config import Config
from src.core.logging.logger import get_logger

logger = get_logger(__name__)


class DatabaseInitializationError(RuntimeError):
    """The engine could not be created from the configured URL."""


class DatabaseNotInitializedError(RuntimeError):
    """A session was requested before ``initialize()``."""


def _elapsed_ms(start: float) -> float:
    return round((time.perf_counter() - start) * 1000.0, 2)


def _engine_options(url: str) -> Dict[str, Any]:
    """Pooling and driver arguments for ``create_async_engine``."""
    options: Dict[str, Any] = {"echo": Config.DATABASE_ECHO}

    if url.startswith("sqlite"):
        options["poolclass"] = NullPool
        options["connect_args"] = {"timeout": Config.DATABASE_SQLITE_BUSY_TIMEOUT}
    elif Config.is_testing():
        options["poolclass"] = NullPool
    else:
        options.update(
            poolclass=AsyncAdaptedQueuePool,
            pool_size=Config.DATABASE_POOL_SIZE,
            max_overflow=Config.DATABASE_MAX_OVERFLOW,
            pool_recycle=Config.DATABASE_POOL_RECYCLE,
            pool_timeout=Config.DATABASE_POOL_TIMEOUT,
        )
    return options


def _begin_immediate(engine: AsyncEngine) -> None:
    @event.listens_for(engine.sync_engine, "connect")
    def _on_connect(dbapi_connection: Any, connection_record: Any) -> None:
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def _on_begin(conn: Any) -> None:
        conn.exec_driver_sql("BEGIN IMMEDIATE")


class DatabaseService:
    """
    Process-wide engine holder.

    Lifecycle: ``initialize(url=None)``, ``shutdown()``, ``create_all()``,
    ``drop_all()``. Work: ``get_session()``, ``get_transaction()``.
    Introspection: ``health_check()``, ``is_initialized()``, ``dialect_name()``.
    """

    _engine: Optional[AsyncEngine] = None
    _session_factory: Optional[async_sessionmaker[AsyncSession]] = None
    _statement_timeout_ms: Optional[int] = None
    _init_lock: Optional[asyncio.Lock] = None

    # ========================================================================
    # Lifecycle
    # ========================================================================

    @classmethod
    def _lock(cls) -> asyncio.Lock:
        # Built on first use so it binds to the running loop
        if cls._init_lock is None:
            cls._init_lock = asyncio.Lock()
        return cls._init_lock

    @classmethod
    async def initialize(cls, url: Optional[str] = None) -> None:
        """
        Create the engine and session factory; a second call is a no-op.

        ``url`` overrides Config.DATABASE_URL (tests, local tooling).

        Raises
        ------
        DatabaseInitializationError
            No URL configured, or the engine could not be built.
        """
        async with cls._lock():
            if cls._engine is not None:
                return

            database_url = url or Config.DATABASE_URL
            if not database_url:
                raise DatabaseInitializationError("DATABASE_URL is not configured")
            scheme = database_url.split(":", 1)[0]

            try:
                engine = create_async_engine(database_url, **_engine_options(database_url))
            except Exception as exc:
                logger.error(
                    "Database engine creation failed",
                    extra={"url_scheme": scheme, "error_type": type(exc).__name__},
                    exc_info=True,
                )
                raise DatabaseInitializationError(
                    f"Database initialization failed: {exc}"
                ) from exc

            if engine.dialect.name == "sqlite":
                _begin_immediate(engine)
            cls._statement_timeout_ms = (
                Config.DATABASE_STATEMENT_TIMEOUT_MS
                if engine.dialect.name == "postgresql"
                else None
            )
            cls._engine = engine
            cls._session_factory = async_sessionmaker(
                bind=engine, class_=AsyncSession, expire_on_commit=False
            )

            logger.info(
                "DatabaseService initialized",
                extra={"url_scheme": scheme, "pool_class": engine.pool.__class__.__name__},
            )

    @classmethod
    async def shutdown(cls) -> None:
        """Dispose the engine. Safe to call when not initialized."""
        async with cls._lock():
            engine, cls._engine = cls._engine, None
            cls._session_factory = None
            cls._statement_timeout_ms = None
            if engine is not None:
                await engine.dispose()
                logger.info("DatabaseService shut down")

    @classmethod
    def is_initialized(cls) -> bool:
        return cls._engine is not None

    @classmethod
    def _require_engine(cls) -> AsyncEngine:
        if cls._engine is None or cls._session_factory is None:
            raise DatabaseNotInitializedError(
                "DatabaseService.initialize() must run before database access"
            )
        return cls._engine

    @classmethod
    def dialect_name(cls) -> str:
        return cls._require_engine().dialect.name

    # ========================================================================
    # Schema
    # ========================================================================

    @classmethod
    async def _run_metadata(cls, action: str) -> None:
        # Importing the models registers their tables on Base.metadata
        import src.database.models  # noqa: F401
        from src.core.database.base import Base

        async with cls._require_engine().begin() as conn:
            await conn.run_sync(getattr(Base.metadata, action))
        logger.info(
            "Database schema updated",
            extra={"action": action, "tables": sorted(Base.metadata.tables)},
        )

    @classmethod
    async def create_all(cls) -> None:
        """Create missing tables; existing ones are left alone."""
        await cls._run_metadata("create_all")

    @classmethod
    async def drop_all(cls) -> None:
        await cls._run_metadata("drop_all")

    @classmethod
    async def health_check(cls) -> bool:
        """``SELECT 1``; False rather than raising when unreachable."""
        if cls._engine is None:
            return False
        try:
            async with cls._engine.connect() as conn:
                await conn.execute(text("SELECT 1"))
        except (DBAPIError, OSError) as exc:
            logger.warning(
                "Database health check failed",
                extra={"error": str(exc), "error_type": type(exc).__name__},
            )
            return False
        return True

    # ========================================================================
    # Sessions
    # ========================================================================

    @classmethod
    async def _open(cls, session: AsyncSession) -> None:
        if cls._statement_timeout_ms is not None:
            await session.execute(
                text(f"SET LOCAL statement_timeout = {int(cls._statement_timeout_ms)}")
            )

    @classmethod
    @asynccontextmanager
    async def get_session(cls) -> AsyncGenerator[AsyncSession, None]:
        """
        Session for reads. Closed on exit without committing.

        Raises
        ------
        DatabaseNotInitializedError
        """
        cls._require_engine()
        assert cls._session_factory is not None

        async with cls._session_factory() as session:
            await cls._open(session)
            yield session

    @classmethod
    @asynccontextmanager
    async def get_transaction(cls) -> AsyncGenerator[AsyncSession, None]:
        """
        Session wrapped in one atomic transaction.

        Commits when the block exits cleanly. Any exception rolls back and
        propagates unchanged. Driver errors are logged at ERROR; domain
        errors are expected control flow and only reach DEBUG.

        Raises
        ------
        DatabaseNotInitializedError
        """
        cls._require_engine()
        assert cls._session_factory is not None

        start = time.perf_counter()
        async with cls._session_factory() as session:
            try:
                await cls._open(session)
                yield session
                await session.commit()
            except DBAPIError as exc:
                await session.rollback()
                logger.error(
                    "Transaction failed in the driver; rolled back",
                    extra={"error_type": type(exc).__name__, "duration_ms": _elapsed_ms(start)},
                    exc_info=True,
                )
                raise
            except Exception as exc:
                await session.rollback()
                logger.debug(
                    "Transaction rolled back",
                    extra={"error_type": type(exc).__name__, "duration_ms": _elapsed_ms(start)},
                )
                raise
