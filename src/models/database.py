import asyncio
import time
from contextlib import asynccontextmanager
from contextvars import ContextVar

from sqlalchemy import event
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool
from sqlmodel import SQLModel

from src.constants.env import DATABASE_URL
from src.utils.logger import log_error, logger

_session_context: ContextVar = ContextVar("session_context", default=None)


def _engine_kwargs(url: str) -> dict:
    if url.startswith("sqlite"):
        # One connection per session; sqlite serializes writers itself
        return {"poolclass": NullPool, "connect_args": {"timeout": 30}}
    return {
        "pool_size": 20,
        "max_overflow": 5,
        "pool_pre_ping": True,  # Check connection health
        "pool_recycle": 1800,
        "pool_timeout": 20,
        "pool_reset_on_return": "commit",
        "connect_args": {
            "server_settings": {
                "application_name": "docflow_backend",
                "jit": "off",
                "statement_timeout": "1800000",
                "idle_in_transaction_session_timeout": "300000",
            }
        },
    }


class Database:
    _instance = None
    _engine = None
    _session_local = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __init__(self):
        if self._engine is None:
            self.configure(DATABASE_URL)

    def configure(self, url: str) -> None:
        """(Re)build the engine and session factory for ``url``."""
        try:
            engine = create_async_engine(
                url,
                echo=False,
                future=True,
                **_engine_kwargs(url),
            )
        except Exception as e:
            log_error(
                logger,
                "Database engine creation failed",
                e,
                component="sqlalchemy_engine",
            )
            raise

        def before_cursor_execute(
            conn, cursor, statement, parameters, context, executemany
        ):
            context._query_start_time = time.perf_counter()

        def after_cursor_execute(
            conn, cursor, statement, parameters, context, executemany
        ):
            start = getattr(context, "_query_start_time", None)
            if start is None:
                return
            duration_ms = (time.perf_counter() - start) * 1000.0
            if duration_ms > 600.0:
                # Parameters intentionally omitted
                logger.warning(
                    f"Slow DB query: {duration_ms:.1f} ms | statement: {statement}",
                    component="slow_db_query",
                )

        event.listen(engine.sync_engine, "before_cursor_execute", before_cursor_execute)
        event.listen(engine.sync_engine, "after_cursor_execute", after_cursor_execute)

        type(self)._engine = engine
        type(self)._session_local = async_sessionmaker(
            engine,
            expire_on_commit=False,
            autoflush=False,
        )

    @property
    def engine(self):
        return self._engine

    @property
    def session_local(self):
        return self._session_local

    @asynccontextmanager
    async def get_session_context(self):
        # Reuse the session already open in this task, without commit/rollback.
        # Tasks spawned by gather inherit the context but get their own session.
        current_task = asyncio.current_task()
        existing = _session_context.get()
        if existing and existing[0] is current_task:
            yield existing[1]
            return

        try:
            session = self.session_local()
        except Exception as e:
            log_error(
                logger,
                "Session creation failed",
                e,
                component="sqlalchemy_session_create",
            )
            raise
        _session_context.set((current_task, session))
        try:
            yield session
        except Exception as e:
            try:
                await session.rollback()
            except Exception as rb_e:
                log_error(
                    logger,
                    "Session rollback failed",
                    rb_e,
                    component="sqlalchemy_session_rollback",
                )
            raise e
        finally:
            _session_context.set(None)
            try:
                await session.close()
            except Exception as cl_e:
                log_error(
                    logger,
                    "Session close failed",
                    cl_e,
                    component="sqlalchemy_session_close",
                )

    async def create_all(self):
        """Create every SQLModel table; used by tests and local bootstrapping."""
        # Table modules must be imported for their metadata to register
        from src.models.sqlmodels import document, user  # noqa: F401

        async with self._engine.begin() as conn:
            await conn.run_sync(SQLModel.metadata.create_all)

    async def drop_all(self):
        from src.models.sqlmodels import document, user  # noqa: F401

        async with self._engine.begin() as conn:
            await conn.run_sync(SQLModel.metadata.drop_all)

    async def close_all_connections(self):
        """Close all database connections - useful for cleanup"""
        if self._engine:
            await self._engine.dispose()


# Create a global instance
db = Database()
