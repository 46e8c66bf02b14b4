"""Engine and session factories shared by the stores."""

from functools import lru_cache

from sqlalchemy import event
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from prompt_library.core.config import get_app_config
from prompt_library.core.logger import prompt_library_logger as logger
from prompt_library.storage.base import Base


@lru_cache
def get_async_engine() -> AsyncEngine:
    config = get_app_config()
    logger.info(
        'Creating database engine',
        extra={'dialect': config.database_url.split(':', 1)[0]},
    )
    engine = create_async_engine(config.database_url, echo=config.db_echo)
    if engine.dialect.name == 'sqlite':
        use_immediate_transactions(engine)
    return engine


def use_immediate_transactions(engine: AsyncEngine) -> None:
    """Start every SQLite transaction with BEGIN IMMEDIATE.

    The write lock is taken when the transaction begins, so concurrent
    redemptions queue on the busy timeout instead of failing with
    "database is locked" when a read lock cannot be upgraded.
    """

    @event.listens_for(engine.sync_engine, 'connect')
    def _disable_implicit_begin(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, 'begin')
    def _begin_immediate(conn):
        conn.exec_driver_sql('BEGIN IMMEDIATE')


@lru_cache
def _get_async_session_maker() -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(get_async_engine(), expire_on_commit=False)


def a_session_maker(**kwargs) -> AsyncSession:
    """Open a new async session.

    Keyword arguments are forwarded to the underlying session maker, so
    callers can override options such as ``expire_on_commit`` per session.
    """
    return _get_async_session_maker()(**kwargs)


async def create_tables(engine: AsyncEngine | None = None) -> None:
    """Create all tables known to the declarative base.

    Only intended for development and tests; production schemas are managed
    outside this package.
    """
    # Register every model on Base.metadata before create_all
    import prompt_library.storage.models  # noqa: F401

    engine = engine or get_async_engine()
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
