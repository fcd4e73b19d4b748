"""
Database engine and session management
"""
import logging

from sqlalchemy import event, select
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from whoop_mcp.config import settings
from whoop_mcp.database.base import Base

logger = logging.getLogger(__name__)


def _enable_sqlite_pragmas(dbapi_connection, connection_record):
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA journal_mode=WAL")
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def create_engine_from_url(database_url: str, echo: bool = False) -> AsyncEngine:
    """
    Create an async engine; SQLite connections get WAL journaling

    Args:
        database_url: SQLAlchemy URL (sqlite+aiosqlite://... or postgresql+asyncpg://...)
        echo: log SQL statements

    Returns:
        AsyncEngine
    """
    engine_kwargs = {"echo": echo}
    if not database_url.startswith("sqlite"):
        engine_kwargs["pool_pre_ping"] = True

    engine = create_async_engine(database_url, **engine_kwargs)

    if engine.dialect.name == "sqlite":
        event.listen(engine.sync_engine, "connect", _enable_sqlite_pragmas)

    return engine


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


engine = create_engine_from_url(settings.DATABASE_URL, echo=settings.DEBUG)


async def init_db(db_engine: AsyncEngine = None) -> None:
    """
    Create all tables and seed the singleton sync_state row

    Args:
        db_engine: engine to initialize (defaults to the module engine)
    """
    # Importing models registers the tables on Base.metadata
    from whoop_mcp.models.whoop import SyncState  # noqa: F401

    db_engine = db_engine or engine

    async with db_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    session_factory = create_session_factory(db_engine)
    async with session_factory() as db:
        async with db.begin():
            existing = await db.execute(select(SyncState).where(SyncState.id == 1))
            if existing.scalar_one_or_none() is None:
                db.add(SyncState(id=1))

    logger.info(f"Database initialized: {db_engine.url.render_as_string(hide_password=True)}")
