"""
Async engine and request-scoped sessions.

One session spans one request. Service calls flush as they go and
``get_session`` commits once at the end, so an ownership transfer's demote and
promote land together or not at all. Audit rows ride along in a SAVEPOINT of
the same transaction.
"""

from collections.abc import AsyncGenerator

from sqlalchemy import event
from sqlalchemy.engine import Engine
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlmodel import SQLModel

from orgkit.core.config import get_settings

settings = get_settings()


def enforce_sqlite_foreign_keys(sync_engine: Engine) -> None:
    """SQLite ignores ON DELETE CASCADE unless each connection opts in.

    Deleting an organization or user must take its memberships, invitations
    and verification codes with it, as it does on Postgres.
    """

    @event.listens_for(sync_engine, "connect")
    def _on_connect(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


engine = create_async_engine(
    settings.database_url,
    echo=settings.debug,
    future=True,
)
if engine.dialect.name == "sqlite":
    enforce_sqlite_foreign_keys(engine.sync_engine)

async_session_factory = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


async def init_db():
    """Create the orgkit tables in debug runs."""
    import orgkit.models  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)


async def get_session() -> AsyncGenerator[AsyncSession, None]:
    """Request session: commit on success, roll back every write on error.

    Failed-login counters are the one exception; the user service commits
    them itself before raising.
    """
    async with async_session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
