"""Declarative base, async engine and session factory for the league database.

A scoring run writes each row in its own short session, several at once, so
SQLite connections wait on the write lock (``DATABASE_TIMEOUT``) instead of
failing with "database is locked".
"""
from sqlalchemy import event
from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase

import config


class Base(DeclarativeBase):
    """Base class for league models."""


def _is_sqlite(url: str) -> bool:
    return make_url(url).get_backend_name() == "sqlite"


def _connect_args(url: str) -> dict:
    if _is_sqlite(url):
        return {"timeout": config.DATABASE_TIMEOUT}
    return {}


engine = create_async_engine(
    config.DATABASE_URL,
    echo=False,
    connect_args=_connect_args(config.DATABASE_URL),
)

if _is_sqlite(config.DATABASE_URL):

    @event.listens_for(engine.sync_engine, "connect")
    def _sqlite_pragmas(dbapi_connection, connection_record):
        """Enforce foreign keys; SQLite leaves them off per connection."""
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


# expire_on_commit off: services return rows that routes read after commit
async_session_factory = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autoflush=False,
)


async def init_db() -> None:
    """Create any missing league tables."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def reset_db() -> None:
    """Drop and recreate all tables. Wipes every tournament."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)
