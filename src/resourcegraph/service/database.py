"""
Database access for resource services.

A ``Database`` owns one async engine and its session factory, both created
on first use. Services that do not pass their own use ``get_database()``,
configured from the environment:

    DATABASE_URL  (default sqlite+aiosqlite:///./resourcegraph.db)
    SQL_ECHO      ("true" logs every statement)
"""

from __future__ import annotations

import os
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase


DEFAULT_DATABASE_URL = "sqlite+aiosqlite:///./resourcegraph.db"


class Base(DeclarativeBase):
    """Base class for resource models."""
    pass


class Database:
    """
    Lazily created engine and session factory for one database URL.

    Usage:
        database = Database("sqlite+aiosqlite:///./catalog.db")
        await database.create_tables()
        backend = SQLAlchemyBackend(database.session_maker, models)
        ...
        await database.dispose()
    """

    def __init__(self, url: str, echo: bool = False):
        self.url = url
        self.echo = echo
        self._engine: Optional[AsyncEngine] = None
        self._session_maker: Optional[async_sessionmaker[AsyncSession]] = None

    @classmethod
    def from_env(cls) -> "Database":
        return cls(
            os.getenv("DATABASE_URL", DEFAULT_DATABASE_URL),
            echo=os.getenv("SQL_ECHO", "").lower() == "true",
        )

    @property
    def engine(self) -> AsyncEngine:
        if self._engine is None:
            self._engine = create_async_engine(self.url, echo=self.echo)
        return self._engine

    @property
    def session_maker(self) -> async_sessionmaker[AsyncSession]:
        # Rows are turned into dicts after commit, so nothing may expire.
        if self._session_maker is None:
            self._session_maker = async_sessionmaker(
                self.engine, class_=AsyncSession, expire_on_commit=False
            )
        return self._session_maker

    async def create_tables(self):
        """Create every table registered on ``Base``."""
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    async def dispose(self):
        """Close pooled connections. The engine is rebuilt on next use."""
        if self._engine is not None:
            await self._engine.dispose()
        self._engine = None
        self._session_maker = None


_default: Optional[Database] = None


def get_database() -> Database:
    """Get the environment-configured database, creating it on first call."""
    global _default
    if _default is None:
        _default = Database.from_env()
    return _default
