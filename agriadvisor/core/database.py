"""
Database service for AgriAdvisor
Async SQLAlchemy engine and session management
"""

import logging
from pathlib import Path
from typing import AsyncGenerator
from contextlib import asynccontextmanager

from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.pool import StaticPool
from sqlalchemy import text

from agriadvisor.core.models import Base


def ensure_sqlite_directory(database_url: str) -> None:
    """Create the parent directory of a file-backed SQLite database"""
    marker = ':///'
    if not database_url.startswith('sqlite') or marker not in database_url:
        return
    path = database_url.split(marker, 1)[1]
    if path and path != ':memory:':
        Path(path).parent.mkdir(parents=True, exist_ok=True)


def is_memory_sqlite(database_url: str) -> bool:
    if not database_url.startswith('sqlite'):
        return False
    return ':///' not in database_url or ':memory:' in database_url or 'mode=memory' in database_url


def sqlite_engine_options(database_url: str, busy_timeout_seconds: float = 30) -> dict:
    """Engine kwargs for SQLite URLs.

    An in-memory database only exists on its own connection, so it is pinned
    to a single shared connection. File databases get a connection per
    session; SQLite serialises their writers and waits on the busy timeout.
    """
    if not database_url.startswith('sqlite'):
        return {}
    if is_memory_sqlite(database_url):
        return {'poolclass': StaticPool, 'connect_args': {"check_same_thread": False}}
    return {'connect_args': {"check_same_thread": False, "timeout": busy_timeout_seconds}}


class DatabaseService:
    """Async database service"""

    def __init__(self, database_url: str = "sqlite+aiosqlite:///./data/agriadvisor.db", echo: bool = False):
        self.logger = logging.getLogger(__name__)
        self.engine = None
        self.SessionLocal = None
        self.initialize(database_url, echo=echo)

    def initialize(self, database_url: str, echo: bool = False):
        """(Re)bind the service to a database URL"""
        self.database_url = database_url
        ensure_sqlite_directory(database_url)

        engine_kwargs = {'echo': echo}
        engine_kwargs.update(sqlite_engine_options(database_url))

        self.engine = create_async_engine(database_url, **engine_kwargs)

        self.SessionLocal = async_sessionmaker(
            bind=self.engine,
            class_=AsyncSession,
            expire_on_commit=False
        )

        self.logger.info(f"Database service initialized: {database_url}")

    async def create_tables(self):
        """Create tables using SQLAlchemy directly"""
        self.logger.info("Creating tables using SQLAlchemy...")
        try:
            async with self.engine.begin() as conn:
                await conn.run_sync(Base.metadata.create_all)
                self.logger.info("All tables created successfully")

        except Exception as e:
            self.logger.error(f"Error creating tables: {e}")
            raise

    async def drop_tables(self):
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.drop_all)

    @asynccontextmanager
    async def get_session(self) -> AsyncGenerator[AsyncSession, None]:
        """Get async database session"""
        async with self.SessionLocal() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    async def health_check(self) -> bool:
        """Check database connection health"""
        try:
            async with self.get_session() as session:
                await session.execute(text("SELECT 1"))
            return True
        except Exception as e:
            self.logger.error(f"Database health check failed: {e}")
            return False

    async def close(self):
        """Close database connections"""
        if self.engine is not None:
            await self.engine.dispose()
        self.logger.info("Database connections closed")


# Global database service instance
db_service = DatabaseService()


# Dependency for FastAPI
async def get_db_session() -> AsyncGenerator[AsyncSession, None]:
    """Dependency to get database session in FastAPI routes"""
    async with db_service.get_session() as session:
        yield session

