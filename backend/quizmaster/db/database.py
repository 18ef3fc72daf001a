"""Async engine, session factory and FastAPI session dependency."""

import logging
from typing import AsyncIterator

from fastapi import Request
from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from .models import Base

logger = logging.getLogger(__name__)


class Database:
    """Owns one engine and its session factory."""

    def __init__(self, url: str, echo: bool = False):
        self.url = url
        self.engine = create_async_engine(url, echo=echo)
        self.async_session = async_sessionmaker(self.engine, class_=AsyncSession, expire_on_commit=False)

    async def init(self) -> None:
        """Create all tables."""
        database = make_url(self.url).database
        logger.info(f"Initializing database {database or self.url}")
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    async def close(self) -> None:
        await self.engine.dispose()


async def init_db(database: Database) -> None:
    await database.init()


async def get_db(request: Request) -> AsyncIterator[AsyncSession]:
    """Yield a session bound to the application's database; commit on success."""
    database: Database = request.app.state.services.database
    async with database.async_session() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
