from __future__ import annotations

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase

from .settings import get_settings

settings = get_settings()


class Base(DeclarativeBase):
    """Base declarative class for ownership tables."""


def build_session_factory(database_url: str) -> tuple[AsyncEngine, async_sessionmaker[AsyncSession]]:
    """Engine + session factory pair for code running outside the API process (Celery)."""
    engine = create_async_engine(database_url, future=True, echo=False)
    return engine, async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


engine, AsyncSessionLocal = build_session_factory(settings.async_database_url)


async def get_session() -> AsyncSession:
    async with AsyncSessionLocal() as session:
        yield session
