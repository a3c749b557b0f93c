"""Database engine and per-request sessions for the Anivise orchestration core.

One async engine per process, shared by the API routers and the /health
database check. Sessions never expire loaded rows on commit: dossier
dispatch commits the pending job mid-request and keeps using the same
row objects afterwards.
"""

from collections.abc import AsyncGenerator

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase

from anivise.config.settings import Environment, get_settings


class Base(DeclarativeBase):
    """Declarative base shared by every row class in anivise.db.tables."""


_settings = get_settings()

engine = create_async_engine(
    _settings.DATABASE_URL,
    echo=_settings.ENVIRONMENT == Environment.DEV,
    pool_pre_ping=True,
)

async_session_factory = async_sessionmaker(
    bind=engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


async def get_async_session() -> AsyncGenerator[AsyncSession, None]:
    """FastAPI dependency: one session per request.

    Repositories add and flush; whatever is still open when the handler
    returns is committed here, and any exception rolls it back. Services
    that must publish rows before an outbound call (DossierJobService)
    commit earlier through a hook; the final commit then covers only the
    work done after that point.
    """
    async with async_session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
