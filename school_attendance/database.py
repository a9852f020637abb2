from typing import AsyncGenerator

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import NullPool

from school_attendance.config import settings
from school_attendance.models import Base


def build_engine(database_url: str, echo: bool = False) -> AsyncEngine:
    if database_url.startswith("sqlite"):
        # aiosqlite connections are bound to the loop that opened them.
        return create_async_engine(database_url, echo=echo, poolclass=NullPool)
    return create_async_engine(
        database_url,
        echo=echo,
        pool_pre_ping=True,  # Handles lost connections gracefully
    )


engine = build_engine(settings.DATABASE_URL, echo=settings.DEBUG)

# expire_on_commit=False is CRITICAL for async usage.
AsyncSessionLocal = async_sessionmaker(
    bind=engine, class_=AsyncSession, expire_on_commit=False, autoflush=False
)


async def init_models(bind: AsyncEngine = engine) -> None:
    """Create any missing tables. Schema changes are managed outside the service."""
    async with bind.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


# Dependency Injection for FastAPI
# This yields a session for each request and closes it automatically after.
async def get_db() -> AsyncGenerator[AsyncSession, None]:
    async with AsyncSessionLocal() as session:
        try:
            yield session
        finally:
            await session.close()
