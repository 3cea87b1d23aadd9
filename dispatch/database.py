"""Database engine, session factory and request dependency"""

from typing import AsyncGenerator

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase
from sqlalchemy.orm.exc import StaleDataError

from dispatch.config import settings
from dispatch.exceptions import ConflictError

engine = create_async_engine(
    settings.database_url,
    echo=settings.database_echo,
    pool_pre_ping=True,
)

SessionLocal = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


class Base(DeclarativeBase):
    """Declarative base for all models"""
    pass


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """Provide a session per request, rolled back if the handler fails"""
    async with SessionLocal() as session:
        try:
            yield session
        except Exception:
            await session.rollback()
            raise


async def commit_or_conflict(db: AsyncSession) -> None:
    """Commit, translating concurrent-write failures into ConflictError"""
    try:
        await db.commit()
    except (StaleDataError, IntegrityError) as e:
        await db.rollback()
        raise ConflictError("Concurrent update detected, retry the request") from e


async def flush_or_conflict(db: AsyncSession) -> None:
    """Flush pending changes, translating concurrent-write failures into ConflictError"""
    try:
        await db.flush()
    except (StaleDataError, IntegrityError) as e:
        await db.rollback()
        raise ConflictError("Concurrent update detected, retry the request") from e
