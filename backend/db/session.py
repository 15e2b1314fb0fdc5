"""
Stitchline Database Session Management

Async SQLAlchemy engine and session factory.
"""

from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.orm import DeclarativeBase
from core.config import get_settings

settings = get_settings()

_pool_kwargs = (
    {"pool_size": 20, "max_overflow": 10, "pool_pre_ping": True}
    if settings.database_url.startswith("postgresql")
    else {}
)

engine = create_async_engine(
    settings.database_url,
    echo=settings.database_echo,
    **_pool_kwargs,
)

AsyncSessionLocal = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


class Base(DeclarativeBase):
    """Declarative base for all SQLAlchemy models."""
    pass
