"""Async database engine and session configuration."""

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase

from novabot.core.settings import DatabaseConfig


class Base(DeclarativeBase):
    """Declarative base for all ORM models."""


def build_engine(config: DatabaseConfig, echo: bool = False) -> AsyncEngine:
    """Create the async engine for the conversation store."""
    if config.is_sqlite:
        # SQLite pools reject sizing options; writers wait on the busy timeout.
        return create_async_engine(
            config.async_url,
            connect_args={"timeout": 30},
            echo=echo,
        )
    return create_async_engine(
        config.async_url,
        pool_size=10,
        max_overflow=20,
        pool_recycle=3600,
        pool_pre_ping=True,
        echo=echo,
    )


def build_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Create a session factory bound to ``engine``."""
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )


async def create_tables(engine: AsyncEngine) -> None:
    """Create every table registered on ``Base``."""
    # Registers the model on Base.metadata
    from novabot.models.conversation_document import ConversationDocument  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
