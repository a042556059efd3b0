import logging
from collections.abc import AsyncGenerator

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from railfleet.core.config import get_settings
from railfleet.models.base import Base
import railfleet.models  # noqa: F401 ensure models import

logger = logging.getLogger(__name__)
settings = get_settings()


def get_async_database_url(url: str) -> str:
    """Convert database URL to async-compatible format using psycopg driver."""
    if url.startswith("postgresql://"):
        url = url.replace("postgresql://", "postgresql+psycopg://", 1)
    elif url.startswith("postgres://"):
        url = url.replace("postgres://", "postgresql+psycopg://", 1)

    if "channel_binding=" in url:
        import re
        url = re.sub(r'[&?]channel_binding=[^&]*', '', url)
        url = url.replace('?&', '?').rstrip('?')

    return url


def build_engine(url: str, echo: bool = False) -> AsyncEngine:
    database_url = get_async_database_url(url)

    connect_args = {}
    engine_kwargs = {}
    if "postgresql" in database_url or "postgres" in database_url:
        connect_args = {
            "connect_timeout": 10,
        }
        engine_kwargs = {
            "pool_pre_ping": True,  # Verify connections before using
            "pool_recycle": 3600,   # Recycle connections after 1 hour
            "pool_timeout": 10,     # Wait up to 10 seconds for a connection from pool
            "max_overflow": 10,     # Allow extra connections beyond pool_size
        }

    logger.info("Creating database engine with URL: %s@***", database_url.split("@")[0])
    return create_async_engine(
        database_url,
        future=True,
        echo=echo,
        connect_args=connect_args,
        **engine_kwargs,
    )


engine: AsyncEngine = build_engine(settings.database_url, echo=settings.debug)

AsyncSessionFactory = async_sessionmaker(
    bind=engine,
    expire_on_commit=False,
)


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    async with AsyncSessionFactory() as session:
        yield session


async def init_database() -> None:
    """Create all tables. In production use Alembic migrations instead.

    The partial unique indexes that keep one active row per car
    are part of the model metadata, so create_all produces them as well.
    """
    logger.info("Initializing database tables...")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Database tables initialized successfully")
