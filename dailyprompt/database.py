import asyncio
import logging
import re
from typing import Awaitable, TypeVar

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase

logger = logging.getLogger(__name__)

T = TypeVar("T")

# SSL rules for PostgreSQL:
# - localhost / 127.0.0.1  → no SSL (local dev)
# - *.railway.internal      → no SSL (private network, SSL not supported)
# - everything else         → require SSL (public proxies, cloud DBs, etc.)
_NO_SSL_HOSTS = ("localhost", "127.0.0.1", ".railway.internal")


class Base(DeclarativeBase):
    pass


def normalize_url(url: str) -> str:
    if url.startswith("postgres://"):
        return url.replace("postgres://", "postgresql+asyncpg://", 1)
    if url.startswith("postgresql://") and "+asyncpg" not in url:
        return url.replace("postgresql://", "postgresql+asyncpg://", 1)
    return url


def build_engine(url: str, echo: bool = False) -> AsyncEngine:
    db_url = normalize_url(url)
    connect_args = {}
    use_ssl = db_url.startswith("postgresql") and not any(h in db_url for h in _NO_SSL_HOSTS)
    if use_ssl:
        connect_args["ssl"] = "require"

    masked = re.sub(r"://([^:]+):([^@]+)@", r"://\1:***@", db_url)
    logger.warning("DB connect → %s  ssl=%s", masked, use_ssl)

    return create_async_engine(db_url, echo=echo, connect_args=connect_args)


def build_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(engine, expire_on_commit=False, class_=AsyncSession)


async def bounded(awaitable: Awaitable[T], timeout: float) -> T:
    """Await a storage call, raising asyncio.TimeoutError after `timeout` seconds."""
    return await asyncio.wait_for(awaitable, timeout=timeout)


async def init_db(engine: AsyncEngine, attempts: int = 6, delay: float = 5.0) -> bool:
    """Create all tables, retrying up to `attempts` times with `delay`-second gaps.

    Does NOT raise on failure — the app will start regardless so that a
    platform health check can pass. Attempt submissions will report
    storage failures until the database becomes reachable.
    """
    from . import models  # noqa: F401 — ensure models are imported before create_all
    last_err: Exception | None = None
    for attempt in range(1, attempts + 1):
        try:
            async with engine.begin() as conn:
                await conn.run_sync(Base.metadata.create_all)
            logger.info("Database initialised successfully.")
            return True
        except Exception as exc:
            last_err = exc
            logger.warning("DB not ready (attempt %d/%d): %s", attempt, attempts, exc)
            if attempt < attempts:
                await asyncio.sleep(delay)
    logger.critical(
        "Database unreachable after %d attempts (%s). "
        "App will start but every attempt submission will fail until "
        "DATABASE_URL is correct and the database is reachable.",
        attempts,
        last_err,
    )
    return False
