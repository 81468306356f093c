from __future__ import annotations
import asyncio
import logging
import uuid
from datetime import date, datetime
from typing import Optional
from zoneinfo import ZoneInfo

from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from .database import bounded
from .errors import StorageUnavailable
from .models import Challenge

logger = logging.getLogger(__name__)


def today_in_zone(tz_name: str, now: Optional[datetime] = None) -> date:
    """Calendar date that owns `now` (default: current time) in the given zone."""
    tz = ZoneInfo(tz_name)
    current = now.astimezone(tz) if now is not None else datetime.now(tz)
    return current.date()


class ChallengeStore:
    """Read access to challenges plus the single embedding write."""

    def __init__(self, sessions: async_sessionmaker[AsyncSession], timeout: float = 10.0):
        self._sessions = sessions
        self._timeout = timeout

    async def get(self, challenge_id: uuid.UUID) -> Optional[Challenge]:
        """None when no such challenge exists; StorageUnavailable when the lookup itself fails."""
        return await self._read(self._get(challenge_id), f"challenge {challenge_id}")

    async def get_for_date(self, day: date) -> Optional[Challenge]:
        return await self._read(self._get_for_date(day), f"challenge for {day.isoformat()}")

    async def _read(self, lookup, what: str):
        try:
            return await bounded(lookup, self._timeout)
        except asyncio.TimeoutError as exc:
            logger.error("Loading %s timed out after %.1fs", what, self._timeout)
            raise StorageUnavailable("Failed to load challenge. Please try again.") from exc
        except SQLAlchemyError as exc:
            logger.error("Error loading %s: %s", what, exc)
            raise StorageUnavailable("Failed to load challenge. Please try again.") from exc

    async def get_embedding(self, challenge_id: uuid.UUID) -> Optional[list[float]]:
        return await bounded(self._get_embedding(challenge_id), self._timeout)

    async def update_embedding(self, challenge_id: uuid.UUID, embedding: list[float]) -> None:
        """
        Store the target embedding. Concurrent writers may race here; the
        last write wins, which is fine because every writer computed the
        embedding of the same image.
        """
        await bounded(self._update_embedding(challenge_id, embedding), self._timeout)

    async def _get(self, challenge_id: uuid.UUID) -> Optional[Challenge]:
        async with self._sessions() as session:
            result = await session.execute(select(Challenge).where(Challenge.id == challenge_id))
            return result.scalar_one_or_none()

    async def _get_for_date(self, day: date) -> Optional[Challenge]:
        async with self._sessions() as session:
            result = await session.execute(select(Challenge).where(Challenge.date == day))
            return result.scalar_one_or_none()

    async def _get_embedding(self, challenge_id: uuid.UUID) -> Optional[list[float]]:
        async with self._sessions() as session:
            result = await session.execute(
                select(Challenge.embedding).where(Challenge.id == challenge_id)
            )
            return result.scalar_one_or_none()

    async def _update_embedding(self, challenge_id: uuid.UUID, embedding: list[float]) -> None:
        async with self._sessions() as session:
            await session.execute(
                update(Challenge).where(Challenge.id == challenge_id).values(embedding=embedding)
            )
            await session.commit()
        logger.info("Cached target embedding for challenge %s (%d dims)", challenge_id, len(embedding))
