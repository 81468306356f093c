"""
Guess Ledger: the append-only record of scored attempts.

Rows are only ever inserted. (user_id, challenge_id, attempt_number) is
unique at the storage level, so two racing submissions that computed the
same attempt number cannot both land: the loser gets PersistFailed with
conflict=True.
"""
from __future__ import annotations
import asyncio
import logging
import uuid
from typing import Optional

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from .database import bounded
from .errors import CountUnavailable, PersistFailed, StorageUnavailable
from .models import Guess

logger = logging.getLogger(__name__)

# Postgres names the constraint; SQLite lists the columns instead.
_ATTEMPT_CONFLICT_MARKERS = ("uq_guess_attempt", "guesses.attempt_number")


def is_attempt_conflict(exc: IntegrityError) -> bool:
    """True when the insert lost the race on (user_id, challenge_id, attempt_number)."""
    detail = str(exc.orig if exc.orig is not None else exc)
    return any(marker in detail for marker in _ATTEMPT_CONFLICT_MARKERS)


class GuessLedger:
    def __init__(self, sessions: async_sessionmaker[AsyncSession], timeout: float = 10.0):
        self._sessions = sessions
        self._timeout = timeout

    async def save(
        self,
        user_id: str,
        challenge_id: uuid.UUID,
        prompt: str,
        score: float,
        attempt_number: int,
        generated_image_url: Optional[str] = None,
    ) -> Guess:
        """Insert one guess and return the stored row with its id and created_at."""
        try:
            return await bounded(
                self._insert(
                    Guess(
                        user_id=user_id,
                        challenge_id=challenge_id,
                        prompt=prompt,
                        generated_image_url=generated_image_url,
                        score=score,
                        attempt_number=attempt_number,
                    )
                ),
                self._timeout,
            )
        except IntegrityError as exc:
            if not is_attempt_conflict(exc):
                logger.error("Guess rejected by the database: %s", exc.orig)
                raise PersistFailed() from exc
            logger.warning(
                "Attempt %d already recorded for user %s on challenge %s: %s",
                attempt_number, user_id, challenge_id, exc.orig,
            )
            raise PersistFailed(conflict=True) from exc
        except asyncio.TimeoutError as exc:
            logger.error("Saving guess timed out after %.1fs", self._timeout)
            raise PersistFailed() from exc
        except SQLAlchemyError as exc:
            logger.error("Error saving guess: %s", exc)
            raise PersistFailed() from exc

    async def count(self, user_id: str, challenge_id: uuid.UUID) -> int:
        try:
            return await bounded(self._count(user_id, challenge_id), self._timeout)
        except asyncio.TimeoutError as exc:
            logger.error("Counting attempts timed out after %.1fs", self._timeout)
            raise CountUnavailable() from exc
        except SQLAlchemyError as exc:
            logger.error("Error counting attempts: %s", exc)
            raise CountUnavailable() from exc

    async def list_by_user(self, user_id: str, challenge_id: uuid.UUID) -> list[Guess]:
        """Current guesses for the pair, ascending by attempt number. Each call re-queries."""
        try:
            return await bounded(self._list(user_id, challenge_id), self._timeout)
        except asyncio.TimeoutError as exc:
            logger.error("Listing guesses timed out after %.1fs", self._timeout)
            raise StorageUnavailable() from exc
        except SQLAlchemyError as exc:
            logger.error("Error listing guesses: %s", exc)
            raise StorageUnavailable() from exc

    async def best_score(self, user_id: str, challenge_id: uuid.UUID) -> Optional[float]:
        """MAX(score) for the pair, or None when nothing has been recorded."""
        try:
            return await bounded(self._best(user_id, challenge_id), self._timeout)
        except asyncio.TimeoutError as exc:
            logger.error("Reading best score timed out after %.1fs", self._timeout)
            raise StorageUnavailable() from exc
        except SQLAlchemyError as exc:
            logger.error("Error reading best score: %s", exc)
            raise StorageUnavailable() from exc

    async def _insert(self, guess: Guess) -> Guess:
        async with self._sessions() as session:
            session.add(guess)
            await session.commit()
            await session.refresh(guess)
            return guess

    async def _count(self, user_id: str, challenge_id: uuid.UUID) -> int:
        async with self._sessions() as session:
            result = await session.execute(
                select(func.count(Guess.id)).where(
                    Guess.user_id == user_id, Guess.challenge_id == challenge_id
                )
            )
            return result.scalar() or 0

    async def _list(self, user_id: str, challenge_id: uuid.UUID) -> list[Guess]:
        async with self._sessions() as session:
            result = await session.execute(
                select(Guess)
                .where(Guess.user_id == user_id, Guess.challenge_id == challenge_id)
                .order_by(Guess.attempt_number.asc())
            )
            return list(result.scalars().all())

    async def _best(self, user_id: str, challenge_id: uuid.UUID) -> Optional[float]:
        async with self._sessions() as session:
            result = await session.execute(
                select(func.max(Guess.score)).where(
                    Guess.user_id == user_id, Guess.challenge_id == challenge_id
                )
            )
            return result.scalar()
