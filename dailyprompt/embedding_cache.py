"""
Cache-aside store for challenge target embeddings.

Strategy:
  1. Read the embedding stored on the challenge row.
  2. Hit → return it, no call to the embedding service.
  3. Miss → embed the image, try to store it on the challenge, and return
     the fresh vector whether or not the store succeeded.

There is no lock around the fill. Concurrent first requests for a challenge
may each call the embedding service and each write the row; the last write
wins. The target image never changes, so every writer stores an equivalent
vector and the only cost is the redundant remote calls.
"""
from __future__ import annotations
import asyncio
import logging
import uuid

from sqlalchemy.exc import SQLAlchemyError

from .challenges import ChallengeStore
from .embeddings import EmbeddingService

logger = logging.getLogger(__name__)


class EmbeddingCache:
    def __init__(self, challenges: ChallengeStore, embedder: EmbeddingService):
        self._challenges = challenges
        self._embedder = embedder

    async def get_or_compute(self, challenge_id: uuid.UUID, image_url: str) -> list[float]:
        try:
            cached = await self._challenges.get_embedding(challenge_id)
        except (SQLAlchemyError, asyncio.TimeoutError) as exc:
            # Treated as a miss: the row is only an optimization.
            logger.warning("Could not read cached embedding for %s: %r", challenge_id, exc)
            cached = None

        if cached:
            logger.debug("Using cached image embedding for challenge %s", challenge_id)
            return cached

        # EmbeddingUnavailable propagates; there is no fallback vector.
        embedding = await self._embedder.embed_image(image_url)

        try:
            await self._challenges.update_embedding(challenge_id, embedding)
        except (SQLAlchemyError, asyncio.TimeoutError) as exc:
            logger.warning("Error caching embedding for challenge %s: %r", challenge_id, exc)
        return embedding
