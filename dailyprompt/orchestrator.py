"""
Attempt Orchestrator: the submit-a-guess workflow.

  AUTHENTICATING → VALIDATING → GATING → GENERATING → SCORING → PERSISTING → DONE
                           any step ─────────────────────────────→ FAILED(kind)

One call is one independent pipeline. Nothing is retried here: the player
decides whether to resubmit, and a resubmission is a brand-new attempt that
goes through the gate again. Every failure becomes an AttemptOutcome; no step
ever substitutes a made-up score.
"""
from __future__ import annotations
import logging
import uuid
from typing import Literal, Optional

from .attempt_gate import MAX_ATTEMPTS, AttemptGate
from .embedding_cache import EmbeddingCache
from .embeddings import EmbeddingService
from .errors import (
    ChallengeUnavailable, CountUnavailable, FailureKind, GameError, GenerationFailed, PersistFailed,
    StorageUnavailable,
)
from .generation import ImageGenerator
from .challenges import ChallengeStore
from .ledger import GuessLedger
from .models import Guess
from .schemas import AttemptOutcome, AttemptState
from . import similarity

logger = logging.getLogger(__name__)

MAX_PROMPT_LENGTH = 100

ScoringMode = Literal["direct_prompt", "generated_image"]


def validate_prompt(prompt: Optional[str]) -> Optional[str]:
    """Return an error message for an unacceptable prompt, or None if it is fine."""
    if not prompt:
        return "Prompt cannot be empty"
    if len(prompt) > MAX_PROMPT_LENGTH:
        return f"Prompt must be between 1 and {MAX_PROMPT_LENGTH} characters"
    return None


def attempts_left_message(attempts_left: int) -> str:
    if attempts_left <= 0:
        return "That was your last attempt! Check back tomorrow for a new challenge."
    noun = "attempt" if attempts_left == 1 else "attempts"
    return f"Great attempt! You have {attempts_left} {noun} left."


class AttemptOrchestrator:
    def __init__(
        self,
        challenges: ChallengeStore,
        ledger: GuessLedger,
        embedder: EmbeddingService,
        generator: Optional[ImageGenerator] = None,
        scoring_mode: ScoringMode = "direct_prompt",
    ):
        if scoring_mode == "generated_image" and generator is None:
            raise ValueError("generated_image scoring mode needs an image generator")
        self.scoring_mode = scoring_mode
        self._challenges = challenges
        self._ledger = ledger
        self._embedder = embedder
        self._generator = generator
        self._gate = AttemptGate(ledger)
        self._cache = EmbeddingCache(challenges, embedder)

    async def submit_attempt(
        self, user_id: Optional[str], challenge_id: uuid.UUID, prompt: Optional[str]
    ) -> AttemptOutcome:
        state = AttemptState.AUTHENTICATING
        if not user_id:
            return AttemptOutcome.failed(
                FailureKind.UNAUTHENTICATED, "You must be logged in to submit a guess", state
            )

        state = AttemptState.VALIDATING
        problem = validate_prompt(prompt)
        if problem is not None:
            return AttemptOutcome.failed(FailureKind.INVALID_PROMPT, problem, state)

        state = AttemptState.GATING
        try:
            status = await self._gate.check(user_id, challenge_id)
        except CountUnavailable as exc:
            return AttemptOutcome.failed(exc.kind, exc.message, state, retryable=True)

        if status.exhausted:
            logger.info("User %s has no attempts left on challenge %s", user_id, challenge_id)
            return AttemptOutcome.failed(
                FailureKind.ATTEMPTS_EXHAUSTED,
                f"You've used all {MAX_ATTEMPTS} attempts for today's challenge!",
                state,
                attempts_left=0,
                informational=True,
            )
        attempt_number = status.next_attempt_number

        try:
            image_url = await self._target_image_url(challenge_id)
        except ChallengeUnavailable as exc:
            return AttemptOutcome.failed(
                exc.kind,
                exc.message,
                state,
                cause=None if exc.missing else FailureKind.STORAGE_UNAVAILABLE,
                retryable=not exc.missing,
            )

        generated_url: Optional[str] = None
        if self.scoring_mode == "generated_image":
            state = AttemptState.GENERATING
            try:
                generated_url = await self._generator.generate(prompt)
            except GenerationFailed as exc:
                return AttemptOutcome.failed(exc.kind, exc.message, state, retryable=True)
            except Exception:
                logger.exception("Image generator raised unexpectedly")
                return AttemptOutcome.failed(
                    FailureKind.GENERATION_FAILED, GenerationFailed.default_message, state, retryable=True
                )

        state = AttemptState.SCORING
        try:
            target = await self._cache.get_or_compute(challenge_id, image_url)
            if generated_url is not None:
                content = await self._embedder.embed_image(generated_url)
            else:
                content = await self._embedder.embed_text(prompt)
            points = similarity.score(target, content)
        except GameError as exc:
            logger.error("Scoring failed for challenge %s (%s): %s", challenge_id, exc.kind.value, exc)
            return AttemptOutcome.failed(
                FailureKind.SCORING_FAILED,
                "Failed to calculate similarity score. Please try again.",
                state,
                cause=exc.kind,
                image_url=generated_url,
                retryable=True,
            )
        except Exception:
            logger.exception("Scoring raised unexpectedly for challenge %s", challenge_id)
            return AttemptOutcome.failed(
                FailureKind.SCORING_FAILED,
                "Failed to calculate similarity score. Please try again.",
                state,
                image_url=generated_url,
                retryable=True,
            )

        state = AttemptState.PERSISTING
        try:
            await self._ledger.save(
                user_id=user_id,
                challenge_id=challenge_id,
                prompt=prompt,
                score=points,
                attempt_number=attempt_number,
                generated_image_url=generated_url,
            )
        except PersistFailed as exc:
            return AttemptOutcome.failed(
                exc.kind,
                exc.message,
                state,
                image_url=generated_url,
                retryable=True,
                conflict=exc.conflict,
            )

        attempts_left = MAX_ATTEMPTS - attempt_number
        logger.info(
            "User %s scored %d on challenge %s (attempt %d/%d)",
            user_id, points, challenge_id, attempt_number, MAX_ATTEMPTS,
        )
        return AttemptOutcome.done(
            image_url=generated_url,
            score=points,
            attempt_number=attempt_number,
            attempts_left=attempts_left,
            message=attempts_left_message(attempts_left),
        )

    async def list_attempts(self, user_id: str, challenge_id: uuid.UUID) -> list[Guess]:
        return await self._ledger.list_by_user(user_id, challenge_id)

    async def best_score(self, user_id: str, challenge_id: uuid.UUID) -> Optional[float]:
        return await self._ledger.best_score(user_id, challenge_id)

    async def _target_image_url(self, challenge_id: uuid.UUID) -> str:
        try:
            challenge = await self._challenges.get(challenge_id)
        except StorageUnavailable as exc:
            raise ChallengeUnavailable(exc.message, missing=False) from exc
        if challenge is None or not challenge.image_url:
            logger.error("Challenge %s not found or has no image", challenge_id)
            raise ChallengeUnavailable()
        return challenge.image_url
