"""
Failure taxonomy for the attempt pipeline.

Every component raises a GameError subclass; the orchestrator catches it at
the step boundary and turns it into an AttemptOutcome. The message on each
error is safe to show to the player.
"""
from __future__ import annotations
from enum import Enum


class FailureKind(str, Enum):
    UNAUTHENTICATED = "unauthenticated"
    INVALID_PROMPT = "invalid_prompt"
    COUNT_UNAVAILABLE = "count_unavailable"
    ATTEMPTS_EXHAUSTED = "attempts_exhausted"
    CHALLENGE_UNAVAILABLE = "challenge_unavailable"
    GENERATION_FAILED = "generation_failed"
    EMBEDDING_UNAVAILABLE = "embedding_unavailable"
    DIMENSION_MISMATCH = "dimension_mismatch"
    SCORING_FAILED = "scoring_failed"
    PERSIST_FAILED = "persist_failed"
    STORAGE_UNAVAILABLE = "storage_unavailable"


class GameError(Exception):
    kind: FailureKind = FailureKind.SCORING_FAILED
    default_message = "Something went wrong. Please try again."

    def __init__(self, message: str | None = None):
        super().__init__(message or self.default_message)
        self.message = message or self.default_message


class CountUnavailable(GameError):
    kind = FailureKind.COUNT_UNAVAILABLE
    default_message = "Failed to check attempts. Please try again."


class ChallengeUnavailable(GameError):
    kind = FailureKind.CHALLENGE_UNAVAILABLE
    default_message = "Failed to load challenge. Please try again."

    def __init__(self, message: str | None = None, missing: bool = True):
        super().__init__(message)
        self.missing = missing


class StorageUnavailable(GameError):
    """A read against the database failed or timed out."""
    kind = FailureKind.STORAGE_UNAVAILABLE
    default_message = "We couldn't reach your game history. Please try again."


class GenerationFailed(GameError):
    kind = FailureKind.GENERATION_FAILED
    default_message = "Failed to generate image. Please try again."


class EmbeddingUnavailable(GameError):
    kind = FailureKind.EMBEDDING_UNAVAILABLE
    default_message = "Failed to calculate similarity score. Please try again."


class DimensionMismatch(GameError):
    kind = FailureKind.DIMENSION_MISMATCH
    default_message = "Failed to calculate similarity score. Please try again."

    def __init__(self, left: int, right: int):
        super().__init__()
        self.left = left
        self.right = right

    def __str__(self) -> str:
        return f"Vector length mismatch: {self.left} vs {self.right}"


class PersistFailed(GameError):
    kind = FailureKind.PERSIST_FAILED
    default_message = "Failed to save your guess. Please try again."

    def __init__(self, message: str | None = None, conflict: bool = False):
        if conflict and message is None:
            message = "Another attempt was submitted at the same time. Please try again."
        super().__init__(message)
        self.conflict = conflict
