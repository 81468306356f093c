from __future__ import annotations
import uuid
import datetime as dt
from enum import Enum
from typing import Optional
from pydantic import BaseModel, Field

from .errors import FailureKind


# ─── Challenge ────────────────────────────────────────────────────────────────

class ChallengeOut(BaseModel):
    id: uuid.UUID
    date: dt.date
    image_url: str
    photographer_name: Optional[str]
    photographer_url: Optional[str]

    model_config = {"from_attributes": True}


# ─── Attempts ─────────────────────────────────────────────────────────────────

class AttemptState(str, Enum):
    AUTHENTICATING = "authenticating"
    VALIDATING = "validating"
    GATING = "gating"
    GENERATING = "generating"
    SCORING = "scoring"
    PERSISTING = "persisting"
    DONE = "done"
    FAILED = "failed"


class AttemptRequest(BaseModel):
    # Length rules are enforced by the orchestrator so they produce an
    # invalid_prompt outcome instead of a framework validation error. A
    # missing prompt is allowed through so identity is checked first.
    prompt: Optional[str] = Field(None, description="Text prompt, 1-100 characters")


class AttemptOutcome(BaseModel):
    success: bool
    message: str
    kind: Optional[FailureKind] = None
    cause: Optional[FailureKind] = None  # underlying kind behind scoring_failed
    failed_at: Optional[AttemptState] = None
    image_url: Optional[str] = None
    score: Optional[int] = None
    attempt_number: Optional[int] = None
    attempts_left: Optional[int] = None
    retryable: bool = False
    conflict: bool = False  # lost a race for this attempt number; resubmitting is safe
    informational: bool = False  # expected outcome, render without alarm styling

    @classmethod
    def done(cls, image_url: Optional[str], score: int, attempt_number: int, attempts_left: int, message: str):
        return cls(
            success=True,
            message=message,
            image_url=image_url,
            score=score,
            attempt_number=attempt_number,
            attempts_left=attempts_left,
        )

    @classmethod
    def failed(cls, kind: FailureKind, message: str, state: AttemptState, **extra):
        return cls(success=False, kind=kind, message=message, failed_at=state, **extra)


class GuessOut(BaseModel):
    id: uuid.UUID
    challenge_id: uuid.UUID
    prompt: str
    generated_image_url: Optional[str]
    score: float
    attempt_number: int
    created_at: Optional[dt.datetime]

    model_config = {"from_attributes": True}


class AttemptHistoryResponse(BaseModel):
    challenge_id: uuid.UUID
    attempts: list[GuessOut]
    attempts_left: int


class BestScoreResponse(BaseModel):
    challenge_id: uuid.UUID
    best_score: Optional[float]


# ─── Generic ──────────────────────────────────────────────────────────────────

class ErrorResponse(BaseModel):
    success: bool = False
    error: str
    hint: str
