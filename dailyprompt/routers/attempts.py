from __future__ import annotations
import uuid
from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from ..attempt_gate import MAX_ATTEMPTS
from ..errors import FailureKind, StorageUnavailable
from ..orchestrator import AttemptOrchestrator
from ..schemas import (
    AttemptHistoryResponse,
    AttemptOutcome,
    AttemptRequest,
    BestScoreResponse,
    GuessOut,
)
from .challenges import get_current_user_id, get_orchestrator, require_user_id, storage_unavailable

router = APIRouter(prefix="/api/challenges", tags=["attempts"])

# attempts_exhausted is an expected answer, not an error.
_STATUS_BY_KIND = {
    FailureKind.UNAUTHENTICATED: 401,
    FailureKind.INVALID_PROMPT: 422,
    FailureKind.ATTEMPTS_EXHAUSTED: 200,
    FailureKind.CHALLENGE_UNAVAILABLE: 404,
    FailureKind.COUNT_UNAVAILABLE: 503,
    FailureKind.GENERATION_FAILED: 502,
    FailureKind.SCORING_FAILED: 502,
    FailureKind.PERSIST_FAILED: 503,
}


def outcome_status(outcome: AttemptOutcome) -> int:
    if outcome.success:
        return 201
    if outcome.conflict:
        return 409
    if outcome.cause is FailureKind.STORAGE_UNAVAILABLE:
        return 503
    return _STATUS_BY_KIND.get(outcome.kind, 500)


@router.post("/{challenge_id}/attempts", response_model=AttemptOutcome, status_code=201)
async def submit_attempt(
    challenge_id: uuid.UUID,
    body: AttemptRequest,
    user_id: str | None = Depends(get_current_user_id),
    orchestrator: AttemptOrchestrator = Depends(get_orchestrator),
):
    """
    Score one prompt against the challenge image.
    The body is an AttemptOutcome for successes and failures alike.
    """
    outcome = await orchestrator.submit_attempt(user_id, challenge_id, body.prompt)
    return JSONResponse(status_code=outcome_status(outcome), content=outcome.model_dump(mode="json"))


@router.get("/{challenge_id}/attempts", response_model=AttemptHistoryResponse)
async def list_attempts(
    challenge_id: uuid.UUID,
    user_id: str = Depends(require_user_id),
    orchestrator: AttemptOrchestrator = Depends(get_orchestrator),
):
    """The caller's guesses on this challenge, oldest attempt first."""
    try:
        rows = await orchestrator.list_attempts(user_id, challenge_id)
    except StorageUnavailable as exc:
        raise storage_unavailable(exc) from exc
    return AttemptHistoryResponse(
        challenge_id=challenge_id,
        attempts=[GuessOut.model_validate(r) for r in rows],
        attempts_left=max(0, MAX_ATTEMPTS - len(rows)),
    )


@router.get("/{challenge_id}/best-score", response_model=BestScoreResponse)
async def best_score(
    challenge_id: uuid.UUID,
    user_id: str = Depends(require_user_id),
    orchestrator: AttemptOrchestrator = Depends(get_orchestrator),
):
    try:
        best = await orchestrator.best_score(user_id, challenge_id)
    except StorageUnavailable as exc:
        raise storage_unavailable(exc) from exc
    return BestScoreResponse(challenge_id=challenge_id, best_score=best)
