from __future__ import annotations
import uuid
from fastapi import APIRouter, Depends, Header, HTTPException, Request
from ..challenges import ChallengeStore, today_in_zone
from ..errors import StorageUnavailable
from ..orchestrator import AttemptOrchestrator
from ..schemas import ChallengeOut

router = APIRouter(prefix="/api/challenges", tags=["challenges"])


def get_orchestrator(request: Request) -> AttemptOrchestrator:
    return request.app.state.orchestrator


def get_challenge_store(request: Request) -> ChallengeStore:
    return request.app.state.challenges


async def get_current_user_id(x_user_id: str | None = Header(default=None)) -> str | None:
    """
    The upstream auth gateway puts the caller's stable id in X-User-Id.
    Absence is passed through; the orchestrator turns it into `unauthenticated`.
    """
    if x_user_id is None:
        return None
    return x_user_id.strip() or None


def require_user_id(user_id: str | None = Depends(get_current_user_id)) -> str:
    if user_id is None:
        raise HTTPException(
            status_code=401,
            detail={"error": "Missing user identity", "hint": "Sign in before requesting your attempts"},
        )
    return user_id


def storage_unavailable(exc: StorageUnavailable) -> HTTPException:
    return HTTPException(
        status_code=503,
        detail={"error": exc.message, "hint": "The database is not responding; retry shortly"},
    )


@router.get("/today", response_model=ChallengeOut)
async def todays_challenge(
    request: Request,
    store: ChallengeStore = Depends(get_challenge_store),
):
    """Today's challenge, with the day boundary taken in the configured time zone."""
    day = today_in_zone(request.app.state.settings.DAY_BOUNDARY_TZ)
    try:
        challenge = await store.get_for_date(day)
    except StorageUnavailable as exc:
        raise storage_unavailable(exc) from exc
    if challenge is None:
        raise HTTPException(
            status_code=404,
            detail={"error": "No challenge for today", "hint": f"Nothing scheduled for {day.isoformat()}"},
        )
    return ChallengeOut.model_validate(challenge)


@router.get("/{challenge_id}", response_model=ChallengeOut)
async def get_challenge(
    challenge_id: uuid.UUID,
    store: ChallengeStore = Depends(get_challenge_store),
):
    """Challenge image and photographer attribution."""
    try:
        challenge = await store.get(challenge_id)
    except StorageUnavailable as exc:
        raise storage_unavailable(exc) from exc
    if challenge is None:
        raise HTTPException(
            status_code=404,
            detail={"error": "Challenge not found", "hint": f"Check the id: {challenge_id}"},
        )
    return ChallengeOut.model_validate(challenge)
