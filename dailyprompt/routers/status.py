from __future__ import annotations
from fastapi import APIRouter, Request

router = APIRouter(prefix="/api/status", tags=["status"])


@router.get("/health")
async def health_check(request: Request):
    """Quick health check — no auth required."""
    return {
        "status": "ok",
        "db_ready": getattr(request.app.state, "db_ready", False),
        "scoring_mode": request.app.state.orchestrator.scoring_mode,
    }
