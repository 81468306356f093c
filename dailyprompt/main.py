from __future__ import annotations
import logging
from contextlib import asynccontextmanager
from typing import Optional
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .challenges import ChallengeStore
from .config import Settings, settings as default_settings
from .database import build_engine, build_session_factory, init_db
from .embeddings import EmbeddingService, HttpEmbeddingService, LocalEmbeddingService
from .generation import FalImageGenerator
from .ledger import GuessLedger
from .orchestrator import AttemptOrchestrator
from .routers import attempts, challenges, status

logger = logging.getLogger(__name__)


def build_embedder(cfg: Settings) -> EmbeddingService:
    if cfg.EMBEDDING_BACKEND == "local":
        return LocalEmbeddingService(
            model_name=cfg.EMBEDDING_MODEL,
            timeout=cfg.EMBEDDING_TIMEOUT,
            expected_dim=cfg.EMBEDDING_DIM,
        )
    return HttpEmbeddingService(
        base_url=cfg.EMBEDDING_SERVICE_URL,
        timeout=cfg.EMBEDDING_TIMEOUT,
        expected_dim=cfg.EMBEDDING_DIM,
    )


def create_app(
    cfg: Optional[Settings] = None,
    orchestrator: Optional[AttemptOrchestrator] = None,
    challenge_store: Optional[ChallengeStore] = None,
) -> FastAPI:
    """
    Build the API. Collaborators are constructed from settings at start-up
    unless they are passed in; nothing below reads global client state.
    """
    cfg = cfg or default_settings

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logging.basicConfig(level=cfg.LOG_LEVEL.upper())
        if orchestrator is not None:
            yield
            return

        engine = build_engine(cfg.DATABASE_URL)
        app.state.db_ready = await init_db(engine)
        sessions = build_session_factory(engine)
        store = ChallengeStore(sessions, timeout=cfg.STORAGE_TIMEOUT)
        generator = None
        if cfg.SCORING_MODE == "generated_image":
            generator = FalImageGenerator(
                api_key=cfg.FAL_API_KEY,
                model_url=cfg.FAL_MODEL_URL,
                timeout=cfg.GENERATION_TIMEOUT,
            )
        app.state.challenges = store
        app.state.orchestrator = AttemptOrchestrator(
            challenges=store,
            ledger=GuessLedger(sessions, timeout=cfg.STORAGE_TIMEOUT),
            embedder=build_embedder(cfg),
            generator=generator,
            scoring_mode=cfg.SCORING_MODE,
        )
        logger.info("Scoring mode: %s, embedding backend: %s", cfg.SCORING_MODE, cfg.EMBEDDING_BACKEND)
        try:
            yield
        finally:
            await engine.dispose()

    app = FastAPI(
        title="Daily Prompt",
        description="Guess the daily image with a text prompt; scored by CLIP similarity.",
        version="1.0.0",
        lifespan=lifespan,
    )
    app.state.settings = cfg
    if orchestrator is not None:
        app.state.orchestrator = orchestrator
        app.state.challenges = challenge_store
        app.state.db_ready = True

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # ─── Routers ──────────────────────────────────────────────────────────────
    app.include_router(challenges.router)
    app.include_router(attempts.router)
    app.include_router(status.router)

    @app.get("/", include_in_schema=False)
    async def root():
        return {
            "app": "Daily Prompt",
            "description": "Describe today's image in 100 characters or less. Three tries a day.",
            "today": f"{cfg.APP_URL}/api/challenges/today",
            "api_docs": f"{cfg.APP_URL}/docs",
        }

    return app


app = create_app()
