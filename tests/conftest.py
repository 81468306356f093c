from __future__ import annotations
import asyncio

import pytest
from sqlalchemy.ext.asyncio import create_async_engine
from sqlalchemy.pool import StaticPool

from dailyprompt.challenges import ChallengeStore, today_in_zone
from dailyprompt.database import build_session_factory, init_db
from dailyprompt.errors import EmbeddingUnavailable
from dailyprompt.ledger import GuessLedger
from dailyprompt.models import Challenge

TARGET_URL = "https://images.example.com/target.jpg"


class FakeEmbedder:
    """Embedding service double that records every call."""

    def __init__(self, images=None, texts=None):
        self.images = dict(images or {})
        self.texts = dict(texts or {})
        self.image_calls: list[str] = []
        self.text_calls: list[str] = []

    async def embed_image(self, image_url: str) -> list[float]:
        self.image_calls.append(image_url)
        await asyncio.sleep(0)
        value = self.images.get(image_url)
        if value is None:
            raise EmbeddingUnavailable()
        if isinstance(value, Exception):
            raise value
        return list(value)

    async def embed_text(self, text: str) -> list[float]:
        self.text_calls.append(text)
        value = self.texts.get(text)
        if value is None:
            raise EmbeddingUnavailable()
        if isinstance(value, Exception):
            raise value
        return list(value)


class FakeGenerator:
    def __init__(self, url: str = "https://fal.example.com/generated.png", error: Exception | None = None):
        self.url = url
        self.error = error
        self.prompts: list[str] = []

    async def generate(self, prompt: str) -> str:
        self.prompts.append(prompt)
        if self.error is not None:
            raise self.error
        return self.url


@pytest.fixture
async def engine():
    engine = create_async_engine("sqlite+aiosqlite://", poolclass=StaticPool)
    assert await init_db(engine, attempts=1)
    yield engine
    await engine.dispose()


@pytest.fixture
def sessions(engine):
    return build_session_factory(engine)


@pytest.fixture
def challenge_store(sessions):
    return ChallengeStore(sessions, timeout=5.0)


@pytest.fixture
def ledger(sessions):
    return GuessLedger(sessions, timeout=5.0)


@pytest.fixture
def make_challenge(sessions):
    async def _make(embedding=None, image_url=TARGET_URL, day=None):
        challenge = Challenge(
            date=day or today_in_zone("UTC"),
            image_url=image_url,
            embedding=embedding,
            photographer_name="Ansel Adams",
            photographer_url="https://unsplash.com/@ansel",
        )
        async with sessions() as session:
            session.add(challenge)
            await session.commit()
            await session.refresh(challenge)
        return challenge

    return _make
