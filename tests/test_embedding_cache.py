import asyncio
import uuid
from unittest.mock import AsyncMock

import pytest
from sqlalchemy.exc import OperationalError

from dailyprompt.embedding_cache import EmbeddingCache
from dailyprompt.errors import EmbeddingUnavailable

from conftest import TARGET_URL, FakeEmbedder


async def test_miss_embeds_once_and_persists(challenge_store, make_challenge):
    challenge = await make_challenge(embedding=None)
    embedder = FakeEmbedder(images={TARGET_URL: [0.6, 0.8]})
    cache = EmbeddingCache(challenge_store, embedder)

    vector = await cache.get_or_compute(challenge.id, TARGET_URL)

    assert vector == [0.6, 0.8]
    assert embedder.image_calls == [TARGET_URL]
    assert await challenge_store.get_embedding(challenge.id) == [0.6, 0.8]


async def test_hit_makes_no_embedding_call(challenge_store, make_challenge):
    challenge = await make_challenge(embedding=None)
    embedder = FakeEmbedder(images={TARGET_URL: [0.6, 0.8]})
    cache = EmbeddingCache(challenge_store, embedder)

    await cache.get_or_compute(challenge.id, TARGET_URL)
    embedder.image_calls.clear()
    vector = await cache.get_or_compute(challenge.id, TARGET_URL)

    assert vector == [0.6, 0.8]
    assert embedder.image_calls == []


async def test_prefilled_embedding_is_used(challenge_store, make_challenge):
    challenge = await make_challenge(embedding=[1.0, 0.0])
    embedder = FakeEmbedder()

    vector = await EmbeddingCache(challenge_store, embedder).get_or_compute(challenge.id, TARGET_URL)

    assert vector == [1.0, 0.0]
    assert embedder.image_calls == []


async def test_empty_cached_embedding_counts_as_miss(challenge_store, make_challenge):
    challenge = await make_challenge(embedding=[])
    embedder = FakeEmbedder(images={TARGET_URL: [0.0, 1.0]})

    vector = await EmbeddingCache(challenge_store, embedder).get_or_compute(challenge.id, TARGET_URL)

    assert vector == [0.0, 1.0]
    assert embedder.image_calls == [TARGET_URL]


async def test_failed_persist_still_returns_vector():
    store = AsyncMock()
    store.get_embedding.return_value = None
    store.update_embedding.side_effect = OperationalError("UPDATE", {}, Exception("read-only"))
    embedder = FakeEmbedder(images={TARGET_URL: [0.6, 0.8]})

    vector = await EmbeddingCache(store, embedder).get_or_compute(uuid.uuid4(), TARGET_URL)

    assert vector == [0.6, 0.8]
    store.update_embedding.assert_awaited_once()


async def test_failed_cache_read_falls_back_to_computing():
    store = AsyncMock()
    store.get_embedding.side_effect = asyncio.TimeoutError()
    embedder = FakeEmbedder(images={TARGET_URL: [0.6, 0.8]})

    vector = await EmbeddingCache(store, embedder).get_or_compute(uuid.uuid4(), TARGET_URL)

    assert vector == [0.6, 0.8]
    assert embedder.image_calls == [TARGET_URL]


async def test_embedding_service_failure_propagates(challenge_store, make_challenge):
    challenge = await make_challenge(embedding=None)
    embedder = FakeEmbedder(images={TARGET_URL: EmbeddingUnavailable()})

    with pytest.raises(EmbeddingUnavailable):
        await EmbeddingCache(challenge_store, embedder).get_or_compute(challenge.id, TARGET_URL)

    assert await challenge_store.get_embedding(challenge.id) is None


class _RacyStore:
    """Challenge store double whose reads all happen before any write lands."""

    def __init__(self):
        self.embedding = None
        self.writes = []

    async def get_embedding(self, challenge_id):
        await asyncio.sleep(0)
        return self.embedding

    async def update_embedding(self, challenge_id, embedding):
        self.writes.append(list(embedding))
        self.embedding = embedding


async def test_concurrent_first_requests_all_compute_and_last_write_wins():
    # No lock around the fill: every concurrent miss calls the service and
    # writes. The image is static, so every write carries the same vector.
    store = _RacyStore()
    embedder = FakeEmbedder(images={TARGET_URL: [0.6, 0.8]})
    cache = EmbeddingCache(store, embedder)
    challenge_id = uuid.uuid4()

    results = await asyncio.gather(*(cache.get_or_compute(challenge_id, TARGET_URL) for _ in range(3)))

    assert results == [[0.6, 0.8]] * 3
    assert len(embedder.image_calls) == 3
    assert store.writes == [[0.6, 0.8]] * 3
    assert store.embedding == [0.6, 0.8]
