import uuid
from unittest.mock import AsyncMock

import httpx
import pytest
from sqlalchemy.exc import OperationalError

from dailyprompt.config import Settings
from dailyprompt.main import create_app
from dailyprompt.orchestrator import AttemptOrchestrator

from conftest import FakeEmbedder


@pytest.fixture
async def challenge(make_challenge):
    return await make_challenge(embedding=[1, 0])


@pytest.fixture
async def client(challenge_store, ledger):
    embedder = FakeEmbedder(texts={"north": [0, 1], "east": [1, 0], "south": [0, -1]})
    orchestrator = AttemptOrchestrator(challenge_store, ledger, embedder)
    app = create_app(Settings(DAY_BOUNDARY_TZ="UTC"), orchestrator=orchestrator, challenge_store=challenge_store)
    async with httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://test") as client:
        yield client


def _as(user_id):
    return {"X-User-Id": user_id}


async def test_submit_attempt(client, challenge):
    resp = await client.post(
        f"/api/challenges/{challenge.id}/attempts", json={"prompt": "north"}, headers=_as("user-1")
    )

    assert resp.status_code == 201
    body = resp.json()
    assert body["success"] is True
    assert body["score"] == 50
    assert body["attempts_left"] == 2
    assert body["message"] == "Great attempt! You have 2 attempts left."


async def test_submit_without_identity_is_401(client, challenge):
    resp = await client.post(f"/api/challenges/{challenge.id}/attempts", json={"prompt": "north"})

    assert resp.status_code == 401
    assert resp.json()["kind"] == "unauthenticated"


async def test_overlong_prompt_is_422_outcome(client, challenge):
    resp = await client.post(
        f"/api/challenges/{challenge.id}/attempts", json={"prompt": "x" * 101}, headers=_as("user-1")
    )

    assert resp.status_code == 422
    assert resp.json()["kind"] == "invalid_prompt"


async def test_exhausted_is_an_ordinary_response(client, challenge):
    url = f"/api/challenges/{challenge.id}/attempts"
    for prompt in ("north", "east", "south"):
        assert (await client.post(url, json={"prompt": prompt}, headers=_as("user-1"))).status_code == 201

    resp = await client.post(url, json={"prompt": "north"}, headers=_as("user-1"))

    assert resp.status_code == 200
    body = resp.json()
    assert body["success"] is False
    assert body["kind"] == "attempts_exhausted"
    assert body["attempts_left"] == 0
    assert body["informational"] is True


async def test_history_and_best_score(client, challenge):
    url = f"/api/challenges/{challenge.id}/attempts"
    await client.post(url, json={"prompt": "north"}, headers=_as("user-1"))
    await client.post(url, json={"prompt": "east"}, headers=_as("user-1"))

    history = (await client.get(url, headers=_as("user-1"))).json()
    assert [a["attempt_number"] for a in history["attempts"]] == [1, 2]
    assert [a["score"] for a in history["attempts"]] == [50, 100]
    assert history["attempts_left"] == 1

    best = (await client.get(f"/api/challenges/{challenge.id}/best-score", headers=_as("user-1"))).json()
    assert best["best_score"] == 100

    none_yet = (await client.get(f"/api/challenges/{challenge.id}/best-score", headers=_as("user-2"))).json()
    assert none_yet["best_score"] is None


async def test_history_requires_identity(client, challenge):
    resp = await client.get(f"/api/challenges/{challenge.id}/attempts")
    assert resp.status_code == 401


async def test_todays_challenge(client, challenge):
    resp = await client.get("/api/challenges/today")

    assert resp.status_code == 200
    body = resp.json()
    assert body["id"] == str(challenge.id)
    assert body["photographer_name"] == "Ansel Adams"
    assert "embedding" not in body


async def test_unknown_challenge_is_404(client):
    resp = await client.get(f"/api/challenges/{uuid.uuid4()}")
    assert resp.status_code == 404


async def test_identity_is_checked_before_the_body(client, challenge):
    resp = await client.post(f"/api/challenges/{challenge.id}/attempts", json={})
    assert resp.status_code == 401
    assert resp.json()["kind"] == "unauthenticated"

    resp = await client.post(f"/api/challenges/{challenge.id}/attempts", json={}, headers=_as("user-1"))
    assert resp.status_code == 422
    assert resp.json()["kind"] == "invalid_prompt"


async def test_database_outage_on_reads_is_503(client, challenge, challenge_store, ledger, monkeypatch):
    outage = AsyncMock(side_effect=OperationalError("SELECT", {}, Exception("gone")))
    monkeypatch.setattr(ledger, "_list", outage)
    monkeypatch.setattr(ledger, "_best", outage)
    monkeypatch.setattr(challenge_store, "_get", outage)
    monkeypatch.setattr(challenge_store, "_get_for_date", outage)

    for path in (
        f"/api/challenges/{challenge.id}/attempts",
        f"/api/challenges/{challenge.id}/best-score",
        f"/api/challenges/{challenge.id}",
        "/api/challenges/today",
    ):
        resp = await client.get(path, headers=_as("user-1"))
        assert resp.status_code == 503, path
        assert set(resp.json()["detail"]) == {"error", "hint"}


async def test_submit_during_challenge_outage_is_503_not_404(client, challenge, challenge_store, monkeypatch):
    resp = await client.post(
        f"/api/challenges/{uuid.uuid4()}/attempts", json={"prompt": "north"}, headers=_as("user-1")
    )
    assert resp.status_code == 404

    monkeypatch.setattr(
        challenge_store, "_get", AsyncMock(side_effect=OperationalError("SELECT", {}, Exception("gone")))
    )
    resp = await client.post(
        f"/api/challenges/{challenge.id}/attempts", json={"prompt": "north"}, headers=_as("user-1")
    )
    assert resp.status_code == 503
    body = resp.json()
    assert body["kind"] == "challenge_unavailable"
    assert body["cause"] == "storage_unavailable"
    assert body["retryable"] is True


async def test_health(client):
    resp = await client.get("/api/status/health")
    assert resp.status_code == 200
    assert resp.json()["scoring_mode"] == "direct_prompt"
