"""Tests for the chat, preference and cache HTTP endpoints."""

import json

import pytest
from httpx import AsyncClient

from pawmatch.agent.safety import REFUSAL_MESSAGE
from pawmatch.dependencies import get_engine, get_preference_store, get_semantic_cache
from pawmatch.main import app
from pawmatch.models.preferences import PreferenceRecord


@pytest.fixture
def api(make_engine, preference_store, keyword_cache):
    """Wire the app to in-memory stores and scripted models."""

    def _wire(**roles):
        engine, models = make_engine(**roles)
        app.dependency_overrides[get_engine] = lambda: engine
        app.dependency_overrides[get_preference_store] = lambda: preference_store
        app.dependency_overrides[get_semantic_cache] = lambda: keyword_cache
        return engine, models

    return _wire


@pytest.mark.asyncio
async def test_session_lifecycle(client: AsyncClient, api, persona) -> None:
    api(
        router=[json.dumps({"flow": "qa", "confidence": "low"})],
        qa=["Puppies sleep up to 20 hours a day."],
    )

    created = await client.post("/api/chat/sessions")
    assert created.status_code == 201
    body = created.json()
    assert body["welcome_message"] == persona.greeting
    session_id = body["session_id"]

    reply = await client.post(
        f"/api/chat/sessions/{session_id}/messages",
        json={"content": "How much do puppies sleep?"},
    )
    assert reply.status_code == 200
    assert reply.json()["message"] == "Puppies sleep up to 20 hours a day."
    assert reply.json()["active_flow"] == "qa"

    state = await client.get(f"/api/chat/sessions/{session_id}")
    assert state.status_code == 200
    assert [t["role"] for t in state.json()["history"]] == ["assistant", "user", "assistant"]

    closed = await client.delete(f"/api/chat/sessions/{session_id}")
    assert closed.status_code == 204
    assert (await client.get(f"/api/chat/sessions/{session_id}")).status_code == 404


@pytest.mark.asyncio
async def test_unknown_session_is_404(client: AsyncClient, api) -> None:
    api()

    response = await client.post(
        "/api/chat/sessions/chat_missing/messages", json={"content": "hello"}
    )

    assert response.status_code == 404
    assert "chat_missing" in response.json()["detail"]
    assert (await client.delete("/api/chat/sessions/chat_missing")).status_code == 404


@pytest.mark.asyncio
async def test_empty_message_is_rejected(client: AsyncClient, api) -> None:
    api()
    created = await client.post("/api/chat/sessions")

    response = await client.post(
        f"/api/chat/sessions/{created.json()['session_id']}/messages", json={"content": ""}
    )

    assert response.status_code == 422


@pytest.mark.asyncio
async def test_start_session_for_returning_user(client: AsyncClient, api, preference_store) -> None:
    await preference_store.put("user-1", PreferenceRecord(location="Austin"))
    api()

    created = await client.post(
        "/api/chat/sessions", json={"user_id": "user-1", "location": "Austin"}
    )

    assert created.status_code == 201
    assert created.json()["is_returning_user"] is True
    assert created.json()["prior_preferences"]["location"] == "Austin"


@pytest.mark.asyncio
async def test_saved_preferences_endpoint(client: AsyncClient, api, preference_store) -> None:
    api()

    assert (await client.get("/api/preferences/user-2")).status_code == 404

    await preference_store.put("user-2", PreferenceRecord(housing="apartment"))
    response = await client.get("/api/preferences/user-2")

    assert response.status_code == 200
    assert response.json()["preferences"]["housing"] == "apartment"


@pytest.mark.asyncio
async def test_cache_stats_and_clear(client: AsyncClient, api, keyword_cache) -> None:
    api()
    await keyword_cache.store("adopt a puppy", "collecting_preferences", "router")
    await keyword_cache.store("feed a puppy", "Three meals.", "qa")

    stats = await client.get("/api/cache/stats")
    assert stats.status_code == 200
    assert stats.json()["total_entries"] == 2

    cleared = await client.delete("/api/cache", params={"flow_tag": "qa"})
    assert cleared.json() == {"status": "cleared", "deleted": 1, "flow_tag": "qa"}

    everything = await client.delete("/api/cache")
    assert everything.json()["deleted"] == 1


@pytest.mark.asyncio
async def test_one_shot_recommendations(client: AsyncClient, api) -> None:
    _, models = api(
        selection=[
            json.dumps(
                {
                    "selections": [{"animal_id": "pup-009", "reasons": ["Loves trails"]}],
                    "explanation": "Dash matches your pace.",
                }
            )
        ]
    )

    response = await client.post(
        "/api/recommendations",
        json={"activity_level": "high", "location": "Austin"},
    )

    assert response.status_code == 200
    body = response.json()
    assert [r["animal"]["id"] for r in body["recommendations"]] == ["pup-009"]
    assert body["explanation"] == "Dash matches your pace."
    assert len(models["selection"].calls) == 1


@pytest.mark.asyncio
async def test_one_shot_recommendations_need_a_preference(client: AsyncClient, api) -> None:
    _, models = api()

    empty = await client.post("/api/recommendations", json={})
    invalid = await client.post("/api/recommendations", json={"housing": "castle"})

    assert empty.status_code == 400
    assert invalid.status_code == 422
    assert models["selection"].calls == []


@pytest.mark.asyncio
async def test_ask_endpoint(client: AsyncClient, api) -> None:
    _, models = api(qa=["Start crate training with short sessions."])

    answer = await client.post("/api/ask", json={"question": "How do I crate train?"})
    refused = await client.post("/api/ask", json={"question": "How do I poison a dog?"})

    assert answer.status_code == 200
    assert answer.json() == {"answer": "Start crate training with short sessions."}
    assert refused.json()["answer"] == REFUSAL_MESSAGE
    assert len(models["qa"].calls) == 1
    assert models["router"].calls == []
