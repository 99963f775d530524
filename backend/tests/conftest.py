"""Shared test fixtures for the PawMatch backend."""

import asyncio
import os
import uuid
from collections.abc import AsyncGenerator
from typing import Any

# Settings require an API key at import time; no request ever reaches Google.
os.environ.setdefault("GOOGLE_API_KEY", "test-key")

import chromadb
import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from langchain_core.embeddings import DeterministicFakeEmbedding, Embeddings
from langchain_core.messages import AIMessage
from mongomock_motor import AsyncMongoMockClient

from pawmatch.agent.engine import ConversationEngine
from pawmatch.agent.post_result import PostResultHandler
from pawmatch.agent.qa import QAResponder
from pawmatch.agent.router import IntentRouter
from pawmatch.config import settings
from pawmatch.llm.client import GenerationClient
from pawmatch.main import app
from pawmatch.matching.catalog import StaticCatalog
from pawmatch.matching.scoring import ScoringEngine
from pawmatch.matching.selection import SelectionEngine
from pawmatch.memory.semantic_cache import SemanticCache, create_cache_collection
from pawmatch.memory.session_store import SessionStore
from pawmatch.personality.loader import Persona
from pawmatch.preferences.engine import PreferenceEngine
from pawmatch.preferences.store import PreferenceStore


class ScriptedChatModel:
    """Chat model stand-in that replays canned replies and records prompts.

    A reply that is an exception instance is raised instead of returned.
    """

    def __init__(self, replies: list[Any] | None = None, delay: float = 0.0) -> None:
        self._replies = list(replies or [])
        self.delay = delay
        self.calls: list[list[Any]] = []

    async def ainvoke(self, messages: list[Any]) -> AIMessage:
        self.calls.append(messages)
        if self.delay:
            await asyncio.sleep(self.delay)
        if not self._replies:
            raise ConnectionError("no scripted reply left")
        reply = self._replies.pop(0)
        if isinstance(reply, Exception):
            raise reply
        return AIMessage(content=reply)


class KeywordEmbeddings(Embeddings):
    """Bag-of-keywords vectors, so paraphrases land close together."""

    VOCAB = (
        "feed",
        "puppy",
        "often",
        "vaccine",
        "train",
        "crate",
        "walk",
        "groom",
        "adopt",
    )

    def _embed(self, text: str) -> list[float]:
        lowered = text.lower()
        return [0.01] + [1.0 if word in lowered else 0.0 for word in self.VOCAB]

    def embed_documents(self, texts: list[str]) -> list[list[float]]:
        return [self._embed(t) for t in texts]

    def embed_query(self, text: str) -> list[float]:
        return self._embed(text)


def scripted(*replies: Any, delay: float = 0.0) -> tuple[GenerationClient, ScriptedChatModel]:
    model = ScriptedChatModel(list(replies), delay=delay)
    return GenerationClient(model, timeout=5), model  # type: ignore[arg-type]


@pytest_asyncio.fixture
async def client() -> AsyncGenerator[AsyncClient, None]:
    """Async HTTP client for testing FastAPI endpoints."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()


@pytest.fixture
def persona() -> Persona:
    return Persona(name="Biscuit", greeting="Hi! Looking for a puppy?", tone="Friendly.")


@pytest.fixture
def catalog() -> StaticCatalog:
    return StaticCatalog.from_yaml(settings.catalog_seed_path)


@pytest.fixture
def mongo_db():
    return AsyncMongoMockClient()[f"pawmatch_test_{uuid.uuid4().hex[:8]}"]


@pytest.fixture
def session_store(mongo_db) -> SessionStore:
    return SessionStore(mongo_db["chat_sessions"], ttl_seconds=3600)


@pytest.fixture
def preference_store(mongo_db) -> PreferenceStore:
    return PreferenceStore(mongo_db["user_preferences"])


@pytest.fixture
def chroma_client() -> chromadb.ClientAPI:
    return chromadb.EphemeralClient()


@pytest.fixture
def cache_collection(chroma_client):
    return create_cache_collection(chroma_client, f"cache_{uuid.uuid4().hex}")


@pytest.fixture
def keyword_cache(cache_collection) -> SemanticCache:
    return SemanticCache(cache_collection, KeywordEmbeddings(), similarity_threshold=0.85)


@pytest.fixture
def fake_embedding_cache(cache_collection) -> SemanticCache:
    return SemanticCache(cache_collection, DeterministicFakeEmbedding(size=16))


@pytest.fixture
def make_engine(session_store, preference_store, catalog, keyword_cache, persona):
    """Build a ConversationEngine whose model roles replay scripted replies.

    Returns the engine and a dict of the scripted models by role.
    """

    def _make(
        router: list[Any] | None = None,
        extraction: list[Any] | None = None,
        follow_up: list[Any] | None = None,
        selection: list[Any] | None = None,
        qa: list[Any] | None = None,
        post_result: list[Any] | None = None,
        *,
        catalog_override=None,
        delay: float = 0.0,
    ) -> tuple[ConversationEngine, dict[str, ScriptedChatModel]]:
        models: dict[str, ScriptedChatModel] = {}
        clients: dict[str, GenerationClient] = {}
        for role, replies in {
            "router": router,
            "extraction": extraction,
            "follow_up": follow_up,
            "selection": selection,
            "qa": qa,
            "post_result": post_result,
        }.items():
            clients[role], models[role] = scripted(*(replies or []), delay=delay)

        animals = catalog_override or catalog
        engine = ConversationEngine(
            sessions=session_store,
            router=IntentRouter(clients["router"], keyword_cache),
            preferences=PreferenceEngine(
                clients["extraction"],
                clients["follow_up"],
                animals,
                preference_store,
                persona,
            ),
            scoring=ScoringEngine(animals),
            selection=SelectionEngine(clients["selection"]),
            qa=QAResponder(clients["qa"], keyword_cache, persona),
            post_result=PostResultHandler(clients["post_result"]),
            preference_store=preference_store,
            persona=persona,
            candidate_limit=10,
            history_limit=20,
        )
        return engine, models

    return _make
