"""Dependency injection providers for FastAPI."""

from pawmatch.agent.engine import ConversationEngine
from pawmatch.agent.post_result import PostResultHandler
from pawmatch.agent.qa import QAResponder
from pawmatch.agent.router import IntentRouter
from pawmatch.config import Settings, settings
from pawmatch.llm.client import build_generation_client
from pawmatch.matching.scoring import ScoringEngine
from pawmatch.matching.selection import SelectionEngine
from pawmatch.memory.manager import StorageManager
from pawmatch.memory.semantic_cache import SemanticCache
from pawmatch.personality.loader import get_persona
from pawmatch.preferences.engine import PreferenceEngine
from pawmatch.preferences.store import PreferenceStore

# Global singleton instances (safe for a single event loop)
_storage_manager: StorageManager | None = None
_engine: ConversationEngine | None = None


def get_storage_manager() -> StorageManager:
    """Return singleton StorageManager instance."""
    global _storage_manager
    if _storage_manager is None:
        _storage_manager = StorageManager(settings)
    return _storage_manager


def build_engine(config: Settings, storage: StorageManager) -> ConversationEngine:
    """Wire the conversation engine from an initialized storage manager."""
    persona = get_persona()
    cache = storage.semantic_cache
    return ConversationEngine(
        sessions=storage.sessions,
        router=IntentRouter(build_generation_client(config, temperature=0.0), cache),
        preferences=PreferenceEngine(
            build_generation_client(config, temperature=0.1),
            build_generation_client(config, temperature=0.7),
            storage.catalog,
            storage.preferences,
            persona,
        ),
        scoring=ScoringEngine(storage.catalog),
        selection=SelectionEngine(build_generation_client(config, temperature=0.5)),
        qa=QAResponder(build_generation_client(config, temperature=0.7), cache, persona),
        post_result=PostResultHandler(build_generation_client(config, temperature=0.7)),
        preference_store=storage.preferences,
        persona=persona,
        candidate_limit=config.scoring_candidate_limit,
        history_limit=config.session_history_limit,
    )


def get_engine() -> ConversationEngine:
    """Return singleton ConversationEngine (storage must be initialized)."""
    global _engine
    if _engine is None:
        _engine = build_engine(settings, get_storage_manager())
    return _engine


def get_semantic_cache() -> SemanticCache:
    return get_storage_manager().semantic_cache


def get_preference_store() -> PreferenceStore:
    return get_storage_manager().preferences
