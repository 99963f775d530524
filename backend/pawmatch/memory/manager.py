"""Storage manager coordinating MongoDB stores and the ChromaDB cache.

This module provides the central storage layer for the matching service:
- **Sessions**: one MongoDB document per session with a TTL index
- **Saved preferences**: last-known preference record per user (MongoDB)
- **Candidate catalog**: the MongoDB ``animals`` collection, or a static
  YAML seed file for local development
- **Semantic cache**: ChromaDB collection with Google embeddings
"""

from __future__ import annotations

import logging
from pathlib import Path

import chromadb
from langchain_core.embeddings import Embeddings
from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorDatabase

from pawmatch.config import Settings, settings as default_settings
from pawmatch.llm.client import build_embeddings
from pawmatch.matching.catalog import (
    COLLECTION_NAME as ANIMALS_COLLECTION,
    CandidateCatalog,
    MongoCatalog,
    StaticCatalog,
)
from pawmatch.memory.semantic_cache import SemanticCache, create_cache_collection
from pawmatch.memory.session_store import (
    COLLECTION_NAME as SESSIONS_COLLECTION,
    SessionStore,
)
from pawmatch.preferences.store import (
    COLLECTION_NAME as PREFERENCES_COLLECTION,
    PreferenceStore,
)

logger = logging.getLogger(__name__)

_NOT_INITIALIZED = "StorageManager not initialized - call initialize() first"


class StorageManager:
    """Owns the MongoDB and ChromaDB clients and the stores built on them.

    Lifecycle:
        manager = StorageManager()
        await manager.initialize()   # call once at startup
        ...
        await manager.close()        # call once at shutdown
    """

    def __init__(self, settings: Settings | None = None) -> None:
        self._settings = settings or default_settings
        self._mongo_client: AsyncIOMotorClient | None = None
        self._mongo_db: AsyncIOMotorDatabase | None = None
        self._chroma_client: chromadb.ClientAPI | None = None
        self._embeddings: Embeddings | None = None
        self._sessions: SessionStore | None = None
        self._preferences: PreferenceStore | None = None
        self._catalog: CandidateCatalog | None = None
        self._semantic_cache: SemanticCache | None = None
        self._initialized: bool = False

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def initialize(self) -> None:
        """Connect to MongoDB and ChromaDB, prepare stores and indexes."""
        if self._initialized:
            logger.warning("StorageManager already initialized - skipping")
            return

        s = self._settings

        # 1) MongoDB -------------------------------------------------
        logger.info("Connecting to MongoDB at %s", s.mongodb_uri)
        self._mongo_client = AsyncIOMotorClient(
            s.mongodb_uri,
            serverSelectionTimeoutMS=5_000,
            tz_aware=True,
        )
        self._mongo_db = self._mongo_client[s.mongodb_database]
        await self._mongo_client.admin.command("ping")
        logger.info("MongoDB connection established")

        self._sessions = SessionStore(
            self._mongo_db[SESSIONS_COLLECTION], ttl_seconds=s.session_ttl_seconds
        )
        self._preferences = PreferenceStore(self._mongo_db[PREFERENCES_COLLECTION])
        await self._sessions.ensure_indexes()
        await self._preferences.ensure_indexes()

        # 2) Catalog -------------------------------------------------
        if s.catalog_backend == "static":
            self._catalog = StaticCatalog.from_yaml(Path(s.catalog_seed_path))
        else:
            self._catalog = MongoCatalog(self._mongo_db[ANIMALS_COLLECTION])
        logger.info("Candidate catalog backend: %s", s.catalog_backend)

        # 3) ChromaDB + embeddings -----------------------------------
        logger.info("Connecting to ChromaDB at %s:%s", s.chromadb_host, s.chromadb_port)
        self._chroma_client = chromadb.HttpClient(host=s.chromadb_host, port=s.chromadb_port)
        self._chroma_client.heartbeat()
        logger.info("ChromaDB connection established")

        self._embeddings = build_embeddings(s)
        self._semantic_cache = SemanticCache(
            create_cache_collection(self._chroma_client),
            self._embeddings,
            similarity_threshold=s.semantic_cache_threshold,
            max_entries=s.semantic_cache_max_entries,
            eviction_fraction=s.semantic_cache_eviction_fraction,
        )
        logger.info("Semantic cache collection ready")

        self._initialized = True
        logger.info("StorageManager fully initialized")

    async def close(self) -> None:
        """Flush pending cache writes and release connections."""
        if self._semantic_cache is not None:
            await self._semantic_cache.drain()
        if self._mongo_client is not None:
            self._mongo_client.close()
            logger.info("MongoDB connection closed")
        self._initialized = False

    # ------------------------------------------------------------------
    # Properties (guard against use before init)
    # ------------------------------------------------------------------

    @property
    def mongo_db(self) -> AsyncIOMotorDatabase:
        if self._mongo_db is None:
            raise RuntimeError(_NOT_INITIALIZED)
        return self._mongo_db

    @property
    def chroma_client(self) -> chromadb.ClientAPI:
        if self._chroma_client is None:
            raise RuntimeError(_NOT_INITIALIZED)
        return self._chroma_client

    @property
    def sessions(self) -> SessionStore:
        if self._sessions is None:
            raise RuntimeError(_NOT_INITIALIZED)
        return self._sessions

    @property
    def preferences(self) -> PreferenceStore:
        if self._preferences is None:
            raise RuntimeError(_NOT_INITIALIZED)
        return self._preferences

    @property
    def catalog(self) -> CandidateCatalog:
        if self._catalog is None:
            raise RuntimeError(_NOT_INITIALIZED)
        return self._catalog

    @property
    def semantic_cache(self) -> SemanticCache:
        if self._semantic_cache is None:
            raise RuntimeError(_NOT_INITIALIZED)
        return self._semantic_cache

    @property
    def is_initialized(self) -> bool:
        return self._initialized
