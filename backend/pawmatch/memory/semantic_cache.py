"""Semantic response cache backed by a ChromaDB collection.

Lookups are two-tier:

1. **Exact**: the normalized input is hashed together with the flow tag and
   fetched by id (similarity 1.0).
2. **Semantic**: the input is embedded and the nearest stored entry of the
   same flow tag is returned if its cosine similarity meets the threshold.

Each Chroma record is one cache entry::

    id        = sha256("<flow_tag>:<normalized input>")
    document  = raw input text
    embedding = input embedding
    metadata  = {flow_tag, response, metadata_json, hit_count,
                 last_used_at, created_at}

The cache is strictly best-effort: every failure is logged and swallowed.
"""

from __future__ import annotations

import asyncio
import hashlib
import json
import logging
import math
import time
from datetime import datetime, timezone
from typing import Any

import chromadb
from langchain_core.embeddings import Embeddings

from pawmatch.models.cache import CacheEntry, CacheStats

logger = logging.getLogger(__name__)

COLLECTION_NAME = "semantic_cache"


def normalize_input(text: str) -> str:
    """Lowercase, trim and collapse whitespace."""
    return " ".join(text.lower().split())


def hash_input(text: str, flow_tag: str) -> str:
    return hashlib.sha256(f"{flow_tag}:{normalize_input(text)}".encode("utf-8")).hexdigest()


def create_cache_collection(
    client: chromadb.ClientAPI, name: str = COLLECTION_NAME
) -> chromadb.Collection:
    """Return the cache collection, created with cosine distance."""
    return client.get_or_create_collection(name=name, metadata={"hnsw:space": "cosine"})


def _ts(value: Any) -> datetime:
    return datetime.fromtimestamp(float(value or 0), tz=timezone.utc)


class SemanticCache:
    """Memoizes model responses for router and Q&A calls."""

    def __init__(
        self,
        collection: chromadb.Collection,
        embeddings: Embeddings,
        *,
        similarity_threshold: float = 0.85,
        max_entries: int = 10_000,
        eviction_fraction: float = 0.1,
    ) -> None:
        self._collection = collection
        self._embeddings = embeddings
        self.similarity_threshold = similarity_threshold
        self.max_entries = max_entries
        self.eviction_fraction = eviction_fraction
        self._pending: set[asyncio.Task] = set()

    # ------------------------------------------------------------------
    # Lookup
    # ------------------------------------------------------------------

    async def lookup(self, text: str, flow_tag: str) -> CacheEntry | None:
        """Return the cached entry for ``text`` under ``flow_tag``, if any."""
        try:
            entry = self._exact_lookup(text, flow_tag)
            if entry is not None:
                logger.debug("Semantic cache exact hit (flow=%s)", flow_tag)
                return entry
            entry = await self._similarity_lookup(text, flow_tag)
            if entry is not None:
                logger.debug(
                    "Semantic cache similarity hit (flow=%s, similarity=%.3f)",
                    flow_tag,
                    entry.similarity,
                )
            return entry
        except Exception:
            logger.exception("Semantic cache lookup failed (flow=%s)", flow_tag)
            return None

    def _exact_lookup(self, text: str, flow_tag: str) -> CacheEntry | None:
        key = hash_input(text, flow_tag)
        found = self._collection.get(ids=[key], include=["documents", "metadatas"])
        if not found.get("ids"):
            return None
        return self._record_hit(key, found["documents"][0], found["metadatas"][0], 1.0)

    async def _similarity_lookup(self, text: str, flow_tag: str) -> CacheEntry | None:
        if self._collection.count() == 0:
            return None
        embedding = await self._embeddings.aembed_query(normalize_input(text))
        results = self._collection.query(
            query_embeddings=[embedding],
            n_results=1,
            where={"flow_tag": flow_tag},
            include=["documents", "metadatas", "distances"],
        )
        ids = (results.get("ids") or [[]])[0]
        if not ids:
            return None
        distance = float(results["distances"][0][0])
        similarity = 1.0 - distance
        if similarity < self.similarity_threshold:
            logger.debug(
                "Semantic cache miss (flow=%s, best similarity=%.3f)", flow_tag, similarity
            )
            return None
        return self._record_hit(
            ids[0], results["documents"][0][0], results["metadatas"][0][0], similarity
        )

    def _record_hit(
        self, key: str, document: str | None, meta: dict[str, Any], similarity: float
    ) -> CacheEntry:
        updated = dict(meta)
        updated["hit_count"] = int(meta.get("hit_count", 0)) + 1
        updated["last_used_at"] = time.time()
        self._collection.update(ids=[key], metadatas=[updated])
        return self._to_entry(key, document, updated, similarity)

    @staticmethod
    def _to_entry(
        key: str, document: str | None, meta: dict[str, Any], similarity: float
    ) -> CacheEntry:
        raw_meta = meta.get("metadata_json")
        return CacheEntry(
            key=key,
            flow_tag=str(meta.get("flow_tag", "")),
            input_text=document or "",
            response=str(meta.get("response", "")),
            metadata=json.loads(raw_meta) if raw_meta else None,
            hit_count=int(meta.get("hit_count", 0)),
            last_used_at=_ts(meta.get("last_used_at")),
            created_at=_ts(meta.get("created_at")),
            similarity=similarity,
        )

    # ------------------------------------------------------------------
    # Store
    # ------------------------------------------------------------------

    async def store(
        self,
        text: str,
        response: str,
        flow_tag: str,
        metadata: dict[str, Any] | None = None,
    ) -> None:
        """Upsert ``response`` for ``text`` under ``flow_tag``. Never raises."""
        try:
            key = hash_input(text, flow_tag)
            embedding = await self._embeddings.aembed_query(normalize_input(text))

            if self._collection.count() >= self.max_entries:
                self.evict(max(1, math.ceil(self.max_entries * self.eviction_fraction)))

            now = time.time()
            existing = self._collection.get(ids=[key], include=["metadatas"])
            previous = existing["metadatas"][0] if existing.get("ids") else {}

            meta: dict[str, Any] = {
                "flow_tag": flow_tag,
                "response": response,
                "hit_count": int(previous.get("hit_count", 0)),
                "last_used_at": now,
                "created_at": float(previous.get("created_at", now)),
            }
            if metadata:
                meta["metadata_json"] = json.dumps(metadata)

            self._collection.upsert(
                ids=[key],
                embeddings=[embedding],
                documents=[text],
                metadatas=[meta],
            )
            logger.debug("Stored in semantic cache (flow=%s, chars=%d)", flow_tag, len(text))
        except Exception:
            logger.exception("Failed to store in semantic cache (flow=%s)", flow_tag)

    def schedule_store(
        self,
        text: str,
        response: str,
        flow_tag: str,
        metadata: dict[str, Any] | None = None,
    ) -> asyncio.Task:
        """Fire-and-forget :meth:`store`; the task is tracked until done."""
        task = asyncio.create_task(self.store(text, response, flow_tag, metadata))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        return task

    async def drain(self) -> None:
        """Wait for pending background writes (used on shutdown and in tests)."""
        if self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    # ------------------------------------------------------------------
    # Maintenance
    # ------------------------------------------------------------------

    def evict(self, count: int) -> int:
        """Delete the ``count`` least useful entries (fewest hits, oldest use)."""
        try:
            data = self._collection.get(include=["metadatas"])
            rows = list(zip(data.get("ids") or [], data.get("metadatas") or []))
            rows.sort(
                key=lambda row: (
                    int(row[1].get("hit_count", 0)),
                    float(row[1].get("last_used_at", 0)),
                )
            )
            victims = [row_id for row_id, _meta in rows[:count]]
            if victims:
                self._collection.delete(ids=victims)
            logger.debug("Evicted %d semantic cache entries", len(victims))
            return len(victims)
        except Exception:
            logger.exception("Failed to evict semantic cache entries")
            return 0

    def stats(self) -> CacheStats:
        data = self._collection.get(include=["metadatas"])
        by_flow: dict[str, int] = {}
        total_hits = 0
        for meta in data.get("metadatas") or []:
            flow = str(meta.get("flow_tag", ""))
            by_flow[flow] = by_flow.get(flow, 0) + 1
            total_hits += int(meta.get("hit_count", 0))
        return CacheStats(
            total_entries=len(data.get("ids") or []),
            by_flow=by_flow,
            total_hits=total_hits,
        )

    def clear(self, flow_tag: str | None = None) -> int:
        """Delete all entries, or only those of one flow tag."""
        if flow_tag:
            data = self._collection.get(where={"flow_tag": flow_tag}, include=[])
        else:
            data = self._collection.get(include=[])
        ids = data.get("ids") or []
        if ids:
            self._collection.delete(ids=ids)
        logger.info("Cleared %d semantic cache entries (flow=%s)", len(ids), flow_tag or "*")
        return len(ids)
