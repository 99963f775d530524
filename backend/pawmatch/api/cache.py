"""Semantic cache maintenance endpoints."""

from __future__ import annotations

import logging
from typing import Any, Optional

from fastapi import APIRouter, Depends, HTTPException

from pawmatch.dependencies import get_semantic_cache
from pawmatch.memory.semantic_cache import SemanticCache
from pawmatch.models.cache import CacheStats

logger = logging.getLogger(__name__)
router = APIRouter()


@router.get("/stats", response_model=CacheStats)
async def cache_stats(
    cache: SemanticCache = Depends(get_semantic_cache),
) -> CacheStats:
    """Entry counts per flow tag and total hits."""
    try:
        return cache.stats()
    except Exception as exc:
        logger.error("Failed to read cache stats: %s", exc)
        raise HTTPException(status_code=500, detail=str(exc))


@router.delete("")
async def clear_cache(
    flow_tag: Optional[str] = None,
    cache: SemanticCache = Depends(get_semantic_cache),
) -> dict[str, Any]:
    """Clear all cached responses, or only one flow tag."""
    try:
        deleted = cache.clear(flow_tag)
    except Exception as exc:
        logger.error("Failed to clear cache: %s", exc)
        raise HTTPException(status_code=500, detail=str(exc))
    return {"status": "cleared", "deleted": deleted, "flow_tag": flow_tag}
