"""Semantic cache models."""

from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, Field


class CacheEntry(BaseModel):
    """A memoized model response scoped to a flow tag."""

    key: str
    flow_tag: str
    input_text: str
    response: str
    metadata: Optional[dict[str, Any]] = None
    hit_count: int = 0
    last_used_at: datetime
    created_at: datetime
    similarity: float = 1.0


class CacheStats(BaseModel):
    """Aggregate numbers for the cache API."""

    total_entries: int = 0
    by_flow: dict[str, int] = Field(default_factory=dict)
    total_hits: int = 0
