"""MongoDB session store: one document per session with a sliding TTL.

Document schema::

    {
        "session_id": "chat_3f2c...",
        "user_id": "user-42" | null,
        "state": { ...Session.model_dump(mode="json")... },
        "created_at": <datetime>,
        "updated_at": <datetime>,
        "expires_at": <datetime>
    }

A TTL index on ``expires_at`` lets MongoDB reap expired sessions; reads also
check the expiry so a session is never served after its TTL even before the
TTL monitor runs.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import Any

from motor.motor_asyncio import AsyncIOMotorCollection
from pymongo import ASCENDING

from pawmatch.models.sessions import Session

logger = logging.getLogger(__name__)

COLLECTION_NAME = "chat_sessions"


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _as_utc(value: datetime) -> datetime:
    # pymongo hands back naive UTC datetimes unless tz_aware is set
    return value if value.tzinfo else value.replace(tzinfo=timezone.utc)


class SessionStore:
    """Load and save :class:`Session` objects with a TTL."""

    def __init__(self, collection: AsyncIOMotorCollection, ttl_seconds: int = 3600) -> None:
        self._collection = collection
        self.ttl_seconds = ttl_seconds

    async def ensure_indexes(self) -> None:
        await self._collection.create_index([("session_id", ASCENDING)], unique=True)
        await self._collection.create_index([("expires_at", ASCENDING)], expireAfterSeconds=0)

    async def get(self, session_id: str) -> Session | None:
        doc = await self._collection.find_one({"session_id": session_id}, {"_id": 0})
        if not doc:
            return None
        expires_at = doc.get("expires_at")
        if expires_at is not None and _as_utc(expires_at) <= _now():
            logger.debug("Session %s expired", session_id)
            return None
        return Session.model_validate(doc["state"])

    async def save(self, session: Session) -> None:
        """Upsert the session and push its expiry forward."""
        now = _now()
        session.updated_at = now
        payload: dict[str, Any] = {
            "user_id": session.user_id,
            "state": session.model_dump(mode="json"),
            "updated_at": now,
            "expires_at": now + timedelta(seconds=self.ttl_seconds),
        }
        await self._collection.update_one(
            {"session_id": session.session_id},
            {
                "$set": payload,
                "$setOnInsert": {"session_id": session.session_id, "created_at": now},
            },
            upsert=True,
        )

    async def delete(self, session_id: str) -> bool:
        result = await self._collection.delete_one({"session_id": session_id})
        return result.deleted_count > 0
