"""MongoDB-backed store for each user's last-known preference record."""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from motor.motor_asyncio import AsyncIOMotorCollection

from pawmatch.models.preferences import PreferenceRecord, SavedPreferences

logger = logging.getLogger(__name__)

COLLECTION_NAME = "user_preferences"


class PreferenceStore:
    """Get/put a :class:`PreferenceRecord` keyed by user id."""

    def __init__(self, collection: AsyncIOMotorCollection) -> None:
        self._collection = collection

    async def ensure_indexes(self) -> None:
        await self._collection.create_index("user_id", unique=True)

    async def get(self, user_id: str) -> SavedPreferences | None:
        doc = await self._collection.find_one({"user_id": user_id}, {"_id": 0})
        if not doc:
            return None
        updated_at = doc.get("updated_at") or datetime.now(timezone.utc)
        if updated_at.tzinfo is None:
            updated_at = updated_at.replace(tzinfo=timezone.utc)
        return SavedPreferences(
            user_id=user_id,
            preferences=PreferenceRecord.model_validate(doc.get("preferences") or {}),
            updated_at=updated_at,
        )

    async def put(self, user_id: str, record: PreferenceRecord) -> None:
        await self._collection.update_one(
            {"user_id": user_id},
            {
                "$set": {
                    "preferences": record.model_dump(mode="json"),
                    "updated_at": datetime.now(timezone.utc),
                }
            },
            upsert=True,
        )
        logger.debug("Saved preferences for user %s", user_id)
