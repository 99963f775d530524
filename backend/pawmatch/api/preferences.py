"""Saved preference endpoints."""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException

from pawmatch.dependencies import get_preference_store
from pawmatch.models.preferences import SavedPreferences
from pawmatch.preferences.store import PreferenceStore

logger = logging.getLogger(__name__)
router = APIRouter()


@router.get("/{user_id}", response_model=SavedPreferences)
async def get_preferences(
    user_id: str,
    store: PreferenceStore = Depends(get_preference_store),
) -> SavedPreferences:
    """Return the last saved preference record of a user."""
    saved = await store.get(user_id)
    if saved is None:
        raise HTTPException(status_code=404, detail=f"No saved preferences for '{user_id}'")
    return saved
