"""Stateless matching endpoints: one-shot recommendations and questions."""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException

from pawmatch.agent.engine import ConversationEngine
from pawmatch.dependencies import get_engine
from pawmatch.models.preferences import PreferenceRecord
from pawmatch.models.recommendations import RecommendationResult
from pawmatch.models.sessions import AskRequest, AskResponse

logger = logging.getLogger(__name__)
router = APIRouter()


@router.post("/recommendations", response_model=RecommendationResult)
async def recommend(
    prefs: PreferenceRecord,
    engine: ConversationEngine = Depends(get_engine),
) -> RecommendationResult:
    """Score and select puppies for a preference record without a session."""
    if not prefs.model_dump(exclude_none=True):
        raise HTTPException(status_code=400, detail="At least one preference is required")
    try:
        return await engine.recommend(prefs)
    except Exception as exc:
        logger.exception("One-shot recommendation failed")
        raise HTTPException(status_code=500, detail=str(exc))


@router.post("/ask", response_model=AskResponse)
async def ask(
    body: AskRequest,
    engine: ConversationEngine = Depends(get_engine),
) -> AskResponse:
    """Answer a general dog or puppy question."""
    return AskResponse(answer=await engine.ask(body.question))
