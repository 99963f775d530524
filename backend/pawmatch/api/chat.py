"""Chat session endpoints: the HTTP adapter over the conversation engine."""

from __future__ import annotations

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Response

from pawmatch.agent.engine import ConversationEngine, SessionNotFoundError
from pawmatch.dependencies import get_engine
from pawmatch.models.preferences import UserProfile
from pawmatch.models.sessions import (
    MessageRequest,
    MessageResponse,
    SessionStart,
    SessionState,
    StartSessionRequest,
)

logger = logging.getLogger(__name__)
router = APIRouter()


def _not_found(exc: SessionNotFoundError) -> HTTPException:
    return HTTPException(status_code=404, detail=f"Session '{exc.session_id}' not found")


@router.post("/sessions", response_model=SessionStart, status_code=201)
async def start_session(
    body: Optional[StartSessionRequest] = None,
    engine: ConversationEngine = Depends(get_engine),
) -> SessionStart:
    """Start a session. Identity, when present, is supplied by the caller."""
    user = None
    if body is not None and body.user_id:
        user = UserProfile(id=body.user_id, location=body.location)
    return await engine.start_session(user)


@router.post("/sessions/{session_id}/messages", response_model=MessageResponse)
async def send_message(
    session_id: str,
    body: MessageRequest,
    engine: ConversationEngine = Depends(get_engine),
) -> MessageResponse:
    """Handle one utterance of a session."""
    try:
        return await engine.handle_message(session_id, body.content)
    except SessionNotFoundError as exc:
        raise _not_found(exc)


@router.get("/sessions/{session_id}", response_model=SessionState)
async def get_session(
    session_id: str,
    engine: ConversationEngine = Depends(get_engine),
) -> SessionState:
    """Return the current flow, recommendations and history of a session."""
    try:
        return await engine.get_session_state(session_id)
    except SessionNotFoundError as exc:
        raise _not_found(exc)


@router.delete("/sessions/{session_id}", status_code=204)
async def close_session(
    session_id: str,
    engine: ConversationEngine = Depends(get_engine),
) -> Response:
    """Close a session explicitly."""
    try:
        await engine.close_session(session_id)
    except SessionNotFoundError as exc:
        raise _not_found(exc)
    return Response(status_code=204)
