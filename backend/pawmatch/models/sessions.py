"""Session models for conversation management."""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field

from pawmatch.models.preferences import PreferenceRecord
from pawmatch.models.recommendations import RecommendationResult


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ActiveFlow(str, Enum):
    """Where the next utterance of a session will be handled."""

    ROUTING = "routing"
    COLLECTING_PREFERENCES = "collecting_preferences"
    QA = "qa"
    HAS_RESULTS = "has_results"


class MessageRole(str, Enum):
    """Message sender role."""

    USER = "user"
    ASSISTANT = "assistant"


class ChatTurn(BaseModel):
    """One role-tagged utterance of the conversation history."""

    role: MessageRole
    content: str
    timestamp: datetime = Field(default_factory=_utcnow)


class BreedAvailability(BaseModel):
    """Live catalog count for a breed the user asked about."""

    breed: str
    available: int


class Session(BaseModel):
    """Conversation state of one matching session."""

    session_id: str
    user_id: Optional[str] = None
    active_flow: ActiveFlow = ActiveFlow.ROUTING
    preferences: PreferenceRecord = Field(default_factory=PreferenceRecord)
    history: list[ChatTurn] = Field(default_factory=list)
    recommendations: Optional[RecommendationResult] = None
    completed: bool = False
    is_returning_user: bool = False
    awaiting_confirmation: bool = False
    breed_availability: Optional[BreedAvailability] = None
    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)

    def add_turn(self, role: MessageRole, content: str) -> None:
        self.history.append(ChatTurn(role=role, content=content))

    def trim_history(self, limit: int) -> None:
        """Keep only the most recent ``limit`` turns."""
        if limit and len(self.history) > limit:
            self.history = self.history[-limit:]


# ----------------------------------------------------------------------
# Request / response contracts
# ----------------------------------------------------------------------


class StartSessionRequest(BaseModel):
    """Body for starting a session; identity is supplied by the caller."""

    user_id: Optional[str] = None
    location: Optional[str] = None


class SessionStart(BaseModel):
    """Result of starting a session."""

    session_id: str
    welcome_message: str
    is_returning_user: bool = False
    prior_preferences: Optional[PreferenceRecord] = None


class MessageRequest(BaseModel):
    """One inbound utterance."""

    content: str = Field(min_length=1, max_length=4000)


class AskRequest(BaseModel):
    """A standalone question, answered outside any session."""

    question: str = Field(min_length=1, max_length=4000)


class AskResponse(BaseModel):
    answer: str


class MessageResponse(BaseModel):
    """Reply to one inbound utterance."""

    message: str
    active_flow: ActiveFlow
    recommendations: Optional[RecommendationResult] = None


class SessionState(BaseModel):
    """Read-only view of a session."""

    session_id: str
    active_flow: ActiveFlow
    recommendations: Optional[RecommendationResult] = None
    history: list[ChatTurn] = Field(default_factory=list)
