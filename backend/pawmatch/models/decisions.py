"""Structured decisions requested from the language model.

Each model here is the JSON shape the model is asked to return. Replies are
parsed leniently (first JSON object in the text) and validated against these
schemas by :class:`pawmatch.llm.client.GenerationClient`.
"""

from __future__ import annotations

import math
from typing import Annotated, Any, Literal, Optional, Union

from pydantic import BaseModel, BeforeValidator, Field


class RouteDecision(BaseModel):
    """Which flow should handle a message while no results exist."""

    flow: Literal["collecting_preferences", "qa"]
    confidence: Literal["high", "medium", "low"] = "low"
    reasoning: str = ""


class PreferenceExtraction(BaseModel):
    """Raw preference fields the user explicitly stated.

    ``preferences`` is kept as a plain dict on purpose: it is sanitized field
    by field so one bad value does not discard the whole turn.
    """

    preferences: dict[str, Any] = Field(default_factory=dict)


class RegenerateAction(BaseModel):
    """Re-run scoring and selection with adjusted parameters."""

    action: Literal["regenerate"]
    keep_breed_strict: bool = False
    exclude_previous: bool = True
    reason: str = ""


class AnswerAction(BaseModel):
    """Answer a free-form question about the results or dogs in general."""

    action: Literal["answer"]
    answer: str = ""


class RestartAction(BaseModel):
    """Throw away the results and collect preferences from scratch."""

    action: Literal["restart"]


PostResultAction = Annotated[
    Union[RegenerateAction, AnswerAction, RestartAction],
    Field(discriminator="action"),
]


def _loose_text(value: Any) -> Optional[str]:
    """Scalars become text; anything else is treated as missing."""
    if isinstance(value, str):
        return value
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return str(value)
    return None


def _finite_number(value: Any) -> Optional[float]:
    """A finite number, or ``None`` for NaN, infinities and non-numbers."""
    if isinstance(value, bool):
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    return number if math.isfinite(number) else None


class SelectionPick(BaseModel):
    """One animal chosen by the model; ids are not trusted.

    Malformed fields degrade to ``None`` instead of failing the payload, so
    one bad pick never discards the others.
    """

    animal_id: Annotated[Optional[str], BeforeValidator(_loose_text)] = None
    animal_name: Annotated[Optional[str], BeforeValidator(_loose_text)] = None
    match_score: Annotated[Optional[float], BeforeValidator(_finite_number)] = None
    reasons: list[Any] = Field(default_factory=list)


class SelectionPayload(BaseModel):
    """Final picks and overall explanation written by the model."""

    selections: list[SelectionPick] = Field(default_factory=list)
    explanation: str = ""
