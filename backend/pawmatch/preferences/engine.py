"""Preference Engine - extracts, validates and merges adoption preferences.

Each turn the model is asked for only the fields the user explicitly stated.
The raw reply is sanitized field by field, merged right-biased into the
current record, persisted best-effort and checked for missing required
fields.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional, Sequence

from langchain_core.messages import HumanMessage, SystemMessage

from pawmatch.agent.prompts import build_extraction_prompt, build_follow_up_prompt
from pawmatch.llm.client import GenerationClient, GenerationError, history_to_messages
from pawmatch.matching.catalog import CandidateCatalog, count_available
from pawmatch.models.decisions import PreferenceExtraction
from pawmatch.models.preferences import (
    Experience,
    Housing,
    Level,
    PreferenceDelta,
    PreferenceRecord,
    missing_fields,
)
from pawmatch.models.sessions import BreedAvailability, ChatTurn
from pawmatch.personality.loader import Persona, get_persona
from pawmatch.preferences.store import PreferenceStore

logger = logging.getLogger(__name__)

PLACEHOLDER_VALUES = frozenset({"unknown", "none", "n/a", "not specified", ""})

_TRUE_STRINGS = frozenset({"true", "yes", "y"})
_FALSE_STRINGS = frozenset({"false", "no", "n"})

FOLLOW_UP_QUESTIONS: dict[str, str] = {
    "housing": "Do you live in an apartment, a house, or a house with a yard?",
    "activity_level": "How active is your lifestyle? Would you say low, medium, or high?",
    "has_children": "Do you have any children at home?",
    "has_other_pets": "Do you have any other pets at home?",
    "owner_experience": "Have you owned a dog before?",
}

GENERIC_FOLLOW_UP = "Could you tell me a bit more about your home and lifestyle?"


# ----------------------------------------------------------------------
# Sanitization
# ----------------------------------------------------------------------


def _is_placeholder(value: Any) -> bool:
    return isinstance(value, str) and value.strip().lower() in PLACEHOLDER_VALUES


def _clean_text(value: Any) -> Optional[str]:
    if not isinstance(value, str) or _is_placeholder(value):
        return None
    return value.strip()


def _clean_bool(value: Any) -> Optional[bool]:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in _TRUE_STRINGS:
            return True
        if lowered in _FALSE_STRINGS:
            return False
    return None


def _clean_int(value: Any) -> Optional[int]:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        number = int(value)
    elif isinstance(value, str) and value.strip().isdigit():
        number = int(value.strip())
    else:
        return None
    return number if number >= 0 else None


def _clean_list(value: Any) -> Optional[list[str]]:
    if isinstance(value, str):
        value = [value]
    if not isinstance(value, list):
        return None
    items = [_clean_text(item) for item in value]
    cleaned = [item for item in items if item]
    return cleaned or None


def _clean_enum(value: Any, enum_cls: type[Enum]) -> Any:
    if not isinstance(value, str) or _is_placeholder(value):
        return None
    normalized = "_".join(value.strip().lower().replace("-", " ").split())
    try:
        return enum_cls(normalized)
    except ValueError:
        return None


_FIELD_CLEANERS = {
    "housing": lambda v: _clean_enum(v, Housing),
    "activity_level": lambda v: _clean_enum(v, Level),
    "has_children": _clean_bool,
    "child_age": _clean_int,
    "has_other_pets": _clean_bool,
    "other_pet_types": _clean_list,
    "owner_experience": lambda v: _clean_enum(v, Experience),
    "budget": lambda v: _clean_enum(v, Level),
    "preferred_breeds": _clean_list,
    "breed_strict": _clean_bool,
    "location": _clean_text,
    "additional_context": _clean_text,
}


def sanitize_delta(raw: dict[str, Any]) -> PreferenceDelta:
    """Build a delta from raw model output.

    Each field is validated on its own; unknown keys, placeholders and
    out-of-domain values are dropped without affecting the other fields.
    """
    clean: dict[str, Any] = {}
    for field, value in raw.items():
        cleaner = _FIELD_CLEANERS.get(field)
        if cleaner is None or value is None:
            continue
        result = cleaner(value)
        if result is None:
            logger.debug("Dropping invalid value for %s: %r", field, value)
            continue
        clean[field] = result
    return PreferenceDelta(**clean)


def _introduces_new_breed(current: PreferenceRecord, delta: PreferenceDelta) -> bool:
    if not delta.preferred_breeds:
        return False
    before = {b.lower() for b in current.preferred_breeds or []}
    return {b.lower() for b in delta.preferred_breeds} != before


def merge(current: PreferenceRecord, delta: PreferenceDelta) -> PreferenceRecord:
    """Right-biased merge: every non-null delta field overwrites the record.

    A newly introduced breed resets ``breed_strict`` to "not yet asked"
    unless the same delta answers it.
    """
    updates = delta.model_dump(exclude_none=True)
    if _introduces_new_breed(current, delta) and delta.breed_strict is None:
        updates["breed_strict"] = None
    if not updates:
        return current.model_copy()
    return PreferenceRecord.model_validate({**current.model_dump(), **updates})


@dataclass
class PreferenceUpdate:
    """Outcome of one preference turn."""

    record: PreferenceRecord
    delta: PreferenceDelta
    missing_fields: list[str]
    breed_availability: Optional[BreedAvailability] = None


class PreferenceEngine:
    """Turn utterances into preference deltas and ask for what is missing."""

    def __init__(
        self,
        generation: GenerationClient,
        follow_up_generation: GenerationClient,
        catalog: CandidateCatalog,
        store: Optional[PreferenceStore] = None,
        persona: Optional[Persona] = None,
    ) -> None:
        self._generation = generation
        self._follow_up_generation = follow_up_generation
        self._catalog = catalog
        self._store = store
        self._persona = persona or get_persona()

    async def extract(
        self,
        utterance: str,
        current: PreferenceRecord,
        history: Sequence[ChatTurn],
        breed_availability: Optional[BreedAvailability] = None,
    ) -> tuple[PreferenceDelta, list[str]]:
        """Return the sanitized delta and the fields still missing after merge.

        Generation failures yield an empty delta.
        """
        messages = [
            SystemMessage(
                content=build_extraction_prompt(
                    current, missing_fields(current), breed_availability
                )
            ),
            *history_to_messages(history),
            HumanMessage(content=utterance),
        ]
        try:
            extraction = await self._generation.decide(messages, PreferenceExtraction)
            delta = sanitize_delta(extraction.preferences)
        except GenerationError as exc:
            logger.warning("Preference extraction failed: %s", exc)
            delta = PreferenceDelta()

        return delta, missing_fields(merge(current, delta))

    async def update(
        self,
        utterance: str,
        current: PreferenceRecord,
        history: Sequence[ChatTurn],
        *,
        breed_availability: Optional[BreedAvailability] = None,
    ) -> PreferenceUpdate:
        """Extract, merge and look up breed availability.

        Nothing is persisted here; the caller saves the record once the
        whole turn has succeeded.
        """
        delta, _ = await self.extract(utterance, current, history, breed_availability)
        record = merge(current, delta)

        if delta.preferred_breeds:
            breed = delta.preferred_breeds[0]
            available = await count_available(self._catalog, breed)
            breed_availability = BreedAvailability(breed=breed, available=available)
            logger.info("Breed availability for %s: %d", breed, available)

        return PreferenceUpdate(
            record=record,
            delta=delta,
            missing_fields=missing_fields(record),
            breed_availability=breed_availability,
        )

    async def follow_up(
        self,
        record: PreferenceRecord,
        missing: list[str],
        history: Sequence[ChatTurn],
        breed_availability: Optional[BreedAvailability] = None,
    ) -> str:
        """Ask the next question, falling back to a fixed one on failure."""
        messages = [
            SystemMessage(
                content=build_follow_up_prompt(
                    self._persona, record, missing, breed_availability
                )
            ),
            *history_to_messages(history),
            HumanMessage(content="Ask me the next question."),
        ]
        try:
            return await self._follow_up_generation.complete(messages)
        except GenerationError as exc:
            logger.warning("Follow-up generation failed: %s", exc)
            return default_follow_up(record, missing, breed_availability)

    async def persist(self, user_id: str, record: PreferenceRecord) -> None:
        """Save the record for the user; failures are logged, never raised."""
        if self._store is None:
            return
        try:
            await self._store.put(user_id, record)
        except Exception:
            logger.exception("Failed to persist preferences for user %s", user_id)


def default_follow_up(
    record: PreferenceRecord,
    missing: list[str],
    breed_availability: Optional[BreedAvailability] = None,
) -> str:
    """Deterministic next question for when generation is unavailable."""
    parts: list[str] = []
    if (
        breed_availability is not None
        and breed_availability.available > 0
        and record.breed_strict is None
    ):
        parts.append(
            f"I found {breed_availability.available} {breed_availability.breed} "
            f"puppies available. Would you like to see only {breed_availability.breed} "
            "puppies, or a mix that includes other breeds?"
        )
    if missing:
        parts.append(FOLLOW_UP_QUESTIONS.get(missing[0], GENERIC_FOLLOW_UP))
    return " ".join(parts) or GENERIC_FOLLOW_UP
