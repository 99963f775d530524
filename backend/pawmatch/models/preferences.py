"""Preference record models for the matching conversation."""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel


class Housing(str, Enum):
    """Where the adopter lives."""

    APARTMENT = "apartment"
    HOUSE = "house"
    HOUSE_WITH_YARD = "house_with_yard"


class Level(str, Enum):
    """Ordinal low/medium/high scale shared by activity, energy and budget."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class Experience(str, Enum):
    """Dog ownership experience of the adopter."""

    FIRST_TIME = "first_time"
    SOME_EXPERIENCE = "some_experience"
    EXPERIENCED = "experienced"


class PreferenceRecord(BaseModel):
    """Last-known adoption preferences of one user.

    Every field is independently nullable; ``None`` means "unknown".
    ``breed_strict`` is ``None`` until the user has been asked whether to
    see only their preferred breed.
    """

    housing: Optional[Housing] = None
    activity_level: Optional[Level] = None
    has_children: Optional[bool] = None
    child_age: Optional[int] = None
    has_other_pets: Optional[bool] = None
    other_pet_types: Optional[list[str]] = None
    owner_experience: Optional[Experience] = None
    budget: Optional[Level] = None
    preferred_breeds: Optional[list[str]] = None
    breed_strict: Optional[bool] = None
    location: Optional[str] = None
    additional_context: Optional[str] = None


class PreferenceDelta(PreferenceRecord):
    """Subset of preference fields the user explicitly stated in one turn.

    Same shape as the record; ``None`` means "not mentioned".
    """

    def is_empty(self) -> bool:
        return all(value is None for value in self.model_dump().values())


REQUIRED_FIELDS: tuple[str, ...] = (
    "housing",
    "activity_level",
    "has_children",
    "has_other_pets",
    "owner_experience",
)


def missing_fields(record: PreferenceRecord) -> list[str]:
    """Return the required fields that are still unknown, in asking order."""
    return [field for field in REQUIRED_FIELDS if getattr(record, field) is None]


def is_complete(record: PreferenceRecord) -> bool:
    return not missing_fields(record)


class SavedPreferences(BaseModel):
    """A preference record as persisted for a user."""

    user_id: str
    preferences: PreferenceRecord
    updated_at: datetime


class UserProfile(BaseModel):
    """The caller-supplied identity a session is started for."""

    id: str
    location: Optional[str] = None
