"""Catalog and scoring models for adoptable animals."""

from __future__ import annotations

from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, Field

from pawmatch.models.preferences import Level


class AnimalStatus(str, Enum):
    """Listing status of a catalog animal."""

    AVAILABLE = "available"
    PENDING = "pending"
    ADOPTED = "adopted"


class Animal(BaseModel):
    """One adoptable animal as stored in the candidate catalog."""

    id: str
    name: str
    breed: str
    age_months: int = 0
    energy_level: Level = Level.MEDIUM
    temperament: str = ""
    good_with_kids: bool = False
    good_with_pets: bool = False
    location: str = ""
    adoption_fee: Optional[float] = None
    description: str = ""
    status: AnimalStatus = AnimalStatus.AVAILABLE

    @classmethod
    def from_document(cls, doc: dict[str, Any]) -> Animal:
        """Build an animal from a MongoDB document (``_id`` becomes ``id``)."""
        data = dict(doc)
        if "_id" in data:
            data.setdefault("id", str(data.pop("_id")))
        return cls.model_validate(data)


class ScoreBreakdown(BaseModel):
    """Named point contributions of a single scoring pass."""

    energy_match: int = 0
    kids_match: int = 0
    pets_match: int = 0
    experience_match: int = 0
    budget_match: int = 0
    breed_match: int = 0
    location_match: int = 0

    @property
    def total(self) -> int:
        return (
            self.energy_match
            + self.kids_match
            + self.pets_match
            + self.experience_match
            + self.budget_match
            + self.breed_match
            + self.location_match
        )


class ScoredCandidate(BaseModel):
    """A catalog animal with its total score (max 125) and breakdown."""

    animal: Animal
    score: int
    breakdown: ScoreBreakdown = Field(default_factory=ScoreBreakdown)
