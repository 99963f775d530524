"""Recommendation result models."""

from pydantic import BaseModel, Field


class AnimalSummary(BaseModel):
    """Identity of a recommended animal, always carrying its real catalog id."""

    id: str
    name: str
    description: str = ""


class Recommendation(BaseModel):
    """One ranked pick with a 0-100 match score and human-readable reasons."""

    animal: AnimalSummary
    match_score: int = Field(ge=0, le=100)
    reasons: list[str] = Field(default_factory=list)


class RecommendationResult(BaseModel):
    """Up to three picks plus one overall explanation."""

    recommendations: list[Recommendation] = Field(default_factory=list)
    explanation: str = ""

    @property
    def animal_ids(self) -> list[str]:
        return [r.animal.id for r in self.recommendations]
