"""Candidate scoring: hard filters at the catalog, soft scores in process.

Point weights (raw sum, max 125):

=================  ======
energy alignment     30
good with kids       25
good with pets       20
experience fit       15
breed preference     15
budget               10
location             10
=================  ======

Safety (kids/pets) and location are enforced as hard filters by the catalog
query; their points are still reported in the breakdown.
"""

from __future__ import annotations

import logging
from typing import Literal

from pawmatch.matching.catalog import CandidateCatalog, CatalogQuery
from pawmatch.models.animals import Animal, ScoreBreakdown, ScoredCandidate
from pawmatch.models.preferences import Experience, Level, PreferenceRecord

logger = logging.getLogger(__name__)

Difficulty = Literal["easy", "medium", "hard"]

_ENERGY_ORDINAL = {Level.LOW: 1, Level.MEDIUM: 2, Level.HIGH: 3}

_BUDGET_CEILING: dict[Level, float] = {
    Level.LOW: 200,
    Level.MEDIUM: 500,
    Level.HIGH: float("inf"),
}

_EXPERIENCE_POINTS: dict[Experience, dict[Difficulty, int]] = {
    Experience.FIRST_TIME: {"easy": 15, "medium": 5, "hard": 0},
    Experience.SOME_EXPERIENCE: {"easy": 15, "medium": 15, "hard": 10},
    Experience.EXPERIENCED: {"easy": 15, "medium": 15, "hard": 15},
}

OVERFETCH_FACTOR = 3


def estimate_difficulty(animal: Animal) -> Difficulty:
    """Rough care difficulty from energy, age and temperament keywords."""
    points = 0
    if animal.energy_level == Level.HIGH:
        points += 2
    elif animal.energy_level == Level.MEDIUM:
        points += 1

    if animal.age_months < 6:
        points += 2
    elif animal.age_months < 12:
        points += 1

    temperament = animal.temperament.lower()
    if "stubborn" in temperament or "independent" in temperament:
        points += 1
    if "calm" in temperament or "gentle" in temperament:
        points -= 1

    if points <= 1:
        return "easy"
    if points <= 3:
        return "medium"
    return "hard"


def _overlaps(a: str, b: str) -> bool:
    a, b = a.lower(), b.lower()
    return a in b or b in a


def score_candidate(animal: Animal, prefs: PreferenceRecord) -> ScoredCandidate:
    """Compute the soft score of one candidate."""
    breakdown = ScoreBreakdown()

    if prefs.activity_level is not None:
        diff = abs(
            _ENERGY_ORDINAL[prefs.activity_level]
            - _ENERGY_ORDINAL.get(animal.energy_level, 2)
        )
        breakdown.energy_match = {0: 30, 1: 15}.get(diff, 0)

    if prefs.has_children is not None:
        if not prefs.has_children or animal.good_with_kids:
            breakdown.kids_match = 25

    if prefs.has_other_pets is not None:
        if not prefs.has_other_pets or animal.good_with_pets:
            breakdown.pets_match = 20

    if prefs.owner_experience is not None:
        breakdown.experience_match = _EXPERIENCE_POINTS[prefs.owner_experience][
            estimate_difficulty(animal)
        ]

    if prefs.budget is not None and animal.adoption_fee is not None:
        if animal.adoption_fee <= _BUDGET_CEILING[prefs.budget]:
            breakdown.budget_match = 10

    if prefs.preferred_breeds and animal.breed:
        if any(_overlaps(pref, animal.breed) for pref in prefs.preferred_breeds):
            breakdown.breed_match = 15

    if prefs.location and animal.location:
        if _overlaps(prefs.location, animal.location):
            breakdown.location_match = 10

    return ScoredCandidate(animal=animal, score=breakdown.total, breakdown=breakdown)


def build_query(prefs: PreferenceRecord) -> CatalogQuery:
    """Hard filters derived from the preference record."""
    strict_breed = None
    if prefs.breed_strict is True and prefs.preferred_breeds:
        strict_breed = prefs.preferred_breeds[0]
    return CatalogQuery(
        require_good_with_kids=prefs.has_children is True,
        require_good_with_pets=prefs.has_other_pets is True,
        breed_contains=strict_breed,
        location_contains=prefs.location or None,
    )


class ScoringEngine:
    """Rank catalog candidates against a preference record."""

    def __init__(self, catalog: CandidateCatalog) -> None:
        self._catalog = catalog

    async def score(self, prefs: PreferenceRecord, limit: int = 10) -> list[ScoredCandidate]:
        """Return up to ``limit`` candidates, best first.

        An empty list is a legitimate "no matches" outcome.
        """
        query = build_query(prefs)
        candidates = await self._catalog.find(query, limit * OVERFETCH_FACTOR)

        # Strict breed is the only constraint that may be relaxed; location
        # and safety filters stay in place.
        if not candidates and query.breed_contains:
            logger.info(
                "No available %s matches; relaxing breed filter", query.breed_contains
            )
            candidates = await self._catalog.find(
                query.without_breed(), limit * OVERFETCH_FACTOR
            )

        scored = [score_candidate(animal, prefs) for animal in candidates]
        scored.sort(key=lambda c: c.score, reverse=True)
        logger.debug(
            "Scored %d candidates (top=%s)",
            len(scored),
            scored[0].score if scored else None,
        )
        return scored[:limit]
