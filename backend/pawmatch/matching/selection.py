"""Selection & Explanation Engine.

The model picks the final (at most three) animals from the scored
candidates and writes personalized reasons. Its reply is never trusted:
picks are resolved against the candidate list, and any failure falls back
to the top three by score.
"""

from __future__ import annotations

import logging
import math
from typing import Optional

from langchain_core.messages import HumanMessage, SystemMessage

from pawmatch.agent.prompts import build_selection_prompt
from pawmatch.llm.client import DecisionParseError, GenerationClient, GenerationError
from pawmatch.models.animals import ScoredCandidate
from pawmatch.models.decisions import SelectionPayload, SelectionPick
from pawmatch.models.preferences import PreferenceRecord
from pawmatch.models.recommendations import (
    AnimalSummary,
    Recommendation,
    RecommendationResult,
)
from pawmatch.preferences.summary import build_user_context

logger = logging.getLogger(__name__)

MAX_PICKS = 3
MAX_REASONS = 2

NO_MATCHES_EXPLANATION = (
    "I couldn't find any puppies matching your requirements. "
    "Try adjusting your preferences."
)
FALLBACK_EXPLANATION = "Here are the top matches based on your preferences."


def clamp_score(value: float) -> int:
    """Presentable 0-100 match score; non-finite values count as 0."""
    if not math.isfinite(value):
        return 0
    return max(0, min(100, int(round(value))))


def format_candidates(candidates: list[ScoredCandidate]) -> str:
    lines = []
    for i, c in enumerate(candidates, start=1):
        a = c.animal
        lines.append(
            f"{i}. {a.name} (id: {a.id}, Score: {c.score})\n"
            f"   - Breed: {a.breed}, Age: {a.age_months} months\n"
            f"   - Energy: {a.energy_level.value}, Temperament: {a.temperament}\n"
            f"   - Good with kids: {a.good_with_kids}, Good with pets: {a.good_with_pets}\n"
            f"   - Location: {a.location}\n"
            f"   - Description: {a.description}"
        )
    return "\n\n".join(lines)


def _summary(candidate: ScoredCandidate) -> AnimalSummary:
    a = candidate.animal
    return AnimalSummary(id=a.id, name=a.name, description=a.description)


def fallback_result(candidates: list[ScoredCandidate]) -> RecommendationResult:
    """Top three by score with templated reasons."""
    return RecommendationResult(
        recommendations=[
            Recommendation(
                animal=_summary(c),
                match_score=clamp_score(c.score),
                reasons=[
                    f"Match score: {c.score}",
                    f"Energy level: {c.animal.energy_level.value}",
                ],
            )
            for c in candidates[:MAX_PICKS]
        ],
        explanation=FALLBACK_EXPLANATION,
    )


def _resolve(
    pick: SelectionPick, candidates: list[ScoredCandidate]
) -> Optional[ScoredCandidate]:
    """Match a pick by exact id first, then by case-insensitive name."""
    if pick.animal_id:
        for c in candidates:
            if c.animal.id == str(pick.animal_id).strip():
                return c
    if pick.animal_name:
        name = pick.animal_name.strip().lower()
        for c in candidates:
            if c.animal.name.lower() == name:
                return c
    return None


def resolve_payload(
    payload: SelectionPayload, candidates: list[ScoredCandidate]
) -> list[Recommendation]:
    """Keep resolvable, distinct picks with their real catalog ids."""
    seen: set[str] = set()
    picks: list[Recommendation] = []
    for pick in payload.selections:
        candidate = _resolve(pick, candidates)
        if candidate is None:
            logger.warning(
                "Dropping unresolvable selection id=%r name=%r",
                pick.animal_id,
                pick.animal_name,
            )
            continue
        if candidate.animal.id in seen:
            continue
        seen.add(candidate.animal.id)

        reasons = [str(r).strip() for r in pick.reasons if str(r).strip()]
        score = pick.match_score if pick.match_score is not None else candidate.score
        picks.append(
            Recommendation(
                animal=_summary(candidate),
                match_score=clamp_score(score),
                reasons=reasons[:MAX_REASONS],
            )
        )
        if len(picks) == MAX_PICKS:
            break
    return picks


class SelectionEngine:
    """Ask the model for the final picks and defend against bad replies."""

    def __init__(self, generation: GenerationClient) -> None:
        self._generation = generation

    async def select(
        self, candidates: list[ScoredCandidate], prefs: PreferenceRecord
    ) -> RecommendationResult:
        """Return up to three recommendations. Never raises on model failure."""
        if not candidates:
            return RecommendationResult(explanation=NO_MATCHES_EXPLANATION)

        prompt = build_selection_prompt(
            build_user_context(prefs), format_candidates(candidates)
        )
        messages = [
            SystemMessage(content=prompt),
            HumanMessage(content="Select the best puppies for me."),
        ]

        try:
            payload = await self._generation.decide(messages, SelectionPayload)
        except DecisionParseError as exc:
            logger.error(
                "Failed to parse selection response: %s (raw=%r)", exc, exc.raw_output
            )
            return fallback_result(candidates)
        except GenerationError as exc:
            logger.error("Selection generation failed: %s", exc)
            return fallback_result(candidates)

        picks = resolve_payload(payload, candidates)
        if not picks:
            logger.warning("No selection could be resolved; using top candidates")
            return fallback_result(candidates)

        return RecommendationResult(
            recommendations=picks,
            explanation=payload.explanation.strip() or FALLBACK_EXPLANATION,
        )
