"""Post-result handler: classify what the user wants once results exist."""

from __future__ import annotations

import logging
from typing import Optional, Sequence

from langchain_core.messages import HumanMessage, SystemMessage

from pawmatch.agent.prompts import build_post_result_prompt
from pawmatch.llm.client import GenerationClient, GenerationError, history_to_messages
from pawmatch.models.decisions import PostResultAction
from pawmatch.models.preferences import PreferenceRecord
from pawmatch.models.recommendations import RecommendationResult
from pawmatch.models.sessions import ChatTurn

logger = logging.getLogger(__name__)

POST_RESULT_FALLBACK = "I had trouble with that. Could you rephrase your question?"


def describe_recommendations(result: Optional[RecommendationResult]) -> str:
    if result is None:
        return ""
    return "\n".join(
        f"{i}. {r.animal.name} (id: {r.animal.id}, match {r.match_score}) - "
        f"{'; '.join(r.reasons)}"
        for i, r in enumerate(result.recommendations, start=1)
    )


class PostResultHandler:
    """Ask the model for a structured post-result action."""

    def __init__(self, generation: GenerationClient) -> None:
        self._generation = generation

    async def decide(
        self,
        utterance: str,
        prefs: PreferenceRecord,
        result: Optional[RecommendationResult],
        history: Sequence[ChatTurn],
    ) -> Optional[PostResultAction]:
        """Return the requested action, or ``None`` if none could be parsed."""
        messages = [
            SystemMessage(
                content=build_post_result_prompt(prefs, describe_recommendations(result))
            ),
            *history_to_messages(history),
            HumanMessage(content=utterance),
        ]
        try:
            action = await self._generation.decide(messages, PostResultAction)
        except GenerationError as exc:
            logger.error("Post-result decision failed: %s", exc)
            return None
        logger.debug("Post-result action: %s", action.action)
        return action
