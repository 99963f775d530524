"""Intent router: decide whether a message starts matching or is a question."""

from __future__ import annotations

import logging
from typing import Optional, Sequence

from langchain_core.messages import HumanMessage, SystemMessage

from pawmatch.agent.prompts import ROUTER_PROMPT
from pawmatch.llm.client import GenerationClient, GenerationError
from pawmatch.memory.semantic_cache import SemanticCache
from pawmatch.models.decisions import RouteDecision
from pawmatch.models.sessions import ActiveFlow, ChatTurn, MessageRole

logger = logging.getLogger(__name__)

ROUTER_FLOW_TAG = "router"

_ROUTABLE = {ActiveFlow.COLLECTING_PREFERENCES.value, ActiveFlow.QA.value}


def _recent_context(history: Sequence[ChatTurn], limit: int = 6) -> str:
    lines = []
    for turn in history[-limit:]:
        speaker = "User" if turn.role == MessageRole.USER else "Assistant"
        lines.append(f"{speaker}: {turn.content}")
    return "\n".join(lines)


class IntentRouter:
    """Route an utterance to preference collection or Q&A.

    High-confidence decisions are cached under the ``router`` flow tag;
    any failure routes to Q&A.
    """

    def __init__(
        self, generation: GenerationClient, cache: Optional[SemanticCache] = None
    ) -> None:
        self._generation = generation
        self._cache = cache

    async def route(self, utterance: str, history: Sequence[ChatTurn]) -> ActiveFlow:
        if self._cache is not None:
            cached = await self._cache.lookup(utterance, ROUTER_FLOW_TAG)
            if cached is not None and cached.response in _ROUTABLE:
                logger.debug(
                    "Router cache hit: %s (similarity=%.3f)",
                    cached.response,
                    cached.similarity,
                )
                return ActiveFlow(cached.response)

        messages = [
            SystemMessage(content=ROUTER_PROMPT),
            HumanMessage(
                content=(
                    f"Recent conversation:\n{_recent_context(history)}\n\n"
                    f'Route this latest message: "{utterance}"'
                )
            ),
        ]
        try:
            decision: RouteDecision = await self._generation.decide(messages, RouteDecision)
        except GenerationError as exc:
            logger.error("Router error, defaulting to Q&A: %s", exc)
            return ActiveFlow.QA

        logger.debug("Router decision: %s (%s)", decision.flow, decision.confidence)
        if decision.confidence == "high" and self._cache is not None:
            self._cache.schedule_store(utterance, decision.flow, ROUTER_FLOW_TAG)
        return ActiveFlow(decision.flow)
