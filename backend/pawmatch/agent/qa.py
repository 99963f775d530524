"""Q&A responder for general dog and puppy questions."""

from __future__ import annotations

import logging
from typing import Optional, Sequence

from langchain_core.messages import HumanMessage, SystemMessage

from pawmatch.agent.prompts import build_qa_prompt
from pawmatch.agent.safety import (
    ALLOWED_DOMAINS,
    REFUSAL_MESSAGE,
    contains_blocked_content,
)
from pawmatch.llm.client import GenerationClient, GenerationError, history_to_messages
from pawmatch.memory.semantic_cache import SemanticCache
from pawmatch.models.sessions import ChatTurn
from pawmatch.personality.loader import Persona, get_persona

logger = logging.getLogger(__name__)

QA_FLOW_TAG = "qa"

QA_FALLBACK = (
    "I apologize, but I encountered an issue. Could you please rephrase your question?"
)


class QAResponder:
    """Answer questions, consulting the semantic cache first."""

    def __init__(
        self,
        generation: GenerationClient,
        cache: Optional[SemanticCache] = None,
        persona: Optional[Persona] = None,
    ) -> None:
        self._generation = generation
        self._cache = cache
        self._persona = persona or get_persona()

    async def answer(self, utterance: str, history: Sequence[ChatTurn]) -> str:
        if contains_blocked_content(utterance):
            logger.info("Refusing blocked Q&A request")
            return REFUSAL_MESSAGE

        if self._cache is not None:
            cached = await self._cache.lookup(utterance, QA_FLOW_TAG)
            if cached is not None:
                logger.debug("Q&A cache hit (similarity=%.3f)", cached.similarity)
                return cached.response

        messages = [
            SystemMessage(content=build_qa_prompt(self._persona, ALLOWED_DOMAINS)),
            *history_to_messages(history),
            HumanMessage(content=utterance),
        ]
        try:
            reply = await self._generation.complete(messages)
        except GenerationError as exc:
            logger.error("Q&A generation failed: %s", exc)
            return QA_FALLBACK

        if self._cache is not None:
            self._cache.schedule_store(utterance, reply, QA_FLOW_TAG)
        return reply
