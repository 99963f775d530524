"""Narrow wrapper around the chat model used for every generation call.

Components never talk to LangChain models directly; they receive a
``GenerationClient`` which offers two operations:

- ``complete``: free-text reply
- ``decide``: a reply parsed into a pydantic schema (structured decision)

Both raise :class:`GenerationError` on any failure so callers can recover
with their own deterministic fallback.
"""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, Sequence

from langchain_core.embeddings import Embeddings
from langchain_core.language_models.chat_models import BaseChatModel
from langchain_core.messages import AIMessage, BaseMessage, HumanMessage
from langchain_google_genai import ChatGoogleGenerativeAI, GoogleGenerativeAIEmbeddings
from pydantic import TypeAdapter, ValidationError

from pawmatch.config import Settings
from pawmatch.models.sessions import ChatTurn, MessageRole

logger = logging.getLogger(__name__)


class GenerationError(RuntimeError):
    """The generation capability failed (network, timeout, empty output)."""


class DecisionParseError(GenerationError):
    """The model replied, but not with the requested structure."""

    def __init__(self, message: str, raw_output: str = "") -> None:
        super().__init__(message)
        self.raw_output = raw_output


def extract_json_block(text: str) -> Any:
    """Return the first well-formed JSON object embedded in ``text``.

    Models wrap JSON in prose or code fences; scan every ``{`` and try to
    decode from there.

    Raises:
        ValueError: If no JSON object can be decoded.
    """
    decoder = json.JSONDecoder()
    start = text.find("{")
    while start != -1:
        try:
            value, _end = decoder.raw_decode(text, start)
        except json.JSONDecodeError:
            start = text.find("{", start + 1)
            continue
        if isinstance(value, dict):
            return value
        start = text.find("{", start + 1)
    raise ValueError("No JSON object found in model output")


def _content_to_text(content: Any) -> str:
    """Flatten a LangChain message content (str or list of parts) to text."""
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        parts: list[str] = []
        for part in content:
            if isinstance(part, str):
                parts.append(part)
            elif isinstance(part, dict) and part.get("type") == "text":
                parts.append(str(part.get("text", "")))
        return "".join(parts)
    return ""


def history_to_messages(history: Sequence[ChatTurn], limit: int = 10) -> list[BaseMessage]:
    """Convert the last ``limit`` session turns to LangChain messages."""
    messages: list[BaseMessage] = []
    for turn in history[-limit:] if limit else []:
        if turn.role == MessageRole.USER:
            messages.append(HumanMessage(content=turn.content))
        else:
            messages.append(AIMessage(content=turn.content))
    return messages


class GenerationClient:
    """Invoke a chat model and turn its reply into text or a decision."""

    def __init__(self, model: BaseChatModel, *, timeout: float | None = None) -> None:
        self._model = model
        self._timeout = timeout

    async def complete(self, messages: Sequence[BaseMessage]) -> str:
        """Return the model's free-text reply.

        Raises:
            GenerationError: On model failure, timeout, or an empty reply.
        """
        try:
            response = await asyncio.wait_for(
                self._model.ainvoke(list(messages)), timeout=self._timeout
            )
        except asyncio.TimeoutError as exc:
            raise GenerationError("Generation timed out") from exc
        except Exception as exc:
            raise GenerationError(f"Generation failed: {exc}") from exc

        text = _content_to_text(getattr(response, "content", "")).strip()
        if not text:
            raise GenerationError("Generation returned an empty reply")
        return text

    async def decide(self, messages: Sequence[BaseMessage], schema: Any) -> Any:
        """Return the reply parsed and validated against ``schema``.

        ``schema`` is a pydantic model class or any type accepted by
        ``TypeAdapter`` (e.g. an annotated discriminated union).

        Raises:
            DecisionParseError: If the reply holds no valid structure.
            GenerationError: If the model call itself failed.
        """
        raw = await self.complete(messages)
        try:
            data = extract_json_block(raw)
            return TypeAdapter(schema).validate_python(data)
        except (ValueError, ValidationError) as exc:
            raise DecisionParseError(f"Unparseable decision: {exc}", raw) from exc


# ----------------------------------------------------------------------
# Factories
# ----------------------------------------------------------------------


def build_chat_model(settings: Settings, *, temperature: float) -> BaseChatModel:
    """Create the Gemini chat model for one role."""
    return ChatGoogleGenerativeAI(
        model=settings.gemini_model,
        google_api_key=settings.google_api_key,
        temperature=temperature,
    )


def build_generation_client(settings: Settings, *, temperature: float) -> GenerationClient:
    return GenerationClient(
        build_chat_model(settings, temperature=temperature),
        timeout=settings.llm_timeout_seconds,
    )


def build_embeddings(settings: Settings) -> Embeddings:
    """Create the embedding model used by the semantic cache."""
    model = GoogleGenerativeAIEmbeddings(
        model=settings.embedding_model,
        google_api_key=settings.google_api_key,
    )
    logger.info("Google embeddings model loaded: %s", settings.embedding_model)
    return model
