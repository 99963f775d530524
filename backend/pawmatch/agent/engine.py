"""Conversation engine - the per-turn session state machine.

Each inbound utterance runs through a small LangGraph ``StateGraph``::

    START ─┬─ confirm_returning ─┬─ collect_preferences ─┬─ recommend ─ END
           │                     └─ END                  └─ END
           ├─ route ─┬─ collect_preferences
           │         └─ answer_question ─ END
           ├─ collect_preferences
           └─ post_result ─ END

The graph operates on a deep copy of the stored session. Only a turn that
completes is written back, together with any preference change for the
user; any failure inside the graph is logged and turned into an apologetic
reply with the stored session and saved preferences left untouched.
"""

from __future__ import annotations

import logging
import re
import uuid
from datetime import datetime, timezone
from typing import Optional, TypedDict

from langgraph.graph import END, START, StateGraph

from pawmatch.agent.locks import SessionLocks
from pawmatch.agent.post_result import POST_RESULT_FALLBACK, PostResultHandler
from pawmatch.agent.qa import QAResponder
from pawmatch.agent.router import IntentRouter
from pawmatch.agent.safety import REFUSAL_MESSAGE, contains_blocked_content, sanitize_input
from pawmatch.matching.scoring import ScoringEngine
from pawmatch.matching.selection import SelectionEngine
from pawmatch.memory.session_store import SessionStore
from pawmatch.models.decisions import AnswerAction, RegenerateAction, RestartAction
from pawmatch.models.preferences import PreferenceRecord, UserProfile, is_complete, missing_fields
from pawmatch.models.recommendations import RecommendationResult
from pawmatch.models.sessions import (
    ActiveFlow,
    ChatTurn,
    MessageResponse,
    MessageRole,
    Session,
    SessionStart,
    SessionState,
)
from pawmatch.personality.loader import Persona, get_persona
from pawmatch.preferences.engine import PreferenceEngine, default_follow_up
from pawmatch.preferences.store import PreferenceStore
from pawmatch.preferences.summary import returning_user_message

logger = logging.getLogger(__name__)

APOLOGY_MESSAGE = (
    "I'm sorry, something went wrong on my end. Could you please try that again?"
)
EMPTY_INPUT_MESSAGE = "I didn't catch that. Could you say it again?"
RESTART_MESSAGE = (
    "No problem! Let's start fresh. Tell me about your living situation and "
    "lifestyle, and I'll help find the perfect puppy for you."
)

RESET_PHRASES = ("start over", "start fresh", "new search", "change everything", "different")
CONFIRM_PHRASES = (
    "yes",
    "yeah",
    "yep",
    "sure",
    "same",
    "use these",
    "looks good",
    "correct",
    "go ahead",
    "search",
)


class SessionNotFoundError(LookupError):
    """The session id is unknown or the session has expired."""

    def __init__(self, session_id: str) -> None:
        super().__init__(f"Session not found: {session_id}")
        self.session_id = session_id


class TurnState(TypedDict, total=False):
    """Graph state for a single turn."""

    session: Session
    utterance: str
    history: list[ChatTurn]
    reply: str
    save_preferences: bool


def _mentions(text: str, phrases: tuple[str, ...]) -> bool:
    """Whole-word phrase match; a phrase right after "not" does not count."""
    lowered = text.lower()
    return any(
        re.search(rf"(?<!not )\b{re.escape(phrase)}\b", lowered) for phrase in phrases
    )


def format_result_message(result: RecommendationResult, intro: str) -> str:
    if not result.recommendations:
        return result.explanation
    lines = [
        f"{i}. **{r.animal.name}** - {r.reasons[0] if r.reasons else ''}".rstrip(" -")
        for i, r in enumerate(result.recommendations, start=1)
    ]
    return f"{intro}\n\n" + "\n".join(lines) + f"\n\n{result.explanation}"


class ConversationEngine:
    """Drive matching conversations, one serialized turn per session."""

    def __init__(
        self,
        sessions: SessionStore,
        router: IntentRouter,
        preferences: PreferenceEngine,
        scoring: ScoringEngine,
        selection: SelectionEngine,
        qa: QAResponder,
        post_result: PostResultHandler,
        preference_store: Optional[PreferenceStore] = None,
        *,
        persona: Optional[Persona] = None,
        candidate_limit: int = 10,
        history_limit: int = 20,
    ) -> None:
        self._sessions = sessions
        self._router = router
        self._preferences = preferences
        self._scoring = scoring
        self._selection = selection
        self._qa = qa
        self._post_result = post_result
        self._preference_store = preference_store
        self._persona = persona or get_persona()
        self._candidate_limit = candidate_limit
        self._history_limit = history_limit
        self._locks = SessionLocks()
        self._graph = self._build_graph()

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def start_session(self, user: Optional[UserProfile] = None) -> SessionStart:
        """Create a session, resuming saved preferences for returning users."""
        session = Session(
            session_id=f"chat_{uuid.uuid4()}",
            user_id=user.id if user else None,
            preferences=PreferenceRecord(location=user.location if user else None),
        )

        saved = None
        if user is not None and self._preference_store is not None:
            try:
                saved = await self._preference_store.get(user.id)
            except Exception:
                logger.exception("Failed to load saved preferences for user %s", user.id)

        if saved is not None:
            session.is_returning_user = True

        if saved is not None and is_complete(saved.preferences):
            session.preferences = saved.preferences
            session.awaiting_confirmation = True
            welcome = returning_user_message(saved.preferences, saved.updated_at)
        else:
            welcome = self._persona.greeting

        session.add_turn(MessageRole.ASSISTANT, welcome)
        await self._sessions.save(session)
        logger.info(
            "Started session %s (user=%s, returning=%s)",
            session.session_id,
            session.user_id,
            session.is_returning_user,
        )

        return SessionStart(
            session_id=session.session_id,
            welcome_message=welcome,
            is_returning_user=session.is_returning_user,
            prior_preferences=saved.preferences if saved else None,
        )

    async def handle_message(self, session_id: str, utterance: str) -> MessageResponse:
        """Process one utterance.

        Raises:
            SessionNotFoundError: If the session does not exist.
        """
        async with self._locks.get(session_id):
            stored = await self._sessions.get(session_id)
            if stored is None:
                raise SessionNotFoundError(session_id)

            text = sanitize_input(utterance)
            if not text:
                return MessageResponse(
                    message=EMPTY_INPUT_MESSAGE,
                    active_flow=stored.active_flow,
                    recommendations=stored.recommendations,
                )

            session = stored.model_copy(deep=True)
            history = list(session.history)
            session.add_turn(MessageRole.USER, text)

            try:
                state = await self._graph.ainvoke(
                    {"session": session, "utterance": text, "history": history}
                )
            except Exception:
                logger.exception("Turn failed for session %s", session_id)
                return MessageResponse(
                    message=APOLOGY_MESSAGE,
                    active_flow=stored.active_flow,
                    recommendations=stored.recommendations,
                )

            session = state["session"]
            reply = state.get("reply") or APOLOGY_MESSAGE
            session.add_turn(MessageRole.ASSISTANT, reply)
            session.trim_history(self._history_limit)
            session.updated_at = datetime.now(timezone.utc)

            try:
                await self._sessions.save(session)
            except Exception:
                logger.exception("Failed to save session %s", session_id)

            if state.get("save_preferences") and session.user_id:
                await self._preferences.persist(session.user_id, session.preferences)

            return MessageResponse(
                message=reply,
                active_flow=session.active_flow,
                recommendations=session.recommendations,
            )

    async def get_session_state(self, session_id: str) -> SessionState:
        session = await self._sessions.get(session_id)
        if session is None:
            raise SessionNotFoundError(session_id)
        return SessionState(
            session_id=session.session_id,
            active_flow=session.active_flow,
            recommendations=session.recommendations,
            history=session.history,
        )

    async def close_session(self, session_id: str) -> None:
        if not await self._sessions.delete(session_id):
            raise SessionNotFoundError(session_id)
        logger.info("Closed session %s", session_id)

    async def recommend(self, prefs: PreferenceRecord) -> RecommendationResult:
        """One-shot scoring and selection for a preference record, no session."""
        return await self._find_matches(prefs)

    async def ask(self, question: str) -> str:
        """Answer a standalone question with the Q&A responder."""
        text = sanitize_input(question)
        if not text:
            return EMPTY_INPUT_MESSAGE
        return await self._qa.answer(text, [])

    # ------------------------------------------------------------------
    # Graph
    # ------------------------------------------------------------------

    def _build_graph(self):
        builder = StateGraph(TurnState)
        builder.add_node("confirm_returning", self._confirm_returning)
        builder.add_node("route", self._route)
        builder.add_node("collect_preferences", self._collect_preferences)
        builder.add_node("recommend", self._recommend)
        builder.add_node("answer_question", self._answer_question)
        builder.add_node("post_result", self._handle_post_result)

        builder.add_conditional_edges(
            START,
            self._entry,
            ["confirm_returning", "route", "collect_preferences", "post_result"],
        )
        builder.add_conditional_edges(
            "confirm_returning",
            self._after_confirmation,
            {"collect": "collect_preferences", "recommend": "recommend", "done": END},
        )
        builder.add_conditional_edges(
            "route",
            self._after_route,
            ["collect_preferences", "answer_question"],
        )
        builder.add_conditional_edges(
            "collect_preferences",
            self._after_collect,
            {"recommend": "recommend", "done": END},
        )
        builder.add_edge("recommend", END)
        builder.add_edge("answer_question", END)
        builder.add_edge("post_result", END)
        return builder.compile()

    @staticmethod
    def _entry(state: TurnState) -> str:
        session = state["session"]
        if session.awaiting_confirmation:
            return "confirm_returning"
        if session.active_flow == ActiveFlow.HAS_RESULTS:
            return "post_result"
        if session.active_flow == ActiveFlow.COLLECTING_PREFERENCES:
            return "collect_preferences"
        return "route"

    @staticmethod
    def _after_confirmation(state: TurnState) -> str:
        if state.get("reply"):
            return "done"
        if state["session"].active_flow == ActiveFlow.HAS_RESULTS:
            return "recommend"
        return "collect"

    @staticmethod
    def _after_route(state: TurnState) -> str:
        if state["session"].active_flow == ActiveFlow.COLLECTING_PREFERENCES:
            return "collect_preferences"
        return "answer_question"

    @staticmethod
    def _after_collect(state: TurnState) -> str:
        return "done" if state.get("reply") else "recommend"

    # ------------------------------------------------------------------
    # Nodes
    # ------------------------------------------------------------------

    async def _confirm_returning(self, state: TurnState) -> dict:
        session = state["session"]
        text = state["utterance"]
        session.awaiting_confirmation = False

        if _mentions(text, RESET_PHRASES):
            session.preferences = PreferenceRecord(location=session.preferences.location)
            session.breed_availability = None
            session.active_flow = ActiveFlow.COLLECTING_PREFERENCES
            return {"session": session, "reply": RESTART_MESSAGE}

        if _mentions(text, CONFIRM_PHRASES):
            session.active_flow = ActiveFlow.HAS_RESULTS
        else:
            session.active_flow = ActiveFlow.COLLECTING_PREFERENCES
        return {"session": session}

    async def _route(self, state: TurnState) -> dict:
        session = state["session"]
        session.active_flow = await self._router.route(state["utterance"], state["history"])
        return {"session": session}

    async def _collect_preferences(self, state: TurnState) -> dict:
        session = state["session"]
        session.active_flow = ActiveFlow.COLLECTING_PREFERENCES

        update = await self._preferences.update(
            state["utterance"],
            session.preferences,
            state["history"],
            breed_availability=session.breed_availability,
        )
        session.preferences = update.record
        session.breed_availability = update.breed_availability
        changes: dict = {"session": session}
        if not update.delta.is_empty():
            changes["save_preferences"] = True

        if not update.missing_fields:
            return changes

        reply = await self._preferences.follow_up(
            update.record,
            update.missing_fields,
            state["history"],
            update.breed_availability,
        )
        return {**changes, "reply": reply}

    async def _recommend(self, state: TurnState) -> dict:
        session = state["session"]
        result = await self._find_matches(session.preferences)
        self._set_results(session, result)
        message = format_result_message(
            result, "Great! Based on what you've told me, here are my top recommendations:"
        )
        return {"session": session, "reply": message}

    async def _answer_question(self, state: TurnState) -> dict:
        session = state["session"]
        session.active_flow = ActiveFlow.QA
        reply = await self._qa.answer(state["utterance"], state["history"])
        return {"session": session, "reply": reply}

    async def _handle_post_result(self, state: TurnState) -> dict:
        session = state["session"]
        text = state["utterance"]

        if contains_blocked_content(text):
            return {"session": session, "reply": REFUSAL_MESSAGE}

        action = await self._post_result.decide(
            text, session.preferences, session.recommendations, state["history"]
        )

        changes: dict = {"session": session}
        if action is None:
            reply = POST_RESULT_FALLBACK
        elif isinstance(action, RegenerateAction):
            reply = await self._regenerate(session, action)
            changes["save_preferences"] = True
        elif isinstance(action, AnswerAction):
            reply = action.answer.strip() or await self._qa.answer(text, state["history"])
        elif isinstance(action, RestartAction):
            reply = self._restart(session)
        else:
            raise TypeError(f"Unhandled post-result action: {action!r}")

        return {**changes, "reply": reply}

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    async def _find_matches(
        self,
        prefs: PreferenceRecord,
        *,
        limit: Optional[int] = None,
        exclude_ids: Optional[list[str]] = None,
    ) -> RecommendationResult:
        scored = await self._scoring.score(prefs, limit or self._candidate_limit)
        if exclude_ids:
            excluded = set(exclude_ids)
            scored = [c for c in scored if c.animal.id not in excluded]
        return await self._selection.select(scored[: self._candidate_limit], prefs)

    @staticmethod
    def _set_results(session: Session, result: RecommendationResult) -> None:
        session.recommendations = result
        session.completed = True
        session.active_flow = ActiveFlow.HAS_RESULTS

    async def _regenerate(self, session: Session, action: RegenerateAction) -> str:
        session.preferences = session.preferences.model_copy(
            update={"breed_strict": action.keep_breed_strict}
        )

        previous = session.recommendations.animal_ids if session.recommendations else []
        excluding = action.exclude_previous and bool(previous)
        logger.info(
            "Regenerating for session %s (strict=%s, exclude=%s): %s",
            session.session_id,
            action.keep_breed_strict,
            excluding,
            action.reason,
        )

        result = await self._find_matches(
            session.preferences,
            limit=self._candidate_limit * 2 if excluding else self._candidate_limit,
            exclude_ids=previous if excluding else None,
        )
        self._set_results(session, result)
        return format_result_message(result, "Here are some other great matches for you:")

    @staticmethod
    def _restart(session: Session) -> str:
        session.preferences = PreferenceRecord(location=session.preferences.location)
        session.recommendations = None
        session.completed = False
        session.breed_availability = None
        session.active_flow = ActiveFlow.COLLECTING_PREFERENCES
        question = default_follow_up(session.preferences, missing_fields(session.preferences))
        return f"{RESTART_MESSAGE} {question}"
