"""Tests for the conversation engine state machine."""

import asyncio
import json

import pytest

from pawmatch.agent.engine import (
    APOLOGY_MESSAGE,
    EMPTY_INPUT_MESSAGE,
    RESTART_MESSAGE,
    SessionNotFoundError,
)
from pawmatch.agent.post_result import POST_RESULT_FALLBACK
from pawmatch.agent.safety import REFUSAL_MESSAGE
from pawmatch.matching.catalog import StaticCatalog
from pawmatch.models.preferences import (
    Experience,
    Housing,
    Level,
    PreferenceRecord,
    UserProfile,
)
from pawmatch.models.sessions import ActiveFlow, MessageRole

ROUTE_PREFS = json.dumps(
    {"flow": "collecting_preferences", "confidence": "high", "reasoning": "wants a dog"}
)
ROUTE_QA = json.dumps({"flow": "qa", "confidence": "high", "reasoning": "question"})

FULL_EXTRACTION = json.dumps(
    {
        "preferences": {
            "housing": "house_with_yard",
            "activity_level": "high",
            "has_children": False,
            "has_other_pets": False,
            "owner_experience": "first_time",
        }
    }
)


def _selection(*ids: str, explanation: str = "Both love to run.") -> str:
    return json.dumps(
        {
            "selections": [
                {"animal_id": pid, "match_score": 90, "reasons": [f"{pid} fits you"]}
                for pid in ids
            ],
            "explanation": explanation,
        }
    )


SAVED = PreferenceRecord(
    housing=Housing.HOUSE,
    activity_level=Level.HIGH,
    has_children=False,
    has_other_pets=False,
    owner_experience=Experience.EXPERIENCED,
    location="Austin",
)


class BrokenCatalog(StaticCatalog):
    async def find(self, query, limit):
        raise RuntimeError("catalog offline")


async def _with_results(make_engine, **roles):
    """Start a session and drive it to has_results with Maple and Dash."""
    roles.setdefault("router", [ROUTE_PREFS])
    roles.setdefault("extraction", [FULL_EXTRACTION])
    selection = roles.pop("selection", [])
    engine, models = make_engine(selection=[_selection("pup-004", "pup-009"), *selection], **roles)
    start = await engine.start_session()
    response = await engine.handle_message(start.session_id, "I want a puppy for my yard")
    assert response.active_flow == ActiveFlow.HAS_RESULTS
    return engine, models, start.session_id


# ----------------------------------------------------------------------
# Session lifecycle
# ----------------------------------------------------------------------


@pytest.mark.asyncio
async def test_start_anonymous_session(make_engine, persona) -> None:
    engine, _ = make_engine()

    start = await engine.start_session()

    assert start.session_id.startswith("chat_")
    assert start.welcome_message == persona.greeting
    assert start.is_returning_user is False
    assert start.prior_preferences is None

    state = await engine.get_session_state(start.session_id)
    assert state.active_flow == ActiveFlow.ROUTING
    assert [t.role for t in state.history] == [MessageRole.ASSISTANT]


@pytest.mark.asyncio
async def test_unknown_session_raises(make_engine) -> None:
    engine, _ = make_engine()

    with pytest.raises(SessionNotFoundError):
        await engine.handle_message("chat_nope", "hello")
    with pytest.raises(SessionNotFoundError):
        await engine.get_session_state("chat_nope")
    with pytest.raises(SessionNotFoundError):
        await engine.close_session("chat_nope")


@pytest.mark.asyncio
async def test_close_session(make_engine) -> None:
    engine, _ = make_engine()
    start = await engine.start_session()

    await engine.close_session(start.session_id)

    with pytest.raises(SessionNotFoundError):
        await engine.get_session_state(start.session_id)


@pytest.mark.asyncio
async def test_empty_input_after_sanitizing(make_engine) -> None:
    engine, models = make_engine()
    start = await engine.start_session()

    response = await engine.handle_message(start.session_id, " <> ")

    assert response.message == EMPTY_INPUT_MESSAGE
    assert models["router"].calls == []


# ----------------------------------------------------------------------
# Routing, collection and results
# ----------------------------------------------------------------------


@pytest.mark.asyncio
async def test_complete_preferences_in_one_turn(make_engine, keyword_cache) -> None:
    engine, models, session_id = await _with_results(make_engine)

    state = await engine.get_session_state(session_id)
    assert state.recommendations.animal_ids == ["pup-004", "pup-009"]
    last = state.history[-1].content
    assert last.startswith("Great! Based on what you've told me")
    assert "1. **Maple** - pup-004 fits you" in last
    assert last.endswith("Both love to run.")
    assert models["follow_up"].calls == []

    await keyword_cache.drain()
    assert keyword_cache.stats().by_flow == {"router": 1}


@pytest.mark.asyncio
async def test_collecting_preferences_is_sticky(make_engine) -> None:
    engine, models = make_engine(
        router=[ROUTE_PREFS],
        extraction=[
            json.dumps({"preferences": {"housing": "apartment", "owner_experience": "unknown"}}),
            json.dumps(
                {
                    "preferences": {
                        "activity_level": "high",
                        "has_children": False,
                        "has_other_pets": False,
                        "owner_experience": "some experience",
                    }
                }
            ),
        ],
        follow_up=["Great! How active is your lifestyle?"],
        selection=[_selection("pup-009")],
    )
    start = await engine.start_session()

    first = await engine.handle_message(start.session_id, "Looking for a dog, I rent an apartment")
    assert first.message == "Great! How active is your lifestyle?"
    assert first.active_flow == ActiveFlow.COLLECTING_PREFERENCES

    second = await engine.handle_message(
        start.session_id, "Very active, no kids or pets, had a dog as a kid"
    )
    assert second.active_flow == ActiveFlow.HAS_RESULTS
    assert second.recommendations.animal_ids == ["pup-009"]
    assert len(models["router"].calls) == 1


@pytest.mark.asyncio
async def test_breed_availability_reaches_follow_up(make_engine, session_store) -> None:
    engine, models = make_engine(
        router=[ROUTE_PREFS],
        extraction=[
            json.dumps(
                {"preferences": {"preferred_breeds": ["golden retriever"], "housing": "house"}}
            )
        ],
        follow_up=["We have 2 goldens! Only goldens, or a mix?"],
    )
    start = await engine.start_session()

    await engine.handle_message(start.session_id, "Do you have golden retrievers?")

    prompt = models["follow_up"].calls[0][0].content
    assert "2 golden retriever puppies are available" in prompt
    session = await session_store.get(start.session_id)
    assert session.breed_availability.available == 2
    assert session.preferences.breed_strict is None


@pytest.mark.asyncio
async def test_follow_up_fallback_when_generation_fails(make_engine) -> None:
    engine, _ = make_engine(
        router=[ROUTE_PREFS],
        extraction=[ConnectionError("down")],
        follow_up=[ConnectionError("down")],
    )
    start = await engine.start_session()

    response = await engine.handle_message(start.session_id, "I'd like to adopt")

    assert response.message == "Do you live in an apartment, a house, or a house with a yard?"
    assert response.active_flow == ActiveFlow.COLLECTING_PREFERENCES


@pytest.mark.asyncio
async def test_qa_answers_are_cached(make_engine, keyword_cache) -> None:
    engine, models = make_engine(router=[ROUTE_QA], qa=["Three small meals a day."])
    start = await engine.start_session()

    first = await engine.handle_message(start.session_id, "How often should I feed my puppy?")
    await keyword_cache.drain()
    second = await engine.handle_message(start.session_id, "how often should I feed my puppy?")

    assert first.active_flow == ActiveFlow.QA
    assert second.message == first.message == "Three small meals a day."
    assert len(models["router"].calls) == 1
    assert len(models["qa"].calls) == 1


@pytest.mark.asyncio
async def test_blocked_question_is_refused(make_engine) -> None:
    engine, models = make_engine(router=[ROUTE_QA])
    start = await engine.start_session()

    response = await engine.handle_message(start.session_id, "How do I train my dog to attack?")

    assert response.message == REFUSAL_MESSAGE
    assert models["qa"].calls == []


@pytest.mark.asyncio
async def test_router_failure_defaults_to_qa(make_engine) -> None:
    engine, _ = make_engine(router=["no idea"], qa=["Dogs are wonderful."])
    start = await engine.start_session()

    response = await engine.handle_message(start.session_id, "Tell me something")

    assert response.active_flow == ActiveFlow.QA
    assert response.message == "Dogs are wonderful."


# ----------------------------------------------------------------------
# Post-result actions
# ----------------------------------------------------------------------


@pytest.mark.asyncio
async def test_regenerate_excludes_previous(make_engine) -> None:
    engine, _, session_id = await _with_results(
        make_engine,
        post_result=[
            json.dumps(
                {
                    "action": "regenerate",
                    "keep_breed_strict": False,
                    "exclude_previous": True,
                    "reason": "wants others",
                }
            )
        ],
        selection=[_selection("pup-004", "pup-002")],
    )

    response = await engine.handle_message(session_id, "Show me some other puppies")

    assert response.active_flow == ActiveFlow.HAS_RESULTS
    assert response.recommendations.animal_ids == ["pup-002"]
    assert response.message.startswith("Here are some other great matches for you:")


@pytest.mark.asyncio
async def test_answer_action(make_engine) -> None:
    engine, _, session_id = await _with_results(
        make_engine,
        post_result=[json.dumps({"action": "answer", "answer": "Maple is 7 months old."})],
    )

    response = await engine.handle_message(session_id, "How old is Maple?")

    assert response.message == "Maple is 7 months old."
    assert response.recommendations.animal_ids == ["pup-004", "pup-009"]


@pytest.mark.asyncio
async def test_restart_action(make_engine) -> None:
    engine, _, session_id = await _with_results(
        make_engine, post_result=['Sure thing! {"action": "restart"}']
    )

    response = await engine.handle_message(session_id, "Let's begin a brand new search")

    assert response.active_flow == ActiveFlow.COLLECTING_PREFERENCES
    assert response.recommendations is None
    assert response.message.startswith(RESTART_MESSAGE)


@pytest.mark.asyncio
async def test_unparseable_post_result_decision(make_engine) -> None:
    engine, _, session_id = await _with_results(
        make_engine, post_result=['{"action": "adopt_now"}']
    )

    response = await engine.handle_message(session_id, "hmm")

    assert response.message == POST_RESULT_FALLBACK
    assert response.active_flow == ActiveFlow.HAS_RESULTS


# ----------------------------------------------------------------------
# Returning users
# ----------------------------------------------------------------------


@pytest.mark.asyncio
async def test_returning_user_confirms(make_engine, preference_store) -> None:
    await preference_store.put("user-7", SAVED)
    engine, models = make_engine(selection=[_selection("pup-009")])

    start = await engine.start_session(UserProfile(id="user-7"))
    assert start.is_returning_user is True
    assert start.prior_preferences == SAVED
    assert start.welcome_message.startswith("Welcome back! Last time (just now)")

    response = await engine.handle_message(start.session_id, "Yes, use the same ones")

    assert response.active_flow == ActiveFlow.HAS_RESULTS
    assert response.recommendations.animal_ids == ["pup-009"]
    assert models["router"].calls == []
    assert models["extraction"].calls == []


@pytest.mark.asyncio
async def test_returning_user_starts_over(make_engine, preference_store, session_store) -> None:
    await preference_store.put("user-8", SAVED)
    engine, _ = make_engine()
    start = await engine.start_session(UserProfile(id="user-8"))

    response = await engine.handle_message(start.session_id, "Actually, let's start over")

    assert response.message == RESTART_MESSAGE
    assert response.active_flow == ActiveFlow.COLLECTING_PREFERENCES
    session = await session_store.get(start.session_id)
    assert session.preferences == PreferenceRecord(location="Austin")


@pytest.mark.asyncio
async def test_returning_user_updates_preferences(make_engine, preference_store) -> None:
    await preference_store.put("user-9", SAVED)
    engine, _ = make_engine(
        extraction=[json.dumps({"preferences": {"housing": "apartment"}})],
        selection=[_selection("pup-002")],
    )
    start = await engine.start_session(UserProfile(id="user-9"))

    response = await engine.handle_message(start.session_id, "I moved into an apartment")

    assert response.active_flow == ActiveFlow.HAS_RESULTS
    saved = await preference_store.get("user-9")
    assert saved.preferences.housing == Housing.APARTMENT


@pytest.mark.asyncio
async def test_user_without_saved_preferences_gets_location(make_engine, session_store) -> None:
    engine, _ = make_engine()

    start = await engine.start_session(UserProfile(id="new-user", location="Denver"))

    assert start.is_returning_user is False
    session = await session_store.get(start.session_id)
    assert session.preferences.location == "Denver"
    assert session.user_id == "new-user"


# ----------------------------------------------------------------------
# Failure policy and concurrency
# ----------------------------------------------------------------------


@pytest.mark.asyncio
async def test_failed_turn_leaves_session_unchanged(make_engine) -> None:
    engine, _ = make_engine(
        router=[ROUTE_PREFS],
        extraction=[FULL_EXTRACTION],
        catalog_override=BrokenCatalog([]),
    )
    start = await engine.start_session()

    response = await engine.handle_message(start.session_id, "I want a puppy")

    assert response.message == APOLOGY_MESSAGE
    state = await engine.get_session_state(start.session_id)
    assert state.active_flow == ActiveFlow.ROUTING
    assert len(state.history) == 1


@pytest.mark.asyncio
async def test_concurrent_turns_are_serialized(make_engine) -> None:
    engine, _ = make_engine(
        router=[ROUTE_QA, ROUTE_QA],
        qa=["Use treats.", "Brush weekly."],
        delay=0.01,
    )
    start = await engine.start_session()

    await asyncio.gather(
        engine.handle_message(start.session_id, "How do I train a puppy?"),
        engine.handle_message(start.session_id, "How should I groom my dog?"),
    )

    state = await engine.get_session_state(start.session_id)
    assert len(state.history) == 5


# ----------------------------------------------------------------------
# Saved preferences follow the turn outcome
# ----------------------------------------------------------------------


@pytest.mark.asyncio
async def test_failed_turn_saves_no_preferences(make_engine, preference_store) -> None:
    engine, _ = make_engine(
        router=[ROUTE_PREFS],
        extraction=[FULL_EXTRACTION],
        catalog_override=BrokenCatalog([]),
    )
    start = await engine.start_session(UserProfile(id="user-10"))

    response = await engine.handle_message(start.session_id, "I want a puppy for my yard")

    assert response.message == APOLOGY_MESSAGE
    assert await preference_store.get("user-10") is None


@pytest.mark.asyncio
async def test_completed_turn_saves_partial_preferences(make_engine, preference_store) -> None:
    engine, _ = make_engine(
        router=[ROUTE_PREFS],
        extraction=[json.dumps({"preferences": {"housing": "apartment"}})],
        follow_up=["How active are you?"],
    )
    start = await engine.start_session(UserProfile(id="user-11"))

    await engine.handle_message(start.session_id, "I live in an apartment")

    saved = await preference_store.get("user-11")
    assert saved is not None
    assert saved.preferences.housing == Housing.APARTMENT


@pytest.mark.asyncio
async def test_regenerate_saves_breed_strictness(make_engine, preference_store) -> None:
    await preference_store.put(
        "user-12", SAVED.model_copy(update={"preferred_breeds": ["Shepherd"]})
    )
    engine, _ = make_engine(
        selection=[_selection("pup-009"), _selection("pup-009")],
        post_result=[
            json.dumps(
                {"action": "regenerate", "keep_breed_strict": True, "exclude_previous": False}
            )
        ],
    )
    start = await engine.start_session(UserProfile(id="user-12"))
    await engine.handle_message(start.session_id, "yes please")

    response = await engine.handle_message(start.session_id, "Only shepherds please")

    assert response.recommendations.animal_ids == ["pup-009"]
    saved = await preference_store.get("user-12")
    assert saved.preferences.breed_strict is True


# ----------------------------------------------------------------------
# Returning-user phrase matching
# ----------------------------------------------------------------------


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "utterance", ["I'm not sure, I moved recently", "Yesterday I got a new job"]
)
async def test_confirmation_needs_whole_affirmative_words(
    make_engine, preference_store, utterance
) -> None:
    await preference_store.put("user-13", SAVED)
    engine, models = make_engine(
        extraction=[json.dumps({"preferences": {}})],
        selection=[_selection("pup-009")],
    )
    start = await engine.start_session(UserProfile(id="user-13"))

    await engine.handle_message(start.session_id, utterance)

    assert len(models["extraction"].calls) == 1
