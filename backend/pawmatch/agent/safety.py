"""Input sanitization and topic guard for user utterances."""

import re

MAX_INPUT_LENGTH = 1000

ALLOWED_DOMAINS = [
    "dog breeds and characteristics",
    "puppy care and training",
    "adoption process",
    "pet health (general info only)",
    "matching puppies to lifestyles",
]

BLOCKED_TOPICS = [
    "harm",
    "abuse",
    "fighting",
    "illegal",
    "breed ban",
    "kill",
    "poison",
    "attack",
    "dangerous",
]

REFUSAL_MESSAGE = (
    "I can only help with puppy adoption, breeds, and dog care. "
    "Is there something about finding or caring for a puppy I can help with?"
)

_ANGLE_BRACKETS = re.compile(r"[<>]")


def sanitize_input(text: str) -> str:
    """Strip angle brackets, trim and cap the length of an utterance."""
    return _ANGLE_BRACKETS.sub("", text).strip()[:MAX_INPUT_LENGTH]


def contains_blocked_content(text: str) -> bool:
    lowered = text.lower()
    return any(topic in lowered for topic in BLOCKED_TOPICS)
