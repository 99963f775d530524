"""Human-readable renderings of a preference record."""

from __future__ import annotations

from datetime import datetime, timezone

from pawmatch.models.preferences import Experience, Housing, Level, PreferenceRecord

_HOUSING_SHORT = {
    Housing.APARTMENT: "apartment",
    Housing.HOUSE: "house",
    Housing.HOUSE_WITH_YARD: "house with yard",
}

_HOUSING_CONTEXT = {
    Housing.APARTMENT: "Lives in an apartment",
    Housing.HOUSE: "Lives in a house",
    Housing.HOUSE_WITH_YARD: "Lives in a house with a yard",
}

_ACTIVITY_CONTEXT = {
    Level.LOW: "Has a low-activity lifestyle (limited time or energy for exercise)",
    Level.MEDIUM: "Has a moderate activity level",
    Level.HIGH: "Very active lifestyle (enjoys exercise, outdoor activities)",
}

_EXPERIENCE_SHORT = {
    Experience.FIRST_TIME: "first-time dog owner",
    Experience.SOME_EXPERIENCE: "some dog experience",
    Experience.EXPERIENCED: "experienced dog owner",
}

_EXPERIENCE_CONTEXT = {
    Experience.FIRST_TIME: "First-time dog owner",
    Experience.SOME_EXPERIENCE: "Has some experience with dogs",
    Experience.EXPERIENCED: "Experienced dog owner",
}

_BUDGET_SHORT = {
    Level.LOW: "budget under $200",
    Level.MEDIUM: "budget $200-500",
    Level.HIGH: "budget over $500",
}


def format_preferences_summary(prefs: PreferenceRecord) -> str:
    """One-line summary, e.g. ``Living in a house, high activity lifestyle``."""
    parts: list[str] = []

    if prefs.housing:
        parts.append(f"Living in a {_HOUSING_SHORT[prefs.housing]}")
    if prefs.activity_level:
        parts.append(f"{prefs.activity_level.value} activity lifestyle")

    if prefs.has_children is True:
        parts.append(f"{prefs.child_age}-year-old child" if prefs.child_age else "has children")
    elif prefs.has_children is False:
        parts.append("no children")

    if prefs.has_other_pets is True:
        if prefs.other_pet_types:
            parts.append(f"has {', '.join(prefs.other_pet_types)}")
        else:
            parts.append("has other pets")
    elif prefs.has_other_pets is False:
        parts.append("no other pets")

    if prefs.owner_experience:
        parts.append(_EXPERIENCE_SHORT[prefs.owner_experience])
    if prefs.budget:
        parts.append(_BUDGET_SHORT[prefs.budget])
    if prefs.preferred_breeds:
        parts.append(f"interested in {', '.join(prefs.preferred_breeds)}")
    if prefs.location:
        parts.append(f"in {prefs.location}")

    return ", ".join(parts)


def build_user_context(prefs: PreferenceRecord) -> str:
    """Multi-line adopter description for the selection prompt."""
    parts: list[str] = []

    if prefs.housing:
        parts.append(_HOUSING_CONTEXT[prefs.housing])
    if prefs.activity_level:
        parts.append(_ACTIVITY_CONTEXT[prefs.activity_level])

    if prefs.has_children is True:
        parts.append(
            f"Has a {prefs.child_age}-year-old child" if prefs.child_age else "Has children"
        )
    elif prefs.has_children is False:
        parts.append("No children")

    if prefs.has_other_pets is True:
        if prefs.other_pet_types:
            parts.append(f"Has other pets: {', '.join(prefs.other_pet_types)}")
        else:
            parts.append("Has other pets")
    elif prefs.has_other_pets is False:
        parts.append("No other pets")

    if prefs.owner_experience:
        parts.append(_EXPERIENCE_CONTEXT[prefs.owner_experience])
    if prefs.budget:
        parts.append(f"Adoption {_BUDGET_SHORT[prefs.budget]}")
    if prefs.preferred_breeds:
        mode = "only" if prefs.breed_strict else "prefers"
        parts.append(f"Breed: {mode} {', '.join(prefs.preferred_breeds)}")
    if prefs.location:
        parts.append(f"Located in {prefs.location}")
    if prefs.additional_context:
        parts.append(f"Additional context: {prefs.additional_context}")

    return "\n".join(parts)


def _ago(count: int, unit: str) -> str:
    return f"{count} {unit}{'' if count == 1 else 's'} ago"


def time_ago(moment: datetime, now: datetime | None = None) -> str:
    now = now or datetime.now(timezone.utc)
    seconds = int((now - moment).total_seconds())

    if seconds < 60:
        return "just now"
    if seconds < 3600:
        return _ago(seconds // 60, "minute")
    if seconds < 86400:
        return _ago(seconds // 3600, "hour")
    if seconds < 604800:
        return _ago(seconds // 86400, "day")
    if seconds < 2592000:
        return _ago(seconds // 604800, "week")
    return _ago(seconds // 2592000, "month")


def returning_user_message(
    prefs: PreferenceRecord, updated_at: datetime, now: datetime | None = None
) -> str:
    """Welcome-back message asking to confirm or change saved preferences."""
    return (
        f"Welcome back! Last time ({time_ago(updated_at, now)}) you were looking "
        f"for a puppy with these preferences:\n\n"
        f"{format_preferences_summary(prefs)}\n\n"
        "Should I search with these same preferences, or would you like to "
        "update anything?"
    )
