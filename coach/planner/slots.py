"""Best-effort slot extraction from free text.

Each extractor is independent: absence of a match leaves the slot unset.
Keyword tables are ordered ``(value, pattern)`` pairs evaluated
first-match-wins, so an utterance naming both "chest" and "legs" resolves to
whichever entry is declared first.
"""

from __future__ import annotations

import re

from coach.memory.models import SlotContext

Table = tuple[tuple[str, "re.Pattern[str]"], ...]


def _p(expression: str) -> "re.Pattern[str]":
    return re.compile(expression, re.IGNORECASE)


MINUTES_PATTERN = _p(r"(\d+)\s*(?:min|minute)")
# "1 hour 30 min", "an hour and 15 minutes", "1h30min"
HOURS_AND_MINUTES_PATTERN = _p(r"\b(\d+(?:\.\d+)?|an|one)\s*h(?:ou)?rs?\s*(?:and\s*)?(\d+)\s*(?:min|minute)")
HOURS_PATTERN = _p(r"(\d+(?:\.\d+)?)\s*(?:h|hr|hrs|hour|hours)\b")
HALF_HOUR_PATTERN = _p(r"\bhalf\s+(?:an\s+)?hour\b")
AN_HOUR_PATTERN = _p(r"\b(?:an|one)\s+hour\b")

LOCATION_PATTERNS: Table = (
    ("gym", _p(r"\b(at\s*(the\s*)?(gym|fitness\s*center))\b")),
    ("home", _p(r"\b(at\s*home|home\s*workout|no\s*gym)\b")),
    ("bodyweight", _p(r"\b(no\s*equipment|bodyweight|body\s*weight)\b")),
    ("outdoor", _p(r"\b(outdoor|outside|park)\b")),
)

ENERGY_PATTERNS: Table = (
    ("low", _p(r"\b(low\s*energy|tired|exhausted|easy|light)\b")),
    ("high", _p(r"\b(high\s*energy|energized|crush\s*it|hard|intense|max)\b")),
)

FOCUS_PATTERNS: Table = (
    ("legs", _p(r"\b(leg|legs|lower\s*body|squat|deadlift)\b")),
    ("upper", _p(r"\b(upper\s*body|push|pull|chest|back|shoulders?|arms?)\b")),
    ("chest", _p(r"\b(chest|bench|pec)\b")),
    ("back", _p(r"\b(back|row|lat|pull)\b")),
    ("shoulders", _p(r"\b(shoulder|delt|overhead|press)\b")),
    ("arms", _p(r"\b(arm|bicep|tricep|curl)\b")),
    ("core", _p(r"\b(core|ab|abs|abdominal)\b")),
    ("full_body", _p(r"\b(full\s*body|total\s*body|whole\s*body)\b")),
    ("cardio", _p(r"\b(cardio|conditioning|endurance|running|hiit)\b")),
)

INTENSITY_PATTERNS: Table = (
    ("light", _p(r"\b(light|easy|recovery|deload)\b")),
    ("moderate", _p(r"\b(moderate|medium|normal)\b")),
    ("hard", _p(r"\b(hard|intense|challenging|tough)\b")),
    ("max", _p(r"\b(max|maximum|all.out|pr|personal\s*record)\b")),
)

CORRECTION_PATTERN = _p(r"\b(actually|instead|change\s+(it|that)\s+to|make\s+it|rather|scratch\s+that|i\s+meant)\b")


def first_match(table: Table, text: str) -> str | None:
    for value, pattern in table:
        if pattern.search(text):
            return value
    return None


def extract_duration(utterance: str) -> int | None:
    text = utterance.lower()

    combined = HOURS_AND_MINUTES_PATTERN.search(text)
    if combined:
        hours = combined.group(1)
        hour_value = 1.0 if hours in ("an", "one") else float(hours)
        total = int(round(hour_value * 60)) + int(combined.group(2))
        return total if total > 0 else None

    # An explicit minutes figure wins over unrelated hour mentions ("5 hours of sleep").
    minutes = MINUTES_PATTERN.search(text)
    if minutes:
        total = int(minutes.group(1))
        return total if total > 0 else None

    hours_match = HOURS_PATTERN.search(text)
    if hours_match:
        hour_value = float(hours_match.group(1))
    elif HALF_HOUR_PATTERN.search(text):
        hour_value = 0.5
    elif AN_HOUR_PATTERN.search(text):
        hour_value = 1.0
    else:
        return None
    total = int(round(hour_value * 60))
    return total if total > 0 else None


def extract_location(utterance: str) -> str | None:
    return first_match(LOCATION_PATTERNS, utterance.lower())


def extract_energy(utterance: str) -> str | None:
    return first_match(ENERGY_PATTERNS, utterance.lower())


def extract_focus(utterance: str) -> str | None:
    return first_match(FOCUS_PATTERNS, utterance.lower())


def extract_intensity(utterance: str) -> str | None:
    return first_match(INTENSITY_PATTERNS, utterance.lower())


def is_correction(utterance: str) -> bool:
    return bool(CORRECTION_PATTERN.search(utterance or ""))


class SlotExtractor:
    """Run every extractor over an utterance and collect the partial context."""

    def extract(self, utterance: str | None) -> SlotContext:
        if not utterance:
            return SlotContext()
        return SlotContext(
            duration=extract_duration(utterance),
            location=extract_location(utterance),
            energy=extract_energy(utterance),
            focus=extract_focus(utterance),
            intensity=extract_intensity(utterance),
        )
