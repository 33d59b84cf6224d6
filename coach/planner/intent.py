"""Keyword classifier deciding whether an utterance asks for a workout to be generated."""

from __future__ import annotations

import re

Pattern = tuple[str, "re.Pattern[str]"]


def _p(expression: str) -> "re.Pattern[str]":
    return re.compile(expression, re.IGNORECASE)


# Informational phrasing; vetoes generation unless the override also matches.
INFORMATIONAL_PATTERNS: tuple[Pattern, ...] = (
    ("explanation", _p(r"\b(what\s+is|explain|tell\s+me\s+about|how\s+do\s+i|how\s+to)\b")),
    ("question", _p(r"\b(why|when|where|which)\s+(should|is|are|do)\b")),
    ("analysis", _p(r"\b(analy[sz]e|check|review)\s+(my|recent|last)\b")),
    ("progress", _p(r"\bprogress\b")),
    ("motivation", _p(r"\bmotivat")),
    ("struggle", _p(r"\bstrugg")),
    ("advice", _p(r"\badvice\b")),
    ("tips", _p(r"\btips?\b")),
)

GENERATION_OVERRIDE: Pattern = (
    "explicit_generation",
    _p(r"\b(generate|create|make|build|give\s*me)\b.*\bworkout\b"),
)

WORKOUT_REQUEST_PATTERNS: tuple[Pattern, ...] = (
    ("generation_verb", _p(r"\b(create|make|generate|give\s*me|design|build|plan)\b.*\b(workout|session|routine|exercise|training)\b")),
    ("want_workout", _p(r"\b(want|wanna|need|looking\s*for)\s+(a|to|some)?\s*(workout|training|exercise|session)")),
    ("workout_now", _p(r"\bworkout\b.*\b(for\s*today|for\s*me|right\s*now|quick|fast)\b")),
    ("lets_train", _p(r"\b(let's|lets)\s+(do|train|workout|exercise|work\s*out)\b")),
    ("what_should_i_do", _p(r"\b(what|suggest)\s+(should|can)\s+i\s+(do|train|workout)\b")),
    ("body_part_day", _p(r"\b(leg|arm|chest|back|shoulder|core|upper|lower|full\s*body|push|pull)\s*(day|workout|session|training)?\b")),
    ("modality", _p(r"\b(hiit|cardio|strength|conditioning|mobility|flexibility)\s*(workout|session|training)?\b")),
    ("timed_session", _p(r"\b(\d+)\s*(min|minute)s?\s*(workout|session|training|hiit|cardio)?\b")),
    ("quick_workout", _p(r"\bquick\s*workout\b")),
    ("full_body", _p(r"\bfull\s*body\b")),
    ("upper_body", _p(r"\bupper\s*body\b")),
    ("core_focus", _p(r"\bcore\s*focus\b")),
)

MIN_LENGTH = 3


class IntentClassifier:
    """Binary classifier: is this utterance a workout-generation request?

    Stateless and deterministic. Informational phrasing vetoes a request
    unless an explicit "generate ... workout" override is present.
    """

    def __init__(
        self,
        informational: tuple[Pattern, ...] = INFORMATIONAL_PATTERNS,
        requests: tuple[Pattern, ...] = WORKOUT_REQUEST_PATTERNS,
        override: Pattern = GENERATION_OVERRIDE,
    ) -> None:
        self.informational = informational
        self.requests = requests
        self.override = override

    def classify(self, utterance: str | None) -> bool:
        if not utterance or len(utterance.strip()) < MIN_LENGTH:
            return False

        text = utterance.strip().lower()

        if _first_match(self.informational, text) is not None:
            return self.override[1].search(text) is not None

        return _first_match(self.requests, text) is not None

    def is_informational(self, utterance: str | None) -> bool:
        """Question-style phrasing that is not an explicit generation request."""

        if not utterance:
            return False
        text = utterance.strip().lower()
        if self.override[1].search(text):
            return False
        return _first_match(self.informational, text) is not None

    def matches(self, utterance: str | None) -> list[str]:
        """Labels of every table entry that fires, for logging and diagnostics."""

        if not utterance:
            return []
        text = utterance.strip().lower()
        labels = [label for label, pattern in self.informational if pattern.search(text)]
        if self.override[1].search(text):
            labels.append(self.override[0])
        labels.extend(label for label, pattern in self.requests if pattern.search(text))
        return labels


def _first_match(table: tuple[Pattern, ...], text: str) -> str | None:
    for label, pattern in table:
        if pattern.search(text):
            return label
    return None
