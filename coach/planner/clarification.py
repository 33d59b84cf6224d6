"""Structured clarification prompts, personalised from the member profile."""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any, Callable

from coach.memory.models import MemberProfileSnapshot, SlotType
from coach.planner.gaps import equipment_classes
from coach.planner.slots import (
    extract_duration,
    extract_energy,
    extract_focus,
    extract_intensity,
    extract_location,
)
from coach.planner.types import ClarificationData, ClarificationOption

LOW_ENERGY_THRESHOLD = 2.5
HIGH_ENERGY_THRESHOLD = 4.0
DEFAULT_ENERGY_SCORE = 3.0
MAX_FOCUS_OPTIONS = 4

SEVERITY_ICONS = {
    "severe": "alert-triangle",
    "moderate": "alert-circle",
}

INTROS = {
    SlotType.DURATION: "Let me personalize this workout for you.",
    SlotType.ENERGY: "Got it!",
    SlotType.LOCATION: "Perfect!",
    SlotType.LIMITATIONS: "Almost there!",
    SlotType.FOCUS: "One more thing!",
    SlotType.INTENSITY: "Last question!",
}

SKIP_PATTERN = re.compile(
    r"^\s*(skip|none|no|nope|nothing|no issues?( today)?|all good|i'?m good|not sure|don'?t know|whatever|any|doesn'?t matter)\s*[.!]*\s*$",
    re.IGNORECASE,
)
MODERATE_ENERGY_PATTERN = re.compile(r"\b(okay|ok|fine|alright|moderate|normal|average|so-so)\b", re.IGNORECASE)
# "no knee pain today", "not hurting", "my knee feels fine"
NO_LIMITATION_PATTERN = re.compile(
    r"\b(no|not|without|zero)\b(?:\s+\w+){0,3}?\s+(pain|issues?|problems?|trouble|bother\w*|hurt\w*)\b"
    r"|\b(feels?|feeling)\s+(fine|good|great|ok(?:ay)?)\b",
    re.IGNORECASE,
)


@dataclass(slots=True, frozen=True)
class AnswerResolution:
    """Outcome of interpreting a reply to a clarification question."""

    slot: SlotType
    value: Any = None
    skipped: bool = False
    understood: bool = True


class ClarificationBuilder:
    """Build the question and options for one missing slot.

    Every generator is pure given the slot type and the profile snapshot.
    """

    def __init__(self) -> None:
        self._generators: dict[SlotType, Callable[[MemberProfileSnapshot | None], ClarificationData]] = {
            SlotType.DURATION: self._duration,
            SlotType.ENERGY: self._energy,
            SlotType.LOCATION: self._location,
            SlotType.LIMITATIONS: self._limitations,
            SlotType.FOCUS: self._focus,
            SlotType.INTENSITY: self._intensity,
        }

    def build(self, slot_type: SlotType, profile: MemberProfileSnapshot | None) -> ClarificationData:
        return self._generators[slot_type](profile)

    def intro(self, slot_type: SlotType) -> str:
        return INTROS.get(slot_type, "Let me ask you a quick question.")

    def resolve_answer(
        self,
        slot_type: SlotType,
        answer: str,
        profile: MemberProfileSnapshot | None,
    ) -> AnswerResolution:
        """Map a free-text or option reply to a slot value.

        Matching order: exact option, slot extractor, option mentioned in the
        text, free text (when allowed). Skip phrases resolve as an explicit
        skip.
        """

        text = (answer or "").strip()
        if not text:
            return AnswerResolution(slot=slot_type, understood=False)
        if SKIP_PATTERN.match(text):
            return AnswerResolution(slot=slot_type, skipped=True)

        clarification = self.build(slot_type, profile)
        lowered = text.lower()

        option = _exact_option(clarification, lowered)
        if option is None:
            extracted = _extract(slot_type, text)
            if extracted is not None:
                return AnswerResolution(slot=slot_type, value=extracted)
            option = _mentioned_option(clarification, lowered)

        if option is not None:
            return self._from_option(slot_type, option)

        if slot_type is SlotType.LIMITATIONS and NO_LIMITATION_PATTERN.search(text):
            return AnswerResolution(slot=slot_type, skipped=True)

        if slot_type is SlotType.LIMITATIONS and profile is not None:
            matched = [
                limitation.id
                for limitation in profile.limitations
                if limitation.type.lower() in lowered
                or any(area.lower() in lowered for area in limitation.affected_areas)
            ]
            if matched:
                return AnswerResolution(slot=slot_type, value=tuple(matched))

        if clarification.allow_custom:
            if slot_type is SlotType.LIMITATIONS:
                return AnswerResolution(slot=slot_type, value=(text,))
            if slot_type is SlotType.FOCUS:
                return AnswerResolution(slot=slot_type, value=text)

        return AnswerResolution(slot=slot_type, understood=False)

    def _from_option(self, slot_type: SlotType, option: ClarificationOption) -> AnswerResolution:
        if slot_type is SlotType.LIMITATIONS:
            if option.value == "none":
                return AnswerResolution(slot=slot_type, skipped=True)
            return AnswerResolution(slot=slot_type, value=(option.value,))
        if slot_type is SlotType.DURATION:
            return AnswerResolution(slot=slot_type, value=int(option.value))
        return AnswerResolution(slot=slot_type, value=option.value)

    def _duration(self, profile: MemberProfileSnapshot | None) -> ClarificationData:
        return ClarificationData(
            question="How much time do you have?",
            options=tuple(
                ClarificationOption(id=minutes, label=f"{minutes} min", value=minutes, icon="clock")
                for minutes in ("15", "30", "45", "60")
            ),
            allow_custom=True,
            context=SlotType.DURATION,
        )

    def _energy(self, profile: MemberProfileSnapshot | None) -> ClarificationData:
        average = DEFAULT_ENERGY_SCORE
        if profile is not None and profile.avg_energy is not None:
            average = profile.avg_energy

        suffix = ""
        if average < LOW_ENERGY_THRESHOLD:
            suffix = " (you've been running a bit low lately)"
        elif average > HIGH_ENERGY_THRESHOLD:
            suffix = " (you've been on fire lately!)"

        return ClarificationData(
            question=f"How are you feeling today?{suffix}",
            options=(
                ClarificationOption("low", "Low energy", "low", "battery", "Keep it light today"),
                ClarificationOption("moderate", "Feeling okay", "moderate", "battery-medium", "Standard workout"),
                ClarificationOption("high", "Ready to crush it", "high", "battery-full", "Push harder today"),
            ),
            allow_custom=False,
            context=SlotType.ENERGY,
        )

    def _location(self, profile: MemberProfileSnapshot | None) -> ClarificationData:
        classes = equipment_classes(profile.equipment if profile else ())
        options: list[ClarificationOption] = []

        if classes.gym:
            options.append(ClarificationOption("gym", "At the gym", "gym", "dumbbell", "Full equipment access"))
        if classes.home:
            options.append(ClarificationOption("home", "Home workout", "home", "home", "Using home equipment"))

        options.append(ClarificationOption("outdoor", "Outdoor", "outdoor", "sun", "Park or outdoor space"))
        options.append(ClarificationOption("bodyweight", "No equipment", "bodyweight", "user", "Bodyweight only"))

        return ClarificationData(
            question="Where will you be working out?",
            options=tuple(options),
            allow_custom=True,
            context=SlotType.LOCATION,
        )

    def _limitations(self, profile: MemberProfileSnapshot | None) -> ClarificationData:
        options: list[ClarificationOption] = []

        for limitation in profile.limitations if profile else ():
            areas = ", ".join(limitation.affected_areas) or "general"
            options.append(
                ClarificationOption(
                    id=limitation.id,
                    label=f"{limitation.type} - {areas}",
                    value=limitation.id,
                    icon=SEVERITY_ICONS.get(limitation.severity, "info"),
                    description=limitation.notes or f"{limitation.severity} severity",
                )
            )

        options.append(
            ClarificationOption("none", "No issues today", "none", "check-circle", "Feeling good, no restrictions")
        )

        return ClarificationData(
            question="Any limitations bothering you today?",
            options=tuple(options),
            allow_custom=True,
            context=SlotType.LIMITATIONS,
        )

    def _focus(self, profile: MemberProfileSnapshot | None) -> ClarificationData:
        recovery = profile.muscle_recovery if profile else {}
        ready = {muscle for muscle, is_ready in recovery.items() if is_ready}
        recovering = [muscle for muscle, is_ready in recovery.items() if not is_ready]

        options: list[ClarificationOption] = []
        if ready & {"chest", "shoulders", "triceps"}:
            options.append(ClarificationOption("push", "Push day", "push", "arrow-up", "Chest, shoulders, triceps"))
        if ready & {"back", "biceps"}:
            options.append(ClarificationOption("pull", "Pull day", "pull", "arrow-down", "Back and biceps"))
        if ready & {"quadriceps", "hamstrings", "glutes"}:
            options.append(ClarificationOption("legs", "Leg day", "legs", "footprints", "Quads, hamstrings, glutes"))
        if ready & {"core", "abs"}:
            options.append(ClarificationOption("core", "Core focus", "core", "target", "Abs and stability"))

        options.append(ClarificationOption("full_body", "Full body", "full_body", "dumbbell", "Hit everything"))
        options.append(ClarificationOption("cardio", "Cardio/Conditioning", "cardio", "heart", "Endurance and heart rate"))

        question = "What would you like to focus on?"
        if 0 < len(recovering) <= 3:
            question = f"What would you like to focus on? (Note: {', '.join(recovering)} still recovering)"

        return ClarificationData(
            question=question,
            options=tuple(options[:MAX_FOCUS_OPTIONS]),
            allow_custom=True,
            context=SlotType.FOCUS,
        )

    def _intensity(self, profile: MemberProfileSnapshot | None) -> ClarificationData:
        return ClarificationData(
            question="How hard do you want to go?",
            options=(
                ClarificationOption("light", "Light", "light", "feather", "Recovery or deload day"),
                ClarificationOption("moderate", "Moderate", "moderate", "activity", "Standard training"),
                ClarificationOption("hard", "Hard", "hard", "flame", "Push your limits"),
                ClarificationOption("max", "All out", "max", "zap", "Maximum effort"),
            ),
            allow_custom=False,
            context=SlotType.INTENSITY,
        )


def _exact_option(clarification: ClarificationData, lowered: str) -> ClarificationOption | None:
    for option in clarification.options:
        if lowered in {option.id.lower(), option.value.lower(), option.label.lower()}:
            return option
    return None


def _mentioned_option(clarification: ClarificationData, lowered: str) -> ClarificationOption | None:
    for option in clarification.options:
        for token in (option.value, option.id):
            if re.search(rf"(?<!\w){re.escape(token.lower())}(?!\w)", lowered):
                return option
    return None


def _extract(slot_type: SlotType, text: str) -> Any:
    if slot_type is SlotType.DURATION:
        if text.strip().isdigit():
            minutes = int(text.strip())
            return minutes if minutes > 0 else None
        return extract_duration(text)
    if slot_type is SlotType.ENERGY:
        energy = extract_energy(text)
        if energy is None and MODERATE_ENERGY_PATTERN.search(text):
            return "moderate"
        return energy
    if slot_type is SlotType.LOCATION:
        return extract_location(text)
    if slot_type is SlotType.INTENSITY:
        return extract_intensity(text)
    if slot_type is SlotType.FOCUS:
        return extract_focus(text)
    return None
