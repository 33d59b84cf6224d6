"""Decide which context slots are still missing before a workout can be generated."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable

from coach.memory.models import ConversationState, MemberProfileSnapshot, SlotType

GYM_EQUIPMENT_KEYWORDS = (
    "barbell",
    "cable",
    "machine",
    "smith",
    "leg press",
    "lat pulldown",
    "rack",
)
HOME_EQUIPMENT_KEYWORDS = (
    "dumbbell",
    "kettlebell",
    "resistance band",
    "pull-up bar",
    "bench",
)

BASIC_SLOTS = (SlotType.DURATION, SlotType.ENERGY)
PRIORITY_ORDER = (
    SlotType.DURATION,
    SlotType.ENERGY,
    SlotType.LOCATION,
    SlotType.LIMITATIONS,
    SlotType.FOCUS,
)


@dataclass(slots=True, frozen=True)
class EquipmentClasses:
    gym: bool
    home: bool


def equipment_classes(equipment: Iterable[str]) -> EquipmentClasses:
    names = [name.lower() for name in equipment]
    return EquipmentClasses(
        gym=any(keyword in name for name in names for keyword in GYM_EQUIPMENT_KEYWORDS),
        home=any(keyword in name for name in names for keyword in HOME_EQUIPMENT_KEYWORDS),
    )


class ContextGapAnalyzer:
    """Ordered list of unresolved slots, with profile-aware suppression.

    The result is empty when nothing is missing, which means the dialogue is
    ready to generate. Focus is never queued; the model infers it.
    """

    def missing(self, profile: MemberProfileSnapshot | None, state: ConversationState) -> list[SlotType]:
        if profile is None:
            return [slot for slot in BASIC_SLOTS if self._unresolved(slot, state)]

        missing: list[SlotType] = []
        for slot in PRIORITY_ORDER:
            if self._unresolved(slot, state) and self._should_ask(slot, profile):
                missing.append(slot)
        return missing

    def _unresolved(self, slot: SlotType, state: ConversationState) -> bool:
        return not state.context.is_set(slot) and not state.is_answered(slot)

    def _should_ask(self, slot: SlotType, profile: MemberProfileSnapshot) -> bool:
        if slot is SlotType.LOCATION:
            classes = equipment_classes(profile.equipment)
            return classes.gym and classes.home
        if slot is SlotType.LIMITATIONS:
            return len(profile.limitations) > 0
        if slot is SlotType.FOCUS:
            return False
        return True
