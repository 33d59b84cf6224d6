"""Dataclasses representing conversation turns, slot-filling state and member profiles."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Iterable, Mapping


class SlotType(str, Enum):
    """Context slots collected before a workout can be generated."""

    DURATION = "duration"
    ENERGY = "energy"
    LOCATION = "location"
    LIMITATIONS = "limitations"
    FOCUS = "focus"
    INTENSITY = "intensity"

    @classmethod
    def parse(cls, value: Any) -> "SlotType | None":
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            return None


LOCATIONS = ("gym", "home", "bodyweight", "outdoor")
ENERGY_LEVELS = ("low", "moderate", "high")
INTENSITIES = ("light", "moderate", "hard", "max")


@dataclass(slots=True)
class MessageTurn:
    """Single conversational message as supplied by the caller."""

    role: str
    content: str
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    metadata: dict[str, Any] = field(default_factory=dict)

    def as_message(self) -> dict[str, str]:
        return {"role": self.role, "content": self.content}


@dataclass(slots=True, frozen=True)
class SlotContext:
    """Explicitly-typed slot values accumulated during a dialogue."""

    duration: int | None = None
    location: str | None = None
    energy: str | None = None
    limitations: tuple[str, ...] | None = None
    focus: str | None = None
    intensity: str | None = None

    def get(self, slot: SlotType) -> Any:
        return getattr(self, slot.value)

    def is_set(self, slot: SlotType) -> bool:
        value = self.get(slot)
        if value is None:
            return False
        if isinstance(value, (tuple, list, str)):
            return len(value) > 0
        return True

    def with_value(self, slot: SlotType, value: Any) -> "SlotContext":
        if slot is SlotType.LIMITATIONS and value is not None:
            value = tuple(value)
        return replace(self, **{slot.value: value})

    def merge(self, other: "SlotContext", *, overwrite: bool = False) -> "SlotContext":
        """Fill empty slots from ``other``; replace set ones only when ``overwrite``."""

        merged = self
        for slot in SlotType:
            if not other.is_set(slot):
                continue
            if merged.is_set(slot) and not overwrite:
                continue
            merged = merged.with_value(slot, other.get(slot))
        return merged

    def set_slots(self) -> list[SlotType]:
        return [slot for slot in SlotType if self.is_set(slot)]

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {}
        for slot in SlotType:
            value = self.get(slot)
            if value is None:
                continue
            payload[slot.value] = list(value) if isinstance(value, tuple) else value
        return payload

    @classmethod
    def from_dict(cls, data: Mapping[str, Any] | None) -> "SlotContext":
        data = data or {}
        duration = data.get("duration")
        try:
            duration = int(duration) if duration is not None else None
        except (TypeError, ValueError):
            duration = None
        limitations = data.get("limitations")
        return cls(
            duration=duration if duration and duration > 0 else None,
            location=_choice(data.get("location"), LOCATIONS),
            energy=_choice(data.get("energy"), ENERGY_LEVELS),
            limitations=tuple(str(item) for item in limitations) if isinstance(limitations, (list, tuple)) else None,
            focus=str(data["focus"]) if data.get("focus") else None,
            intensity=_choice(data.get("intensity"), INTENSITIES),
        )


def _choice(value: Any, allowed: Iterable[str]) -> str | None:
    if value is None:
        return None
    value = str(value).lower()
    return value if value in allowed else None


@dataclass(slots=True, frozen=True)
class ConversationState:
    """Durable slot-filling memory for one generation dialogue.

    Instances are immutable; every transition returns a new state so a
    cancelled turn never leaves a half-applied mutation behind.
    """

    active: bool = False
    context: SlotContext = field(default_factory=SlotContext)
    pending_questions: tuple[SlotType, ...] = ()
    answered_questions: tuple[SlotType, ...] = ()

    @classmethod
    def empty(cls) -> "ConversationState":
        return cls()

    @property
    def current_question(self) -> SlotType | None:
        return self.pending_questions[0] if self.pending_questions else None

    def is_answered(self, slot: SlotType) -> bool:
        return slot in self.answered_questions

    def with_context(self, context: SlotContext) -> "ConversationState":
        return replace(self, context=context)

    def ask(self, missing: Iterable[SlotType]) -> "ConversationState":
        pending = tuple(slot for slot in dict.fromkeys(missing) if slot not in self.answered_questions)
        return replace(self, active=True, pending_questions=pending)

    def answer(self, slot: SlotType, value: Any = None) -> "ConversationState":
        """Resolve ``slot``; ``None`` records an explicit skip."""

        context = self.context if value is None else self.context.with_value(slot, value)
        answered = self.answered_questions if slot in self.answered_questions else self.answered_questions + (slot,)
        pending = tuple(item for item in self.pending_questions if item is not slot)
        return replace(self, context=context, pending_questions=pending, answered_questions=answered)

    def to_dict(self) -> dict[str, Any]:
        return {
            "active": self.active,
            "context": self.context.to_dict(),
            "pending_questions": [slot.value for slot in self.pending_questions],
            "answered_questions": [slot.value for slot in self.answered_questions],
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any] | None) -> "ConversationState":
        if not data:
            return cls.empty()
        answered = _slots(data.get("answered_questions") or data.get("answeredQuestions") or [])
        pending = tuple(
            slot
            for slot in _slots(data.get("pending_questions") or data.get("pendingQuestions") or [])
            if slot not in answered
        )
        return cls(
            active=bool(data.get("active", False)),
            context=SlotContext.from_dict(data.get("context")),
            pending_questions=pending,
            answered_questions=answered,
        )


def _slots(values: Iterable[Any]) -> tuple[SlotType, ...]:
    parsed = (SlotType.parse(value) for value in values)
    return tuple(dict.fromkeys(slot for slot in parsed if slot is not None))


@dataclass(slots=True, frozen=True)
class Limitation:
    id: str
    type: str
    affected_areas: tuple[str, ...] = ()
    severity: str = "mild"
    notes: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "type": self.type,
            "affected_areas": list(self.affected_areas),
            "severity": self.severity,
            "notes": self.notes,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Limitation":
        return cls(
            id=str(data["id"]),
            type=str(data.get("type", "limitation")),
            affected_areas=tuple(data.get("affected_areas") or data.get("affectedAreas") or ()),
            severity=str(data.get("severity") or "mild"),
            notes=data.get("notes"),
        )


@dataclass(slots=True, frozen=True)
class MemberProfileSnapshot:
    """Read-only member data owned by the profile supplier."""

    member_id: str
    equipment: tuple[str, ...] = ()
    limitations: tuple[Limitation, ...] = ()
    avg_energy: float | None = None
    recent_moods: tuple[str, ...] = ()
    muscle_recovery: Mapping[str, bool] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "member_id": self.member_id,
            "equipment": list(self.equipment),
            "limitations": [limitation.to_dict() for limitation in self.limitations],
            "avg_energy": self.avg_energy,
            "recent_moods": list(self.recent_moods),
            "muscle_recovery": dict(self.muscle_recovery),
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "MemberProfileSnapshot":
        recovery: dict[str, bool] = {}
        for muscle, status in (data.get("muscle_recovery") or {}).items():
            if isinstance(status, Mapping):
                recovery[str(muscle)] = bool(status.get("ready_to_train", status.get("readyToTrain", False)))
            else:
                recovery[str(muscle)] = bool(status)
        avg_energy = data.get("avg_energy")
        return cls(
            member_id=str(data.get("member_id", "")),
            equipment=tuple(
                item["name"] if isinstance(item, Mapping) else str(item) for item in data.get("equipment") or ()
            ),
            limitations=tuple(Limitation.from_dict(item) for item in data.get("limitations") or ()),
            avg_energy=float(avg_energy) if avg_energy is not None else None,
            recent_moods=tuple(data.get("recent_moods") or ()),
            muscle_recovery=recovery,
        )
