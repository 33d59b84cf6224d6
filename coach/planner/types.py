"""Planner-related enums and data structures."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Sequence

from coach.memory.models import ConversationState, MemberProfileSnapshot, MessageTurn, SlotType


class PlannerAction(str, Enum):
    """What the dispatcher should do with the latest turn."""

    PASSTHROUGH = "passthrough"
    CLARIFY = "clarify"
    GENERATE = "generate"


@dataclass(slots=True, frozen=True)
class ClarificationOption:
    id: str
    label: str
    value: str
    icon: str | None = None
    description: str | None = None

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"id": self.id, "label": self.label, "value": self.value}
        if self.icon:
            payload["icon"] = self.icon
        if self.description:
            payload["description"] = self.description
        return payload


@dataclass(slots=True, frozen=True)
class ClarificationData:
    """One clarification turn: question, selectable options and free-text escape hatch."""

    question: str
    options: tuple[ClarificationOption, ...]
    allow_custom: bool
    context: SlotType

    def __post_init__(self) -> None:
        if not self.options and not self.allow_custom:
            raise ValueError(f"clarification for {self.context.value} has no options and no free text")

    def to_dict(self) -> dict[str, Any]:
        return {
            "question": self.question,
            "options": [option.to_dict() for option in self.options],
            "allow_custom": self.allow_custom,
            "context": self.context.value,
        }


@dataclass(slots=True)
class PlannerContext:
    """Inputs passed to the planner when deciding the next action."""

    turn: MessageTurn
    state: ConversationState
    profile: MemberProfileSnapshot | None = None


@dataclass(slots=True)
class PlannerDecision:
    """Planner output: chosen action, updated state and the next question if any."""

    action: PlannerAction
    state: ConversationState
    missing: Sequence[SlotType] = ()
    clarification: ClarificationData | None = None
    is_generation_request: bool = False
    answered: SlotType | None = None
    payload: dict[str, Any] = field(default_factory=dict)
