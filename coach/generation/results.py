"""Tagged response union returned by the dispatcher.

Callers branch on ``kind``: ``clarification``, ``generation``,
``passthrough`` or ``quota_exceeded``.
"""

from __future__ import annotations

import json
import re
from dataclasses import dataclass, field
from typing import Any, ClassVar, Mapping, Union

from coach.core.quota import QuotaDecision, QuotaKind
from coach.memory.models import ConversationState, SlotType
from coach.planner.types import ClarificationData

JSON_BLOCK_PATTERN = re.compile(r"```(?:json)?\s*(\{.*?\})\s*```", re.DOTALL | re.IGNORECASE)


@dataclass(slots=True, frozen=True)
class SuggestedAction:
    id: str
    label: str
    action: str
    variant: str = "outline"

    def to_dict(self) -> dict[str, str]:
        return {"id": self.id, "label": self.label, "action": self.action, "variant": self.variant}


WORKOUT_ACTIONS = (
    SuggestedAction("start", "Start Workout", "start_workout", "primary"),
    SuggestedAction("save", "Save to Profile", "save_plan", "secondary"),
    SuggestedAction("modify", "Modify", "modify", "outline"),
    SuggestedAction("regenerate", "Regenerate", "regenerate", "outline"),
)
TEXT_ONLY_ACTIONS = (
    SuggestedAction("modify", "Modify", "modify", "outline"),
    SuggestedAction("regenerate", "Regenerate", "regenerate", "outline"),
)


def extract_workout(text: str) -> dict[str, Any] | None:
    """Return the first fenced JSON object that looks like a workout."""

    for match in JSON_BLOCK_PATTERN.finditer(text or ""):
        try:
            candidate = json.loads(match.group(1))
        except ValueError:
            continue
        if not isinstance(candidate, dict):
            continue
        if isinstance(candidate.get("workout"), dict):
            candidate = candidate["workout"]
        if isinstance(candidate.get("exercises"), list):
            return candidate
    return None


def suggested_actions(workout: Mapping[str, Any] | None) -> tuple[SuggestedAction, ...]:
    return WORKOUT_ACTIONS if workout is not None else TEXT_ONLY_ACTIONS


@dataclass(slots=True, frozen=True)
class ClarificationTurn:
    kind: ClassVar[str] = "clarification"

    text: str
    clarification: ClarificationData
    state: ConversationState
    missing: tuple[SlotType, ...] = ()
    reprompt: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "kind": self.kind,
            "text": self.text,
            "clarification": self.clarification.to_dict(),
            "conversation_state": self.state.to_dict(),
            "missing": [slot.value for slot in self.missing],
            "reprompt": self.reprompt,
        }


@dataclass(slots=True, frozen=True)
class GenerationResult:
    kind: ClassVar[str] = "generation"

    text: str
    state: ConversationState
    response_id: str | None = None
    workout: dict[str, Any] | None = None
    actions: tuple[SuggestedAction, ...] = ()
    step_limit_reached: bool = False
    steps: int = 0
    model: str | None = None
    knowledge: Mapping[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "kind": self.kind,
            "text": self.text,
            "response_id": self.response_id,
            "workout": self.workout,
            "actions": [action.to_dict() for action in self.actions],
            "conversation_state": self.state.to_dict(),
            "step_limit_reached": self.step_limit_reached,
            "steps": self.steps,
            "model": self.model,
            "knowledge": dict(self.knowledge),
        }


@dataclass(slots=True, frozen=True)
class PassthroughResult:
    kind: ClassVar[str] = "passthrough"

    text: str
    state: ConversationState
    response_id: str | None = None
    step_limit_reached: bool = False
    steps: int = 0
    model: str | None = None
    knowledge: Mapping[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "kind": self.kind,
            "text": self.text,
            "response_id": self.response_id,
            "conversation_state": self.state.to_dict(),
            "step_limit_reached": self.step_limit_reached,
            "steps": self.steps,
            "model": self.model,
            "knowledge": dict(self.knowledge),
        }


@dataclass(slots=True, frozen=True)
class QuotaExceeded:
    kind: ClassVar[str] = "quota_exceeded"

    quota: QuotaKind
    decision: QuotaDecision

    @property
    def message(self) -> str:
        noun = "workout generations" if self.quota is QuotaKind.WORKOUT else "coach messages"
        return f"You've used all {self.decision.limit} {noun} for this period. Upgrade to keep going."

    def to_dict(self) -> dict[str, Any]:
        return {
            "kind": self.kind,
            "quota": self.quota.value,
            "message": self.message,
            "limit": self.decision.limit,
            "remaining": self.decision.remaining,
            "plan": self.decision.plan,
            "upgrade_required": self.decision.upgrade_required,
        }


CoachResponse = Union[ClarificationTurn, GenerationResult, PassthroughResult, QuotaExceeded]


@dataclass(slots=True, frozen=True)
class StreamEvent:
    """One item of a streamed turn: a text ``delta`` or, last, the finished ``response``."""

    delta: str = ""
    response: CoachResponse | None = None

    def to_dict(self) -> dict[str, Any]:
        if self.response is not None:
            return self.response.to_dict()
        return {"kind": "delta", "text": self.delta}
