"""Planner interface shared by slot-filling strategies."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any

from .types import PlannerContext, PlannerDecision


class Planner(ABC):
    """Turns the latest message plus stored state into the next dialogue step."""

    @abstractmethod
    def decide(self, context: PlannerContext) -> PlannerDecision:
        """Return the action, the updated state and, when clarifying, the question."""

    @abstractmethod
    def describe(self) -> str:
        """Human-readable summary of planner strategy."""

    def summarize(self, decision: PlannerDecision) -> dict[str, Any]:
        """Flat view of a decision for structured log lines."""

        return {
            "action": decision.action.value,
            "generation_request": decision.is_generation_request,
            "missing": [slot.value for slot in decision.missing],
            "answered": decision.answered.value if decision.answered else None,
            "slots": sorted(slot.value for slot in decision.state.context.set_slots()),
        }
