"""Base classes and types for tools the model may call during generation."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Mapping

from coach.memory.models import MemberProfileSnapshot


@dataclass(slots=True)
class ToolContext:
    """Context provided to a tool invocation."""

    member_id: str | None = None
    profile: MemberProfileSnapshot | None = None
    extras: Mapping[str, Any] = field(default_factory=dict)


@dataclass(slots=True)
class ToolResponse:
    """Standard tool response payload, serialised back to the model as JSON."""

    content: str
    data: dict[str, Any] = field(default_factory=dict)
    success: bool = True

    def to_dict(self) -> dict[str, Any]:
        return {"success": self.success, "content": self.content, **self.data}


class Tool(ABC):
    """Executable tool implementation interface."""

    name: str
    description: str = ""
    parameters: dict[str, Any] = {"type": "object", "properties": {}}

    @abstractmethod
    async def run(self, arguments: Mapping[str, Any], context: ToolContext) -> ToolResponse:
        """Execute the tool with model-supplied arguments."""

    def describe(self) -> str:
        """Return a human-readable description for observability dashboards."""

        return self.description or self.__doc__ or self.name

    def spec(self) -> dict[str, Any]:
        """OpenAI-compatible function declaration."""

        return {
            "type": "function",
            "function": {
                "name": self.name,
                "description": self.describe(),
                "parameters": self.parameters,
            },
        }
