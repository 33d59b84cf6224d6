"""Tool router mapping model-issued tool calls to tool implementations."""

from __future__ import annotations

import logging
from typing import Any, Iterable, Mapping

from coach.core.errors import ToolExecutionError
from coach.tools.base import Tool, ToolContext, ToolResponse

logger = logging.getLogger("coach.tools")


class ToolRouter:
    """Dispatch tool calls by name to concrete tools."""

    def __init__(self, tools: Iterable[Tool]) -> None:
        self._tools: dict[str, Tool] = {tool.name: tool for tool in tools}

    @property
    def names(self) -> list[str]:
        return list(self._tools)

    def get(self, name: str) -> Tool | None:
        return self._tools.get(name)

    def specs(self) -> list[dict[str, Any]]:
        return [tool.spec() for tool in self._tools.values()]

    async def dispatch(
        self,
        name: str,
        arguments: Mapping[str, Any] | None,
        context: ToolContext,
    ) -> ToolResponse:
        tool = self._tools.get(name)
        if not tool:
            return ToolResponse(
                content=f"Unknown tool '{name}'.",
                data={"tool": name, "available": self.names},
                success=False,
            )

        try:
            return await tool.run(arguments or {}, context)
        except ToolExecutionError as exc:
            logger.warning("Tool %s unavailable: %s", name, exc)
            return ToolResponse(content=str(exc), data={"tool": name}, success=False)
        except Exception as exc:  # noqa: BLE001
            logger.exception("Tool %s raised", name)
            return ToolResponse(
                content="The tool failed to run.",
                data={"tool": name, "error": str(exc)},
                success=False,
            )
