"""Tool package exports."""

from .base import Tool, ToolContext, ToolResponse
from .member_context import MemberContextTool
from .readonly_query import ReadonlyQueryTool
from .router import ToolRouter
from .semantic import GetQueryPatternsTool, GetSemanticTool, SearchSemanticTool

__all__ = [
    "Tool",
    "ToolContext",
    "ToolResponse",
    "ToolRouter",
    "GetQueryPatternsTool",
    "GetSemanticTool",
    "MemberContextTool",
    "ReadonlyQueryTool",
    "SearchSemanticTool",
]
