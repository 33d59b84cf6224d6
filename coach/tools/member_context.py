"""Expose the pre-computed member context snapshot to the model."""

from __future__ import annotations

import re
from typing import Any, Mapping

from coach.memory.profiles import ProfileSupplier
from coach.tools.base import Tool, ToolContext, ToolResponse

MEMBER_ID_PATTERN = re.compile(r"^[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}$", re.IGNORECASE)


class MemberContextTool(Tool):
    """Return the member's equipment, limitations, energy trend and muscle recovery."""

    name = "get_member_context"
    description = (
        "Get the pre-computed context snapshot for a member: equipment, active limitations, "
        "recent energy and muscle recovery status. Faster than querying raw tables."
    )
    parameters = {
        "type": "object",
        "properties": {"member_id": {"type": "string", "description": "Member UUID"}},
        "required": ["member_id"],
    }

    def __init__(self, profiles: ProfileSupplier) -> None:
        self.profiles = profiles

    async def run(self, arguments: Mapping[str, Any], context: ToolContext) -> ToolResponse:
        member_id = str(arguments.get("member_id") or context.member_id or "")
        if not MEMBER_ID_PATTERN.match(member_id):
            return ToolResponse(content="Invalid member ID format", data={"found": False}, success=False)
        if context.member_id and member_id != context.member_id:
            return ToolResponse(
                content="Only the current member's context can be read.",
                data={"found": False},
                success=False,
            )

        profile = self.profiles.get(member_id)
        if profile is None:
            return ToolResponse(
                content="No context snapshot found for this member. Context may need to be refreshed.",
                data={"found": False},
                success=False,
            )
        return ToolResponse(content="Member context found.", data={"found": True, "context": profile.to_dict()})
