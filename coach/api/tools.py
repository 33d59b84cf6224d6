"""API routes exposing the knowledge tools and clarification builder directly."""

from __future__ import annotations

from fastapi import APIRouter, HTTPException
from pydantic import BaseModel

from coach.memory.models import SlotType
from coach.memory.profiles import ProfileSupplier
from coach.planner.clarification import ClarificationBuilder
from coach.tools.base import ToolContext
from coach.tools.semantic import GetQueryPatternsTool, GetSemanticTool, SearchSemanticTool


class ClarificationPayload(BaseModel):
    slot_type: str
    member_id: str | None = None


def create_tools_router(
    search: SearchSemanticTool,
    lookup: GetSemanticTool,
    patterns: GetQueryPatternsTool,
    clarifications: ClarificationBuilder,
    profiles: ProfileSupplier | None = None,
) -> APIRouter:
    router = APIRouter(prefix="/tools", tags=["tools"])

    @router.get("/knowledge/search")
    async def search_endpoint(query: str | None = None, limit: int = 5) -> dict:
        if not query:
            raise HTTPException(status_code=400, detail="query parameter is required")

        result = await search.run({"query": query, "limit": limit}, ToolContext())
        if not result.success:
            raise HTTPException(status_code=400, detail=result.content)
        return {"message": result.content, "results": result.data.get("results", [])}

    @router.get("/knowledge/patterns/{domain_id}")
    async def patterns_endpoint(domain_id: str, pattern_id: str | None = None) -> dict:
        result = await patterns.run({"domain_id": domain_id, "pattern_id": pattern_id}, ToolContext())
        if not result.success:
            raise HTTPException(status_code=404, detail=result.content)
        return result.data | {"message": result.content}

    @router.get("/knowledge/{kind}/{item_id}")
    async def lookup_endpoint(kind: str, item_id: str) -> dict:
        result = await lookup.run({"id": item_id, "type": kind}, ToolContext())
        if not result.success:
            raise HTTPException(status_code=404, detail=result.content)
        return result.data["definition"]

    @router.post("/clarification")
    async def clarification_endpoint(payload: ClarificationPayload) -> dict:
        slot_type = SlotType.parse(payload.slot_type)
        if slot_type is None:
            raise HTTPException(status_code=400, detail=f"Unknown slot type '{payload.slot_type}'")

        profile = profiles.get(payload.member_id) if profiles and payload.member_id else None
        clarification = clarifications.build(slot_type, profile)
        return {
            "text": clarifications.intro(slot_type),
            "clarification": clarification.to_dict(),
            "personalized": profile is not None,
        }

    return router
