"""Catalog-backed tools: keyword search, definition lookup and query patterns."""

from __future__ import annotations

from typing import Any, Mapping

from coach.knowledge.assembler import KnowledgeAssembler
from coach.tools.base import Tool, ToolContext, ToolResponse

KNOWLEDGE_KINDS = ("domain", "entity", "metric", "policy")
DEFAULT_SEARCH_LIMIT = 5
MAX_SEARCH_LIMIT = 20


class SearchSemanticTool(Tool):
    """Search domain, entity and metric definitions by keyword."""

    name = "search_semantic"
    description = (
        "Search semantic definitions (domains, entities, metrics) by keyword. "
        "Use this to discover what data is available before querying it."
    )
    parameters = {
        "type": "object",
        "properties": {
            "query": {"type": "string", "description": "Search keywords"},
            "limit": {"type": "integer", "description": "Maximum results", "default": DEFAULT_SEARCH_LIMIT},
        },
        "required": ["query"],
    }

    def __init__(self, assembler: KnowledgeAssembler) -> None:
        self.assembler = assembler

    async def run(self, arguments: Mapping[str, Any], context: ToolContext) -> ToolResponse:
        query = str(arguments.get("query") or "").strip()
        limit = _bounded_int(arguments.get("limit"), DEFAULT_SEARCH_LIMIT, MAX_SEARCH_LIMIT)
        if not query:
            return ToolResponse(content="A search query is required.", success=False)

        hits = self.assembler.search(query, limit)
        results = [
            {"id": hit.id, "type": hit.type, "description": hit.description, "score": hit.score} for hit in hits
        ]
        if not results:
            return ToolResponse(content=f"No definitions matched '{query}'.", data={"results": []})
        return ToolResponse(content=f"Found {len(results)} definition(s).", data={"results": results})


class GetSemanticTool(Tool):
    """Return one definition from the catalog."""

    name = "get_semantic"
    description = (
        "Get detailed information about a semantic definition: domain, entity, metric or policy. "
        "Returns descriptions, fields, examples and related query patterns."
    )
    parameters = {
        "type": "object",
        "properties": {
            "id": {"type": "string", "description": "Definition id, e.g. 'workout_session'"},
            "type": {"type": "string", "enum": list(KNOWLEDGE_KINDS)},
        },
        "required": ["id", "type"],
    }

    def __init__(self, assembler: KnowledgeAssembler) -> None:
        self.assembler = assembler

    async def run(self, arguments: Mapping[str, Any], context: ToolContext) -> ToolResponse:
        item_id = str(arguments.get("id") or "")
        kind = str(arguments.get("type") or "")
        if kind not in KNOWLEDGE_KINDS:
            return ToolResponse(
                content=f"Unknown definition type '{kind}'.",
                data={"available_types": list(KNOWLEDGE_KINDS)},
                success=False,
            )

        definition = self.assembler.lookup(kind, item_id)
        if definition is None:
            return ToolResponse(
                content=f"{kind.title()} '{item_id}' not found.",
                data={"available": self.assembler.available(kind)},
                success=False,
            )
        return ToolResponse(content=definition["description"], data={"definition": definition})


class GetQueryPatternsTool(Tool):
    """Expose curated SQL patterns per domain."""

    name = "get_query_patterns"
    description = (
        "Get pre-defined SQL query patterns for a domain. "
        "Use these as templates for readonly_query instead of writing SQL from scratch."
    )
    parameters = {
        "type": "object",
        "properties": {
            "domain_id": {"type": "string", "description": "Domain id, e.g. 'workouts'"},
            "pattern_id": {"type": "string", "description": "Optional pattern id for the full SQL"},
        },
        "required": ["domain_id"],
    }

    def __init__(self, assembler: KnowledgeAssembler) -> None:
        self.assembler = assembler

    async def run(self, arguments: Mapping[str, Any], context: ToolContext) -> ToolResponse:
        domain_id = str(arguments.get("domain_id") or "")
        pattern_id = arguments.get("pattern_id") or None

        patterns = self.assembler.query_patterns(domain_id, pattern_id)
        if patterns is None:
            target = f"pattern '{pattern_id}' in domain '{domain_id}'" if pattern_id else f"domain '{domain_id}'"
            return ToolResponse(content=f"No query patterns for {target}.", success=False)
        return ToolResponse(content=f"Query patterns for {domain_id}.", data=patterns)


def _bounded_int(value: Any, default: int, ceiling: int) -> int:
    try:
        number = int(value)
    except (TypeError, ValueError):
        return default
    return max(1, min(number, ceiling))
