"""Budgeted knowledge retrieval and cache-friendly system prompt rendering.

The system prompt is laid out static-first: base instructions, tool usage
guidelines and always-on policies form a prefix that is byte-identical
across requests, and the per-request knowledge payload is appended last so
provider-side prompt caching can reuse the prefix.
"""

from __future__ import annotations

import logging
import math
import re
from dataclasses import dataclass, field
from typing import Any, Iterable, Mapping, Sequence

from coach.knowledge.catalog import (
    ALWAYS_INCLUDE_POLICIES,
    DOMAINS,
    ENTITIES,
    INTENTS,
    METRICS,
    POLICIES,
    DomainDefinition,
    EntityDefinition,
    IntentDefinition,
    MetricDefinition,
    PolicyDefinition,
)

logger = logging.getLogger("coach.knowledge")

CHARS_PER_TOKEN = 4
RECENT_USER_TURNS = 3
FRAGMENT_SEPARATOR = "\n\n"
DYNAMIC_SECTION_HEADER = "## SEMANTIC KNOWLEDGE BASE"

STATIC_TOOL_INSTRUCTIONS = """---
## Available Tools

You have access to tools for intelligent data retrieval:

1. **search_semantic** - Search semantic definitions by keyword
2. **get_semantic** - Get detailed entity/domain information
3. **get_query_patterns** - Get SQL patterns for common queries
4. **readonly_query** - Run read-only database queries
5. **get_member_context** - Get pre-computed member context

## Tool Usage Guidelines

Use these tools when you need:
- To understand what data is available
- To fetch user-specific information
- To run analytics or progress queries
- To get examples of SQL patterns

Use semantic tools before making assumptions about data structures.
---"""

SUGGESTED_TOOLS = {
    "workout_logging": ("get_member_context", "get_query_patterns"),
    "workout_planning": ("get_member_context", "get_query_patterns"),
    "progress_analytics": ("readonly_query", "get_semantic"),
    "goal_management": ("get_semantic", "get_member_context"),
}


def estimate_tokens(text: str) -> int:
    """Rough estimate: ~4 characters per token."""

    return math.ceil(len(text) / CHARS_PER_TOKEN)


def would_exceed_budget(current_tokens: int, candidate_text: str, budget: int) -> bool:
    return current_tokens + estimate_tokens(candidate_text) > budget


@dataclass(slots=True, frozen=True)
class KnowledgeFragment:
    kind: str
    id: str
    description: str
    patterns: tuple[str, ...] = ()

    def render(self) -> str:
        lines = [f"### {self.kind.title()}: {self.id}", self.description]
        lines.extend(f"- {pattern}" for pattern in self.patterns)
        return "\n".join(lines)


@dataclass(slots=True)
class SemanticContext:
    """Knowledge selected for one request; built fresh and never persisted."""

    intent: str | None = None
    domains: dict[str, KnowledgeFragment] = field(default_factory=dict)
    entities: dict[str, KnowledgeFragment] = field(default_factory=dict)
    metrics: dict[str, KnowledgeFragment] = field(default_factory=dict)
    estimated_tokens: int = 0

    def fragments(self) -> list[KnowledgeFragment]:
        return [*self.domains.values(), *self.entities.values(), *self.metrics.values()]

    def is_empty(self) -> bool:
        return not (self.domains or self.entities or self.metrics)

    def to_dict(self) -> dict[str, Any]:
        return {
            "intent": self.intent,
            "domains": sorted(self.domains),
            "entities": sorted(self.entities),
            "metrics": sorted(self.metrics),
            "estimated_tokens": self.estimated_tokens,
        }


@dataclass(slots=True, frozen=True)
class SearchHit:
    id: str
    type: str
    description: str
    score: float


class KnowledgeAssembler:
    """Classify conversational intent and assemble knowledge under a token budget."""

    def __init__(
        self,
        token_budget: int = 1500,
        *,
        domains: Mapping[str, DomainDefinition] = DOMAINS,
        entities: Mapping[str, EntityDefinition] = ENTITIES,
        metrics: Mapping[str, MetricDefinition] = METRICS,
        policies: Mapping[str, PolicyDefinition] = POLICIES,
        intents: Sequence[IntentDefinition] = INTENTS,
    ) -> None:
        self.token_budget = token_budget
        self.domains = domains
        self.entities = entities
        self.metrics = metrics
        self.policies = policies
        self.intents = intents
        self._keyword_patterns = {
            intent.name: [_word_pattern(keyword) for keyword in intent.keywords] for intent in intents
        }

    def classify_intent(self, text: str) -> str | None:
        """Highest keyword score wins; ties go to the earlier declared intent."""

        lowered = (text or "").lower()
        best_name: str | None = None
        best_score = 0
        for intent in self.intents:
            score = sum(1 for pattern in self._keyword_patterns[intent.name] if pattern.search(lowered))
            if score > best_score:
                best_name, best_score = intent.name, score
        return best_name

    def assemble(self, recent_user_messages: Sequence[str], budget: int | None = None) -> SemanticContext:
        budget = self.token_budget if budget is None else budget
        combined = " ".join(message for message in list(recent_user_messages)[-RECENT_USER_TURNS:] if message)
        intent_name = self.classify_intent(combined)
        context = SemanticContext(intent=intent_name)

        if intent_name is None:
            return context

        intent = next(item for item in self.intents if item.name == intent_name)
        candidates = [
            *(("domains", self._domain_fragment(self.domains[key])) for key in intent.domains if key in self.domains),
            *(("entities", self._entity_fragment(self.entities[key])) for key in intent.entities if key in self.entities),
            *(("metrics", self._metric_fragment(self.metrics[key])) for key in intent.metrics if key in self.metrics),
        ]

        used = 0
        dropped: list[str] = []
        for bucket, fragment in candidates:
            text = fragment.render()
            if used:
                text = FRAGMENT_SEPARATOR + text
            if would_exceed_budget(used, text, budget):
                dropped.append(f"{fragment.kind}:{fragment.id}")
                continue
            getattr(context, bucket)[fragment.id] = fragment
            used += estimate_tokens(text)

        if dropped:
            logger.debug("Knowledge budget %s dropped %s", budget, ", ".join(dropped))

        context.estimated_tokens = estimate_tokens(self.render(context))
        return context

    def render(self, context: SemanticContext) -> str:
        return FRAGMENT_SEPARATOR.join(fragment.render() for fragment in context.fragments())

    def static_prefix(self, base_prompt: str, *, include_tools: bool = True) -> str:
        sections = [base_prompt.strip()]
        if include_tools:
            sections.append(STATIC_TOOL_INSTRUCTIONS)
        policies = self.render_policies()
        if policies:
            sections.append(policies)
        return "\n\n".join(sections)

    def build_system_prompt(
        self,
        base_prompt: str,
        context: SemanticContext,
        *,
        member_context: str | None = None,
        include_tools: bool = True,
    ) -> str:
        rendered = self.render(context) or "No additional definitions are relevant to this request."
        dynamic = (
            f"{DYNAMIC_SECTION_HEADER}\n"
            "The following definitions and patterns are relevant to this conversation.\n"
            "Use them to understand data structures and generate accurate queries.\n\n"
            f"{rendered}"
        )
        if member_context:
            dynamic = f"{dynamic}\n\n## WORKOUT PARAMETERS\n{member_context}"
        return f"{self.static_prefix(base_prompt, include_tools=include_tools)}\n\n{dynamic}"

    def render_policies(self) -> str:
        sections: list[str] = []
        for policy_id in ALWAYS_INCLUDE_POLICIES:
            policy = self.policies.get(policy_id)
            if policy is None:
                continue
            sections.append(f"## {policy.policy}")
            sections.extend(f"- {principle}" for principle in policy.principles)
        return "\n".join(sections)

    def search(self, query: str, limit: int = 5) -> list[SearchHit]:
        terms = [term for term in re.findall(r"[a-z0-9_]+", (query or "").lower()) if len(term) > 1]
        if not terms:
            return []

        hits: list[SearchHit] = []
        for kind, items in (("domain", self.domains), ("entity", self.entities), ("metric", self.metrics)):
            for item_id, item in items.items():
                score = _score(item_id, item.description, terms)
                if score > 0:
                    hits.append(SearchHit(id=item_id, type=kind, description=item.description, score=score))

        hits.sort(key=lambda hit: (-hit.score, hit.type, hit.id))
        return hits[: max(0, limit)]

    def lookup(self, kind: str, item_id: str) -> dict[str, Any] | None:
        """Simplified definition view for tools; ``None`` when unknown."""

        if kind == "domain" and item_id in self.domains:
            domain = self.domains[item_id]
            return {
                "id": item_id,
                "type": kind,
                "description": domain.description,
                "intents": [{"intent": key, "description": value} for key, value in domain.intents.items()],
                "query_patterns": list(domain.query_patterns),
            }
        if kind == "entity" and item_id in self.entities:
            entity = self.entities[item_id]
            return {
                "id": item_id,
                "type": kind,
                "description": entity.description,
                "table": entity.table,
                "fields": [
                    {"name": item.name, "type": item.type, "description": item.description}
                    for item in entity.fields[:10]
                ],
                "examples": list(entity.examples[:3]),
            }
        if kind == "metric" and item_id in self.metrics:
            metric = self.metrics[item_id]
            return {
                "id": item_id,
                "type": kind,
                "description": metric.description,
                "definitions": [
                    {"name": name, "description": description, "unit": unit}
                    for name, (description, unit) in list(metric.definitions.items())[:5]
                ],
            }
        if kind == "policy" and item_id in self.policies:
            policy = self.policies[item_id]
            return {
                "id": item_id,
                "type": kind,
                "description": policy.policy,
                "principles": list(policy.principles),
            }
        return None

    def available(self, kind: str) -> list[str]:
        sources: dict[str, Iterable[str]] = {
            "domain": self.domains,
            "entity": self.entities,
            "metric": self.metrics,
            "policy": self.policies,
        }
        return list(sources.get(kind, ()))

    def query_patterns(self, domain_id: str, pattern_id: str | None = None) -> dict[str, Any] | None:
        domain = self.domains.get(domain_id)
        if domain is None or not domain.query_patterns:
            return None
        if pattern_id is not None:
            pattern = domain.query_patterns.get(pattern_id)
            if pattern is None:
                return None
            return {"pattern": pattern_id, "description": pattern.description, "sql": pattern.sql}
        return {
            "domain": domain_id,
            "patterns": [
                {"id": key, "description": value.description} for key, value in domain.query_patterns.items()
            ],
        }

    def quick_lookup(self, query: str) -> dict[str, Any]:
        context = self.assemble([query])
        items = [
            {"id": fragment.id, "type": fragment.kind, "description": fragment.description}
            for fragment in context.fragments()
        ]
        return {
            "intent": context.intent,
            "relevant_items": items,
            "suggested_tools": list(SUGGESTED_TOOLS.get(context.intent or "", ())),
        }

    def _domain_fragment(self, domain: DomainDefinition) -> KnowledgeFragment:
        patterns = tuple(f"{key}: {value.description}" for key, value in domain.query_patterns.items())
        return KnowledgeFragment("domain", domain.id, domain.description, patterns)

    def _entity_fragment(self, entity: EntityDefinition) -> KnowledgeFragment:
        patterns = (f"table: {entity.table}", *entity.examples)
        return KnowledgeFragment("entity", entity.id, entity.description, patterns)

    def _metric_fragment(self, metric: MetricDefinition) -> KnowledgeFragment:
        patterns = tuple(f"{name} ({unit}): {description}" for name, (description, unit) in metric.definitions.items())
        return KnowledgeFragment("metric", metric.id, metric.description, patterns)


def _word_pattern(keyword: str) -> "re.Pattern[str]":
    return re.compile(rf"\b{re.escape(keyword.lower())}\b")


def _score(item_id: str, description: str, terms: Sequence[str]) -> float:
    identifier = item_id.lower()
    text = description.lower()
    score = 0.0
    for term in terms:
        if term == identifier or term in identifier.split("_"):
            score += 2.0
        elif term in identifier:
            score += 1.0
        if re.search(rf"\b{re.escape(term)}", text):
            score += 1.0
    return score
