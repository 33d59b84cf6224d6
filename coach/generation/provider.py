"""Model runtime abstraction and the OpenRouter chat-completions provider."""

from __future__ import annotations

import json
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, AsyncIterator, Mapping, Sequence

import httpx

from coach.core.errors import GenerationError

logger = logging.getLogger("coach.provider")


class ModelTier(str, Enum):
    FAST = "fast"
    CAPABLE = "capable"


class ReasoningLevel(str, Enum):
    NONE = "none"
    QUICK = "quick"
    STANDARD = "standard"
    DEEP = "deep"
    MAX = "max"

    @classmethod
    def parse(cls, value: Any, default: "ReasoningLevel | None" = None) -> "ReasoningLevel":
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).lower())
        except ValueError:
            return default or cls.STANDARD

    @property
    def tier(self) -> ModelTier:
        return ModelTier.FAST if self in (ReasoningLevel.NONE, ReasoningLevel.QUICK) else ModelTier.CAPABLE

    @property
    def effort(self) -> str | None:
        return REASONING_EFFORT[self]


# "none" is omitted entirely; "max" caps at "high".
REASONING_EFFORT: dict[ReasoningLevel, str | None] = {
    ReasoningLevel.NONE: None,
    ReasoningLevel.QUICK: "low",
    ReasoningLevel.STANDARD: "medium",
    ReasoningLevel.DEEP: "high",
    ReasoningLevel.MAX: "high",
}


@dataclass(slots=True, frozen=True)
class GenerationRequest:
    """Everything the model runtime needs for one generation call."""

    messages: tuple[Mapping[str, Any], ...]
    system_prompt: str
    tools: tuple[Mapping[str, Any], ...] = ()
    max_steps: int = 5
    model_tier: ModelTier = ModelTier.CAPABLE
    reasoning_level: ReasoningLevel = ReasoningLevel.STANDARD
    cache_key: str | None = None
    extended_cache: bool = True
    member_id: str | None = None
    previous_response_id: str | None = None
    timeout: float | None = None


@dataclass(slots=True, frozen=True)
class ToolCall:
    id: str
    name: str
    arguments: Mapping[str, Any] = field(default_factory=dict)

    def as_message(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "type": "function",
            "function": {"name": self.name, "arguments": json.dumps(dict(self.arguments))},
        }


@dataclass(slots=True, frozen=True)
class ModelStep:
    """One model turn: text so far and any tool calls it requested."""

    text: str = ""
    tool_calls: tuple[ToolCall, ...] = ()
    response_id: str | None = None
    finish_reason: str | None = None
    model: str | None = None
    usage: Mapping[str, Any] = field(default_factory=dict)

    @property
    def wants_tools(self) -> bool:
        return bool(self.tool_calls)


@dataclass(slots=True, frozen=True)
class StreamChunk:
    """Incremental output of a streamed step; the last chunk carries the whole ``step``."""

    delta: str = ""
    step: ModelStep | None = None


class ModelProvider(ABC):
    """Generative runtime capability injected into the dispatcher."""

    name: str = "provider"
    supports_response_chaining: bool = False

    @abstractmethod
    async def complete(self, request: GenerationRequest, messages: Sequence[Mapping[str, Any]]) -> ModelStep:
        """Run one model step over ``messages`` and return its output.

        Raises :class:`GenerationError` on any runtime failure.
        """

    async def stream(
        self,
        request: GenerationRequest,
        messages: Sequence[Mapping[str, Any]],
    ) -> AsyncIterator[StreamChunk]:
        """Stream one model step. Providers without native streaming emit a single delta."""

        step = await self.complete(request, messages)
        if step.text:
            yield StreamChunk(delta=step.text)
        yield StreamChunk(step=step)


class OpenRouterProvider(ModelProvider):
    """OpenAI-compatible chat completions through OpenRouter."""

    name = "openrouter"

    def __init__(
        self,
        *,
        api_key: str,
        model: str,
        base_url: str = "https://openrouter.ai/api/v1",
        referer: str | None = None,
        title: str | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.api_key = api_key
        self.model = model
        self.base_url = base_url.rstrip("/")
        self.referer = referer
        self.title = title
        self._transport = transport

    def _headers(self) -> dict[str, str]:
        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }
        if self.referer:
            headers["HTTP-Referer"] = self.referer
        if self.title:
            headers["X-Title"] = self.title
        return headers

    def build_payload(self, request: GenerationRequest, messages: Sequence[Mapping[str, Any]]) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "model": self.model,
            "messages": [{"role": "system", "content": request.system_prompt}, *messages],
        }
        if request.tools:
            payload["tools"] = list(request.tools)
            payload["tool_choice"] = "auto"
        effort = request.reasoning_level.effort
        if effort:
            payload["reasoning"] = {"effort": effort}
        if request.cache_key:
            payload["prompt_cache_key"] = request.cache_key
        if request.extended_cache:
            payload["prompt_cache_retention"] = "24h"
        if request.member_id:
            payload["user"] = request.member_id
        return payload

    async def complete(self, request: GenerationRequest, messages: Sequence[Mapping[str, Any]]) -> ModelStep:
        payload = self.build_payload(request, messages)
        timeout = request.timeout or 60.0

        try:
            async with httpx.AsyncClient(timeout=timeout, transport=self._transport) as client:
                response = await client.post(
                    f"{self.base_url}/chat/completions",
                    headers=self._headers(),
                    json=payload,
                )
                response.raise_for_status()
                data = response.json()
        except httpx.HTTPStatusError as exc:
            raise GenerationError(
                f"Model call failed with status {exc.response.status_code}",
                provider=self.name,
                model=self.model,
                status_code=exc.response.status_code,
            ) from exc
        except (httpx.HTTPError, ValueError) as exc:
            raise GenerationError(
                f"Model call failed: {exc}",
                provider=self.name,
                model=self.model,
            ) from exc

        return self._parse(data)

    async def stream(
        self,
        request: GenerationRequest,
        messages: Sequence[Mapping[str, Any]],
    ) -> AsyncIterator[StreamChunk]:
        """Read server-sent chat completion chunks and yield text deltas as they arrive."""

        payload = self.build_payload(request, messages)
        payload["stream"] = True
        timeout = request.timeout or 60.0
        accumulator = _StreamAccumulator(self.model)

        try:
            async with httpx.AsyncClient(timeout=timeout, transport=self._transport) as client:
                async with client.stream(
                    "POST",
                    f"{self.base_url}/chat/completions",
                    headers=self._headers(),
                    json=payload,
                ) as response:
                    response.raise_for_status()
                    async for line in response.aiter_lines():
                        data = _sse_data(line)
                        if data is None:
                            continue
                        if data == "[DONE]":
                            break
                        delta = accumulator.feed(json.loads(data))
                        if delta:
                            yield StreamChunk(delta=delta)
        except httpx.HTTPStatusError as exc:
            raise GenerationError(
                f"Model stream failed with status {exc.response.status_code}",
                provider=self.name,
                model=self.model,
                status_code=exc.response.status_code,
            ) from exc
        except (httpx.HTTPError, ValueError) as exc:
            raise GenerationError(
                f"Model stream failed: {exc}",
                provider=self.name,
                model=self.model,
            ) from exc

        yield StreamChunk(step=accumulator.finish())

    def _parse(self, data: Mapping[str, Any]) -> ModelStep:
        try:
            choice = data["choices"][0]
            message = choice.get("message") or {}
        except (KeyError, IndexError, TypeError) as exc:
            raise GenerationError("Malformed model response", provider=self.name, model=self.model) from exc

        tool_calls = []
        for raw in message.get("tool_calls") or []:
            function = raw.get("function") or {}
            tool_calls.append(
                ToolCall(
                    id=str(raw.get("id") or ""),
                    name=str(function.get("name") or ""),
                    arguments=_parse_arguments(function.get("arguments")),
                )
            )

        return ModelStep(
            text=(message.get("content") or "").strip(),
            tool_calls=tuple(tool_calls),
            response_id=data.get("id"),
            finish_reason=choice.get("finish_reason"),
            model=data.get("model") or self.model,
            usage=data.get("usage") or {},
        )


class ModelRouter:
    """Select a provider per request by model tier."""

    def __init__(self, providers: Mapping[ModelTier, ModelProvider]) -> None:
        if not providers:
            raise ValueError("At least one model provider is required")
        self._providers = dict(providers)

    @property
    def tiers(self) -> list[ModelTier]:
        return list(self._providers)

    def for_tier(self, tier: ModelTier) -> ModelProvider:
        provider = self._providers.get(tier)
        if provider is not None:
            return provider
        # Fall back to whichever tier is configured.
        return next(iter(self._providers.values()))

    @classmethod
    def single(cls, provider: ModelProvider) -> "ModelRouter":
        return cls({ModelTier.FAST: provider, ModelTier.CAPABLE: provider})


def _parse_arguments(raw: Any) -> dict[str, Any]:
    if isinstance(raw, Mapping):
        return dict(raw)
    if not raw:
        return {}
    try:
        parsed = json.loads(raw)
    except (TypeError, ValueError):
        logger.warning("Discarding unparseable tool arguments: %r", raw)
        return {}
    return parsed if isinstance(parsed, dict) else {}


def _sse_data(line: str) -> str | None:
    # Comment lines (": OPENROUTER PROCESSING") and blank separators carry no data.
    if not line.startswith("data:"):
        return None
    return line[5:].strip()


class _StreamAccumulator:
    """Fold chat completion chunks into a single :class:`ModelStep`."""

    def __init__(self, model: str) -> None:
        self.model = model
        self.text: list[str] = []
        self.tool_calls: dict[int, dict[str, str]] = {}
        self.response_id: str | None = None
        self.finish_reason: str | None = None
        self.usage: Mapping[str, Any] = {}

    def feed(self, chunk: Mapping[str, Any]) -> str:
        if chunk.get("error"):
            raise GenerationError(f"Model stream error: {chunk['error']}", provider="openrouter", model=self.model)

        self.response_id = chunk.get("id") or self.response_id
        self.model = chunk.get("model") or self.model
        self.usage = chunk.get("usage") or self.usage

        text = ""
        for choice in chunk.get("choices") or []:
            self.finish_reason = choice.get("finish_reason") or self.finish_reason
            delta = choice.get("delta") or {}
            if delta.get("content"):
                text += delta["content"]
            for raw in delta.get("tool_calls") or []:
                slot = self.tool_calls.setdefault(int(raw.get("index", 0)), {"id": "", "name": "", "arguments": ""})
                function = raw.get("function") or {}
                slot["id"] = raw.get("id") or slot["id"]
                slot["name"] = function.get("name") or slot["name"]
                slot["arguments"] += function.get("arguments") or ""
        if text:
            self.text.append(text)
        return text

    def finish(self) -> ModelStep:
        return ModelStep(
            text="".join(self.text).strip(),
            tool_calls=tuple(
                ToolCall(id=call["id"], name=call["name"], arguments=_parse_arguments(call["arguments"]))
                for _, call in sorted(self.tool_calls.items())
            ),
            response_id=self.response_id,
            finish_reason=self.finish_reason,
            model=self.model,
            usage=self.usage,
        )
