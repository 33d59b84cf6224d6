"""Orchestrates quota, slot filling, knowledge assembly and the tool-calling loop."""

from __future__ import annotations

import json
import logging
from contextlib import aclosing
from dataclasses import dataclass
from typing import Any, AsyncGenerator, AsyncIterator, Awaitable, Callable, Iterable, Mapping, Optional, Sequence

from coach.core.metrics import MetricsCollector
from coach.core.quota import AllowAllQuotaGate, QuotaGate, QuotaKind
from coach.generation.provider import (
    GenerationRequest,
    ModelProvider,
    ModelRouter,
    ModelStep,
    ReasoningLevel,
)
from coach.generation.results import (
    ClarificationTurn,
    CoachResponse,
    GenerationResult,
    PassthroughResult,
    QuotaExceeded,
    StreamEvent,
    extract_workout,
    suggested_actions,
)
from coach.knowledge.assembler import KnowledgeAssembler, SemanticContext
from coach.memory.models import ConversationState, MemberProfileSnapshot, MessageTurn, SlotContext
from coach.memory.profiles import ProfileSupplier
from coach.memory.store import ConversationStore
from coach.planner.base import Planner
from coach.planner.simple import RuleBasedPlanner
from coach.planner.types import PlannerAction, PlannerContext, PlannerDecision
from coach.tools.base import ToolContext
from coach.tools.router import ToolRouter

logger = logging.getLogger("coach.dispatcher")

DEFAULT_SYSTEM_PROMPT = (
    "You are an experienced strength and conditioning coach. Give safe, specific and encouraging guidance. "
    "When asked for a workout, reply with a short introduction followed by the workout as a fenced JSON block "
    "with name, description, exercises (name, sets, reps, rest_seconds, notes), warmup, cooldown, "
    "estimated_duration and difficulty."
)
DEFAULT_MAX_STEPS = 5

# Fixed per call-site so repeated requests share a provider cache bucket.
GENERATION_CACHE_KEY = "workout-generation"
CHAT_CACHE_KEY = "coach-chat"

OnFinish = Callable[[str, Optional[str]], Awaitable[None]]
MessagesInput = Sequence[Mapping[str, Any] | MessageTurn]
StateInput = ConversationState | Mapping[str, Any] | None


@dataclass(slots=True, frozen=True)
class RespondOptions:
    reasoning_level: ReasoningLevel | None = None
    cache_key: str | None = None
    enable_tools: bool = True
    max_steps: int | None = None
    on_finish: OnFinish | None = None


@dataclass(slots=True, frozen=True)
class LoopOutcome:
    text: str
    response_id: str | None
    steps: int
    step_limit_reached: bool
    model: str | None = None


class GenerationDispatcher:
    """Single entry point turning a conversation into one tagged response."""

    def __init__(
        self,
        *,
        models: ModelRouter,
        planner: Planner | None = None,
        knowledge: KnowledgeAssembler | None = None,
        tools: ToolRouter | None = None,
        profiles: ProfileSupplier | None = None,
        quota: QuotaGate | None = None,
        store: ConversationStore | None = None,
        metrics: MetricsCollector | None = None,
        system_prompt: str = DEFAULT_SYSTEM_PROMPT,
        max_steps: int = DEFAULT_MAX_STEPS,
        extended_cache: bool = True,
        timeouts: Mapping[str, float] | None = None,
    ) -> None:
        self.models = models
        self.planner = planner or RuleBasedPlanner()
        self.knowledge = knowledge or KnowledgeAssembler()
        self.tools = tools
        self.profiles = profiles
        self.quota = quota or AllowAllQuotaGate()
        self.store = store
        self.metrics = metrics or MetricsCollector()
        self.system_prompt = system_prompt
        self.max_steps = max_steps
        self.extended_cache = extended_cache
        self.timeouts = dict(timeouts or {})

    async def respond(
        self,
        messages: MessagesInput,
        member_id: str,
        mode: QuotaKind | str = QuotaKind.WORKOUT,
        conversation_id: str | None = None,
        state: StateInput = None,
        options: RespondOptions | None = None,
    ) -> CoachResponse:
        response: CoachResponse | None = None
        turn = self._run_turn(messages, member_id, mode, conversation_id, state, options, streaming=False)
        async with aclosing(turn) as events:
            async for event in events:
                if event.response is not None:
                    response = event.response
        if response is None:
            raise RuntimeError("Turn finished without a response")
        return response

    def stream(
        self,
        messages: MessagesInput,
        member_id: str,
        mode: QuotaKind | str = QuotaKind.WORKOUT,
        conversation_id: str | None = None,
        state: StateInput = None,
        options: RespondOptions | None = None,
    ) -> AsyncGenerator[StreamEvent, None]:
        """Same turn as :meth:`respond`, yielding text deltas while the model writes.

        The last event carries the response. State, the response id and
        ``on_finish`` are committed just before it, so a stream closed or
        cancelled earlier leaves the stored conversation untouched.
        """

        return self._run_turn(messages, member_id, mode, conversation_id, state, options, streaming=True)

    async def _run_turn(
        self,
        messages: MessagesInput,
        member_id: str,
        mode: QuotaKind | str,
        conversation_id: str | None,
        state: StateInput,
        options: RespondOptions | None,
        *,
        streaming: bool,
    ) -> AsyncGenerator[StreamEvent, None]:
        options = options or RespondOptions()
        history = _normalize_messages(messages)
        latest = _latest_user_message(history)
        if latest is None:
            raise ValueError("messages must contain at least one user message")

        quota_kind = QuotaKind(mode)
        decision = self.quota.check(member_id, quota_kind)
        if not decision.allowed:
            self.metrics.record_response(QuotaExceeded.kind)
            yield StreamEvent(response=QuotaExceeded(quota=quota_kind, decision=decision))
            return

        current = self._load_state(conversation_id, state)
        profile = self.profiles.get(member_id) if self.profiles else None

        turn = MessageTurn(role="user", content=latest)
        plan = self.planner.decide(PlannerContext(turn=turn, state=current, profile=profile))
        logger.info("Planner decision member=%s %s", member_id, self.planner.summarize(plan))

        if plan.action is PlannerAction.CLARIFY:
            clarification = self._clarification(plan)
            self._commit(conversation_id, clarification.state)
            self.metrics.record_response(clarification.kind)
            yield StreamEvent(response=clarification)
            return

        generating = plan.action is PlannerAction.GENERATE
        context = self.knowledge.assemble(_user_texts(history))
        system_prompt = self.knowledge.build_system_prompt(
            self.system_prompt,
            context,
            member_context=describe_workout_parameters(plan.state.context, profile) if generating else None,
            include_tools=self._tools_enabled(options),
        )
        default_level = ReasoningLevel.STANDARD if generating else ReasoningLevel.QUICK
        level = options.reasoning_level or default_level
        provider = self.models.for_tier(level.tier)
        request = self._build_request(
            history,
            member_id,
            system_prompt,
            level,
            options,
            GENERATION_CACHE_KEY if generating else CHAT_CACHE_KEY,
            provider,
            conversation_id,
        )

        outcome: LoopOutcome | None = None
        loop = self._loop(request, provider, ToolContext(member_id=member_id, profile=profile), streaming=streaming)
        async with aclosing(loop) as items:
            async for item in items:
                if isinstance(item, LoopOutcome):
                    outcome = item
                else:
                    yield StreamEvent(delta=item)
        if outcome is None:
            raise RuntimeError("Tool loop ended without an outcome")
        self.quota.record(member_id, quota_kind)

        if generating:
            response: GenerationResult | PassthroughResult = self._generation_result(outcome, context)
        else:
            response = PassthroughResult(
                text=outcome.text,
                state=plan.state,
                response_id=outcome.response_id,
                step_limit_reached=outcome.step_limit_reached,
                steps=outcome.steps,
                model=outcome.model,
                knowledge=context.to_dict(),
            )

        await self._finish(options, outcome)
        self._commit(conversation_id, response.state, outcome.response_id)
        self.metrics.record_response(response.kind)
        yield StreamEvent(response=response)

    def _load_state(self, conversation_id: str | None, state: StateInput) -> ConversationState:
        if isinstance(state, ConversationState):
            return state
        if state is not None:
            return ConversationState.from_dict(state)
        if conversation_id and self.store is not None:
            return self.store.get(conversation_id)
        return ConversationState.empty()

    def _clarification(self, plan: PlannerDecision) -> ClarificationTurn:
        if plan.clarification is None:
            raise RuntimeError("Planner chose to clarify without a question")
        reprompt = bool(plan.payload.get("reprompt"))
        return ClarificationTurn(
            text=str(plan.payload.get("intro") or "Let me ask you a quick question."),
            clarification=plan.clarification,
            state=plan.state,
            missing=tuple(plan.missing),
            reprompt=reprompt,
        )

    def _generation_result(self, outcome: LoopOutcome, context: SemanticContext) -> GenerationResult:
        workout = extract_workout(outcome.text)
        return GenerationResult(
            text=outcome.text,
            state=ConversationState.empty(),
            response_id=outcome.response_id,
            workout=workout,
            actions=suggested_actions(workout),
            step_limit_reached=outcome.step_limit_reached,
            steps=outcome.steps,
            model=outcome.model,
            knowledge=context.to_dict(),
        )

    def _tools_enabled(self, options: RespondOptions) -> bool:
        return options.enable_tools and self.tools is not None

    def _build_request(
        self,
        history: list[dict[str, Any]],
        member_id: str,
        system_prompt: str,
        level: ReasoningLevel,
        options: RespondOptions,
        default_cache_key: str,
        provider: ModelProvider,
        conversation_id: str | None,
    ) -> GenerationRequest:
        previous_response_id = None
        if conversation_id and self.store is not None:
            previous_response_id = self.store.get_last_response_id(conversation_id)

        messages = history
        if previous_response_id and provider.supports_response_chaining:
            messages = history[-1:]

        request = GenerationRequest(
            messages=tuple(messages),
            system_prompt=system_prompt,
            tools=tuple(self.tools.specs()) if self._tools_enabled(options) else (),
            max_steps=options.max_steps or self.max_steps,
            model_tier=level.tier,
            reasoning_level=level,
            cache_key=options.cache_key or default_cache_key,
            extended_cache=self.extended_cache,
            member_id=member_id,
            previous_response_id=previous_response_id,
            timeout=self.timeouts.get(level.value),
        )
        logger.info(
            "Model call member=%s tier=%s level=%s cache_key=%s tools=%s",
            member_id,
            request.model_tier.value,
            level.value,
            request.cache_key,
            len(request.tools),
        )
        return request

    async def run_tool_loop(
        self,
        request: GenerationRequest,
        provider: ModelProvider,
        tool_context: ToolContext,
    ) -> LoopOutcome:
        """Alternate model steps and tool executions until a final answer or the step ceiling.

        Reaching the ceiling is not an error: the last non-empty text is
        returned with ``step_limit_reached`` set.
        """

        outcome: LoopOutcome | None = None
        async with aclosing(self._loop(request, provider, tool_context, streaming=False)) as items:
            async for item in items:
                if isinstance(item, LoopOutcome):
                    outcome = item
        if outcome is None:
            raise RuntimeError("Tool loop ended without an outcome")
        return outcome

    async def _loop(
        self,
        request: GenerationRequest,
        provider: ModelProvider,
        tool_context: ToolContext,
        *,
        streaming: bool,
    ) -> AsyncIterator[str | LoopOutcome]:
        # Yields text deltas when streaming, then exactly one LoopOutcome.
        conversation: list[dict[str, Any]] = [dict(message) for message in request.messages]
        ceiling = max(1, request.max_steps)
        latest_text = ""
        step: ModelStep | None = None
        steps = 0

        while steps < ceiling:
            if streaming:
                step = None
                async with aclosing(provider.stream(request, conversation)) as chunks:
                    async for chunk in chunks:
                        if chunk.delta:
                            yield chunk.delta
                        if chunk.step is not None:
                            step = chunk.step
                if step is None:
                    raise RuntimeError(f"Provider {provider.name} ended a stream without a final step")
            else:
                step = await provider.complete(request, conversation)
            steps += 1
            if step.text:
                latest_text = step.text
            if not step.wants_tools:
                yield LoopOutcome(
                    text=step.text,
                    response_id=step.response_id,
                    steps=steps,
                    step_limit_reached=False,
                    model=step.model,
                )
                return
            if steps >= ceiling:
                break

            conversation.append(
                {
                    "role": "assistant",
                    "content": step.text or None,
                    "tool_calls": [call.as_message() for call in step.tool_calls],
                }
            )
            for call in step.tool_calls:
                self.metrics.record_tool_call(call.name)
                if self.tools is None:
                    payload: dict[str, Any] = {"success": False, "content": "Tools are disabled for this request."}
                else:
                    payload = (await self.tools.dispatch(call.name, call.arguments, tool_context)).to_dict()
                logger.debug("Tool %s success=%s", call.name, payload.get("success"))
                conversation.append(
                    {
                        "role": "tool",
                        "tool_call_id": call.id,
                        "content": json.dumps(payload, default=str),
                    }
                )

        self.metrics.record_step_limit()
        logger.warning("Step ceiling %s reached; returning partial output", ceiling)
        yield LoopOutcome(
            text=latest_text,
            response_id=step.response_id if step else None,
            steps=steps,
            step_limit_reached=True,
            model=step.model if step else None,
        )

    async def _finish(self, options: RespondOptions, outcome: LoopOutcome) -> None:
        if options.on_finish is None:
            return
        try:
            await options.on_finish(outcome.text, outcome.response_id)
        except Exception:  # noqa: BLE001
            logger.exception("on_finish callback failed")

    def _commit(self, conversation_id: str | None, state: ConversationState, response_id: str | None = None) -> None:
        if not conversation_id or self.store is None:
            return
        self.store.put(conversation_id, state)
        if response_id:
            self.store.set_last_response_id(conversation_id, response_id)


def describe_workout_parameters(context: SlotContext, profile: MemberProfileSnapshot | None) -> str:
    """Render collected slots and relevant profile facts for the dynamic prompt section."""

    lines: list[str] = []
    if context.duration:
        lines.append(f"- Duration: {context.duration} minutes")
    if context.energy:
        lines.append(f"- Energy: {context.energy}")
    if context.location:
        lines.append(f"- Location: {context.location}")
    if context.focus:
        lines.append(f"- Focus: {context.focus}")
    if context.intensity:
        lines.append(f"- Intensity: {context.intensity}")

    limitations = {limitation.id: limitation for limitation in profile.limitations} if profile else {}
    if context.limitations:
        described = []
        for item in context.limitations:
            limitation = limitations.get(item)
            if limitation is None:
                described.append(item)
            else:
                areas = ", ".join(limitation.affected_areas) or "general"
                described.append(f"{limitation.type} ({areas}, {limitation.severity})")
        lines.append(f"- Limitations today: {'; '.join(described)}")

    if profile is not None:
        if profile.equipment:
            lines.append(f"- Available equipment: {', '.join(profile.equipment)}")
        recovering = sorted(muscle for muscle, ready in profile.muscle_recovery.items() if not ready)
        if recovering:
            lines.append(f"- Still recovering: {', '.join(recovering)}")

    return "\n".join(lines)


def _normalize_messages(messages: Iterable[Mapping[str, Any] | MessageTurn]) -> list[dict[str, Any]]:
    normalized: list[dict[str, Any]] = []
    for message in messages:
        if isinstance(message, MessageTurn):
            normalized.append(message.as_message())
            continue
        content = message.get("content")
        if content is None:
            continue
        normalized.append({"role": str(message.get("role") or "user"), "content": str(content)})
    return normalized


def _latest_user_message(history: Sequence[Mapping[str, Any]]) -> str | None:
    for message in reversed(history):
        if message.get("role") == "user":
            return str(message.get("content") or "")
    return None


def _user_texts(history: Sequence[Mapping[str, Any]]) -> list[str]:
    return [str(message["content"]) for message in history if message.get("role") == "user"]
