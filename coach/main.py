"""FastAPI application entry point for the workout coach orchestrator."""

import json
import logging
import sqlite3
from pathlib import Path
from typing import Any, Literal

from fastapi import Depends, FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import StreamingResponse
from pydantic import BaseModel, Field

from coach.api.tools import create_tools_router
from coach.core.config import get_settings
from coach.core.errors import GenerationError, generation_error_handler, unhandled_exception_handler
from coach.core.logging import configure_logging, request_id_middleware
from coach.core.metrics import MetricsCollector
from coach.core.quota import InMemoryQuotaGate
from coach.generation.dispatcher import GenerationDispatcher, RespondOptions
from coach.generation.provider import ModelRouter, ModelTier, OpenRouterProvider, ReasoningLevel
from coach.knowledge.assembler import KnowledgeAssembler
from coach.memory.models import ConversationState
from coach.memory.profiles import SQLiteProfileSupplier
from coach.memory.store import ConversationStore, SQLiteConversationStore
from coach.planner.clarification import ClarificationBuilder
from coach.planner.simple import RuleBasedPlanner
from coach.tools import (
    GetQueryPatternsTool,
    GetSemanticTool,
    MemberContextTool,
    ReadonlyQueryTool,
    SearchSemanticTool,
    ToolRouter,
)

settings = get_settings()
logger = logging.getLogger("coach.app")

conversation_store = SQLiteConversationStore(settings.sqlite_path)
profile_supplier = SQLiteProfileSupplier(settings.member_data_db_path)
knowledge = KnowledgeAssembler(settings.knowledge_token_budget)
clarifications = ClarificationBuilder()
planner = RuleBasedPlanner(clarifications=clarifications)
metrics = MetricsCollector()
quota_gate = InMemoryQuotaGate(
    workout_limit=settings.quota_free_workouts,
    chat_limit=settings.quota_free_chats,
    period_days=settings.quota_period_days,
    pro_members=settings.pro_members,
)

search_tool = SearchSemanticTool(knowledge)
lookup_tool = GetSemanticTool(knowledge)
patterns_tool = GetQueryPatternsTool(knowledge)
tool_router = ToolRouter(
    [
        search_tool,
        lookup_tool,
        patterns_tool,
        ReadonlyQueryTool(settings.member_data_db_path),
        MemberContextTool(profile_supplier),
    ]
)


def _provider(model: str) -> OpenRouterProvider:
    return OpenRouterProvider(
        api_key=settings.openrouter_api_key or "",
        model=model,
        base_url=settings.openrouter_base_url,
        referer=settings.openrouter_referer,
        title=settings.openrouter_title,
    )


dispatcher = GenerationDispatcher(
    models=ModelRouter(
        {
            ModelTier.FAST: _provider(settings.model_fast),
            ModelTier.CAPABLE: _provider(settings.model_capable),
        }
    ),
    planner=planner,
    knowledge=knowledge,
    tools=tool_router,
    profiles=profile_supplier,
    quota=quota_gate,
    store=conversation_store,
    metrics=metrics,
    max_steps=settings.max_steps,
    extended_cache=settings.enable_extended_cache,
    timeouts=settings.reasoning_timeouts,
)

STREAM_ERROR_EVENT = {
    "kind": "error",
    "error": "generation_failed",
    "message": "The coach could not generate a response right now. Please try again.",
}

app = FastAPI(title=settings.app_name, version="0.1.0", docs_url="/docs")

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.middleware("http")(request_id_middleware)

app.include_router(create_tools_router(search_tool, lookup_tool, patterns_tool, clarifications, profile_supplier))


class ChatMessage(BaseModel):
    role: Literal["user", "assistant", "system"] = "user"
    content: str


class ChatRequest(BaseModel):
    member_id: str = Field(min_length=1)
    messages: list[ChatMessage] = Field(min_length=1)
    mode: Literal["workout", "chat"] = "workout"
    conversation_id: str | None = None
    conversation_state: dict[str, Any] | None = None
    reasoning_level: Literal["none", "quick", "standard", "deep", "max"] | None = None
    cache_key: str | None = None
    enable_tools: bool = True


@app.get("/health", tags=["health"])
async def health_check() -> dict[str, str]:
    """Return basic service status for monitoring."""

    return {"status": "ok"}


@app.get("/ready", tags=["health"])
async def readiness_check() -> dict[str, Any]:
    """Readiness endpoint that verifies critical dependencies.

    Checks:
    - Conversations SQLite DB reachable and has the state table.
    - Member data SQLite DB exists and exposes profile snapshots.
    - A model provider API key is configured.
    """

    components: dict[str, dict[str, Any]] = {}

    conv_ok = False
    conv_error: str | None = None
    try:
        with sqlite3.connect(Path(settings.sqlite_path)) as conn:
            row = conn.execute(
                "SELECT name FROM sqlite_master WHERE type='table' AND name='conversations'"
            ).fetchone()
            conv_ok = row is not None
    except Exception as exc:  # noqa: BLE001
        conv_error = str(exc)
    components["conversations_db"] = {
        "path": str(settings.sqlite_path),
        "ok": conv_ok,
        **({"error": conv_error} if conv_error else {}),
    }

    member_ok = False
    member_error: str | None = None
    member_path = Path(settings.member_data_db_path)
    try:
        if member_path.exists():
            with sqlite3.connect(member_path) as conn:
                conn.execute("SELECT 1 FROM member_context_snapshot LIMIT 1")
                member_ok = True
        else:
            member_error = "database file not found"
    except Exception as exc:  # noqa: BLE001
        member_error = str(exc)
    components["member_data_db"] = {
        "path": str(member_path),
        "ok": member_ok,
        **({"error": member_error} if member_error else {}),
    }

    components["model_provider"] = {
        "fast_model": settings.model_fast,
        "capable_model": settings.model_capable,
        "ok": settings.openrouter_enabled,
        **({} if settings.openrouter_enabled else {"error": "OPENROUTER_API_KEY not set"}),
    }

    if all(component["ok"] for component in components.values()):
        overall = "ok"
    elif conv_ok:
        overall = "degraded"
    else:
        overall = "fail"

    return {
        "status": overall,
        "environment": settings.environment,
        "components": components,
    }


def get_conversation_store() -> ConversationStore:
    """Dependency injector for the conversation store."""

    return conversation_store


def get_dispatcher() -> GenerationDispatcher:
    """Dependency injector for the generation dispatcher."""

    return dispatcher


def get_metrics() -> MetricsCollector:
    return metrics


@app.get("/conversations", tags=["conversations"])
async def list_conversations(store: ConversationStore = Depends(get_conversation_store)) -> list[str]:
    """List known conversation identifiers (development helper)."""

    return list(store.iter_conversations())


@app.get("/conversations/{conversation_id}/state", tags=["conversations"])
async def conversation_state(
    conversation_id: str,
    store: ConversationStore = Depends(get_conversation_store),
) -> dict[str, Any]:
    state: ConversationState = store.get(conversation_id)
    return {
        "conversation_id": conversation_id,
        "conversation_state": state.to_dict(),
        "last_response_id": store.get_last_response_id(conversation_id),
    }


@app.delete("/conversations/{conversation_id}", tags=["conversations"])
async def reset_conversation(
    conversation_id: str,
    store: ConversationStore = Depends(get_conversation_store),
) -> dict[str, Any]:
    store.reset(conversation_id)
    return {"conversation_id": conversation_id, "reset": True}


def _respond_options(request: ChatRequest) -> RespondOptions:
    return RespondOptions(
        reasoning_level=ReasoningLevel(request.reasoning_level) if request.reasoning_level else None,
        cache_key=request.cache_key,
        enable_tools=request.enable_tools,
    )


@app.post("/chat", tags=["chat"])
async def chat(request: ChatRequest, coach: GenerationDispatcher = Depends(get_dispatcher)) -> dict[str, Any]:
    """Primary chat endpoint: clarification, generation, passthrough chat or quota denial."""

    try:
        response = await coach.respond(
            [message.model_dump() for message in request.messages],
            request.member_id,
            mode=request.mode,
            conversation_id=request.conversation_id,
            state=request.conversation_state,
            options=_respond_options(request),
        )
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc

    return {"conversation_id": request.conversation_id, **response.to_dict()}


@app.post("/chat/stream", tags=["chat"])
async def chat_stream(request: ChatRequest, coach: GenerationDispatcher = Depends(get_dispatcher)) -> StreamingResponse:
    """Streaming variant of ``/chat`` as Server-Sent Events.

    Each event is ``data: {json}``. Text arrives as ``{"kind": "delta", "text": ...}``
    events, followed by one event shaped like the ``/chat`` body. A model failure
    mid-stream is reported as ``{"kind": "error", ...}``. Conversation state is
    saved only once the final event has been produced.
    """

    if not any(message.role == "user" for message in request.messages):
        raise HTTPException(status_code=400, detail="messages must contain at least one user message")

    events = coach.stream(
        [message.model_dump() for message in request.messages],
        request.member_id,
        mode=request.mode,
        conversation_id=request.conversation_id,
        state=request.conversation_state,
        options=_respond_options(request),
    )

    async def generate():
        try:
            async for event in events:
                payload = event.to_dict()
                if event.response is not None:
                    payload = {"conversation_id": request.conversation_id, **payload}
                yield f"data: {json.dumps(payload, default=str)}\n\n"
        except GenerationError as exc:
            logger.error("Streaming generation failed (provider=%s model=%s): %s", exc.provider, exc.model, exc)
            yield f"data: {json.dumps(STREAM_ERROR_EVENT)}\n\n"
        finally:
            await events.aclose()

    return StreamingResponse(
        generate(),
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "Connection": "keep-alive",
            "X-Accel-Buffering": "no",
        },
    )


@app.on_event("startup")
async def startup_logging() -> None:
    level = configure_logging(settings.log_level)
    logger.info("Logging configured at %s level for %s environment", logging.getLevelName(level), settings.environment)
    if not settings.openrouter_enabled:
        logger.warning("OPENROUTER_API_KEY not set; generation requests will fail until it is configured")


app.add_exception_handler(GenerationError, generation_error_handler)
app.add_exception_handler(Exception, unhandled_exception_handler)


@app.get("/metrics", tags=["metrics"])
async def metrics_endpoint(collector: MetricsCollector = Depends(get_metrics)) -> dict:
    snapshot = collector.snapshot()
    return {
        "total_responses": snapshot.total_responses,
        "outcomes": snapshot.outcomes,
        "tool_calls": snapshot.tool_calls,
        "step_limit_hits": snapshot.step_limit_hits,
    }
