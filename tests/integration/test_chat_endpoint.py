import json

import pytest
from fastapi.testclient import TestClient

from coach.core.errors import GenerationError
from coach.core.quota import InMemoryQuotaGate
from coach.generation.provider import ModelProvider, ModelStep
from coach.main import app, get_conversation_store, get_dispatcher, get_metrics
from coach.memory.store import InMemoryConversationStore

WORKOUT_TEXT = (
    "Leg day, knee friendly.\n"
    "```json\n"
    '{"name": "Leg Day", "exercises": [{"name": "Glute Bridge", "sets": 3, "reps": "12"}]}\n'
    "```"
)


class FailingProvider(ModelProvider):
    name = "failing"

    async def complete(self, request, messages):
        raise GenerationError("upstream down", provider=self.name, status_code=503)


@pytest.fixture()
def store():
    return InMemoryConversationStore()


@pytest.fixture()
def wire(build_dispatcher, store):
    def factory(provider, **kwargs):
        dispatcher = build_dispatcher(provider, store=store, **kwargs)
        app.dependency_overrides[get_dispatcher] = lambda: dispatcher
        app.dependency_overrides[get_metrics] = lambda: dispatcher.metrics
        app.dependency_overrides[get_conversation_store] = lambda: store
        return dispatcher

    yield factory
    app.dependency_overrides.clear()


@pytest.fixture()
def client():
    return TestClient(app)


def test_clarification_flow_over_http(client, wire, scripted_provider, leg_workout_payload):
    wire(scripted_provider([ModelStep(text=WORKOUT_TEXT, response_id="resp-http")]))

    first = client.post("/chat", json=leg_workout_payload)
    assert first.status_code == 200
    body = first.json()
    assert body["kind"] == "clarification"
    assert body["conversation_id"] == "conv-legs"
    assert body["clarification"]["context"] == "energy"
    assert body["clarification"]["allow_custom"] is False
    assert body["missing"] == ["energy", "location", "limitations"]

    for answer in ("moderate", "home", "No issues today"):
        payload = dict(leg_workout_payload, messages=[{"role": "user", "content": answer}])
        body = client.post("/chat", json=payload).json()

    assert body["kind"] == "generation"
    assert body["workout"]["name"] == "Leg Day"
    assert body["conversation_state"] == {
        "active": False,
        "context": {},
        "pending_questions": [],
        "answered_questions": [],
    }

    state = client.get("/conversations/conv-legs/state").json()
    assert state["last_response_id"] == "resp-http"

    metrics = client.get("/metrics").json()
    assert metrics["outcomes"] == {"clarification": 3, "generation": 1}


def test_state_round_trips_through_the_client(client, wire, scripted_provider, leg_workout_payload):
    wire(scripted_provider())

    first = client.post("/chat", json=dict(leg_workout_payload, conversation_id=None)).json()
    second = client.post(
        "/chat",
        json={
            "member_id": leg_workout_payload["member_id"],
            "messages": [{"role": "user", "content": "high"}],
            "conversation_state": first["conversation_state"],
        },
    ).json()

    assert second["clarification"]["context"] == "location"
    assert second["conversation_state"]["context"]["energy"] == "high"


def test_passthrough_chat(client, wire, scripted_provider):
    wire(scripted_provider())

    response = client.post(
        "/chat",
        json={"member_id": "member-1", "mode": "chat", "messages": [{"role": "user", "content": "hello"}]},
    )

    assert response.status_code == 200
    assert response.json()["kind"] == "passthrough"
    assert response.json()["text"] == "Here you go."


def test_quota_exceeded_response(client, wire, scripted_provider):
    provider = scripted_provider()
    wire(provider, quota=InMemoryQuotaGate(workout_limit=5, chat_limit=0))

    body = client.post(
        "/chat",
        json={"member_id": "member-1", "mode": "chat", "messages": [{"role": "user", "content": "hello"}]},
    ).json()

    assert body["kind"] == "quota_exceeded"
    assert body["quota"] == "chat"
    assert body["upgrade_required"] is True
    assert provider.calls == []


@pytest.mark.parametrize(
    "payload",
    [
        {"messages": [{"role": "user", "content": "hi"}]},
        {"member_id": "m", "messages": []},
        {"member_id": "m", "messages": [{"role": "user", "content": "hi"}], "mode": "sing"},
        {"member_id": "m", "messages": [{"role": "user", "content": "hi"}], "reasoning_level": "extreme"},
    ],
)
def test_invalid_body_is_rejected(client, wire, scripted_provider, payload):
    wire(scripted_provider())
    assert client.post("/chat", json=payload).status_code == 422


def test_missing_user_message_is_bad_request(client, wire, scripted_provider):
    wire(scripted_provider())
    response = client.post(
        "/chat",
        json={"member_id": "m", "messages": [{"role": "assistant", "content": "Hi!"}]},
    )
    assert response.status_code == 400


def test_generation_failure_maps_to_bad_gateway(client, wire):
    wire(FailingProvider())
    response = client.post(
        "/chat",
        json={"member_id": "m", "mode": "chat", "messages": [{"role": "user", "content": "hello"}]},
    )
    assert response.status_code == 502
    assert response.json()["error"] == "generation_failed"


def test_conversation_routes(client, wire, scripted_provider, leg_workout_payload, store):
    wire(scripted_provider())
    client.post("/chat", json=leg_workout_payload)

    assert client.get("/conversations").json() == ["conv-legs"]
    state = client.get("/conversations/conv-legs/state").json()
    assert state["conversation_state"]["pending_questions"] == ["energy", "location", "limitations"]

    reset = client.delete("/conversations/conv-legs")
    assert reset.json() == {"conversation_id": "conv-legs", "reset": True}
    assert client.get("/conversations").json() == []


def sse_events(response):
    return [json.loads(line[len("data: "):]) for line in response.text.splitlines() if line.startswith("data: ")]


def test_stream_sends_deltas_then_the_final_body(client, wire, scripted_provider, store):
    wire(scripted_provider([ModelStep(text="Stretch after you lift.", response_id="resp-sse")]))

    response = client.post(
        "/chat/stream",
        json={
            "member_id": "m",
            "mode": "chat",
            "conversation_id": "conv-sse",
            "messages": [{"role": "user", "content": "hello"}],
        },
    )

    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/event-stream")
    assert response.headers["cache-control"] == "no-cache"
    events = sse_events(response)
    assert events[0] == {"kind": "delta", "text": "Stretch after you lift."}
    assert events[-1]["kind"] == "passthrough"
    assert events[-1]["conversation_id"] == "conv-sse"
    assert events[-1]["text"] == "Stretch after you lift."
    assert store.get_last_response_id("conv-sse") == "resp-sse"


def test_stream_clarification_is_a_single_event(client, wire, scripted_provider, leg_workout_payload):
    wire(scripted_provider())

    events = sse_events(client.post("/chat/stream", json=leg_workout_payload))

    assert [event["kind"] for event in events] == ["clarification"]
    assert events[0]["clarification"]["context"] == "energy"


def test_stream_failure_is_reported_as_error_event(client, wire, store):
    wire(FailingProvider())

    response = client.post(
        "/chat/stream",
        json={
            "member_id": "m",
            "mode": "chat",
            "conversation_id": "conv-down",
            "messages": [{"role": "user", "content": "hello"}],
        },
    )

    assert response.status_code == 200
    assert sse_events(response) == [
        {
            "kind": "error",
            "error": "generation_failed",
            "message": "The coach could not generate a response right now. Please try again.",
        }
    ]
    assert store.get_last_response_id("conv-down") is None


def test_stream_without_user_message_is_bad_request(client, wire, scripted_provider):
    wire(scripted_provider())
    response = client.post(
        "/chat/stream",
        json={"member_id": "m", "messages": [{"role": "assistant", "content": "Hi!"}]},
    )
    assert response.status_code == 400
