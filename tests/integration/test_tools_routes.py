import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from coach.api.tools import create_tools_router
from coach.knowledge.assembler import KnowledgeAssembler
from coach.main import app
from coach.memory.profiles import InMemoryProfileSupplier
from coach.planner.clarification import ClarificationBuilder
from coach.tools import GetQueryPatternsTool, GetSemanticTool, SearchSemanticTool


@pytest.fixture()
def client():
    return TestClient(app)


def test_search_requires_query(client):
    assert client.get("/tools/knowledge/search").status_code == 400


def test_search_returns_ranked_results(client):
    body = client.get("/tools/knowledge/search", params={"query": "workout session", "limit": 3}).json()
    assert body["results"][0]["id"] == "workout_session"
    assert len(body["results"]) <= 3


def test_definition_lookup(client):
    body = client.get("/tools/knowledge/entity/limitation").json()
    assert body["table"] == "member_limitations"
    assert client.get("/tools/knowledge/entity/unicorn").status_code == 404


def test_query_patterns_route(client):
    body = client.get("/tools/knowledge/patterns/workouts").json()
    assert body["domain"] == "workouts"
    assert [pattern["id"] for pattern in body["patterns"]]
    assert client.get("/tools/knowledge/patterns/onboarding").status_code == 404


def test_clarification_route(client):
    body = client.post("/tools/clarification", json={"slot_type": "intensity"}).json()
    assert body["clarification"]["context"] == "intensity"
    assert body["personalized"] is False
    assert [option["value"] for option in body["clarification"]["options"]] == ["light", "moderate", "hard", "max"]

    assert client.post("/tools/clarification", json={"slot_type": "mood"}).status_code == 400


def test_clarification_route_personalises_with_profile(knee_profile):
    assembler = KnowledgeAssembler()
    local = FastAPI()
    local.include_router(
        create_tools_router(
            SearchSemanticTool(assembler),
            GetSemanticTool(assembler),
            GetQueryPatternsTool(assembler),
            ClarificationBuilder(),
            InMemoryProfileSupplier({knee_profile.member_id: knee_profile}),
        )
    )

    body = TestClient(local).post(
        "/tools/clarification",
        json={"slot_type": "limitations", "member_id": knee_profile.member_id},
    ).json()

    assert body["personalized"] is True
    assert body["text"] == "Almost there!"
    assert body["clarification"]["options"][0]["value"] == "lim-knee"
