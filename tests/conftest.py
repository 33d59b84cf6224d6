from __future__ import annotations

import json
import os
import tempfile
from pathlib import Path
from typing import Any, Mapping, Sequence

import pytest

# Keep the app's SQLite files out of the working tree during tests.
_TEST_DB_DIR = Path(tempfile.mkdtemp(prefix="coach-tests-"))
os.environ.setdefault("SQLITE_PATH", str(_TEST_DB_DIR / "conversations.db"))
os.environ.setdefault("MEMBER_DATA_DB_PATH", str(_TEST_DB_DIR / "member_data.db"))

from coach.core.metrics import MetricsCollector  # noqa: E402
from coach.generation.dispatcher import GenerationDispatcher  # noqa: E402
from coach.generation.provider import GenerationRequest, ModelProvider, ModelRouter, ModelStep  # noqa: E402
from coach.memory.models import MemberProfileSnapshot  # noqa: E402
from coach.memory.profiles import InMemoryProfileSupplier  # noqa: E402
from coach.memory.store import InMemoryConversationStore  # noqa: E402


class ScriptedProvider(ModelProvider):
    """Model stand-in replaying canned steps and recording every call."""

    name = "scripted"

    def __init__(self, steps: Sequence[ModelStep] = (), *, repeat_last: bool = True, chaining: bool = False) -> None:
        self.steps = list(steps) or [ModelStep(text="Here you go.", response_id="resp-1", model="scripted")]
        self.repeat_last = repeat_last
        self.supports_response_chaining = chaining
        self.calls: list[tuple[GenerationRequest, list[dict[str, Any]]]] = []

    async def complete(self, request: GenerationRequest, messages: Sequence[Mapping[str, Any]]) -> ModelStep:
        self.calls.append((request, [dict(message) for message in messages]))
        index = len(self.calls) - 1
        if index < len(self.steps):
            return self.steps[index]
        if self.repeat_last:
            return self.steps[-1]
        raise AssertionError("provider called more times than scripted")

    @property
    def requests(self) -> list[GenerationRequest]:
        return [request for request, _ in self.calls]


@pytest.fixture(scope="session")
def fixtures_dir() -> Path:
    return Path(__file__).parent / "fixtures"


@pytest.fixture
def knee_profile(fixtures_dir: Path) -> MemberProfileSnapshot:
    data = json.loads((fixtures_dir / "profile_gym_home_knee.json").read_text(encoding="utf-8"))
    return MemberProfileSnapshot.from_dict(data)


@pytest.fixture
def leg_workout_payload(fixtures_dir: Path) -> dict:
    return json.loads((fixtures_dir / "chat_leg_workout.json").read_text(encoding="utf-8"))


@pytest.fixture
def scripted_provider():
    def factory(steps: Sequence[ModelStep] = (), **kwargs: Any) -> ScriptedProvider:
        return ScriptedProvider(steps, **kwargs)

    return factory


@pytest.fixture
def build_dispatcher(knee_profile):
    """Dispatcher wired to in-memory collaborators and a scripted model."""

    def factory(provider: ModelProvider, *, profiles=None, **kwargs: Any) -> GenerationDispatcher:
        kwargs.setdefault("store", InMemoryConversationStore())
        kwargs.setdefault("metrics", MetricsCollector())
        return GenerationDispatcher(
            models=ModelRouter.single(provider),
            profiles=profiles if profiles is not None else InMemoryProfileSupplier({knee_profile.member_id: knee_profile}),
            **kwargs,
        )

    return factory
