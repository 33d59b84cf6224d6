import pytest

from coach.memory.models import ConversationState, SlotContext, SlotType
from coach.memory.store import InMemoryConversationStore, SQLiteConversationStore


@pytest.fixture(params=["sqlite", "memory"])
def store(request, tmp_path):
    if request.param == "sqlite":
        return SQLiteConversationStore(tmp_path / "conversations.db")
    return InMemoryConversationStore()


def test_unknown_conversation_is_empty(store):
    assert store.get("missing") == ConversationState.empty()
    assert store.get_last_response_id("missing") is None


def test_put_and_get_round_trip(store):
    state = ConversationState(
        active=True,
        context=SlotContext(duration=30, limitations=("lim-knee",)),
        pending_questions=(SlotType.LOCATION,),
        answered_questions=(SlotType.ENERGY,),
    )
    store.put("conv-1", state)

    assert store.get("conv-1") == state
    assert list(store.iter_conversations()) == ["conv-1"]


def test_last_write_wins(store):
    store.put("conv-1", ConversationState(active=True))
    store.put("conv-1", ConversationState.empty())
    assert store.get("conv-1") == ConversationState.empty()


def test_response_id_tracking_and_reset(store):
    store.put("conv-1", ConversationState(active=True))
    store.set_last_response_id("conv-1", "resp-9")
    assert store.get_last_response_id("conv-1") == "resp-9"
    assert store.get("conv-1").active is True

    store.reset("conv-1")
    assert store.get("conv-1") == ConversationState.empty()
    assert store.get_last_response_id("conv-1") is None
