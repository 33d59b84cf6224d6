import pytest

from coach.knowledge.assembler import (
    DYNAMIC_SECTION_HEADER,
    KnowledgeAssembler,
    estimate_tokens,
    would_exceed_budget,
)


@pytest.fixture()
def assembler():
    return KnowledgeAssembler(token_budget=1500)


def test_estimate_tokens_rounds_up():
    assert estimate_tokens("") == 0
    assert estimate_tokens("abcd") == 1
    assert estimate_tokens("abcde") == 2


def test_would_exceed_budget():
    assert would_exceed_budget(10, "abcd" * 5, 15) is False
    assert would_exceed_budget(11, "abcd" * 5, 15) is True


@pytest.mark.parametrize(
    ("text", "intent"),
    [
        ("I want a 30 min leg workout", "workout_planning"),
        ("I finished 5 sets of squats, log it", "workout_logging"),
        ("show my progress and volume trend", "progress_analytics"),
        ("set a goal with a deadline", "goal_management"),
        ("hello coach", None),
    ],
)
def test_classify_intent(assembler, text, intent):
    assert assembler.classify_intent(text) == intent


def test_tied_scores_go_to_first_declared_intent(assembler):
    # one logging keyword ("log") and one planning keyword ("plan")
    assert assembler.classify_intent("log plan") == "workout_logging"


def test_assemble_orders_domains_entities_metrics(assembler):
    context = assembler.assemble(["plan my training week"])

    assert context.intent == "workout_planning"
    assert list(context.domains) == ["workouts", "coaching"]
    assert list(context.entities) == ["workout_plan", "exercise", "limitation"]
    assert list(context.metrics) == ["recovery"]
    assert context.estimated_tokens == estimate_tokens(assembler.render(context))


def test_assemble_uses_only_last_three_user_messages(assembler):
    messages = ["set a goal for my deadlift", "ok", "sure", "thanks"]
    assert assembler.assemble(messages).intent is None
    assert assembler.assemble(messages[:3]).intent == "goal_management"


@pytest.mark.parametrize("budget", list(range(0, 600, 13)))
def test_budget_is_never_exceeded(assembler, budget):
    context = assembler.assemble(["I want to plan a workout session and track progress"], budget=budget)
    assert estimate_tokens(assembler.render(context)) <= budget
    assert context.estimated_tokens <= budget


def test_zero_budget_yields_empty_payload(assembler):
    context = assembler.assemble(["plan a workout"], budget=0)
    assert context.is_empty()
    assert assembler.render(context) == ""


def test_fragments_are_whole_or_absent(assembler):
    full = assembler.assemble(["plan a workout"])
    small = assembler.assemble(["plan a workout"], budget=120)

    rendered = assembler.render(small)
    for fragment in small.fragments():
        assert fragment.render() in rendered
        assert fragment == {**full.domains, **full.entities, **full.metrics}[fragment.id]
    assert len(small.fragments()) < len(full.fragments())


def test_no_intent_means_empty_knowledge(assembler):
    context = assembler.assemble(["hello"])
    assert context.intent is None
    assert context.is_empty()


def test_system_prompt_prefix_is_stable_across_dynamic_content(assembler):
    first = assembler.build_system_prompt(
        "Base prompt.", assembler.assemble(["plan a workout"]), member_context="- Duration: 30 minutes"
    )
    second = assembler.build_system_prompt(
        "Base prompt.", assembler.assemble(["show my progress trend"]), member_context="- Duration: 60 minutes"
    )

    assert first != second
    prefix_one, _, dynamic_one = first.partition(DYNAMIC_SECTION_HEADER)
    prefix_two, _, _ = second.partition(DYNAMIC_SECTION_HEADER)
    assert prefix_one == prefix_two
    assert prefix_one.startswith("Base prompt.")
    assert "## Available Tools" in prefix_one
    assert "## Safety" in prefix_one and "## Privacy" in prefix_one
    assert "## WORKOUT PARAMETERS" in dynamic_one


def test_prefix_without_tools_omits_tool_block(assembler):
    prefix = assembler.static_prefix("Base.", include_tools=False)
    assert "## Available Tools" not in prefix
    assert "## Safety" in prefix


def test_render_is_deterministic(assembler):
    first = assembler.render(assembler.assemble(["plan a workout"]))
    second = assembler.render(assembler.assemble(["plan a workout"]))
    assert first == second


def test_search_ranks_identifier_matches_first(assembler):
    hits = assembler.search("workout session")
    assert hits
    assert hits[0].id == "workout_session"
    assert assembler.search("") == []


def test_lookup_and_patterns(assembler):
    entity = assembler.lookup("entity", "limitation")
    assert entity["table"] == "member_limitations"
    assert assembler.lookup("entity", "unknown") is None
    assert assembler.lookup("policy", "safety")["principles"]

    listing = assembler.query_patterns("workouts")
    assert [item["id"] for item in listing["patterns"]] == ["recent_sessions", "session_volume", "exercise_history"]
    assert "SELECT" in assembler.query_patterns("workouts", "recent_sessions")["sql"]
    assert assembler.query_patterns("onboarding") is None


def test_quick_lookup(assembler):
    result = assembler.quick_lookup("how is my progress trending")
    assert result["intent"] == "progress_analytics"
    assert "readonly_query" in result["suggested_tools"]
    assert {"id": "analytics", "type": "domain"}.items() <= result["relevant_items"][0].items()
