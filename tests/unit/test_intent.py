import pytest

from coach.planner.intent import (
    GENERATION_OVERRIDE,
    INFORMATIONAL_PATTERNS,
    WORKOUT_REQUEST_PATTERNS,
    IntentClassifier,
)


@pytest.fixture()
def classifier():
    return IntentClassifier()


@pytest.mark.parametrize(
    "utterance",
    [
        "I want a 30 min leg workout",
        "generate me a workout for today",
        "let's train",
        "give me a quick workout",
        "upper body session please",
        "20 minute hiit",
        "what should I do today",
    ],
)
def test_workout_requests_are_detected(classifier, utterance):
    assert classifier.classify(utterance) is True


@pytest.mark.parametrize(
    "utterance",
    [
        "why should I stretch before running?",
        "explain progressive overload to me",
        "how is my progress looking on squats?",
        "any tips for sleeping better?",
        "hello there",
        "thanks!",
    ],
)
def test_informational_and_small_talk_are_not_requests(classifier, utterance):
    assert classifier.classify(utterance) is False


def test_generation_verb_overrides_informational_phrasing(classifier):
    assert classifier.classify("explain and then create a leg workout for me") is True


@pytest.mark.parametrize("utterance", [None, "", "  ", "ok", " a "])
def test_short_or_empty_input_is_never_a_request(classifier, utterance):
    assert classifier.classify(utterance) is False


def test_tables_are_ordered_label_pattern_pairs():
    for table in (INFORMATIONAL_PATTERNS, WORKOUT_REQUEST_PATTERNS):
        labels = [label for label, _ in table]
        assert len(labels) == len(set(labels))
        for label, pattern in table:
            assert isinstance(label, str) and pattern.pattern
    assert GENERATION_OVERRIDE[0] == "explicit_generation"


@pytest.mark.parametrize(
    ("label", "sample"),
    [
        ("generation_verb", "plan a training block"),
        ("want_workout", "i need a workout"),
        ("workout_now", "workout for today"),
        ("lets_train", "lets do this"),
        ("what_should_i_do", "what should i train"),
        ("body_part_day", "leg day"),
        ("modality", "mobility"),
        ("timed_session", "45 min session"),
        ("quick_workout", "quick workout"),
        ("full_body", "full body"),
        ("upper_body", "upper body"),
        ("core_focus", "core focus"),
    ],
)
def test_each_request_entry_fires_on_its_own(label, sample):
    patterns = dict(WORKOUT_REQUEST_PATTERNS)
    assert patterns[label].search(sample)


def test_matches_reports_every_label(classifier):
    labels = classifier.matches("why should I make a leg workout")
    assert "question" in labels
    assert "explicit_generation" in labels
    assert "body_part_day" in labels
    assert classifier.matches(None) == []


def test_informational_phrasing_is_reported(classifier):
    assert classifier.is_informational("why should I stretch before running?") is True
    assert classifier.is_informational("generate a workout and explain why") is False
    assert classifier.is_informational("high") is False
    assert classifier.is_informational("") is False
