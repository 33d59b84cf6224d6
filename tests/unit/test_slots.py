import pytest

from coach.memory.models import SlotContext
from coach.planner.slots import (
    SlotExtractor,
    extract_duration,
    extract_energy,
    extract_focus,
    extract_intensity,
    extract_location,
    is_correction,
)


@pytest.mark.parametrize(
    ("utterance", "minutes"),
    [
        ("45 minutes of strength work", 45),
        ("I have 30 min", 30),
        ("1 hour", 60),
        ("1.5 hrs please", 90),
        ("an hour", 60),
        ("half an hour", 30),
        ("1 hour 30 min", 90),
        ("an hour and 15 minutes", 75),
        ("1h30min", 90),
        ("I only got 5 hours of sleep, give me a 30 min workout", 30),
        ("no time info", None),
        ("0 min", None),
    ],
)
def test_extract_duration(utterance, minutes):
    assert extract_duration(utterance) == minutes


def test_duration_does_not_assert_other_slots():
    context = SlotExtractor().extract("45 minutes strength")
    assert context.duration == 45
    assert extract_duration("45 minutes strength") == 45
    assert extract_focus("45 minutes") is None
    assert extract_energy("45 minutes") is None


@pytest.mark.parametrize(
    ("utterance", "location"),
    [
        ("at the gym today", "gym"),
        ("home workout please", "home"),
        ("no equipment available", "bodyweight"),
        ("somewhere outside", "outdoor"),
        ("at the gym, then outside", "gym"),
        ("anywhere", None),
    ],
)
def test_extract_location_precedence(utterance, location):
    assert extract_location(utterance) == location


def test_extract_energy():
    assert extract_energy("I'm exhausted") == "low"
    assert extract_energy("ready to crush it") == "high"
    assert extract_energy("tired but want something intense") == "low"
    assert extract_energy("meh") is None


def test_extract_focus_first_declared_entry_wins():
    assert extract_focus("chest and legs") == "legs"
    assert extract_focus("bench press") == "chest"
    assert extract_focus("abs") == "core"
    assert extract_focus("some hiit") == "cardio"
    assert extract_focus("full body") == "full_body"


def test_extract_intensity():
    assert extract_intensity("keep it light") == "light"
    assert extract_intensity("normal effort") == "moderate"
    assert extract_intensity("make it tough") == "hard"
    assert extract_intensity("all out") == "max"


def test_extractor_collects_partial_context():
    context = SlotExtractor().extract("I want a 30 min leg workout")
    assert context == SlotContext(duration=30, focus="legs")
    assert SlotExtractor().extract("") == SlotContext()


@pytest.mark.parametrize(
    "utterance",
    ["actually make it 45", "at home instead", "change it to 20 min", "I meant the gym"],
)
def test_correction_markers(utterance):
    assert is_correction(utterance)


def test_plain_statement_is_not_a_correction():
    assert not is_correction("45 minutes please")
