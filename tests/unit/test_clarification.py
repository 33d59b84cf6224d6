import pytest

from coach.memory.models import Limitation, MemberProfileSnapshot, SlotType
from coach.planner.clarification import ClarificationBuilder
from coach.planner.types import ClarificationData


@pytest.fixture()
def builder():
    return ClarificationBuilder()


def option_ids(data):
    return [option.id for option in data.options]


def test_duration_options(builder):
    data = builder.build(SlotType.DURATION, None)
    assert option_ids(data) == ["15", "30", "45", "60"]
    assert data.allow_custom is True
    assert data.context is SlotType.DURATION


@pytest.mark.parametrize(
    ("avg_energy", "suffix"),
    [
        (2.0, "(you've been running a bit low lately)"),
        (4.5, "(you've been on fire lately!)"),
        (3.0, None),
        (None, None),
    ],
)
def test_energy_question_reflects_recent_average(builder, avg_energy, suffix):
    profile = MemberProfileSnapshot(member_id="m", avg_energy=avg_energy)
    data = builder.build(SlotType.ENERGY, profile)

    assert option_ids(data) == ["low", "moderate", "high"]
    assert data.allow_custom is False
    if suffix:
        assert data.question.endswith(suffix)
    else:
        assert data.question == "How are you feeling today?"


def test_location_with_only_home_equipment(builder):
    profile = MemberProfileSnapshot(member_id="m", equipment=("Dumbbells", "Resistance Band"))
    data = builder.build(SlotType.LOCATION, profile)

    assert option_ids(data) == ["home", "outdoor", "bodyweight"]
    assert "gym" not in option_ids(data)
    assert [option.label for option in data.options][-1] == "No equipment"


def test_location_with_both_equipment_classes(builder, knee_profile):
    assert option_ids(builder.build(SlotType.LOCATION, knee_profile)) == ["gym", "home", "outdoor", "bodyweight"]


def test_limitations_always_offer_none(builder, knee_profile):
    data = builder.build(SlotType.LIMITATIONS, knee_profile)

    assert option_ids(data) == ["lim-knee", "none"]
    assert data.options[0].label == "injury - knee"
    assert data.options[0].icon == "alert-circle"
    assert data.allow_custom is True

    assert option_ids(builder.build(SlotType.LIMITATIONS, None)) == ["none"]


def test_limitation_icons_follow_severity(builder):
    profile = MemberProfileSnapshot(
        member_id="m",
        limitations=(
            Limitation(id="a", type="injury", severity="severe"),
            Limitation(id="b", type="condition", severity="mild"),
        ),
    )
    icons = [option.icon for option in builder.build(SlotType.LIMITATIONS, profile).options]
    assert icons == ["alert-triangle", "info", "check-circle"]


def test_focus_options_from_recovery(builder, knee_profile):
    data = builder.build(SlotType.FOCUS, knee_profile)

    assert option_ids(data) == ["push", "pull", "core", "full_body"]
    assert "(Note: quadriceps still recovering)" in data.question


def test_focus_without_profile(builder):
    data = builder.build(SlotType.FOCUS, None)
    assert option_ids(data) == ["full_body", "cardio"]
    assert data.question == "What would you like to focus on?"


def test_intensity_options(builder):
    data = builder.build(SlotType.INTENSITY, None)
    assert option_ids(data) == ["light", "moderate", "hard", "max"]
    assert data.allow_custom is False


def test_clarification_rejects_empty_closed_question():
    with pytest.raises(ValueError):
        ClarificationData(question="?", options=(), allow_custom=False, context=SlotType.ENERGY)


def test_to_dict_shape(builder):
    payload = builder.build(SlotType.DURATION, None).to_dict()
    assert payload["context"] == "duration"
    assert payload["allow_custom"] is True
    assert payload["options"][0]["label"] == "15 min"


class TestResolveAnswer:
    def test_option_id(self, builder):
        resolution = builder.resolve_answer(SlotType.DURATION, "45", None)
        assert resolution.understood and resolution.value == 45

    def test_free_text_duration(self, builder):
        assert builder.resolve_answer(SlotType.DURATION, "about an hour", None).value == 60

    def test_energy_synonyms(self, builder):
        assert builder.resolve_answer(SlotType.ENERGY, "Feeling okay", None).value == "moderate"
        assert builder.resolve_answer(SlotType.ENERGY, "pretty tired", None).value == "low"
        assert builder.resolve_answer(SlotType.ENERGY, "fine I guess", None).value == "moderate"

    def test_location_option_label(self, builder, knee_profile):
        assert builder.resolve_answer(SlotType.LOCATION, "At the gym", knee_profile).value == "gym"

    def test_skip_phrase(self, builder, knee_profile):
        resolution = builder.resolve_answer(SlotType.LIMITATIONS, "No issues today", knee_profile)
        assert resolution.skipped and resolution.value is None

    def test_limitation_by_area(self, builder, knee_profile):
        resolution = builder.resolve_answer(SlotType.LIMITATIONS, "my knee is sore", knee_profile)
        assert resolution.value == ("lim-knee",)

    @pytest.mark.parametrize("answer", ["no knee pain today", "knee is not hurting", "my knee feels fine"])
    def test_negated_limitation_is_a_skip(self, builder, knee_profile, answer):
        resolution = builder.resolve_answer(SlotType.LIMITATIONS, answer, knee_profile)
        assert resolution.skipped and resolution.value is None

    def test_custom_limitation_text(self, builder, knee_profile):
        resolution = builder.resolve_answer(SlotType.LIMITATIONS, "lower back tightness", knee_profile)
        assert resolution.value == ("lower back tightness",)

    def test_unrecognised_closed_answer(self, builder):
        resolution = builder.resolve_answer(SlotType.INTENSITY, "purple", None)
        assert resolution.understood is False


def test_intro_text(builder):
    assert builder.intro(SlotType.DURATION) == "Let me personalize this workout for you."
