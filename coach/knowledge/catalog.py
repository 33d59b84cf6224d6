"""Static knowledge catalog: domains, entities, metrics, policies and the intent taxonomy."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Mapping


@dataclass(slots=True, frozen=True)
class QueryPattern:
    description: str
    sql: str


@dataclass(slots=True, frozen=True)
class FieldDefinition:
    name: str
    type: str
    description: str


@dataclass(slots=True, frozen=True)
class DomainDefinition:
    id: str
    description: str
    intents: Mapping[str, str] = field(default_factory=dict)
    query_patterns: Mapping[str, QueryPattern] = field(default_factory=dict)


@dataclass(slots=True, frozen=True)
class EntityDefinition:
    id: str
    description: str
    table: str
    fields: tuple[FieldDefinition, ...] = ()
    examples: tuple[str, ...] = ()


@dataclass(slots=True, frozen=True)
class MetricDefinition:
    id: str
    description: str
    definitions: Mapping[str, tuple[str, str]] = field(default_factory=dict)


@dataclass(slots=True, frozen=True)
class PolicyDefinition:
    id: str
    policy: str
    principles: tuple[str, ...] = ()


@dataclass(slots=True, frozen=True)
class IntentDefinition:
    name: str
    keywords: tuple[str, ...]
    domains: tuple[str, ...] = ()
    entities: tuple[str, ...] = ()
    metrics: tuple[str, ...] = ()


DOMAINS: dict[str, DomainDefinition] = {
    "workouts": DomainDefinition(
        id="workouts",
        description="Logged training sessions, their exercises and sets, plus saved workout plans.",
        intents={
            "workout_logging": "Record or review completed sessions",
            "workout_planning": "Design upcoming sessions from plans and history",
        },
        query_patterns={
            "recent_sessions": QueryPattern(
                description="Most recent completed sessions for a member",
                sql=(
                    "SELECT id, name, date, duration_minutes, rpe FROM workout_sessions "
                    "WHERE member_id = :member_id AND status = 'completed' ORDER BY date DESC LIMIT 10"
                ),
            ),
            "session_volume": QueryPattern(
                description="Total volume (weight x reps) per session",
                sql=(
                    "SELECT s.id, s.date, SUM(es.weight * es.reps) AS volume FROM workout_sessions s "
                    "JOIN workout_session_exercises wse ON wse.session_id = s.id "
                    "JOIN exercise_sets es ON es.session_exercise_id = wse.id "
                    "WHERE s.member_id = :member_id GROUP BY s.id, s.date ORDER BY s.date DESC"
                ),
            ),
            "exercise_history": QueryPattern(
                description="Set history for one exercise",
                sql=(
                    "SELECT s.date, es.weight, es.reps FROM exercise_sets es "
                    "JOIN workout_session_exercises wse ON wse.id = es.session_exercise_id "
                    "JOIN workout_sessions s ON s.id = wse.session_id "
                    "WHERE s.member_id = :member_id AND wse.exercise_id = :exercise_id ORDER BY s.date DESC"
                ),
            ),
        },
    ),
    "coaching": DomainDefinition(
        id="coaching",
        description="Training guidance: programming principles, exercise selection and recovery-aware adjustments.",
        intents={"coaching_advice": "Answer training questions with member context"},
        query_patterns={
            "active_limitations": QueryPattern(
                description="Active physical limitations for a member",
                sql=(
                    "SELECT type, affected_areas, severity, notes FROM member_limitations "
                    "WHERE member_id = :member_id AND active = 1"
                ),
            ),
        },
    ),
    "analytics": DomainDefinition(
        id="analytics",
        description="Progress and trend analysis over sessions, personal records and body metrics.",
        intents={"progress_analytics": "Summarise trends, records and adherence"},
        query_patterns={
            "weekly_frequency": QueryPattern(
                description="Sessions completed per week",
                sql=(
                    "SELECT strftime('%Y-%W', date) AS week, COUNT(*) AS sessions FROM workout_sessions "
                    "WHERE member_id = :member_id AND status = 'completed' GROUP BY week ORDER BY week DESC"
                ),
            ),
            "personal_records": QueryPattern(
                description="Latest personal records by exercise",
                sql=(
                    "SELECT exercise_id, value, unit, achieved_at FROM personal_records "
                    "WHERE member_id = :member_id ORDER BY achieved_at DESC"
                ),
            ),
        },
    ),
    "goals": DomainDefinition(
        id="goals",
        description="Member goals with targets, deadlines and milestone progress.",
        intents={"goal_management": "Create, review or adjust goals"},
        query_patterns={
            "active_goals": QueryPattern(
                description="Active goals with current progress",
                sql=(
                    "SELECT title, target_value, current_value, unit, target_date FROM member_goals "
                    "WHERE member_id = :member_id AND status = 'active'"
                ),
            ),
        },
    ),
    "onboarding": DomainDefinition(
        id="onboarding",
        description="Initial member profile: experience level, equipment, schedule and preferences.",
    ),
}

ENTITIES: dict[str, EntityDefinition] = {
    "member": EntityDefinition(
        id="member",
        description="A person being coached; owns sessions, goals, limitations and a context snapshot.",
        table="circle_members",
        fields=(
            FieldDefinition("id", "uuid", "Member identifier"),
            FieldDefinition("fitness_level", "text", "beginner, intermediate or advanced"),
            FieldDefinition("training_age", "integer", "Years of consistent training"),
        ),
        examples=("Fetch a member's fitness level before choosing exercise difficulty",),
    ),
    "exercise": EntityDefinition(
        id="exercise",
        description="Exercise library entry with target muscles, equipment and movement pattern.",
        table="exercises",
        fields=(
            FieldDefinition("name", "text", "Exercise name"),
            FieldDefinition("equipment", "text", "Required equipment"),
            FieldDefinition("movement_pattern", "text", "push, pull, squat, hinge, carry, core"),
        ),
        examples=("Find bodyweight exercises for the hamstrings",),
    ),
    "workout_session": EntityDefinition(
        id="workout_session",
        description="A performed training session with date, duration, perceived exertion and exercises.",
        table="workout_sessions",
        fields=(
            FieldDefinition("date", "date", "Session date"),
            FieldDefinition("duration_minutes", "integer", "Session length"),
            FieldDefinition("rpe", "integer", "Rate of perceived exertion 1-10"),
            FieldDefinition("status", "text", "planned, completed or skipped"),
        ),
        examples=("List the last five completed sessions",),
    ),
    "workout_plan": EntityDefinition(
        id="workout_plan",
        description="A saved, reusable workout template with ordered exercises and prescriptions.",
        table="workout_plans",
        fields=(
            FieldDefinition("name", "text", "Plan name"),
            FieldDefinition("estimated_duration", "integer", "Expected minutes"),
            FieldDefinition("difficulty", "text", "Difficulty label"),
        ),
        examples=("Load the member's saved push day plan",),
    ),
    "goal": EntityDefinition(
        id="goal",
        description="A measurable target with a deadline, e.g. a squat 1RM or a bodyweight.",
        table="member_goals",
        fields=(
            FieldDefinition("title", "text", "Goal title"),
            FieldDefinition("target_value", "real", "Target value"),
            FieldDefinition("current_value", "real", "Latest measured value"),
        ),
        examples=("Check how close the member is to their deadlift goal",),
    ),
    "personal_record": EntityDefinition(
        id="personal_record",
        description="Best recorded performance for an exercise and rep range.",
        table="personal_records",
        examples=("Show the member's bench press PR",),
    ),
    "limitation": EntityDefinition(
        id="limitation",
        description="An injury or restriction with affected areas and severity that constrains exercise choice.",
        table="member_limitations",
        fields=(
            FieldDefinition("type", "text", "injury, condition or mobility restriction"),
            FieldDefinition("affected_areas", "json", "Body areas affected"),
            FieldDefinition("severity", "text", "mild, moderate or severe"),
        ),
        examples=("Avoid deep knee flexion for an active knee limitation",),
    ),
}

METRICS: dict[str, MetricDefinition] = {
    "adherence": MetricDefinition(
        id="adherence",
        description="Share of planned sessions actually completed.",
        definitions={
            "weekly_adherence": ("Completed / planned sessions in a week", "percent"),
            "streak": ("Consecutive weeks meeting the training target", "weeks"),
        },
    ),
    "volume": MetricDefinition(
        id="volume",
        description="Training volume load, summed weight x reps.",
        definitions={
            "session_volume": ("Weight x reps summed over a session", "kg"),
            "weekly_sets_per_muscle": ("Hard sets per muscle group per week", "sets"),
        },
    ),
    "progress": MetricDefinition(
        id="progress",
        description="Change in performance markers over time.",
        definitions={
            "estimated_1rm": ("Epley estimate weight x (1 + reps / 30)", "kg"),
            "pr_count": ("Personal records set in the period", "count"),
        },
    ),
    "recovery": MetricDefinition(
        id="recovery",
        description="Readiness per muscle group from recent load and time since last trained.",
        definitions={
            "ready_to_train": ("Muscle group recovered enough for hard work", "boolean"),
            "needs_deload": ("Accumulated fatigue suggests a lighter week", "boolean"),
        },
    ),
}

POLICIES: dict[str, PolicyDefinition] = {
    "safety": PolicyDefinition(
        id="safety",
        policy="Safety",
        principles=(
            "Never prescribe movements that load an area listed in an active limitation.",
            "Scale intensity down when the member reports low energy or pain.",
            "Recommend seeing a professional for sharp pain, dizziness or chest discomfort.",
        ),
    ),
    "privacy": PolicyDefinition(
        id="privacy",
        policy="Privacy",
        principles=(
            "Only query data scoped to the current member.",
            "Never reveal other members' data or internal identifiers.",
        ),
    ),
}

INTENTS: tuple[IntentDefinition, ...] = (
    IntentDefinition(
        name="workout_logging",
        keywords=("log", "logged", "record", "completed", "finished", "did", "sets", "reps"),
        domains=("workouts",),
        entities=("workout_session", "exercise"),
        metrics=("volume",),
    ),
    IntentDefinition(
        name="workout_planning",
        keywords=("plan", "workout", "routine", "program", "schedule", "session", "exercise", "train", "training"),
        domains=("workouts", "coaching"),
        entities=("workout_plan", "exercise", "limitation"),
        metrics=("recovery",),
    ),
    IntentDefinition(
        name="progress_analytics",
        keywords=("progress", "trend", "stats", "analytics", "volume", "pr", "personal record", "improve", "history", "analyze"),
        domains=("analytics",),
        entities=("workout_session", "personal_record"),
        metrics=("progress", "volume", "adherence"),
    ),
    IntentDefinition(
        name="goal_management",
        keywords=("goal", "goals", "target", "milestone", "achieve", "deadline"),
        domains=("goals",),
        entities=("goal",),
        metrics=("progress",),
    ),
)

ALWAYS_INCLUDE_POLICIES = ("safety", "privacy")
