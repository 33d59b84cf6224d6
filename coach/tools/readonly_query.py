"""Guarded read-only SQL access to member training data."""

from __future__ import annotations

import re
import sqlite3
from pathlib import Path
from typing import Any, Mapping

from coach.core.db import sqlite_connection
from coach.core.errors import ToolExecutionError
from coach.tools.base import Tool, ToolContext, ToolResponse

DEFAULT_ROW_LIMIT = 50
MAX_ROW_LIMIT = 100

ALLOWED_TABLES = frozenset(
    {
        "circle_members",
        "member_metrics",
        "member_limitations",
        "member_goals",
        "workout_sessions",
        "workout_session_exercises",
        "exercise_sets",
        "workout_plans",
        "workout_plan_exercises",
        "exercises",
        "exercise_muscles",
        "personal_records",
        "member_skills",
        "member_context_snapshot",
        "challenges",
        "challenge_participants",
        "scheduled_workouts",
    }
)

# Never reachable from model-authored SQL, even if added to the allow list.
FORBIDDEN_TABLES = frozenset(
    {
        "users",
        "user_profiles",
        "sessions",
        "accounts",
        "circles",
        "circle_invites",
        "notifications",
        "user_consents",
        "verification_tokens",
        "coach_conversations",
        "coach_messages",
    }
)

DANGEROUS_PATTERNS = tuple(
    re.compile(pattern, re.IGNORECASE)
    for pattern in (
        r";\s*(insert|update|delete|drop|truncate|alter|create|grant|revoke|attach|pragma)",
        r"--",
        r"/\*",
        r"\*/",
        r"'\s*or\s+'?1'?\s*=\s*'?1",
        r"'\s*;\s*--",
        r"union\s+(all\s+)?select",
        r"into\s+(outfile|dumpfile)",
        r"load_file|benchmark|sleep",
        r"pg_sleep|pg_read_file",
        r"xp_cmdshell|exec\s*\(",
        r"\bchar\s*\(\s*\d+",
        r"0x[0-9a-f]+",
        r"\\'",
    )
)

TABLE_PATTERN = re.compile(
    r"(?:from|join)\s+(?:(?:\"[^\"]+\"|[a-z_][a-z0-9_]*)\s*\.\s*)?(?:\"([^\"]+)\"|([a-z_][a-z0-9_]*))",
    re.IGNORECASE,
)
LIMIT_PATTERN = re.compile(r"\blimit\b", re.IGNORECASE)
TRAILING_TERMINATOR = re.compile(r";?\s*$")


class QueryRejected(ValueError):
    """Model-authored SQL failed the read-only guard."""


def validate_query(query: str, max_rows: int) -> str:
    """Return the SQL to execute or raise :class:`QueryRejected`.

    A ``LIMIT`` clause is appended when the query has none.
    """

    normalized = query.strip().lower()
    if not normalized.startswith("select"):
        raise QueryRejected("Only SELECT queries are allowed")

    if any(pattern.search(query) for pattern in DANGEROUS_PATTERNS):
        raise QueryRejected("Query contains disallowed patterns")

    tables = [(match.group(1) or match.group(2)).lower() for match in TABLE_PATTERN.finditer(normalized)]
    for table in tables:
        if table in FORBIDDEN_TABLES:
            raise QueryRejected(f"Access to table '{table}' is not allowed")
    for table in tables:
        if table not in ALLOWED_TABLES:
            preview = ", ".join(sorted(ALLOWED_TABLES)[:5])
            raise QueryRejected(f"Table '{table}' is not in the allowed list. Allowed tables: {preview}...")
    if not tables:
        raise QueryRejected("Query must reference at least one valid table")

    if LIMIT_PATTERN.search(normalized):
        return query.strip()
    statement = TRAILING_TERMINATOR.sub("", query.strip())
    return f"{statement} LIMIT {max_rows}"


class ReadonlyQueryTool(Tool):
    """Run SELECT-only SQL against the member data database."""

    name = "readonly_query"
    description = (
        "Execute a read-only SQL query against the database. Only SELECT queries on workout/member "
        "data are allowed. Always include appropriate WHERE clauses for member_id to scope results."
    )
    parameters = {
        "type": "object",
        "properties": {
            "query": {"type": "string", "description": "SQL SELECT query"},
            "limit": {"type": "integer", "description": "Maximum rows to return", "default": DEFAULT_ROW_LIMIT},
        },
        "required": ["query"],
    }

    def __init__(self, database_path: Path) -> None:
        self.database_path = Path(database_path)

    async def run(self, arguments: Mapping[str, Any], context: ToolContext) -> ToolResponse:
        query = str(arguments.get("query") or "")
        max_rows = _row_limit(arguments.get("limit"))

        try:
            sql = validate_query(query, max_rows)
        except QueryRejected as exc:
            return ToolResponse(content=str(exc), data={"error": str(exc)}, success=False)

        if not self.database_path.exists():
            raise ToolExecutionError("Member data database unavailable right now.")

        try:
            with sqlite_connection(self.database_path, read_only=True) as conn:
                rows = conn.execute(sql).fetchmany(max_rows)
        except sqlite3.Error as exc:
            return ToolResponse(content="Query failed.", data={"error": str(exc), "sql": sql}, success=False)

        results = [dict(row) for row in rows]
        return ToolResponse(
            content=f"{len(results)} row(s).",
            data={"row_count": len(results), "rows": results, "sql": sql},
        )


def _row_limit(value: Any) -> int:
    try:
        requested = int(value) if value is not None else DEFAULT_ROW_LIMIT
    except (TypeError, ValueError):
        requested = DEFAULT_ROW_LIMIT
    return max(1, min(requested, MAX_ROW_LIMIT))
