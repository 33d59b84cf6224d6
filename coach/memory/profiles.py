"""Member profile snapshot suppliers."""

from __future__ import annotations

import json
import logging
import sqlite3
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Mapping

from coach.core.db import sqlite_connection

from .models import MemberProfileSnapshot

logger = logging.getLogger("coach.profiles")


class ProfileSupplier(ABC):
    """Read-only source of member profile snapshots."""

    @abstractmethod
    def get(self, member_id: str) -> MemberProfileSnapshot | None:
        """Return the member's snapshot, or ``None`` when no profile is available."""


class InMemoryProfileSupplier(ProfileSupplier):
    def __init__(self, profiles: Mapping[str, MemberProfileSnapshot] | None = None) -> None:
        self._profiles = dict(profiles or {})

    def add(self, profile: MemberProfileSnapshot) -> None:
        self._profiles[profile.member_id] = profile

    def get(self, member_id: str) -> MemberProfileSnapshot | None:
        return self._profiles.get(member_id)


class SQLiteProfileSupplier(ProfileSupplier):
    """Read profiles from the pre-computed ``member_context_snapshot`` table."""

    def __init__(self, database_path: Path) -> None:
        self.database_path = Path(database_path)

    def get(self, member_id: str) -> MemberProfileSnapshot | None:
        if not self.database_path.exists():
            return None

        try:
            with sqlite_connection(self.database_path, read_only=True) as conn:
                row = conn.execute(
                    """
                    SELECT member_id, equipment, active_limitations, avg_energy,
                           recent_moods, muscle_recovery_status
                    FROM member_context_snapshot
                    WHERE member_id = ?
                    """,
                    (member_id,),
                ).fetchone()
        except sqlite3.Error as exc:
            logger.warning("Profile lookup failed for %s: %s", member_id, exc)
            return None

        if row is None:
            return None

        return MemberProfileSnapshot.from_dict(
            {
                "member_id": row["member_id"],
                "equipment": _json_column(row["equipment"], []),
                "limitations": _json_column(row["active_limitations"], []),
                "avg_energy": row["avg_energy"],
                "recent_moods": _json_column(row["recent_moods"], []),
                "muscle_recovery": _json_column(row["muscle_recovery_status"], {}),
            }
        )


def _json_column(value: str | None, default: Any) -> Any:
    if not value:
        return default
    try:
        return json.loads(value)
    except json.JSONDecodeError:
        return default
