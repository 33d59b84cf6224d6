import json
import sqlite3

from coach.memory.profiles import InMemoryProfileSupplier, SQLiteProfileSupplier


def seed_snapshot(path, member_id="m-1"):
    with sqlite3.connect(path) as conn:
        conn.execute(
            """
            CREATE TABLE member_context_snapshot (
                member_id TEXT PRIMARY KEY,
                equipment TEXT,
                active_limitations TEXT,
                avg_energy REAL,
                recent_moods TEXT,
                muscle_recovery_status TEXT
            )
            """
        )
        conn.execute(
            "INSERT INTO member_context_snapshot VALUES (?, ?, ?, ?, ?, ?)",
            (
                member_id,
                json.dumps([{"name": "Kettlebell"}]),
                json.dumps([{"id": "l1", "type": "injury", "affected_areas": ["wrist"], "severity": "mild"}]),
                3.5,
                json.dumps(["good"]),
                json.dumps({"back": {"ready_to_train": True}}),
            ),
        )


def test_sqlite_supplier_reads_snapshot(tmp_path):
    path = tmp_path / "member_data.db"
    seed_snapshot(path)

    profile = SQLiteProfileSupplier(path).get("m-1")

    assert profile is not None
    assert profile.equipment == ("Kettlebell",)
    assert profile.limitations[0].affected_areas == ("wrist",)
    assert profile.avg_energy == 3.5
    assert profile.muscle_recovery == {"back": True}


def test_sqlite_supplier_degrades_to_none(tmp_path):
    path = tmp_path / "member_data.db"
    assert SQLiteProfileSupplier(path).get("m-1") is None

    seed_snapshot(path)
    assert SQLiteProfileSupplier(path).get("someone-else") is None


def test_sqlite_supplier_missing_table_returns_none(tmp_path):
    path = tmp_path / "empty.db"
    sqlite3.connect(path).close()
    assert SQLiteProfileSupplier(path).get("m-1") is None


def test_in_memory_supplier(knee_profile):
    supplier = InMemoryProfileSupplier()
    assert supplier.get(knee_profile.member_id) is None
    supplier.add(knee_profile)
    assert supplier.get(knee_profile.member_id) is knee_profile
