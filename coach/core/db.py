"""Database utility helpers."""

from __future__ import annotations

import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator


@contextmanager
def sqlite_connection(path: Path, *, read_only: bool = False) -> Iterator[sqlite3.Connection]:
    """Yield a SQLite connection with row factory enabled.

    Read-only connections open the file through a ``mode=ro`` URI so that a
    missing database is reported instead of silently created.
    """

    if read_only:
        conn = sqlite3.connect(f"file:{Path(path)}?mode=ro", uri=True)
    else:
        conn = sqlite3.connect(path)
    conn.row_factory = sqlite3.Row
    try:
        yield conn
        conn.commit()
    except Exception:  # noqa: BLE001
        conn.rollback()
        raise
    finally:
        conn.close()
