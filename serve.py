"""Container-friendly launcher for the coach API."""

from __future__ import annotations

import os


def resolve_port(value: str | None, default: int = 8000) -> int:
    """Parse ``$PORT``; platforms sometimes pass an empty string."""

    try:
        return int(value) if value else default
    except ValueError:
        print(f"[serve] ignoring invalid PORT={value!r}, using {default}")
        return default


if __name__ == "__main__":
    import uvicorn

    port = resolve_port(os.environ.get("PORT"))
    print("[serve] cwd:", os.getcwd())
    print("[serve] port:", port)
    uvicorn.run("coach.main:app", host="0.0.0.0", port=port)
