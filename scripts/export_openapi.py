#!/usr/bin/env python
"""Export the FastAPI OpenAPI schema to coach/openapi.yaml."""

from __future__ import annotations

import argparse
from pathlib import Path

import yaml


def main() -> None:
    repo_root = Path(__file__).resolve().parent.parent
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument(
        "--output",
        type=Path,
        default=repo_root / "coach" / "openapi.yaml",
        help="Destination file for the schema.",
    )
    args = parser.parse_args()

    from coach.main import app

    schema = app.openapi()
    args.output.write_text(yaml.safe_dump(schema, sort_keys=False), encoding="utf-8")
    print(f"Wrote {args.output}")


if __name__ == "__main__":
    main()
