"""Compare the live database schema against the ORM models.

Exit code 0 when every mapped table and column exists, 1 otherwise.
"""

from __future__ import annotations

import argparse
import os
import sys

ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), os.pardir))
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)

from sqlalchemy import inspect

from imobiliaria import create_app
from imobiliaria.db import get_engine
from imobiliaria.models import Base


def missing_schema() -> dict[str, list[str]]:
    """Return {table: [missing columns]}; a missing table maps to ["*"]."""
    insp = inspect(get_engine())
    live_tables = set(insp.get_table_names())
    problems: dict[str, list[str]] = {}
    for name, table in Base.metadata.tables.items():
        if name not in live_tables:
            problems[name] = ["*"]
            continue
        live_cols = {c["name"] for c in insp.get_columns(name)}
        missing = [c.name for c in table.columns if c.name not in live_cols]
        if missing:
            problems[name] = missing
    return problems


def main(argv: list[str] | None = None) -> int:
    p = argparse.ArgumentParser(description="Verify database schema")
    p.parse_args(argv)

    app = create_app()
    with app.app_context():
        print("DB:", get_engine().url.render_as_string(hide_password=True))
        problems = missing_schema()
        if not problems:
            print(f"OK: {len(Base.metadata.tables)} tables verified")
            return 0
        for table, cols in sorted(problems.items()):
            if cols == ["*"]:
                print(f"MISSING TABLE: {table}")
            else:
                print(f"MISSING COLUMNS in {table}: {', '.join(cols)}")
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
