from __future__ import annotations

import sys
from pathlib import Path

from alembic import command
from alembic.config import Config
from sqlalchemy import func, inspect, select

from surveydraw.db.engine import make_engine
from surveydraw.models import Base

PROJECT_ROOT = Path(__file__).resolve().parents[1]


def upgrade_db(target_revision: str = "head") -> None:
    """Apply Alembic migrations up to the requested revision."""
    alembic_cfg = Config(str(PROJECT_ROOT / "alembic.ini"))
    alembic_cfg.set_main_option("script_location", str(PROJECT_ROOT / "alembic"))
    command.upgrade(alembic_cfg, target_revision)


def report_schema() -> list[str]:
    """Print row counts of the draw tables and return any that are missing."""
    engine = make_engine()
    try:
        present = set(inspect(engine).get_table_names())
        missing = [name for name in Base.metadata.tables if name not in present]
        with engine.connect() as connection:
            for name, table in Base.metadata.tables.items():
                if name in missing:
                    continue
                rows = connection.scalar(select(func.count()).select_from(table))
                print(f"  {name}: {rows} row(s)")
    finally:
        engine.dispose()
    return missing


def main() -> int:
    upgrade_db()
    print("Draw schema tables:")
    missing = report_schema()
    if missing:
        print("Missing tables: " + ", ".join(missing), file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
