from __future__ import annotations

import sys
from typing import Optional

from alembic.autogenerate import api as ag_api
from alembic.runtime.migration import MigrationContext

from surveydraw.db.engine import make_engine
from surveydraw.models import Base


def _flatten(ops) -> list:
    flat = []
    for op in ops:
        sub_ops = getattr(op, "ops", None)
        if sub_ops:
            flat.extend(_flatten(sub_ops))
        else:
            flat.append(op)
    return flat


def check(database_url: Optional[str] = None) -> int:
    """Compare the live schema with the draw models.

    Returns 0 when in sync, 1 when differences exist and 2 on error.
    """
    engine = make_engine(database_url)
    url_display = engine.url.render_as_string(hide_password=True)
    try:
        with engine.connect() as connection:
            context = MigrationContext.configure(
                connection=connection,
                opts={
                    "compare_type": True,
                    "compare_server_default": True,
                    "render_as_batch": connection.dialect.name == "sqlite",
                },
            )
            upgrade_ops = ag_api.produce_migrations(context, Base.metadata).upgrade_ops
    except Exception as exc:
        print(f"Schema drift check: ERROR for {url_display}: {exc}", file=sys.stderr)
        return 2
    finally:
        engine.dispose()

    if upgrade_ops is None or upgrade_ops.is_empty():
        print(f"Schema drift check: OK for {url_display}.")
        return 0

    differences = _flatten(upgrade_ops.ops or [])
    print(f"Schema drift check: {len(differences)} difference(s) for {url_display}:")
    for op in differences:
        print(f"  - {op}")
    return 1


def main(argv: Optional[list[str]] = None) -> int:
    args = sys.argv[1:] if argv is None else argv
    return check(args[0] if args else None)


if __name__ == "__main__":
    raise SystemExit(main())
