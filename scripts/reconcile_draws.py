from __future__ import annotations

import logging

from surveydraw.db.engine import get_sessionmaker, make_engine
from surveydraw.settings import DrawSettings
from surveydraw.workflows import reconcile_stuck_draws


def main() -> None:
    """Reset draws abandoned in ``in_progress`` beyond the configured timeout."""
    logging.basicConfig(level=logging.INFO)
    settings = DrawSettings.from_env()
    engine = make_engine()
    Session = get_sessionmaker(engine)

    report = reconcile_stuck_draws(Session, timeout=settings.reconcile_timeout)
    print(
        "Reconciled draws: reset={reset}, completed={completed}".format(
            reset=report.reset or "-",
            completed=report.completed or "-",
        )
    )
    engine.dispose()


if __name__ == "__main__":
    main()
