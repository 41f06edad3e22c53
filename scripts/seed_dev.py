from datetime import datetime, timezone

from surveydraw.db.engine import get_sessionmaker, make_engine
from surveydraw.models import Base, SurveyInstance
from surveydraw.workflows import submit_response


def main() -> None:
    """Seed the development database with survey instances and responses."""
    engine = make_engine()

    Base.metadata.drop_all(engine)
    Base.metadata.create_all(engine)
    Session = get_sessionmaker(engine)

    now = datetime.now(timezone.utc)

    with Session.begin() as session:
        manual = SurveyInstance(
            program_name="Wellbeing Pulse 2026",
            company_name="Acme Kft.",
            prize_name="Spa voucher",
            draw_enabled=True,
            draw_mode="manual",
            created_at=now,
            updated_at=now,
        )
        auto = SurveyInstance(
            program_name="EAP Awareness Survey",
            company_name="Globex Zrt.",
            prize_name="Weekend trip",
            draw_enabled=True,
            draw_mode="auto",
            created_at=now,
            updated_at=now,
        )
        no_draw = SurveyInstance(
            program_name="Onboarding Feedback",
            company_name="Acme Kft.",
            draw_enabled=False,
            created_at=now,
            updated_at=now,
        )
        session.add_all([manual, auto, no_draw])
        session.flush()

        for i in range(25):
            submit_response(
                session,
                manual,
                contact_email=f"respondent{i:02d}@example.com" if i % 5 == 0 else None,
            )
        for i in range(12):
            submit_response(session, auto, join_draw=i % 4 != 0)
        for _ in range(5):
            submit_response(session, no_draw)

        # The manual instance is ready for an operator-triggered draw.
        manual.mark_closed(now)

    print("Seeded survey instances: manual (closed), auto (running), no-draw (running)")


if __name__ == "__main__":
    main()
