from __future__ import annotations

import unittest
from typing import Optional
from unittest.mock import patch

from sqlalchemy import select
from sqlalchemy.orm import sessionmaker

from surveydraw.db.engine import make_engine
from surveydraw.draw import (
    DrawInProgressError,
    DrawModeMismatchError,
    DrawNotEnabledError,
    DrawOrchestrator,
    EmptyPoolError,
    SelectionError,
    SurveyInstanceNotFoundError,
    SurveyStillRunningError,
    verify,
)
from surveydraw.models import Base, DrawRecord, SurveyInstance, SurveyResponse
from surveydraw.settings import DrawSettings

FIXED_SEED = bytes(range(32))


class OrchestratorTestCase(unittest.TestCase):
    def setUp(self) -> None:
        self.engine = make_engine("sqlite+pysqlite:///:memory:")
        Base.metadata.create_all(self.engine)
        self.Session = sessionmaker(
            bind=self.engine, future=True, expire_on_commit=False
        )
        self.settings = DrawSettings(in_progress_wait=0.0, poll_interval=0.0)

    def tearDown(self) -> None:
        self.engine.dispose()

    def _orchestrator(self, **kwargs) -> DrawOrchestrator:
        kwargs.setdefault("settings", self.settings)
        return DrawOrchestrator(self.Session, **kwargs)

    def _seed_instance(
        self,
        tokens: list[Optional[str]],
        *,
        closed: bool = True,
        draw_enabled: bool = True,
        draw_mode: str = "manual",
        draw_status: str = "none",
    ) -> int:
        with self.Session.begin() as session:
            instance = SurveyInstance(
                program_name="Wellbeing Pulse",
                company_name="Acme Kft.",
                prize_name="Spa voucher",
                draw_enabled=draw_enabled,
                draw_mode=draw_mode,
                draw_status=draw_status,
            )
            if closed:
                instance.mark_closed()
            session.add(instance)
            session.flush()
            session.add_all(
                SurveyResponse(instance_id=instance.id, draw_token=token)
                for token in tokens
            )
        return instance.id

    def _status(self, instance_id: int) -> str:
        with self.Session() as session:
            return session.scalar(
                select(SurveyInstance.draw_status).where(SurveyInstance.id == instance_id)
            )

    def _record_count(self, instance_id: int) -> int:
        with self.Session() as session:
            return len(
                session.scalars(
                    select(DrawRecord).where(DrawRecord.instance_id == instance_id)
                ).all()
            )


class TestTriggerHappyPath(OrchestratorTestCase):
    def test_pinned_seed_selects_expected_winner(self):
        instance_id = self._seed_instance(["t2", "t3", "t1", None])
        orchestrator = self._orchestrator(seed_factory=lambda: FIXED_SEED)

        outcome = orchestrator.trigger(instance_id, created_by="operator@acme")

        self.assertTrue(outcome.created)
        self.assertFalse(outcome.already_drawn)
        record = outcome.record
        self.assertEqual(record.winner_token, "t3")
        self.assertEqual(record.winner_index, 2)
        self.assertEqual(record.candidates_count, 3)
        self.assertEqual(record.seed, FIXED_SEED.hex())
        self.assertEqual(
            record.pool_hash,
            "309f11261e16475848243d12b6736459b48e13c181f20d11bcf09bcfeddf9e0d",
        )
        self.assertEqual(record.algorithm, "sha256-rejection-v1")
        self.assertEqual(record.trigger_mode, "manual")
        self.assertEqual(record.created_by, "operator@acme")
        self.assertEqual(record.program_name, "Wellbeing Pulse")
        self.assertEqual(record.company_name, "Acme Kft.")
        self.assertEqual(record.prize_name, "Spa voucher")
        self.assertEqual(self._status(instance_id), "completed")
        self.assertTrue(verify(record, ["t1", "t2", "t3"]))

    def test_repeat_trigger_returns_same_record(self):
        instance_id = self._seed_instance(["a", "b", "c", "d", "e"])
        orchestrator = self._orchestrator()

        first = orchestrator.trigger(instance_id)
        second = orchestrator.trigger(instance_id)
        third = self._orchestrator().trigger(instance_id)

        self.assertTrue(first.created)
        self.assertTrue(second.already_drawn)
        self.assertTrue(third.already_drawn)
        self.assertEqual(first.record.id, second.record.id)
        self.assertEqual(first.record.winner_token, third.record.winner_token)
        self.assertEqual(first.record.seed, third.record.seed)
        self.assertEqual(self._record_count(instance_id), 1)

    def test_single_candidate_wins(self):
        instance_id = self._seed_instance(["solo"])
        outcome = self._orchestrator().trigger(instance_id)
        self.assertEqual(outcome.record.winner_token, "solo")
        self.assertEqual(outcome.record.candidates_count, 1)

    def test_auto_trigger_on_closed_auto_instance(self):
        instance_id = self._seed_instance(["x", "y"], draw_mode="auto")
        outcome = self._orchestrator().trigger(instance_id, trigger_mode="auto")
        self.assertTrue(outcome.created)
        self.assertEqual(outcome.record.trigger_mode, "auto")

    def test_manual_trigger_allowed_in_auto_mode_after_closure(self):
        instance_id = self._seed_instance(["x", "y"], draw_mode="auto")
        outcome = self._orchestrator().trigger(instance_id)
        self.assertEqual(outcome.record.trigger_mode, "manual")

    def test_unknown_trigger_mode(self):
        instance_id = self._seed_instance(["x"])
        with self.assertRaises(ValueError):
            self._orchestrator().trigger(instance_id, trigger_mode="cron")


class TestTriggerRefusals(OrchestratorTestCase):
    def test_missing_instance(self):
        with self.assertRaises(SurveyInstanceNotFoundError) as ctx:
            self._orchestrator().trigger(999)
        self.assertEqual(ctx.exception.code, "not_found")

    def test_draw_not_enabled(self):
        instance_id = self._seed_instance(["x"], draw_enabled=False)
        with self.assertRaises(DrawNotEnabledError):
            self._orchestrator().trigger(instance_id)
        self.assertEqual(self._status(instance_id), "none")

    def test_manual_trigger_on_running_instance(self):
        instance_id = self._seed_instance(["x", "y"], closed=False)
        with self.assertRaises(SurveyStillRunningError):
            self._orchestrator().trigger(instance_id)
        self.assertEqual(self._status(instance_id), "none")
        self.assertEqual(self._record_count(instance_id), 0)

    def test_auto_trigger_on_running_instance(self):
        instance_id = self._seed_instance(["x", "y"], closed=False, draw_mode="auto")
        with self.assertRaises(SurveyStillRunningError) as ctx:
            self._orchestrator().trigger(instance_id, trigger_mode="auto")
        self.assertEqual(ctx.exception.code, "still_running")
        self.assertEqual(self._status(instance_id), "none")
        self.assertEqual(self._record_count(instance_id), 0)

    def test_auto_trigger_on_manual_instance(self):
        instance_id = self._seed_instance(["x", "y"], draw_mode="manual")
        with self.assertRaises(DrawModeMismatchError) as ctx:
            self._orchestrator().trigger(instance_id, trigger_mode="auto")
        self.assertEqual(ctx.exception.code, "draw_mode_mismatch")
        self.assertEqual(self._status(instance_id), "none")
        self.assertEqual(self._record_count(instance_id), 0)

    def test_empty_pool_leaves_status_none(self):
        instance_id = self._seed_instance([None, None])
        orchestrator = self._orchestrator()

        with self.assertRaises(EmptyPoolError):
            orchestrator.trigger(instance_id)
        self.assertEqual(self._status(instance_id), "none")
        self.assertEqual(self._record_count(instance_id), 0)

        # Every later attempt reports the same condition.
        with self.assertRaises(EmptyPoolError):
            orchestrator.trigger(instance_id)

    def test_draw_in_progress_after_wait(self):
        instance_id = self._seed_instance(["x", "y"], draw_status="in_progress")
        with self.assertRaises(DrawInProgressError) as ctx:
            self._orchestrator().trigger(instance_id)
        self.assertEqual(ctx.exception.code, "draw_in_progress")
        self.assertEqual(self._status(instance_id), "in_progress")

    def test_selection_failure_releases_claim(self):
        instance_id = self._seed_instance(["x", "y"])
        with patch(
            "surveydraw.draw.engine.select_winner",
            side_effect=SelectionError("did not converge"),
        ):
            with self.assertRaises(SelectionError):
                self._orchestrator().trigger(instance_id)
        self.assertEqual(self._status(instance_id), "none")
        self.assertEqual(self._record_count(instance_id), 0)

        outcome = self._orchestrator().trigger(instance_id)
        self.assertTrue(outcome.created)


class TestInterruptedDraws(OrchestratorTestCase):
    def _set_status(self, instance_id: int, status: str) -> None:
        with self.Session.begin() as session:
            session.get(SurveyInstance, instance_id).draw_status = status

    def _waiting_orchestrator(self) -> DrawOrchestrator:
        return self._orchestrator(
            settings=DrawSettings(in_progress_wait=5.0, poll_interval=0.01)
        )

    def test_waiter_picks_up_completed_draw(self):
        instance_id = self._seed_instance(["x", "y", "z"], draw_status="in_progress")
        finished = []

        def holder_finishes(_seconds):
            if finished:
                return
            # The holder's claim lapses and another caller completes the draw.
            self._set_status(instance_id, "none")
            finished.append(self._orchestrator().trigger(instance_id))

        with patch("surveydraw.draw.engine.time.sleep", side_effect=holder_finishes):
            outcome = self._waiting_orchestrator().trigger(instance_id)

        self.assertTrue(outcome.already_drawn)
        self.assertTrue(finished[0].created)
        self.assertEqual(outcome.record.id, finished[0].record.id)
        self.assertEqual(self._record_count(instance_id), 1)

    def test_waiter_claims_released_draw(self):
        instance_id = self._seed_instance(["x", "y", "z"], draw_status="in_progress")

        def holder_releases(_seconds):
            self._set_status(instance_id, "none")

        with patch(
            "surveydraw.draw.engine.time.sleep", side_effect=holder_releases
        ) as mock_sleep:
            outcome = self._waiting_orchestrator().trigger(instance_id)

        mock_sleep.assert_called_once()
        self.assertTrue(outcome.created)
        self.assertEqual(self._status(instance_id), "completed")
        self.assertEqual(self._record_count(instance_id), 1)

    def test_existing_record_with_stale_status_is_closed(self):
        instance_id = self._seed_instance(["x", "y"])
        first = self._orchestrator().trigger(instance_id)

        with self.Session.begin() as session:
            instance = session.get(SurveyInstance, instance_id)
            instance.draw_status = "none"

        outcome = self._orchestrator().trigger(instance_id)
        self.assertTrue(outcome.already_drawn)
        self.assertEqual(outcome.record.id, first.record.id)
        self.assertEqual(self._status(instance_id), "completed")
        self.assertEqual(self._record_count(instance_id), 1)


if __name__ == "__main__":
    unittest.main()
