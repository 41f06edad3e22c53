"""Draw orchestration: preconditions, the exactly-once claim and the commit."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Callable, Optional

from sqlalchemy import select, update
from sqlalchemy.orm import Session, sessionmaker

from .errors import (
    DrawInProgressError,
    DrawModeMismatchError,
    DrawNotEnabledError,
    DrawRecordNotFoundError,
    DuplicateDrawRecordError,
    SurveyInstanceNotFoundError,
    SurveyStillRunningError,
)
from .pool import assemble_pool
from .selector import (
    AlgorithmRegistry,
    DEFAULT_ALGORITHM_KEY,
    generate_seed,
    select_winner,
)
from .store import DrawRecordStore
from ..db.utils import utc_now
from ..models import DrawRecord, SurveyInstance
from ..models.survey import (
    DRAW_MODE_AUTO,
    DRAW_MODE_MANUAL,
    DRAW_MODES,
    DRAW_STATUS_COMPLETED,
    DRAW_STATUS_IN_PROGRESS,
    DRAW_STATUS_NONE,
)
from ..settings import DrawSettings

logger = logging.getLogger(__name__)


@dataclass
class DrawOutcome:
    """Value object returned by :meth:`DrawOrchestrator.trigger`.

    Attributes
    ----------
    record : DrawRecord
        The persisted draw record.
    created : bool
        ``True`` when this call executed the draw, ``False`` when the record
        already existed (idempotent repeat or lost race).
    """

    record: DrawRecord
    created: bool

    @property
    def already_drawn(self) -> bool:
        return not self.created


class DrawOrchestrator:
    """Runs the draw for a survey instance at most once.

    The orchestrator is stateless between calls. Each call opens its own
    sessions from ``session_factory``; concurrent calls for the same instance
    are serialised by a compare-and-set on ``SurveyInstance.draw_status``.
    """

    def __init__(
        self,
        session_factory: sessionmaker,
        *,
        settings: Optional[DrawSettings] = None,
        seed_factory: Optional[Callable[[], bytes]] = None,
        registry: Optional[AlgorithmRegistry] = None,
        algorithm_key: str = DEFAULT_ALGORITHM_KEY,
    ) -> None:
        """Create an orchestrator bound to a SQLAlchemy session factory.

        Parameters
        ----------
        session_factory : sessionmaker
            Factory producing sessions against the shared database.
        settings : Optional[DrawSettings], default: None
            Wait and poll tunables. Read from the environment when omitted.
        seed_factory : Optional[Callable[[], bytes]], default: None
            Source of 32-byte seeds. Defaults to the OS CSPRNG; tests may pin it.
        registry : Optional[AlgorithmRegistry], default: None
            Registry holding the selection algorithm.
        algorithm_key : str, default: "sha256-rejection-v1"
            Algorithm recorded on, and used for, every new draw.
        """

        self._session_factory = session_factory
        self._settings = settings or DrawSettings.from_env()
        self._seed_factory = seed_factory or generate_seed
        self._registry = registry
        self._algorithm_key = algorithm_key

    def trigger(
        self,
        instance_id: int,
        *,
        trigger_mode: str = DRAW_MODE_MANUAL,
        created_by: Optional[str] = None,
    ) -> DrawOutcome:
        """Draw the winner for ``instance_id``, or return the existing draw.

        Parameters
        ----------
        instance_id : int
            Survey instance to draw.
        trigger_mode : str, default: "manual"
            ``"auto"`` when fired by the closure event, ``"manual"`` when an
            operator asked for it.
        created_by : Optional[str], default: None
            Operator identifier stored on the record.

        Returns
        -------
        DrawOutcome
            The record, and whether this call created it.

        Notes
        -----
        Preconditions are checked in order: the instance exists, the draw is
        enabled, an auto trigger matches the instance's draw mode, the instance
        is closed, and the status decides between drawing (``none``), waiting
        (``in_progress``) and returning the stored record (``completed``).

        Raises
        ------
        SurveyInstanceNotFoundError
            If no instance has ``instance_id``.
        DrawNotEnabledError
            If the instance offers no draw.
        DrawModeMismatchError
            If an auto trigger targets a manual-mode instance.
        SurveyStillRunningError
            If the instance still accepts responses.
        EmptyPoolError
            If no draw tokens exist; the status is left at ``none``.
        DrawInProgressError
            If another draw holds the claim beyond the configured wait.
        """
        if trigger_mode not in DRAW_MODES:
            raise ValueError(f"Unknown trigger mode '{trigger_mode}'")

        with self._session_factory() as session:
            instance = session.get(SurveyInstance, instance_id)
            if instance is None:
                raise SurveyInstanceNotFoundError(
                    f"Survey instance {instance_id} does not exist",
                    instance_id=instance_id,
                )
            self._check_preconditions(instance, trigger_mode)
            status = instance.draw_status
            if status == DRAW_STATUS_COMPLETED:
                return DrawOutcome(
                    record=self._require_record(session, instance_id), created=False
                )

        if status == DRAW_STATUS_NONE and self._claim(instance_id):
            return self._execute(instance_id, trigger_mode, created_by)

        logger.info(f"Draw for instance {instance_id} is held by another caller; waiting")
        return self._await_completion(instance_id, trigger_mode, created_by)

    def _check_preconditions(self, instance: SurveyInstance, trigger_mode: str) -> None:
        if not instance.draw_enabled:
            raise DrawNotEnabledError(
                f"Survey instance {instance.id} does not offer a prize draw",
                instance_id=instance.id,
            )
        if trigger_mode == DRAW_MODE_AUTO and instance.draw_mode != DRAW_MODE_AUTO:
            raise DrawModeMismatchError(
                f"Survey instance {instance.id} draws manually; auto trigger refused",
                instance_id=instance.id,
            )
        # The pool is frozen only once the instance stops accepting responses.
        if not instance.is_closed:
            raise SurveyStillRunningError(
                f"Survey instance {instance.id} is still running",
                instance_id=instance.id,
            )

    def _require_record(self, session: Session, instance_id: int) -> DrawRecord:
        record = DrawRecord.get_by_instance(session, instance_id)
        if record is None:
            raise DrawRecordNotFoundError(
                f"Survey instance {instance_id} is marked completed but has no record",
                instance_id=instance_id,
            )
        return record

    def _claim(self, instance_id: int) -> bool:
        """Atomically move ``none -> in_progress``; ``True`` for the single winner."""
        now = utc_now()
        with self._session_factory.begin() as session:
            result = session.execute(
                update(SurveyInstance)
                .where(
                    SurveyInstance.id == instance_id,
                    SurveyInstance.draw_status == DRAW_STATUS_NONE,
                )
                .values(draw_status=DRAW_STATUS_IN_PROGRESS, draw_started_at=now)
                .execution_options(synchronize_session=False)
            )
            claimed = result.rowcount == 1
        return claimed

    def _release(self, instance_id: int) -> None:
        """Revert a claim that produced no record back to ``none``."""
        with self._session_factory.begin() as session:
            result = session.execute(
                update(SurveyInstance)
                .where(
                    SurveyInstance.id == instance_id,
                    SurveyInstance.draw_status == DRAW_STATUS_IN_PROGRESS,
                )
                .values(draw_status=DRAW_STATUS_NONE, draw_started_at=None)
                .execution_options(synchronize_session=False)
            )
            released = result.rowcount == 1
        if released:
            logger.warning(f"Released draw claim for instance {instance_id}")

    def _mark_completed(self, session: Session, instance_id: int) -> bool:
        result = session.execute(
            update(SurveyInstance)
            .where(
                SurveyInstance.id == instance_id,
                SurveyInstance.draw_status == DRAW_STATUS_IN_PROGRESS,
            )
            .values(draw_status=DRAW_STATUS_COMPLETED)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    def _execute(
        self, instance_id: int, trigger_mode: str, created_by: Optional[str]
    ) -> DrawOutcome:
        """Run the draw inside the exclusive window granted by the claim.

        The record insert and the ``in_progress -> completed`` transition
        share one transaction, which is the only commit point of a draw.
        """
        try:
            with self._session_factory() as session:
                with session.begin():
                    instance = session.get(SurveyInstance, instance_id)
                    pool = assemble_pool(session, instance_id)
                    seed = self._seed_factory()
                    selection = select_winner(
                        seed,
                        pool,
                        algorithm_key=self._algorithm_key,
                        registry=self._registry,
                    )
                    record = DrawRecord(
                        instance_id=instance_id,
                        seed=seed.hex(),
                        pool_hash=selection.pool_hash,
                        candidates_count=len(pool),
                        winner_token=selection.token,
                        winner_index=selection.index,
                        algorithm=self._algorithm_key,
                        trigger_mode=trigger_mode,
                        created_by=created_by,
                        program_name=instance.program_name,
                        company_name=instance.company_name,
                        prize_name=instance.prize_name,
                        created_at=utc_now(),
                    )
                    DrawRecordStore(session).persist(record)
                    if not self._mark_completed(session, instance_id):
                        raise DrawInProgressError(
                            f"Draw claim for instance {instance_id} was released before commit",
                            instance_id=instance_id,
                        )
                session.refresh(record)
        except DuplicateDrawRecordError:
            # A record already exists, so the status belongs at completed.
            with self._session_factory() as session:
                with session.begin():
                    self._mark_completed(session, instance_id)
                existing = self._require_record(session, instance_id)
            logger.warning(f"Instance {instance_id} already had a record; claim closed")
            return DrawOutcome(record=existing, created=False)
        except Exception:
            self._release(instance_id)
            raise

        logger.info(
            f"Draw completed for instance {instance_id}: record {record.id}, "
            f"{record.candidates_count} candidates, trigger={trigger_mode}"
        )
        return DrawOutcome(record=record, created=True)

    def _await_completion(
        self, instance_id: int, trigger_mode: str, created_by: Optional[str]
    ) -> DrawOutcome:
        """Poll for the in-flight draw held by another caller, within a bounded wait."""
        deadline = time.monotonic() + self._settings.in_progress_wait
        while True:
            with self._session_factory() as session:
                status = session.scalar(
                    select(SurveyInstance.draw_status).where(
                        SurveyInstance.id == instance_id
                    )
                )
                if status == DRAW_STATUS_COMPLETED:
                    return DrawOutcome(
                        record=self._require_record(session, instance_id),
                        created=False,
                    )
            # The holder released its claim without a record (e.g. empty pool);
            # this caller's own attempt proceeds normally.
            if status == DRAW_STATUS_NONE and self._claim(instance_id):
                return self._execute(instance_id, trigger_mode, created_by)
            if time.monotonic() >= deadline:
                raise DrawInProgressError(
                    f"A draw for survey instance {instance_id} is already in progress",
                    instance_id=instance_id,
                )
            time.sleep(self._settings.poll_interval)


__all__ = [
    "DrawOrchestrator",
    "DrawOutcome",
]
