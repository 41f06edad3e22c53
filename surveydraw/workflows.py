import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import TYPE_CHECKING, Any, Mapping, Optional

import requests
from sqlalchemy import select, update
from sqlalchemy.orm import Session, sessionmaker

from .db.utils import as_utc, dt_iso, utc_now
from .draw.engine import DrawOrchestrator, DrawOutcome
from .draw.errors import DrawError, EmptyPoolError, SurveyInstanceNotFoundError
from .models import (
    DrawNotification,
    DrawRecord,
    ResponseContact,
    SurveyInstance,
    SurveyResponse,
)
from .models.draw import (
    NOTIFICATION_FAILED,
    NOTIFICATION_NOT_APPLICABLE,
    NOTIFICATION_PENDING,
    NOTIFICATION_SENT,
)
from .models.survey import (
    DRAW_MODE_AUTO,
    DRAW_MODE_MANUAL,
    DRAW_STATUS_COMPLETED,
    DRAW_STATUS_IN_PROGRESS,
    DRAW_STATUS_NONE,
)
from .models.utils import generate_draw_token
from .settings import DrawSettings

if TYPE_CHECKING:
    from .notifications.client import NotificationClient

logger = logging.getLogger(__name__)


def submit_response(
    session: Session,
    instance: SurveyInstance,
    *,
    join_draw: bool = True,
    contact_email: Optional[str] = None,
) -> SurveyResponse:
    """Record a response and, when the instance offers a draw, issue its token.

    This mirrors what the response collector does on submission: the token is
    random and is the only thing stored for the draw. A contact address is
    kept only when the respondent volunteers one, keyed by the token.

    Parameters
    ----------
    session : Session
        Active SQLAlchemy session.
    instance : SurveyInstance
        Persisted, running survey instance.
    join_draw : bool, default: True
        Whether the respondent takes part in the draw.
    contact_email : Optional[str], default: None
        Voluntary address for a win notification.

    Returns
    -------
    SurveyResponse
        The flushed response; ``draw_token`` is ``None`` when no token was issued.
    """
    if instance.id is None:
        raise ValueError("Survey instance must be persisted before accepting responses")
    if instance.is_closed:
        raise ValueError("Survey instance is closed")

    token = None
    if instance.draw_enabled and join_draw:
        token = generate_draw_token(session)

    response = SurveyResponse(instance_id=instance.id, draw_token=token)
    session.add(response)
    if token is not None and contact_email:
        session.add(ResponseContact(draw_token=token, email=contact_email))
    session.flush()
    return response


def _draw_response(outcome: DrawOutcome) -> dict[str, Any]:
    record = outcome.record
    return {
        "success": True,
        "already_drawn": outcome.already_drawn,
        "draw_id": record.id,
        "reference": record.reference,
        "winner_token": record.winner_token,
        "candidates_count": record.candidates_count,
        "seed": record.seed,
        "created_at": dt_iso(record.created_at),
    }


def _error_response(code: str, message: str) -> dict[str, Any]:
    return {"success": False, "error": code, "message": message}


def trigger_draw(
    session_factory: sessionmaker,
    instance_id: int,
    *,
    created_by: Optional[str] = None,
    orchestrator: Optional[DrawOrchestrator] = None,
) -> DrawOutcome:
    """Run an operator-requested draw for ``instance_id``.

    This function essentially wraps :meth:`DrawOrchestrator.trigger` in
    manual mode. Repeated calls return the stored record.
    """
    orchestrator = orchestrator or DrawOrchestrator(session_factory)
    return orchestrator.trigger(
        instance_id, trigger_mode=DRAW_MODE_MANUAL, created_by=created_by
    )


def handle_draw_request(
    session_factory: sessionmaker,
    payload: Mapping[str, Any],
    *,
    orchestrator: Optional[DrawOrchestrator] = None,
) -> dict[str, Any]:
    """Synchronous request/response surface of the draw.

    The request carries ``instance_id`` and optionally ``created_by``. A
    successful response has the same shape for the first draw and for a
    repeated call; failures carry one of the error codes of
    :mod:`surveydraw.draw.errors` or ``"invalid_request"``.
    """
    instance_id = payload.get("instance_id")
    if isinstance(instance_id, bool) or not isinstance(instance_id, int):
        return _error_response("invalid_request", "instance_id must be an integer")
    created_by = payload.get("created_by")
    if created_by is not None and not isinstance(created_by, str):
        return _error_response("invalid_request", "created_by must be a string")

    try:
        outcome = trigger_draw(
            session_factory,
            instance_id,
            created_by=created_by,
            orchestrator=orchestrator,
        )
    except DrawError as exc:
        logger.info(f"Draw request for instance {instance_id} refused: {exc.code}")
        return _error_response(exc.code, str(exc))
    return _draw_response(outcome)


def close_survey_instance(
    session_factory: sessionmaker,
    instance_id: int,
    *,
    orchestrator: Optional[DrawOrchestrator] = None,
) -> Optional[DrawOutcome]:
    """Close ``instance_id`` and fire the automatic draw where configured.

    The draw fires only for the call that actually closes the instance, and
    only when the draw is enabled in ``"auto"`` mode. An empty pool is logged
    and re-raised so the closure handler can decide what to do.

    Returns
    -------
    Optional[DrawOutcome]
        Outcome of the automatic draw, or ``None`` when none was fired.
    """
    with session_factory.begin() as session:
        instance = session.get(SurveyInstance, instance_id)
        if instance is None:
            raise SurveyInstanceNotFoundError(
                f"Survey instance {instance_id} does not exist",
                instance_id=instance_id,
            )
        was_closed = instance.is_closed
        instance.mark_closed()
        fire_draw = (
            not was_closed
            and instance.draw_enabled
            and instance.draw_mode == DRAW_MODE_AUTO
        )

    if not fire_draw:
        return None

    logger.info(f"Survey instance {instance_id} closed; firing automatic draw")
    orchestrator = orchestrator or DrawOrchestrator(session_factory)
    try:
        return orchestrator.trigger(instance_id, trigger_mode=DRAW_MODE_AUTO)
    except EmptyPoolError:
        logger.warning(f"Automatic draw for instance {instance_id} found no candidates")
        raise


@dataclass
class ReconciliationReport:
    """Instances touched by :func:`reconcile_stuck_draws`."""

    reset: list[int] = field(default_factory=list)
    completed: list[int] = field(default_factory=list)


def reconcile_stuck_draws(
    session_factory: sessionmaker,
    *,
    timeout: Optional[float] = None,
    now: Optional[datetime] = None,
) -> ReconciliationReport:
    """Resolve draws left ``in_progress`` by a process that died mid-flight.

    An instance older than ``timeout`` seconds with no record goes back to
    ``none``; its seed and pool were never persisted, so nothing is lost from
    the audit trail. An instance that does have a record is marked
    ``completed``. Run out-of-band; the orchestrator never calls this.
    """
    if timeout is None:
        timeout = DrawSettings.from_env().reconcile_timeout
    current = as_utc(now) or utc_now()
    cutoff = current - timedelta(seconds=timeout)
    report = ReconciliationReport()

    with session_factory() as session:
        stuck = session.execute(
            select(SurveyInstance.id, SurveyInstance.draw_started_at).where(
                SurveyInstance.draw_status == DRAW_STATUS_IN_PROGRESS
            )
        ).all()

    for instance_id, started_at in stuck:
        with session_factory.begin() as session:
            if DrawRecord.get_by_instance(session, instance_id) is not None:
                result = session.execute(
                    update(SurveyInstance)
                    .where(
                        SurveyInstance.id == instance_id,
                        SurveyInstance.draw_status == DRAW_STATUS_IN_PROGRESS,
                    )
                    .values(draw_status=DRAW_STATUS_COMPLETED)
                    .execution_options(synchronize_session=False)
                )
                if result.rowcount == 1:
                    report.completed.append(instance_id)
                    logger.warning(
                        f"Instance {instance_id} had a record while in progress; marked completed"
                    )
                continue

            started = as_utc(started_at)
            if started is not None and started > cutoff:
                continue

            result = session.execute(
                update(SurveyInstance)
                .where(
                    SurveyInstance.id == instance_id,
                    SurveyInstance.draw_status == DRAW_STATUS_IN_PROGRESS,
                )
                .values(draw_status=DRAW_STATUS_NONE, draw_started_at=None)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount == 1:
                report.reset.append(instance_id)
                logger.warning(
                    f"Reset abandoned draw for instance {instance_id} (started {dt_iso(started)})"
                )

    return report


def notify_draw_winner(
    session: Session,
    record: DrawRecord,
    *,
    client: Optional["NotificationClient"] = None,
) -> DrawNotification:
    """Send the win notification for ``record`` if the winner left a contact.

    The notification state lives on :class:`DrawNotification`; the draw record
    itself is never touched. A notification already ``sent`` or
    ``not_applicable`` is returned unchanged. Dispatcher failures are recorded
    as ``failed`` and may be retried by calling again.

    Parameters
    ----------
    session : Session
        Active SQLAlchemy session.
    record : DrawRecord
        Persisted draw record.
    client : Optional[NotificationClient]
        Optional pre-configured dispatcher client. If not provided and a
        contact exists, a default one will be created.

    Returns
    -------
    DrawNotification
        The flushed notification row.
    """
    if record.id is None:
        raise ValueError("Draw record must be persisted before notifying the winner")

    notification = DrawNotification.get_for_record(session, record.id)
    if notification is not None and notification.status in (
        NOTIFICATION_SENT,
        NOTIFICATION_NOT_APPLICABLE,
    ):
        return notification
    if notification is None:
        notification = DrawNotification(
            draw_record_id=record.id, status=NOTIFICATION_PENDING
        )
        session.add(notification)

    contact = ResponseContact.get_by_token(session, record.winner_token)
    if contact is None:
        notification.status = NOTIFICATION_NOT_APPLICABLE
        session.flush()
        return notification

    notification.email = contact.email
    if client is None:
        from .notifications.client import NotificationClient

        settings = DrawSettings.from_env()
        client = NotificationClient(
            base_fqdn=settings.notify_base_fqdn, api_token=settings.notify_api_token
        )

    try:
        client.send_win_notification(
            contact.email, record.winner_token, record.program_name
        )
    except requests.RequestException as exc:
        notification.status = NOTIFICATION_FAILED
        notification.error_message = str(exc)
        logger.warning(f"Win notification for draw record {record.id} failed: {exc}")
    else:
        notification.status = NOTIFICATION_SENT
        notification.sent_at = utc_now()
        notification.error_message = None

    session.flush()
    return notification
