"""Survey instances and the anonymous responses that feed the draw."""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    String,
    select,
)
from sqlalchemy.orm import Mapped, Session, mapped_column, relationship, validates

from ..db.utils import utc_now
from .base import Base, ID_TYPE

LIFECYCLE_RUNNING = "running"
LIFECYCLE_CLOSED = "closed"
LIFECYCLE_STATES = (LIFECYCLE_RUNNING, LIFECYCLE_CLOSED)

DRAW_MODE_AUTO = "auto"
DRAW_MODE_MANUAL = "manual"
DRAW_MODES = (DRAW_MODE_AUTO, DRAW_MODE_MANUAL)

DRAW_STATUS_NONE = "none"
DRAW_STATUS_IN_PROGRESS = "in_progress"
DRAW_STATUS_COMPLETED = "completed"
DRAW_STATUSES = (DRAW_STATUS_NONE, DRAW_STATUS_IN_PROGRESS, DRAW_STATUS_COMPLETED)


def _in_clause(column: str, values: tuple[str, ...]) -> str:
    quoted = ",".join(f"'{value}'" for value in values)
    return f"{column} IN ({quoted})"


class SurveyInstance(Base):
    """A single run of a survey, optionally carrying a prize draw.

    The survey lifecycle subsystem owns this row. The draw engine reads the
    lifecycle state, the draw flag and the draw mode, and only ever writes
    ``draw_status`` and ``draw_started_at``.
    """

    __tablename__ = "survey_instances"

    id: Mapped[int] = mapped_column(ID_TYPE, primary_key=True, autoincrement=True)
    """Primary key."""

    program_name: Mapped[str] = mapped_column(String(255), nullable=False)
    """Program name shown on reports."""

    company_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    """Company running the survey."""

    prize_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    """Label of the incentive offered to respondents."""

    lifecycle_state: Mapped[str] = mapped_column(
        String(20), nullable=False, default=LIFECYCLE_RUNNING
    )
    """Either ``"running"`` or ``"closed"``."""

    draw_enabled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    """Whether the instance offers a prize draw."""

    draw_mode: Mapped[str] = mapped_column(
        String(20), nullable=False, default=DRAW_MODE_MANUAL
    )
    """``"auto"`` draws at closure, ``"manual"`` waits for an operator."""

    draw_status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=DRAW_STATUS_NONE
    )
    """``"none"`` -> ``"in_progress"`` -> ``"completed"``."""

    draw_started_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    """When the current ``in_progress`` window was claimed."""

    closed_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    """When the instance stopped accepting responses."""

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utc_now,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utc_now,
        onupdate=utc_now,
    )

    responses: Mapped[list["SurveyResponse"]] = relationship(
        back_populates="instance",
        cascade="all, delete-orphan",
    )
    """Responses submitted to this instance."""

    __table_args__ = (
        CheckConstraint(
            _in_clause("lifecycle_state", LIFECYCLE_STATES), name="lifecycle_state_enum"
        ),
        CheckConstraint(_in_clause("draw_mode", DRAW_MODES), name="draw_mode_enum"),
        CheckConstraint(
            _in_clause("draw_status", DRAW_STATUSES), name="draw_status_enum"
        ),
        Index("ix_survey_instances_draw_status", "draw_status"),
    )

    def __init__(
        self,
        *,
        program_name: str,
        company_name: Optional[str] = None,
        prize_name: Optional[str] = None,
        lifecycle_state: str = LIFECYCLE_RUNNING,
        draw_enabled: bool = False,
        draw_mode: str = DRAW_MODE_MANUAL,
        draw_status: str = DRAW_STATUS_NONE,
        closed_at: Optional[datetime] = None,
        created_at: Optional[datetime] = None,
        updated_at: Optional[datetime] = None,
    ) -> None:
        self.program_name = program_name
        self.company_name = company_name
        self.prize_name = prize_name
        self.lifecycle_state = lifecycle_state
        self.draw_enabled = draw_enabled
        self.draw_mode = draw_mode
        self.draw_status = draw_status
        self.closed_at = closed_at
        if created_at is not None:
            self.created_at = created_at
        if updated_at is not None:
            self.updated_at = updated_at

    @validates("lifecycle_state")
    def _validate_lifecycle_state(self, _key: str, value: str) -> str:
        if value not in LIFECYCLE_STATES:
            raise ValueError(f"Unknown lifecycle state '{value}'")
        return value

    @validates("draw_mode")
    def _validate_draw_mode(self, _key: str, value: str) -> str:
        if value not in DRAW_MODES:
            raise ValueError(f"Unknown draw mode '{value}'")
        return value

    @validates("draw_status")
    def _validate_draw_status(self, _key: str, value: str) -> str:
        if value not in DRAW_STATUSES:
            raise ValueError(f"Unknown draw status '{value}'")
        return value

    @property
    def is_closed(self) -> bool:
        return self.lifecycle_state == LIFECYCLE_CLOSED

    def mark_closed(self, closed_at: Optional[datetime] = None) -> None:
        """Stop accepting responses. Closing twice keeps the first timestamp."""
        if self.is_closed:
            return
        self.lifecycle_state = LIFECYCLE_CLOSED
        self.closed_at = closed_at or utc_now()

    def __repr__(self) -> str:  # pragma: no cover - repr is trivial
        return "<SurveyInstance(id={id}, state={state}, draw_status={status})>".format(
            id=self.id,
            state=self.lifecycle_state,
            status=self.draw_status,
        )


class SurveyResponse(Base):
    """Submitted response, reduced to what the draw needs: its token."""

    __tablename__ = "survey_responses"

    id: Mapped[int] = mapped_column(ID_TYPE, primary_key=True, autoincrement=True)
    """Primary key."""

    instance_id: Mapped[int] = mapped_column(
        ID_TYPE,
        ForeignKey("survey_instances.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    """Survey instance the response belongs to."""

    draw_token: Mapped[Optional[str]] = mapped_column(
        String(64), nullable=True, unique=True
    )
    """Anonymous token, or ``None`` when the respondent skipped the draw."""

    submitted_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utc_now,
    )

    instance: Mapped["SurveyInstance"] = relationship(back_populates="responses")

    def __init__(
        self,
        *,
        instance: Optional["SurveyInstance"] = None,
        instance_id: Optional[int] = None,
        draw_token: Optional[str] = None,
        submitted_at: Optional[datetime] = None,
    ) -> None:
        if instance is not None:
            self.instance = instance
        if instance_id is not None:
            self.instance_id = instance_id
        self.draw_token = draw_token
        if submitted_at is not None:
            self.submitted_at = submitted_at

    def __repr__(self) -> str:  # pragma: no cover - repr is trivial
        return "<SurveyResponse(id={id}, instance_id={iid}, draw_token={token})>".format(
            id=self.id,
            iid=self.instance_id,
            token=self.draw_token,
        )


class ResponseContact(Base):
    """Contact address a winner may volunteer, keyed only by draw token."""

    __tablename__ = "response_contacts"

    id: Mapped[int] = mapped_column(ID_TYPE, primary_key=True, autoincrement=True)
    draw_token: Mapped[str] = mapped_column(String(64), nullable=False, unique=True)
    email: Mapped[str] = mapped_column(String(255), nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utc_now,
    )

    def __init__(self, *, draw_token: str, email: str) -> None:
        self.draw_token = draw_token
        self.email = email

    @validates("email")
    def _normalize_email(self, _key: str, value: str) -> str:
        normalized = value.strip().lower()
        if not normalized:
            raise ValueError("email must not be empty")
        return normalized

    @classmethod
    def get_by_token(cls, session: Session, draw_token: str) -> Optional["ResponseContact"]:
        """Return the contact volunteered for ``draw_token`` if any."""

        return session.scalar(select(cls).where(cls.draw_token == draw_token))


__all__ = [
    "SurveyInstance",
    "SurveyResponse",
    "ResponseContact",
]
