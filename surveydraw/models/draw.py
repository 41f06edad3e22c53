"""Database models for draw results and winner notifications."""

from __future__ import annotations

import json
import uuid
from datetime import datetime
from typing import Any, Optional

from sqlalchemy import (
    CheckConstraint,
    DateTime,
    ForeignKey,
    Integer,
    String,
    Text,
    event,
    inspect,
    select,
)
from sqlalchemy.orm import Mapped, Session, mapped_column, relationship

from ..db.utils import dt_iso, utc_now
from .base import Base, ID_TYPE

NOTIFICATION_NOT_APPLICABLE = "not_applicable"
NOTIFICATION_PENDING = "pending"
NOTIFICATION_SENT = "sent"
NOTIFICATION_FAILED = "failed"
NOTIFICATION_STATUSES = (
    NOTIFICATION_NOT_APPLICABLE,
    NOTIFICATION_PENDING,
    NOTIFICATION_SENT,
    NOTIFICATION_FAILED,
)


class DrawRecord(Base):
    """Immutable audit record of the single draw executed for a survey instance."""

    __tablename__ = "draw_records"

    id: Mapped[int] = mapped_column(ID_TYPE, primary_key=True, autoincrement=True)
    """Surrogate primary key."""

    reference: Mapped[str] = mapped_column(
        String(32), nullable=False, unique=True, default=lambda: uuid.uuid4().hex
    )
    """Opaque public identifier quoted on reports."""

    instance_id: Mapped[int] = mapped_column(
        ID_TYPE,
        ForeignKey("survey_instances.id", ondelete="RESTRICT"),
        nullable=False,
        unique=True,
    )
    """Survey instance that was drawn. At most one record per instance."""

    seed: Mapped[str] = mapped_column(String(64), nullable=False)
    """Disclosed 256-bit seed, hex encoded."""

    pool_hash: Mapped[str] = mapped_column(String(64), nullable=False)
    """SHA-256 commitment to the canonical candidate pool."""

    candidates_count: Mapped[int] = mapped_column(Integer, nullable=False)
    """Pool size at execution time; frozen."""

    winner_token: Mapped[str] = mapped_column(String(64), nullable=False)
    """Draw token that won."""

    winner_index: Mapped[int] = mapped_column(Integer, nullable=False)
    """Position of the winner in the canonical (sorted) pool."""

    algorithm: Mapped[str] = mapped_column(String(50), nullable=False)
    """Identifier of the selection procedure used."""

    trigger_mode: Mapped[str] = mapped_column(String(20), nullable=False)
    """``"auto"`` when fired by closure, ``"manual"`` when by an operator."""

    created_by: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    """Operator that triggered a manual draw, if known."""

    program_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    company_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    prize_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utc_now,
    )
    """Execution timestamp."""

    __table_args__ = (
        CheckConstraint("candidates_count > 0", name="candidates_count_positive"),
        CheckConstraint(
            "winner_index >= 0 AND winner_index < candidates_count",
            name="winner_index_in_pool",
        ),
        CheckConstraint("trigger_mode IN ('auto','manual')", name="trigger_mode_enum"),
    )

    def __init__(
        self,
        *,
        instance_id: int,
        seed: str,
        pool_hash: str,
        candidates_count: int,
        winner_token: str,
        winner_index: int,
        algorithm: str,
        trigger_mode: str,
        created_by: Optional[str] = None,
        program_name: Optional[str] = None,
        company_name: Optional[str] = None,
        prize_name: Optional[str] = None,
        reference: Optional[str] = None,
        created_at: Optional[datetime] = None,
    ) -> None:
        self.instance_id = instance_id
        self.seed = seed
        self.pool_hash = pool_hash
        self.candidates_count = candidates_count
        self.winner_token = winner_token
        self.winner_index = winner_index
        self.algorithm = algorithm
        self.trigger_mode = trigger_mode
        self.created_by = created_by
        self.program_name = program_name
        self.company_name = company_name
        self.prize_name = prize_name
        self.reference = reference or uuid.uuid4().hex
        if created_at is not None:
            self.created_at = created_at

    @classmethod
    def get_by_instance(cls, session: Session, instance_id: int) -> Optional["DrawRecord"]:
        """Return the record for ``instance_id`` if the instance was drawn."""

        return session.scalar(select(cls).where(cls.instance_id == instance_id))

    def to_json(self) -> dict[str, Any]:
        """Return the record as a JSON-serialisable dictionary."""
        return {
            "id": self.id,
            "reference": self.reference,
            "instance_id": self.instance_id,
            "program_name": self.program_name,
            "company_name": self.company_name,
            "prize_name": self.prize_name,
            "seed": self.seed,
            "pool_hash": self.pool_hash,
            "candidates_count": self.candidates_count,
            "winner_token": self.winner_token,
            "winner_index": self.winner_index,
            "algorithm": self.algorithm,
            "trigger_mode": self.trigger_mode,
            "created_by": self.created_by,
            "created_at": dt_iso(self.created_at),
        }

    def to_json_str(self) -> str:
        return json.dumps(self.to_json(), ensure_ascii=False)

    def __repr__(self) -> str:  # pragma: no cover - repr is trivial
        return "<DrawRecord(id={id}, instance_id={iid}, candidates_count={count}, winner_token={token})>".format(
            id=self.id,
            iid=self.instance_id,
            count=self.candidates_count,
            token=self.winner_token,
        )


@event.listens_for(DrawRecord, "before_update")
def _refuse_draw_record_update(mapper, connection, target: DrawRecord) -> None:
    from ..draw.errors import ImmutableRecordError

    state = inspect(target)
    for attr in mapper.column_attrs:
        if state.attrs[attr.key].history.has_changes():
            raise ImmutableRecordError(
                f"Draw record {target.id} is immutable; attempted to change '{attr.key}'"
            )


@event.listens_for(DrawRecord, "before_delete")
def _refuse_draw_record_delete(mapper, connection, target: DrawRecord) -> None:
    from ..draw.errors import ImmutableRecordError

    raise ImmutableRecordError(f"Draw record {target.id} cannot be deleted")


class DrawNotification(Base):
    """Delivery state of the winner notification for a draw record."""

    __tablename__ = "draw_notifications"

    id: Mapped[int] = mapped_column(ID_TYPE, primary_key=True, autoincrement=True)
    draw_record_id: Mapped[int] = mapped_column(
        ID_TYPE,
        ForeignKey("draw_records.id", ondelete="RESTRICT"),
        nullable=False,
        unique=True,
    )
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=NOTIFICATION_PENDING
    )
    email: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    sent_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    error_message: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
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

    draw_record: Mapped["DrawRecord"] = relationship("DrawRecord")

    __table_args__ = (
        CheckConstraint(
            "status IN ('not_applicable','pending','sent','failed')",
            name="notification_status_enum",
        ),
    )

    def __init__(
        self,
        *,
        draw_record_id: int,
        status: str = NOTIFICATION_PENDING,
        email: Optional[str] = None,
    ) -> None:
        if status not in NOTIFICATION_STATUSES:
            raise ValueError(f"Unknown notification status '{status}'")
        self.draw_record_id = draw_record_id
        self.status = status
        self.email = email

    @classmethod
    def get_for_record(cls, session: Session, draw_record_id: int) -> Optional["DrawNotification"]:
        return session.scalar(select(cls).where(cls.draw_record_id == draw_record_id))


__all__ = [
    "DrawRecord",
    "DrawNotification",
]
