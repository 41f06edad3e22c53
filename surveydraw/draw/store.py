"""Append-only persistence for draw records."""

from __future__ import annotations

import logging
from typing import Optional

from sqlalchemy import or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from .errors import DrawRecordNotFoundError, DuplicateDrawRecordError
from ..models import DrawRecord

logger = logging.getLogger(__name__)


class DrawRecordStore:
    """Insert-once storage of :class:`DrawRecord` rows.

    Records are never updated or deleted; the model's mapper listeners refuse
    both. Uniqueness per survey instance is enforced twice: by a lookup
    before the insert and by the ``instance_id`` unique constraint.
    """

    def __init__(self, session: Session) -> None:
        self._session = session

    def persist(self, record: DrawRecord) -> DrawRecord:
        """Insert ``record`` and flush it.

        Raises
        ------
        DuplicateDrawRecordError
            If the survey instance already has a record. After a constraint
            violation the caller's transaction must be rolled back.
        """
        if record.id is not None:
            raise ValueError("Draw record is already persisted")

        existing = self.get_by_instance(record.instance_id)
        if existing is not None:
            raise DuplicateDrawRecordError(
                f"Survey instance {record.instance_id} already has draw record {existing.id}",
                instance_id=record.instance_id,
            )

        self._session.add(record)
        try:
            self._session.flush()
        except IntegrityError as exc:
            logger.warning(
                f"Draw record insert for instance {record.instance_id} hit a constraint"
            )
            raise DuplicateDrawRecordError(
                f"Survey instance {record.instance_id} already has a draw record",
                instance_id=record.instance_id,
            ) from exc
        return record

    def get_by_instance(self, instance_id: int) -> Optional[DrawRecord]:
        return DrawRecord.get_by_instance(self._session, instance_id)

    def require_by_instance(self, instance_id: int) -> DrawRecord:
        """Return the record for ``instance_id`` or raise :class:`DrawRecordNotFoundError`."""
        record = self.get_by_instance(instance_id)
        if record is None:
            raise DrawRecordNotFoundError(
                f"Survey instance {instance_id} has not been drawn",
                instance_id=instance_id,
            )
        return record

    def history(
        self,
        *,
        search: Optional[str] = None,
        company_name: Optional[str] = None,
        limit: Optional[int] = None,
    ) -> list[DrawRecord]:
        """Return draw records newest first.

        Parameters
        ----------
        search : Optional[str], default: None
            Case-insensitive substring matched against the company name and
            the winner token.
        company_name : Optional[str], default: None
            Restrict to records of one company (exact match).
        limit : Optional[int], default: None
            Maximum number of records returned. Must be positive when given.
        """
        if limit is not None and limit <= 0:
            raise ValueError("limit must be a positive integer")

        stmt = select(DrawRecord)
        if company_name is not None:
            stmt = stmt.where(DrawRecord.company_name == company_name)
        if search:
            pattern = f"%{search.strip()}%"
            stmt = stmt.where(
                or_(
                    DrawRecord.company_name.ilike(pattern),
                    DrawRecord.winner_token.ilike(pattern),
                )
            )
        stmt = stmt.order_by(DrawRecord.created_at.desc(), DrawRecord.id.desc())
        if limit is not None:
            stmt = stmt.limit(limit)
        return list(self._session.scalars(stmt).all())


__all__ = ["DrawRecordStore"]
