"""Candidate pool assembly and the pool commitment hash."""

from __future__ import annotations

import hashlib
from typing import Iterable, Sequence

from sqlalchemy import select
from sqlalchemy.orm import Session

from .errors import EmptyPoolError
from ..models import SurveyResponse

# Each token is framed by a 4-byte big-endian length before hashing.
TOKEN_LENGTH_BYTES = 4


def canonicalize_pool(tokens: Iterable[str]) -> list[str]:
    """Return ``tokens`` de-duplicated and sorted by code point.

    Parameters
    ----------
    tokens : Iterable[str]
        Draw tokens in any order, possibly repeated.

    Returns
    -------
    list[str]
        Canonical pool. Two sets with the same members always produce the
        same list regardless of storage or arrival order.
    """

    unique: set[str] = set()
    for token in tokens:
        if not isinstance(token, str):
            raise TypeError("draw tokens must be strings")
        if not token:
            raise ValueError("draw tokens must not be empty")
        unique.add(token)
    return sorted(unique)


def compute_pool_hash(pool: Sequence[str]) -> str:
    """Return the SHA-256 hex commitment to an already canonical ``pool``."""

    digest = hashlib.sha256()
    for token in pool:
        encoded = token.encode("utf-8")
        digest.update(len(encoded).to_bytes(TOKEN_LENGTH_BYTES, "big"))
        digest.update(encoded)
    return digest.hexdigest()


def assemble_pool(session: Session, instance_id: int) -> list[str]:
    """Read every draw token submitted to ``instance_id`` in canonical order.

    Parameters
    ----------
    session : Session
        Session used for the read. No rows are modified.
    instance_id : int
        Survey instance whose responses form the pool.

    Returns
    -------
    list[str]
        Canonical candidate pool.

    Raises
    ------
    EmptyPoolError
        If the instance has no responses carrying a draw token.
    """

    stmt = select(SurveyResponse.draw_token).where(
        SurveyResponse.instance_id == instance_id,
        SurveyResponse.draw_token.isnot(None),
    )
    pool = canonicalize_pool(session.scalars(stmt).all())
    if not pool:
        raise EmptyPoolError(
            f"Survey instance {instance_id} has no eligible draw tokens",
            instance_id=instance_id,
        )
    return pool


__all__ = [
    "assemble_pool",
    "canonicalize_pool",
    "compute_pool_hash",
]
