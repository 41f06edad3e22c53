"""Independent recomputation of a stored draw."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Iterable, Optional

from sqlalchemy.orm import Session

from .errors import EmptyPoolError
from .pool import assemble_pool, canonicalize_pool, compute_pool_hash
from .selector import AlgorithmRegistry, select_winner, seed_from_hex
from .store import DrawRecordStore
from ..models import DrawRecord

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class VerificationResult:
    """Outcome of checking a draw record against a candidate pool.

    Attributes
    ----------
    pool_hash_matches : bool
        The supplied pool hashes to the committed ``pool_hash``.
    count_matches : bool
        The supplied pool has ``candidates_count`` members.
    winner_matches : bool
        Re-running the selection yields the stored ``winner_token``.
    recomputed_pool_hash : Optional[str]
        Hash of the supplied pool, ``None`` for an empty pool.
    recomputed_winner : Optional[str]
        Winner recomputed from the seed and pool, ``None`` if not computable.
    """

    pool_hash_matches: bool
    count_matches: bool
    winner_matches: bool
    recomputed_pool_hash: Optional[str]
    recomputed_winner: Optional[str]

    @property
    def valid(self) -> bool:
        return self.pool_hash_matches and self.count_matches and self.winner_matches


def check_draw(
    record: DrawRecord,
    pool: Iterable[str],
    *,
    registry: Optional[AlgorithmRegistry] = None,
) -> VerificationResult:
    """Recompute ``record`` from ``pool`` and report every comparison.

    The pool may be supplied in any order and may contain repeats; it is
    canonicalized exactly as at draw time. Nothing about respondents is
    needed beyond the tokens themselves. A pool holding a missing or
    empty token fails every comparison.
    """

    try:
        canonical = canonicalize_pool(pool)
    except (TypeError, ValueError) as exc:
        logger.warning(f"Pool supplied for draw record {record.id} is malformed: {exc}")
        return VerificationResult(
            pool_hash_matches=False,
            count_matches=False,
            winner_matches=False,
            recomputed_pool_hash=None,
            recomputed_winner=None,
        )
    if not canonical:
        return VerificationResult(
            pool_hash_matches=False,
            count_matches=record.candidates_count == 0,
            winner_matches=False,
            recomputed_pool_hash=None,
            recomputed_winner=None,
        )

    pool_hash = compute_pool_hash(canonical)
    recomputed_winner: Optional[str] = None
    try:
        seed = seed_from_hex(record.seed)
        selection = select_winner(
            seed, canonical, algorithm_key=record.algorithm, registry=registry
        )
        recomputed_winner = selection.token
    except (KeyError, ValueError) as exc:
        logger.warning(f"Draw record {record.id} could not be recomputed: {exc}")

    return VerificationResult(
        pool_hash_matches=pool_hash == record.pool_hash,
        count_matches=len(canonical) == record.candidates_count,
        winner_matches=recomputed_winner is not None
        and recomputed_winner == record.winner_token,
        recomputed_pool_hash=pool_hash,
        recomputed_winner=recomputed_winner,
    )


def verify(
    record: DrawRecord,
    pool: Iterable[str],
    *,
    registry: Optional[AlgorithmRegistry] = None,
) -> bool:
    """Return ``True`` when ``pool`` is exactly the pool that produced ``record``."""
    return check_draw(record, pool, registry=registry).valid


def verify_instance(session: Session, instance_id: int) -> VerificationResult:
    """Verify the stored draw of ``instance_id`` against the live response store.

    Raises
    ------
    DrawRecordNotFoundError
        If the instance has not been drawn.
    """
    record = DrawRecordStore(session).require_by_instance(instance_id)
    try:
        pool = assemble_pool(session, instance_id)
    except EmptyPoolError:
        pool = []
    result = check_draw(record, pool)
    if not result.valid:
        logger.warning(f"Draw record {record.id} failed verification against the live pool")
    return result


__all__ = [
    "VerificationResult",
    "check_draw",
    "verify",
    "verify_instance",
]
