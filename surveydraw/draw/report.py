"""Auditor-facing draw protocol rendered from a stored record."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any, Optional

from .selector import AlgorithmRegistry, DEFAULT_SELECTION_REGISTRY
from ..db.utils import dt_iso
from ..models import DrawRecord

REPORT_TITLE = "Prize draw protocol"


@dataclass(frozen=True)
class DrawReport:
    """Durable artifact describing one executed draw."""

    reference: str
    program_name: Optional[str]
    company_name: Optional[str]
    prize_name: Optional[str]
    executed_at: Optional[str]
    candidates_count: int
    winner_token: str
    seed: str
    pool_hash: str
    algorithm: str
    trigger_mode: str
    verification_steps: tuple[str, ...] = field(default_factory=tuple)

    @property
    def filename(self) -> str:
        return f"draw-report-{self.reference[:8]}.txt"

    def to_json(self) -> dict[str, Any]:
        return {
            "title": REPORT_TITLE,
            "reference": self.reference,
            "program_name": self.program_name,
            "company_name": self.company_name,
            "prize_name": self.prize_name,
            "executed_at": self.executed_at,
            "candidates_count": self.candidates_count,
            "winner_token": self.winner_token,
            "seed": self.seed,
            "pool_hash": self.pool_hash,
            "algorithm": self.algorithm,
            "trigger_mode": self.trigger_mode,
            "verification_steps": list(self.verification_steps),
        }

    def to_json_str(self) -> str:
        return json.dumps(self.to_json(), ensure_ascii=False, indent=2)

    def to_text(self) -> str:
        """Render the plain-text protocol handed to auditors."""
        rows = [
            ("Program", self.program_name or "-"),
            ("Company", self.company_name or "-"),
            ("Prize", self.prize_name or "-"),
            ("Executed at (UTC)", self.executed_at or "-"),
            ("Trigger", self.trigger_mode),
            ("Candidates", str(self.candidates_count)),
            ("Winner token", self.winner_token),
            ("Reference", self.reference),
        ]
        width = max(len(label) for label, _ in rows)
        lines = [REPORT_TITLE, "=" * len(REPORT_TITLE), ""]
        lines.extend(f"{label.ljust(width)} : {value}" for label, value in rows)
        lines += [
            "",
            "Cryptographic seed (disclosed for audit):",
            f"  {self.seed}",
            "Candidate pool commitment (SHA-256):",
            f"  {self.pool_hash}",
            f"Selection algorithm: {self.algorithm}",
            "",
            "How to verify this result",
            "-------------------------",
        ]
        lines.extend(
            f"{number}. {step}"
            for number, step in enumerate(self.verification_steps, start=1)
        )
        return "\n".join(lines) + "\n"


def _verification_steps(
    record: DrawRecord, registry: AlgorithmRegistry
) -> tuple[str, ...]:
    try:
        description = registry.get(record.algorithm).description
    except KeyError:
        description = None
    return (
        "Obtain the complete list of draw tokens submitted to the survey; "
        f"it must contain exactly {record.candidates_count} distinct tokens.",
        description or f"Apply selection algorithm '{record.algorithm}'.",
        f"Confirm the pool hash equals {record.pool_hash} and use the seed "
        "above, decoded from hex to 32 bytes.",
        f"The recomputed winner must be {record.winner_token}. Any added, "
        "removed or substituted token changes the pool hash.",
    )


def format_report(
    record: DrawRecord, *, registry: Optional[AlgorithmRegistry] = None
) -> DrawReport:
    """Build the :class:`DrawReport` for ``record`` without touching storage."""
    active_registry = registry or DEFAULT_SELECTION_REGISTRY
    return DrawReport(
        reference=record.reference,
        program_name=record.program_name,
        company_name=record.company_name,
        prize_name=record.prize_name,
        executed_at=dt_iso(record.created_at),
        candidates_count=record.candidates_count,
        winner_token=record.winner_token,
        seed=record.seed,
        pool_hash=record.pool_hash,
        algorithm=record.algorithm,
        trigger_mode=record.trigger_mode,
        verification_steps=_verification_steps(record, active_registry),
    )


__all__ = ["DrawReport", "format_report"]
