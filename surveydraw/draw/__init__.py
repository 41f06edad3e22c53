"""Auditable single-winner prize draw for survey instances."""

from .engine import DrawOrchestrator, DrawOutcome
from .errors import (
    DrawError,
    DrawInProgressError,
    DrawModeMismatchError,
    DrawNotEnabledError,
    DrawRecordNotFoundError,
    DuplicateDrawRecordError,
    EmptyPoolError,
    ImmutableRecordError,
    SelectionError,
    SurveyInstanceNotFoundError,
    SurveyStillRunningError,
)
from .pool import assemble_pool, canonicalize_pool, compute_pool_hash
from .report import DrawReport, format_report
from .selector import (
    AlgorithmRegistry,
    DEFAULT_ALGORITHM_KEY,
    DEFAULT_SELECTION_REGISTRY,
    Selection,
    SelectionAlgorithm,
    generate_seed,
    select_winner,
)
from .store import DrawRecordStore
from .verification import VerificationResult, check_draw, verify, verify_instance

__all__ = [
    "AlgorithmRegistry",
    "DEFAULT_ALGORITHM_KEY",
    "DEFAULT_SELECTION_REGISTRY",
    "DrawError",
    "DrawInProgressError",
    "DrawModeMismatchError",
    "DrawNotEnabledError",
    "DrawOrchestrator",
    "DrawOutcome",
    "DrawRecordNotFoundError",
    "DrawRecordStore",
    "DrawReport",
    "DuplicateDrawRecordError",
    "EmptyPoolError",
    "ImmutableRecordError",
    "Selection",
    "SelectionAlgorithm",
    "SelectionError",
    "SurveyInstanceNotFoundError",
    "SurveyStillRunningError",
    "VerificationResult",
    "assemble_pool",
    "canonicalize_pool",
    "check_draw",
    "compute_pool_hash",
    "format_report",
    "generate_seed",
    "select_winner",
    "verify",
    "verify_instance",
]
