"""Error taxonomy for the draw subsystem.

Every error carries a stable ``code`` that the request/response surface
returns to callers. An already drawn instance is not an error here: repeat
triggers succeed with the existing record.
"""

from __future__ import annotations

from typing import Optional


class DrawError(Exception):
    """Base class for draw failures reported to callers."""

    code = "draw_error"

    def __init__(self, message: str, *, instance_id: Optional[int] = None) -> None:
        super().__init__(message)
        self.instance_id = instance_id


class SurveyInstanceNotFoundError(DrawError):
    code = "not_found"


class DrawNotEnabledError(DrawError):
    code = "not_draw_enabled"


class DrawModeMismatchError(DrawError):
    code = "draw_mode_mismatch"


class SurveyStillRunningError(DrawError):
    code = "still_running"


class EmptyPoolError(DrawError):
    code = "empty_pool"


class DrawInProgressError(DrawError):
    code = "draw_in_progress"


class DuplicateDrawRecordError(DrawError):
    code = "duplicate_record"


class DrawRecordNotFoundError(DrawError):
    code = "record_not_found"


class SelectionError(DrawError):
    code = "selection_failed"


class ImmutableRecordError(DrawError):
    code = "immutable_record"


__all__ = [
    "DrawError",
    "SurveyInstanceNotFoundError",
    "DrawNotEnabledError",
    "DrawModeMismatchError",
    "SurveyStillRunningError",
    "EmptyPoolError",
    "DrawInProgressError",
    "DuplicateDrawRecordError",
    "DrawRecordNotFoundError",
    "SelectionError",
    "ImmutableRecordError",
]
