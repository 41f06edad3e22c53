"""Utility helpers for the models package."""

from __future__ import annotations

import secrets
import string
from typing import Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

DRAW_TOKEN_ALPHABET = string.ascii_uppercase + string.digits
DRAW_TOKEN_PREFIX = "EAP"


def _random_token(prefix: str, segments: int, segment_length: int) -> str:
    parts = (
        "".join(secrets.choice(DRAW_TOKEN_ALPHABET) for _ in range(segment_length))
        for _ in range(segments)
    )
    return "-".join([prefix, *parts])[:64]


def _token_taken(session: Session, candidate: str) -> bool:
    from .survey import SurveyResponse

    pending = any(
        isinstance(obj, SurveyResponse) and obj.draw_token == candidate
        for obj in session.new
    )
    if pending:
        return True
    stored = session.scalar(
        select(SurveyResponse.id).where(SurveyResponse.draw_token == candidate)
    )
    return stored is not None


def generate_draw_token(
    session: Optional[Session] = None,
    prefix: str = DRAW_TOKEN_PREFIX,
    segments: int = 3,
    segment_length: int = 4,
    max_attempts: int = 32,
) -> str:
    """Return an anonymous draw token such as ``EAP-7K2Q-M9XD-04TZ``.

    The token comes from :mod:`secrets` and carries no information about the
    respondent. With a session, values already stored (or pending) in
    ``SurveyResponse.draw_token`` are skipped.
    """
    for _ in range(max_attempts):
        candidate = _random_token(prefix, segments, segment_length)
        if session is None or not _token_taken(session, candidate):
            return candidate

    raise RuntimeError("Unable to generate a unique draw token after multiple attempts")
