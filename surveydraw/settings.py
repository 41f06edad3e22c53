"""Environment driven settings for the draw engine."""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Optional

from dotenv import load_dotenv


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        value = float(raw)
    except ValueError as exc:
        raise ValueError(f"Environment variable '{name}' must be a number") from exc
    if value < 0:
        raise ValueError(f"Environment variable '{name}' must not be negative")
    return value


@dataclass(frozen=True)
class DrawSettings:
    """Tunables for the orchestrator, reconciliation and notifications.

    Attributes
    ----------
    in_progress_wait : float
        Upper bound, in seconds, that a trigger which lost the
        compare-and-set waits for the winning draw to complete.
    poll_interval : float
        Delay between status polls while waiting.
    reconcile_timeout : float
        Age, in seconds, after which an ``in_progress`` draw without a record
        is considered abandoned.
    notify_base_fqdn : Optional[str]
        Host of the notification dispatcher.
    notify_api_token : Optional[str]
        Bearer token for the notification dispatcher.
    """

    in_progress_wait: float = 5.0
    poll_interval: float = 0.05
    reconcile_timeout: float = 600.0
    notify_base_fqdn: Optional[str] = None
    notify_api_token: Optional[str] = None

    @classmethod
    def from_env(cls) -> "DrawSettings":
        load_dotenv()
        return cls(
            in_progress_wait=_env_float("DRAW_IN_PROGRESS_WAIT_SECONDS", 5.0),
            poll_interval=_env_float("DRAW_POLL_INTERVAL_SECONDS", 0.05),
            reconcile_timeout=_env_float("DRAW_RECONCILE_TIMEOUT_SECONDS", 600.0),
            notify_base_fqdn=os.getenv("NOTIFY_BASE_FQDN") or None,
            notify_api_token=os.getenv("NOTIFY_API_TOKEN") or None,
        )


__all__ = ["DrawSettings"]
