from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from threading import Lock
from typing import Optional

from core.errors import UnsupportedOperation
from shared.logging.logger import get_logger

log = get_logger("core.ratelimits")


@dataclass(frozen=True)
class RateLimitSnapshot:
    """
    Last quota reported by the status source.

    Advisory only: consulted for logging, never enforced.
    """

    limit: int = 0
    remaining: int = 0
    reset_time: Optional[datetime] = None
    observed_at: Optional[datetime] = None

    def seconds_until_reset(self, now: Optional[datetime] = None) -> Optional[float]:
        if self.reset_time is None:
            return None
        now = now or datetime.now(timezone.utc)
        return max(0.0, (self.reset_time - now).total_seconds())


class RateLimitTracker:
    """
    Records the most recent quota headers from the status source.

    Written by every successful (and rate-limited) call under its own
    lock; read best-effort.
    """

    def __init__(self):
        self._lock = Lock()
        self._snapshot = RateLimitSnapshot()

    def update(self, limit: int, remaining: int, reset_epoch: Optional[float]) -> RateLimitSnapshot:
        reset = (
            datetime.fromtimestamp(reset_epoch, tz=timezone.utc)
            if reset_epoch is not None
            else None
        )
        snapshot = RateLimitSnapshot(
            limit=limit,
            remaining=remaining,
            reset_time=reset,
            observed_at=datetime.now(timezone.utc),
        )
        with self._lock:
            self._snapshot = snapshot

        log.debug(
            f"[RATELIMIT] limit={limit}, remaining={remaining}, "
            f"reset_in={snapshot.seconds_until_reset()}s"
        )
        return snapshot

    def snapshot(self) -> RateLimitSnapshot:
        with self._lock:
            return self._snapshot

    def backoff_delay(self) -> float:
        raise UnsupportedOperation("rate-limit backoff is not supported yet")
