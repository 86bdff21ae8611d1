"""Quota cooldown guard.

After any quota error, every job of the same action family stays inert until
the stored resume time has passed. The scoped and global variants of an
action share one guard key. Clearing is lazy: a check that finds an expired
timestamp proceeds as if no cooldown were set, and only a completed run
removes the stale key.
"""

from __future__ import annotations

import logging
import time
from datetime import datetime, timezone
from typing import Callable, Optional

from drive_handover.adapters.checkpoint_store import CheckpointStore


logger = logging.getLogger("drive_handover.cooldown")

Clock = Callable[[], float]


class CooldownGuard:
    """Suspend flag with a resume timestamp, stored as epoch milliseconds."""

    def __init__(self, store: CheckpointStore, key: str, clock: Optional[Clock] = None) -> None:
        self._store = store
        self.key = key
        self._clock = clock or time.time

    def resume_at(self) -> Optional[float]:
        """Return the stored resume time in epoch seconds, or None."""

        raw = self._store.get(self.key)
        if not raw:
            return None
        try:
            return int(raw) / 1000.0
        except ValueError:
            logger.warning("Ignoring malformed cooldown value %s=%r", self.key, raw)
            return None

    def is_active(self) -> bool:
        resume_at = self.resume_at()
        return resume_at is not None and self._clock() < resume_at

    def arm(self, duration_seconds: float) -> float:
        """Start a cooldown of ``duration_seconds`` from now; return the resume time."""

        resume_at = self._clock() + duration_seconds
        self._store.set(self.key, str(int(resume_at * 1000)))
        logger.warning("Quota cooldown armed until %s", format_timestamp(resume_at))
        return resume_at

    def clear_if_expired(self) -> bool:
        """Delete the key only when it holds a timestamp already in the past."""

        resume_at = self.resume_at()
        if resume_at is None or self._clock() < resume_at:
            return False
        self._store.delete(self.key)
        return True


def format_timestamp(epoch_seconds: float) -> str:
    return datetime.fromtimestamp(epoch_seconds, tz=timezone.utc).isoformat()
