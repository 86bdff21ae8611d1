"""Bounded retry policy for single remote calls.

``RetryPolicy.attempt`` runs one call and returns a typed result instead of
raising, so callers branch on ``AttemptOutcome``:

- ``OK``: the call returned; ``value`` holds its result.
- ``SKIPPED``: a permanent error, or a transient one that survived every
  retry. The caller records it and moves on.
- ``QUOTA_EXCEEDED``: rate or daily limit. Never retried here; the caller is
  expected to stop and arm the cooldown.
- ``AUTH_FAILED``: credentials rejected or unavailable. Never retried; the
  caller stops the tick without arming the cooldown.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, Optional

from drive_handover.config.job_limits import (
    DEFAULT_MAX_RETRIES,
    DEFAULT_RETRY_BASE_DELAY_SECONDS,
)
from drive_handover.core.errors import ApiError, ErrorKind, classify_api_error


logger = logging.getLogger("drive_handover.retry_policy")

SleepFn = Callable[[float], Awaitable[Any]]


class AttemptOutcome(str, Enum):
    OK = "ok"
    SKIPPED = "skipped"
    QUOTA_EXCEEDED = "quota_exceeded"
    AUTH_FAILED = "auth_failed"


_STOP_OUTCOMES = {
    ErrorKind.QUOTA: AttemptOutcome.QUOTA_EXCEEDED,
    ErrorKind.AUTH: AttemptOutcome.AUTH_FAILED,
}


@dataclass
class RetryAttempt:
    """Progress of one ``attempt`` call. Never persisted."""

    attempt: int = 0
    last_error_kind: Optional[ErrorKind] = None
    next_delay: float = 0.0


@dataclass
class AttemptResult:
    outcome: AttemptOutcome
    value: Any = None
    error: Optional[ApiError] = None
    error_kind: Optional[ErrorKind] = None
    attempts: int = 0

    @property
    def ok(self) -> bool:
        return self.outcome is AttemptOutcome.OK


class RetryPolicy:
    """Retry transient failures with exponential backoff.

    With ``max_retries=1`` and ``base_delay=2.0`` a call that keeps failing
    transiently is tried twice, sleeping 2s in between. A second retry would
    wait 4s, a third 8s.
    """

    def __init__(
        self,
        max_retries: int = DEFAULT_MAX_RETRIES,
        base_delay: float = DEFAULT_RETRY_BASE_DELAY_SECONDS,
        sleep: Optional[SleepFn] = None,
    ) -> None:
        if max_retries < 0:
            raise ValueError("max_retries must be >= 0")
        self.max_retries = max_retries
        self.base_delay = base_delay
        self._sleep = sleep or asyncio.sleep

    def backoff_delay(self, retry_number: int) -> float:
        """Delay before the ``retry_number``-th retry (1-based)."""
        return self.base_delay * (2 ** (retry_number - 1))

    async def attempt(self, call: Callable[[], Awaitable[Any]]) -> AttemptResult:
        state = RetryAttempt()

        while True:
            state.attempt += 1
            try:
                value = await call()
            except ApiError as exc:
                kind = classify_api_error(exc)
                state.last_error_kind = kind

                if kind in _STOP_OUTCOMES:
                    return AttemptResult(
                        outcome=_STOP_OUTCOMES[kind],
                        error=exc,
                        error_kind=kind,
                        attempts=state.attempt,
                    )

                retries_used = state.attempt - 1
                if kind is ErrorKind.TRANSIENT and retries_used < self.max_retries:
                    state.next_delay = self.backoff_delay(retries_used + 1)
                    logger.warning(
                        "Transient error (attempt %d/%d), retrying in %.1fs: %s",
                        state.attempt,
                        self.max_retries + 1,
                        state.next_delay,
                        exc,
                    )
                    await self._sleep(state.next_delay)
                    continue

                return AttemptResult(
                    outcome=AttemptOutcome.SKIPPED,
                    error=exc,
                    error_kind=kind,
                    attempts=state.attempt,
                )

            return AttemptResult(outcome=AttemptOutcome.OK, value=value, attempts=state.attempt)
