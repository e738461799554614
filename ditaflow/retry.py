"""Caller-level retry for whole DITA-OT invocations."""

from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Callable, Optional, TypeVar

from .logging import get_logger

T = TypeVar("T")


@dataclass(frozen=True)
class RetryPolicy:
    """Bounded attempts with exponential backoff (1s, 2s, 4s, ... capped)."""

    attempts: int = 1
    base_delay: float = 1.0
    max_delay: float = 30.0

    def delay(self, attempt: int) -> float:
        """Delay before retrying after failed attempt number ``attempt`` (1-based)."""
        return min(self.max_delay, self.base_delay * (2 ** (attempt - 1)))

    def run(
        self,
        operation: Callable[[int], T],
        *,
        should_retry: Callable[[T], bool],
        sleep: Callable[[float], None] = time.sleep,
        on_retry: Optional[Callable[[int, T], None]] = None,
    ) -> T:
        """Call ``operation(attempt)`` until ``should_retry`` is false or attempts run out."""
        logger = get_logger("retry")
        attempts = max(1, self.attempts)
        attempt = 1
        while True:
            outcome = operation(attempt)
            if attempt >= attempts or not should_retry(outcome):
                return outcome
            delay = self.delay(attempt)
            logger.warning(
                "Attempt %d of %d failed; retrying in %.0fs", attempt, attempts, delay
            )
            if on_retry is not None:
                on_retry(attempt, outcome)
            sleep(delay)
            attempt += 1


__all__ = ["RetryPolicy"]
