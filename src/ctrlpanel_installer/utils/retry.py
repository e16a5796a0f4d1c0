"""Bounded retry with a fixed delay between attempts."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Any, Callable, Generic, Optional, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class RetryOutcome(Generic[T]):
    """Last result returned by the wrapped call plus the attempt count."""

    result: Optional[T]
    attempts: int
    succeeded: bool


class RetryPolicy:
    """
    Retry a flaky collaborator call a fixed number of times.

    No jitter and no exponential growth: every failed attempt is followed by
    the same ``delay`` (except the last one, which returns immediately).
    """

    def __init__(
        self,
        max_attempts: int = 3,
        delay: float = 10.0,
        sleep: Callable[[float], Any] = time.sleep,
    ) -> None:
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self.max_attempts = max_attempts
        self.delay = delay
        self._sleep = sleep

    def call(
        self,
        func: Callable[[], T],
        is_success: Callable[[T], bool] = lambda result: bool(getattr(result, "ok", result)),
        label: str = "operation",
    ) -> RetryOutcome[T]:
        result: Optional[T] = None
        for attempt in range(1, self.max_attempts + 1):
            result = func()
            if is_success(result):
                return RetryOutcome(result=result, attempts=attempt, succeeded=True)
            if attempt < self.max_attempts:
                logger.warning(
                    f"   ⚠️ {label} failed (attempt {attempt}/{self.max_attempts}), "
                    f"retrying in {self.delay:g}s"
                )
                self._sleep(self.delay)
        logger.error(f"   ❌ {label} failed after {self.max_attempts} attempts")
        return RetryOutcome(result=result, attempts=self.max_attempts, succeeded=False)
