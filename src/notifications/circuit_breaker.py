from __future__ import annotations

import logging
import threading
import time
from typing import Callable

from src.models.notification import CircuitStatus

logger = logging.getLogger(__name__)


class CircuitBreaker:
    """Gates push sends on upstream provider health.

    Closed while ``failure_count < threshold``. Once open it stays open until
    ``open_seconds`` have passed since the last recorded failure, then resets
    itself to closed with a zero count. Failures older than ``open_seconds``
    are forgotten below the threshold too. There is no separate half-open state.

    One instance is created at application startup and shared by every
    dispatch; tests build their own with a fake ``clock``.
    """

    def __init__(
        self,
        threshold: int = 5,
        open_seconds: float = 60.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.threshold = threshold
        self.open_seconds = open_seconds
        self._clock = clock
        self._lock = threading.Lock()
        self.failure_count = 0
        self.last_failure_at: float | None = None

    def is_open(self) -> bool:
        with self._lock:
            if self.failure_count < self.threshold:
                return False
            if self.last_failure_at is None:
                return False
            if self._clock() - self.last_failure_at > self.open_seconds:
                logger.info(
                    "Push circuit breaker reset after cool-down",
                    extra={"failure_count": self.failure_count, "open_seconds": self.open_seconds},
                )
                self.failure_count = 0
                self.last_failure_at = None
                return False
            return True

    def record_success(self) -> None:
        with self._lock:
            self.failure_count = 0
            self.last_failure_at = None

    def record_failure(self) -> None:
        # Callers must not report invalid-token rejections here.
        with self._lock:
            now = self._clock()
            if self.last_failure_at is not None and now - self.last_failure_at > self.open_seconds:
                self.failure_count = 0
            self.failure_count += 1
            self.last_failure_at = now
            if self.failure_count == self.threshold:
                logger.warning(
                    "Push circuit breaker opened",
                    extra={"failure_count": self.failure_count, "open_seconds": self.open_seconds},
                )

    def snapshot(self) -> CircuitStatus:
        is_open = self.is_open()
        with self._lock:
            return CircuitStatus(
                open=is_open,
                failure_count=self.failure_count,
                threshold=self.threshold,
                open_seconds=self.open_seconds,
                last_failure_at=self.last_failure_at,
            )
