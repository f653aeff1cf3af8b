from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, TypeVar

from src.config import settings
from src.notifications.errors import is_terminal_token_error

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class RetryPolicy:
    max_attempts: int
    base_delay_seconds: float
    send_timeout_seconds: float

    def delay_for(self, attempt_index: int) -> float:
        return self.base_delay_seconds * (2**attempt_index)


MESSAGE_RETRY_POLICY = RetryPolicy(
    max_attempts=settings.message_max_attempts,
    base_delay_seconds=settings.message_base_delay_ms / 1000,
    send_timeout_seconds=settings.send_timeout_seconds,
)

CALL_RETRY_POLICY = RetryPolicy(
    max_attempts=settings.call_max_attempts,
    base_delay_seconds=settings.call_base_delay_ms / 1000,
    send_timeout_seconds=settings.call_send_timeout_seconds,
)


class RetryExecutor:
    def __init__(self, sleep: Callable[[float], Awaitable[None]] = asyncio.sleep) -> None:
        self._sleep = sleep

    async def run(self, operation: Callable[[], Awaitable[T]], policy: RetryPolicy) -> T:
        """Run ``operation`` up to ``policy.max_attempts`` times.

        Terminal token errors are re-raised at once. Anything else is retried
        after ``base * 2**attempt`` seconds until the budget runs out, then
        the last error propagates.
        """
        for attempt in range(max(1, policy.max_attempts) - 1):
            try:
                return await operation()
            except Exception as exc:
                if is_terminal_token_error(exc):
                    raise
                delay = policy.delay_for(attempt)
                logger.debug(
                    "Push attempt failed, retrying",
                    extra={"attempt": attempt + 1, "delay_seconds": delay, "error": str(exc)},
                )
                await self._sleep(delay)
        return await operation()
