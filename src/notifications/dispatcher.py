from __future__ import annotations

import asyncio
import logging
import time

from src.models.notification import DeliveryAttemptResult, DeliverySummary, NotificationPayload, PushToken
from src.notifications.circuit_breaker import CircuitBreaker
from src.notifications.cleanup import TokenCleanupCoordinator
from src.notifications.errors import (
    ErrorKind,
    PersistenceError,
    SendTimeoutError,
    StoreTimeoutError,
    error_kind,
    is_terminal_token_error,
)
from src.notifications.payloads import PayloadBuilder
from src.notifications.providers import BaseNotificationProvider
from src.notifications.retry import MESSAGE_RETRY_POLICY, RetryExecutor, RetryPolicy
from src.storage.repository import TokenStore
from src.utils.time import elapsed_ms, utc_now
from src.utils.validation import filter_valid_tokens, mask_token

logger = logging.getLogger(__name__)

NOT_INITIALIZED = "Push provider not initialized"
CIRCUIT_OPEN = "Circuit breaker open - too many failures"
NO_TOKENS = "No push tokens"
NO_VALID_TOKENS = "No valid push tokens"
STORE_TIMEOUT = "Token store timeout"
STORE_UNAVAILABLE = "Token store unavailable"


class DeliveryDispatcher:
    """Fans one notification out to every stored token of a receiver.

    Tokens are sent to one after another so each outcome reaches the circuit
    breaker before the next send; an outage seen on the first token skips the
    rest instead of burning their timeouts.
    """

    def __init__(
        self,
        provider: BaseNotificationProvider,
        store: TokenStore,
        breaker: CircuitBreaker,
        retry: RetryExecutor | None = None,
        builder: PayloadBuilder | None = None,
        cleanup: TokenCleanupCoordinator | None = None,
        load_timeout_seconds: float = 5.0,
    ) -> None:
        self.provider = provider
        self.store = store
        self.breaker = breaker
        self.retry = retry or RetryExecutor()
        self.builder = builder or PayloadBuilder()
        self.cleanup = cleanup or TokenCleanupCoordinator(store)
        self.load_timeout_seconds = load_timeout_seconds

    async def _load_tokens(self, user_id: str) -> list[PushToken]:
        try:
            return await asyncio.wait_for(
                asyncio.to_thread(self.store.find_tokens_by_user_id, user_id),
                timeout=self.load_timeout_seconds,
            )
        except asyncio.TimeoutError as exc:
            raise StoreTimeoutError(STORE_TIMEOUT) from exc

    async def _send_one(self, message: dict, policy: RetryPolicy) -> str:
        # On deadline wait_for cancels the retry task, so no retry outlives it.
        try:
            return await asyncio.wait_for(
                self.retry.run(lambda: self.provider.send(message), policy),
                timeout=policy.send_timeout_seconds,
            )
        except asyncio.TimeoutError as exc:
            raise SendTimeoutError(policy.send_timeout_seconds) from exc

    async def dispatch(
        self,
        user_id: str,
        payload: NotificationPayload,
        policy: RetryPolicy = MESSAGE_RETRY_POLICY,
    ) -> DeliverySummary:
        started = time.perf_counter()

        if not self.provider.is_configured:
            logger.warning("Push provider not initialized, skipping notification", extra={"user_id": user_id})
            return DeliverySummary.failure(NOT_INITIALIZED)

        if self.breaker.is_open():
            logger.warning(
                "Circuit breaker is open, skipping push notification",
                extra={"user_id": user_id, "failure_count": self.breaker.failure_count},
            )
            return DeliverySummary.failure(CIRCUIT_OPEN)

        try:
            stored = await self._load_tokens(user_id)
        except StoreTimeoutError:
            logger.error("Timed out loading push tokens", extra={"user_id": user_id})
            return DeliverySummary.failure(STORE_TIMEOUT, elapsed_ms(started))
        except PersistenceError as exc:
            logger.error("Failed to load push tokens", extra={"user_id": user_id, "error": str(exc)})
            return DeliverySummary.failure(STORE_UNAVAILABLE, elapsed_ms(started))

        if not stored:
            logger.debug("No push tokens found", extra={"user_id": user_id})
            return DeliverySummary.failure(NO_TOKENS, elapsed_ms(started))

        tokens = filter_valid_tokens(stored)
        if not tokens:
            logger.warning("No valid push tokens", extra={"user_id": user_id, "stored": len(stored)})
            return DeliverySummary.failure(NO_VALID_TOKENS, elapsed_ms(started))
        if len(tokens) < len(stored):
            logger.warning(
                "Filtered out malformed push tokens",
                extra={"user_id": user_id, "filtered": len(stored) - len(tokens)},
            )

        logger.info(
            "Sending push notification",
            extra={
                "user_id": user_id,
                "kind": payload.kind,
                "total_tokens": len(stored),
                "valid_tokens": len(tokens),
                "title": payload.title,
            },
        )

        summary = DeliverySummary(total=len(tokens))
        invalid_tokens: list[str] = []
        used_tokens: list[str] = []

        for push_token in tokens:
            if self.breaker.is_open():
                summary.failed += 1
                summary.results.append(
                    DeliveryAttemptResult(
                        token=mask_token(push_token.token),
                        platform=push_token.platform,
                        success=False,
                        error_kind=ErrorKind.PROVIDER_UNAVAILABLE.value,
                        error=CIRCUIT_OPEN,
                    )
                )
                continue

            message = self.builder.build(payload, push_token)
            try:
                message_id = await self._send_one(message, policy)
            except Exception as exc:
                summary.failed += 1
                terminal = is_terminal_token_error(exc)
                logger.error(
                    "Failed to send push",
                    extra={
                        "platform": push_token.platform.value,
                        "token": mask_token(push_token.token),
                        "error": str(exc),
                        "code": getattr(exc, "code", None),
                    },
                )
                if terminal:
                    logger.info(
                        "Marking invalid token for removal",
                        extra={"user_id": user_id, "token": mask_token(push_token.token)},
                    )
                    invalid_tokens.append(push_token.token)
                else:
                    self.breaker.record_failure()
                summary.results.append(
                    DeliveryAttemptResult(
                        token=mask_token(push_token.token),
                        platform=push_token.platform,
                        success=False,
                        error_kind=error_kind(exc).value,
                        error=str(exc),
                        retryable=not terminal,
                    )
                )
                continue

            summary.sent += 1
            self.breaker.record_success()
            push_token.last_used = utc_now()
            used_tokens.append(push_token.token)
            summary.results.append(
                DeliveryAttemptResult(
                    token=mask_token(push_token.token),
                    platform=push_token.platform,
                    success=True,
                    message_id=message_id,
                )
            )

        # One persistence pass: invalid removals plus last_used stamps of delivered tokens.
        await self.cleanup.persist(user_id, invalid_tokens, used_tokens)

        summary.invalid_removed = len(invalid_tokens)
        summary.success = summary.sent > 0
        summary.duration_ms = elapsed_ms(started)

        logger.info(
            "Push notification results",
            extra={
                "user_id": user_id,
                "sent": summary.sent,
                "failed": summary.failed,
                "total": summary.total,
                "invalid_removed": summary.invalid_removed,
                "duration_ms": summary.duration_ms,
            },
        )
        return summary
