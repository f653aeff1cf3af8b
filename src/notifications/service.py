from __future__ import annotations

import logging
from typing import Any, Mapping, Optional, TypeVar, Union

from pydantic import BaseModel, ValidationError

from src.config import Settings, get_settings
from src.models.notification import (
    CallData,
    CallFields,
    CircuitStatus,
    DeliverySummary,
    GroupData,
    GroupMessageFields,
    MessageData,
    MessageFields,
    MissedCallFields,
    NotificationPayload,
)
from src.notifications.circuit_breaker import CircuitBreaker
from src.notifications.dispatcher import DeliveryDispatcher
from src.notifications.payloads import GROUP_TEXT_LIMIT, MESSAGE_TEXT_LIMIT, describe_message_content
from src.notifications.providers import (
    BaseNotificationProvider,
    FCMNotificationProvider,
    MockNotificationProvider,
)
from src.notifications.retry import CALL_RETRY_POLICY, MESSAGE_RETRY_POLICY, RetryExecutor
from src.storage.repository import DeviceRepository, TokenStore
from src.utils.time import epoch_millis

logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT", bound=BaseModel)


class InvalidNotificationInput(ValueError):
    pass


def _coerce(model: type[ModelT], value: Union[ModelT, Mapping[str, Any], None], missing: str) -> ModelT:
    if value is None:
        raise InvalidNotificationInput(missing)
    if isinstance(value, model):
        return value
    try:
        return model.model_validate(value)
    except ValidationError as exc:
        first = exc.errors()[0]
        location = ".".join(str(part) for part in first.get("loc", ()))
        raise InvalidNotificationInput(f"{location}: {first.get('msg')}" if location else first.get("msg")) from exc


def build_provider(settings: Settings) -> BaseNotificationProvider:
    if settings.notification_provider == "fcm":
        return FCMNotificationProvider(settings.firebase_credentials_path)
    return MockNotificationProvider()


def build_store(settings: Settings) -> TokenStore:
    if settings.token_store == "sql":
        from src.storage.sql_repository import SqlTokenRepository

        return SqlTokenRepository()
    return DeviceRepository()


class NotificationService:
    """Caller-facing entry points for mobile push.

    Each ``notify_*`` method validates its input, renders the title, body and
    typed data block, and hands the payload to the dispatcher. None of them
    raise: validation problems and unexpected errors come back as a failed
    ``DeliverySummary`` with ``error`` set.
    """

    def __init__(
        self,
        repository: TokenStore | None = None,
        provider: BaseNotificationProvider | None = None,
        breaker: CircuitBreaker | None = None,
        retry: RetryExecutor | None = None,
        settings: Settings | None = None,
    ) -> None:
        settings = settings or get_settings()
        self.repository = repository or build_store(settings)
        self.provider = provider or build_provider(settings)
        self.breaker = breaker or CircuitBreaker(
            threshold=settings.circuit_threshold,
            open_seconds=settings.circuit_open_seconds,
        )
        self.dispatcher = DeliveryDispatcher(
            provider=self.provider,
            store=self.repository,
            breaker=self.breaker,
            retry=retry,
            load_timeout_seconds=settings.token_load_timeout_seconds,
        )

    def register_device(self, user_id: str, platform: str, token: str, user_agent: Optional[str] = None) -> int:
        return self.repository.register(user_id, platform, token, user_agent)

    def unregister_device(self, user_id: str, token: str) -> int:
        return self.repository.unregister(user_id, token)

    def circuit_status(self) -> CircuitStatus:
        return self.breaker.snapshot()

    async def send_to_user(self, user_id: str, payload: NotificationPayload | None) -> DeliverySummary:
        if not user_id:
            logger.warning("user_id is required")
            return DeliverySummary.failure("user_id is required")
        if payload is None or not payload.title:
            logger.warning("payload.title is required", extra={"user_id": user_id})
            return DeliverySummary.failure("payload.title is required")
        try:
            return await self.dispatcher.dispatch(user_id, payload, MESSAGE_RETRY_POLICY)
        except Exception as exc:
            logger.exception("Error sending mobile push notification", extra={"user_id": user_id})
            return DeliverySummary.failure(str(exc))

    async def notify_message(
        self,
        receiver_id: str,
        message_data: Union[MessageData, Mapping[str, Any], None],
    ) -> DeliverySummary:
        try:
            if not receiver_id:
                raise InvalidNotificationInput("receiver_id is required")
            message = _coerce(MessageData, message_data, "message_data is required")
            sender_name = message.sender_name or "Someone"
            payload = NotificationPayload(
                title=f"New message from {sender_name}",
                body=describe_message_content(message, MESSAGE_TEXT_LIMIT),
                data=MessageFields(
                    message_id=message.id,
                    sender_id=message.sender_id,
                    sender_name=sender_name,
                    receiver_id=str(receiver_id),
                    group_id=message.group_id or "",
                ),
            )
        except InvalidNotificationInput as exc:
            logger.warning("Rejected message notification", extra={"receiver_id": receiver_id, "error": str(exc)})
            return DeliverySummary.failure(str(exc))
        return await self.send_to_user(str(receiver_id), payload)

    async def notify_group_message(
        self,
        receiver_id: str,
        message_data: Union[MessageData, Mapping[str, Any], None],
        group_data: Union[GroupData, Mapping[str, Any], None],
    ) -> DeliverySummary:
        try:
            if not receiver_id:
                raise InvalidNotificationInput("receiver_id is required")
            message = _coerce(MessageData, message_data, "message_data is required")
            group = _coerce(GroupData, group_data, "group_data is required")
            sender_name = message.sender_name or "Someone"
            group_name = group.name or "Group"
            payload = NotificationPayload(
                title=group_name,
                body=f"{sender_name}: {describe_message_content(message, GROUP_TEXT_LIMIT)}",
                data=GroupMessageFields(
                    message_id=message.id,
                    sender_id=message.sender_id,
                    sender_name=sender_name,
                    receiver_id=str(receiver_id),
                    group_id=group.id,
                    group_name=group_name,
                ),
            )
        except InvalidNotificationInput as exc:
            logger.warning("Rejected group message notification", extra={"receiver_id": receiver_id, "error": str(exc)})
            return DeliverySummary.failure(str(exc))
        return await self.send_to_user(str(receiver_id), payload)

    async def notify_incoming_call(
        self,
        receiver_id: str,
        call_data: Union[CallData, Mapping[str, Any], None],
    ) -> DeliverySummary:
        try:
            if not receiver_id:
                raise InvalidNotificationInput("Missing required call data")
            call = _coerce(CallData, call_data, "Missing required call data")
        except InvalidNotificationInput as exc:
            logger.warning("Rejected call notification", extra={"receiver_id": receiver_id, "error": str(exc)})
            return DeliverySummary.failure("Missing required call data")

        caller_name = call.caller_name or "Unknown"
        payload = NotificationPayload(
            title=f"Incoming {call.call_type.value} call",
            body=f"{caller_name} is calling you",
            data=CallFields(
                call_id=call.call_id,
                caller_id=call.caller_id,
                caller_name=caller_name,
                caller_avatar=call.caller_avatar or "",
                call_type=call.call_type,
                receiver_id=str(receiver_id),
                timestamp=epoch_millis(),
            ),
        )
        logger.info(
            "Sending call notification",
            extra={"receiver_id": receiver_id, "call_id": call.call_id, "call_type": call.call_type.value},
        )
        try:
            return await self.dispatcher.dispatch(str(receiver_id), payload, CALL_RETRY_POLICY)
        except Exception as exc:
            logger.exception(
                "Error sending mobile call notification",
                extra={"receiver_id": receiver_id, "call_id": call.call_id},
            )
            return DeliverySummary.failure(str(exc))

    async def notify_missed_call(
        self,
        receiver_id: str,
        call_data: Union[CallData, Mapping[str, Any], None],
    ) -> DeliverySummary:
        try:
            if not receiver_id:
                raise InvalidNotificationInput("receiver_id is required")
            call = _coerce(CallData, call_data, "Missing required call data")
        except InvalidNotificationInput as exc:
            logger.warning("Rejected missed call notification", extra={"receiver_id": receiver_id, "error": str(exc)})
            return DeliverySummary.failure(str(exc))

        caller_name = call.caller_name or "Unknown"
        payload = NotificationPayload(
            title="Missed call",
            body=f"You missed a {call.call_type.value} call from {caller_name}",
            data=MissedCallFields(
                call_id=call.call_id,
                caller_id=call.caller_id,
                caller_name=caller_name,
                call_type=call.call_type,
            ),
        )
        return await self.send_to_user(str(receiver_id), payload)
