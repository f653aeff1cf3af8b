from __future__ import annotations

import asyncio
import logging
import os
import uuid
from abc import ABC, abstractmethod
from datetime import timedelta
from typing import Any

import firebase_admin
from firebase_admin import credentials, exceptions, messaging

from src.notifications.errors import (
    INVALID_ARGUMENT,
    INVALID_REGISTRATION_TOKEN,
    REGISTRATION_TOKEN_NOT_REGISTERED,
    ProviderError,
)

logger = logging.getLogger(__name__)


class BaseNotificationProvider(ABC):
    name: str = "base"

    @property
    def is_configured(self) -> bool:
        return True

    @abstractmethod
    async def send(self, message: dict[str, Any]) -> str:
        """Deliver one message; return the provider message id or raise ProviderError."""
        raise NotImplementedError


class MockNotificationProvider(BaseNotificationProvider):
    name = "mock"

    def __init__(self) -> None:
        self.sent: list[dict[str, Any]] = []

    async def send(self, message: dict[str, Any]) -> str:
        self.sent.append(message)
        return f"mock-{uuid.uuid4().hex[:12]}"


def _translate_firebase_error(exc: exceptions.FirebaseError) -> ProviderError:
    if isinstance(exc, messaging.UnregisteredError):
        return ProviderError(REGISTRATION_TOKEN_NOT_REGISTERED, str(exc))
    if isinstance(exc, messaging.SenderIdMismatchError):
        return ProviderError(INVALID_REGISTRATION_TOKEN, str(exc))
    if isinstance(exc, exceptions.InvalidArgumentError):
        return ProviderError(INVALID_ARGUMENT, str(exc))
    code = (exc.code or "unknown").lower().replace("_", "-")
    return ProviderError(code, str(exc))


def _android_config(block: dict[str, Any]) -> messaging.AndroidConfig:
    note = block.get("notification") or {}
    ttl = block.get("ttl")
    return messaging.AndroidConfig(
        priority=block.get("priority"),
        ttl=timedelta(seconds=ttl) if ttl is not None else None,
        direct_boot_ok=block.get("directBootOk"),
        notification=messaging.AndroidNotification(
            sound=note.get("sound"),
            click_action=note.get("clickAction"),
            channel_id=note.get("channelId"),
            priority=note.get("priority"),
            visibility=note.get("visibility"),
            default_sound=note.get("defaultSound"),
            default_vibrate_timings=note.get("defaultVibrateTimings"),
        )
        if note
        else None,
    )


def _apns_config(block: dict[str, Any]) -> messaging.APNSConfig:
    aps = (block.get("payload") or {}).get("aps") or {}
    return messaging.APNSConfig(
        headers=block.get("headers"),
        payload=messaging.APNSPayload(
            aps=messaging.Aps(
                sound=aps.get("sound"),
                badge=aps.get("badge"),
                content_available=bool(aps.get("content-available")) or None,
                category=aps.get("category"),
            )
        ),
    )


def to_fcm_message(message: dict[str, Any]) -> messaging.Message:
    notification = message.get("notification")
    return messaging.Message(
        token=message["token"],
        data=message.get("data") or {},
        notification=messaging.Notification(title=notification.get("title"), body=notification.get("body"))
        if notification
        else None,
        android=_android_config(message["android"]) if "android" in message else None,
        apns=_apns_config(message["apns"]) if "apns" in message else None,
    )


class FCMNotificationProvider(BaseNotificationProvider):
    name = "fcm"

    def __init__(self, credentials_path: str, app_name: str = "push-engine") -> None:
        self.credentials_path = credentials_path
        self._app: firebase_admin.App | None = None
        self._initialize_app(app_name)

    def _initialize_app(self, app_name: str) -> None:
        if not self.credentials_path:
            logger.warning("Firebase credentials not configured. Mobile push notifications will be disabled.")
            return
        if not os.path.exists(self.credentials_path):
            logger.warning(
                "Firebase service account not found. Mobile push notifications will be disabled.",
                extra={"credentials_path": self.credentials_path},
            )
            return
        try:
            self._app = firebase_admin.get_app(app_name)
            return
        except ValueError:
            pass
        try:
            cert = credentials.Certificate(self.credentials_path)
            self._app = firebase_admin.initialize_app(cert, name=app_name)
            logger.info("Firebase Admin SDK initialized", extra={"project_id": cert.project_id})
        except (ValueError, OSError) as exc:
            logger.error("Failed to initialize Firebase Admin SDK", extra={"error": str(exc)})
            self._app = None

    @property
    def is_configured(self) -> bool:
        return self._app is not None

    async def send(self, message: dict[str, Any]) -> str:
        fcm_message = to_fcm_message(message)
        try:
            return await asyncio.to_thread(messaging.send, fcm_message, app=self._app)
        except exceptions.FirebaseError as exc:
            raise _translate_firebase_error(exc) from exc
