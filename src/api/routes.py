from __future__ import annotations

import logging

from fastapi import APIRouter, HTTPException
from pydantic import BaseModel

from src.models.notification import (
    CallData,
    CircuitStatus,
    DeliverySummary,
    DeviceRegistration,
    DeviceUnregistration,
    GroupData,
    MessageData,
    Platform,
)
from src.notifications.errors import PersistenceError
from src.notifications.service import NotificationService

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api", tags=["chat-push-engine"])

notification_service = NotificationService()


class MessageNotificationRequest(BaseModel):
    receiver_id: str
    message: MessageData


class GroupMessageNotificationRequest(BaseModel):
    receiver_id: str
    message: MessageData
    group: GroupData


class CallNotificationRequest(BaseModel):
    receiver_id: str
    call: CallData


@router.get("/health")
def health() -> dict:
    return {"status": "ok"}


@router.post("/push/register")
def register_push_token(payload: DeviceRegistration) -> dict:
    if not payload.token:
        raise HTTPException(status_code=400, detail="FCM token is required")
    if payload.platform not in {p.value for p in Platform}:
        raise HTTPException(status_code=400, detail="Valid platform (ios/android) is required")
    try:
        count = notification_service.register_device(
            payload.user_id, payload.platform, payload.token, payload.user_agent
        )
    except PersistenceError as exc:
        logger.exception("Push token registration failed", extra={"user_id": payload.user_id})
        raise HTTPException(status_code=500, detail="Failed to register push token") from exc
    return {"success": True, "message": "Push token registered successfully", "token_count": count}


@router.post("/push/unregister")
def unregister_push_token(payload: DeviceUnregistration) -> dict:
    if not payload.token:
        raise HTTPException(status_code=400, detail="FCM token is required")
    try:
        count = notification_service.unregister_device(payload.user_id, payload.token)
    except PersistenceError as exc:
        logger.exception("Push token unregister failed", extra={"user_id": payload.user_id})
        raise HTTPException(status_code=500, detail="Failed to unregister push token") from exc
    return {"success": True, "message": "Push token unregistered successfully", "token_count": count}


@router.get("/push/tokens/{user_id}")
def get_push_tokens(user_id: str) -> dict:
    try:
        tokens = notification_service.repository.find_tokens_by_user_id(user_id)
    except PersistenceError as exc:
        raise HTTPException(status_code=500, detail="Failed to get push tokens") from exc
    return {"success": True, "tokens": [t.model_dump(mode="json") for t in tokens], "count": len(tokens)}


@router.post("/notifications/message", response_model=DeliverySummary)
async def notify_message(payload: MessageNotificationRequest):
    return await notification_service.notify_message(payload.receiver_id, payload.message)


@router.post("/notifications/group-message", response_model=DeliverySummary)
async def notify_group_message(payload: GroupMessageNotificationRequest):
    return await notification_service.notify_group_message(payload.receiver_id, payload.message, payload.group)


@router.post("/notifications/call", response_model=DeliverySummary)
async def notify_incoming_call(payload: CallNotificationRequest):
    return await notification_service.notify_incoming_call(payload.receiver_id, payload.call)


@router.post("/notifications/missed-call", response_model=DeliverySummary)
async def notify_missed_call(payload: CallNotificationRequest):
    return await notification_service.notify_missed_call(payload.receiver_id, payload.call)


@router.get("/notifications/circuit", response_model=CircuitStatus)
def circuit_status():
    return notification_service.circuit_status()
