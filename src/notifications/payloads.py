from __future__ import annotations

from typing import Any

from src.models.notification import (
    CallFields,
    CustomFields,
    GroupMessageFields,
    MessageData,
    MessageFields,
    MissedCallFields,
    NotificationPayload,
    Platform,
    PushToken,
)

CLICK_ACTION = "FLUTTER_NOTIFICATION_CLICK"
MESSAGE_CHANNEL_ID = "chat_messages"
CALL_CHANNEL_ID = "incoming_calls"
CALL_RING_DURATION_MS = "60000"
CALL_TTL_SECONDS = 60

MESSAGE_TEXT_LIMIT = 200
GROUP_TEXT_LIMIT = 150


def truncate(text: str, limit: int) -> str:
    return text[:limit] + "..." if len(text) > limit else text


def describe_message_content(message: MessageData, limit: int) -> str:
    if message.text:
        return truncate(message.text, limit)
    if message.image:
        return "📷 Sent a photo"
    if message.audio:
        return "🎵 Sent an audio message"
    if message.video:
        return "🎥 Sent a video"
    if message.file:
        return "📎 Sent a file"
    return "Sent a message"


def _stringify(values: dict[str, Any]) -> dict[str, str]:
    return {key: value if isinstance(value, str) else str(value) for key, value in values.items()}


class PayloadBuilder:
    """Builds one provider message per (notification kind, platform).

    Messages are plain dicts in the gateway's field naming; the provider
    adapter maps them onto its SDK types. Every value in ``data`` is a string.
    """

    def build(self, payload: NotificationPayload, push_token: PushToken) -> dict[str, Any]:
        fields = payload.data
        if isinstance(fields, CallFields):
            if push_token.platform == Platform.IOS:
                return self._ios_call(push_token.token, fields)
            return self._android_call(push_token.token, payload, fields)

        message: dict[str, Any] = {
            "token": push_token.token,
            "notification": {"title": payload.title, "body": payload.body},
            "data": self.data_map(payload),
        }
        if push_token.platform == Platform.IOS:
            message["apns"] = {
                "headers": {"apns-priority": "10"},
                "payload": {
                    "aps": {
                        "sound": "default",
                        "badge": 1,
                        "content-available": 1,
                        "category": "MESSAGE",
                    }
                },
            }
        else:
            message["android"] = {
                "priority": "high",
                "notification": {
                    "sound": "default",
                    "clickAction": CLICK_ACTION,
                    "channelId": MESSAGE_CHANNEL_ID,
                },
            }
        return message

    def data_map(self, payload: NotificationPayload) -> dict[str, str]:
        fields = payload.data
        if isinstance(fields, MessageFields):
            return {
                "type": "message",
                "messageId": fields.message_id,
                "senderId": fields.sender_id,
                "senderName": fields.sender_name,
                "receiverId": fields.receiver_id,
                "groupId": fields.group_id,
                "click_action": CLICK_ACTION,
            }
        if isinstance(fields, GroupMessageFields):
            return {
                "type": "group_message",
                "messageId": fields.message_id,
                "senderId": fields.sender_id,
                "senderName": fields.sender_name,
                "receiverId": fields.receiver_id,
                "groupId": fields.group_id,
                "groupName": fields.group_name,
                "click_action": CLICK_ACTION,
            }
        if isinstance(fields, MissedCallFields):
            return {
                "type": "missed_call",
                "callId": fields.call_id,
                "callerId": fields.caller_id,
                "callerName": fields.caller_name,
                "callType": fields.call_type.value,
                "click_action": CLICK_ACTION,
            }
        if isinstance(fields, CallFields):
            return self._call_data(fields)
        if isinstance(fields, CustomFields):
            return _stringify(fields.values)
        raise TypeError(f"Unsupported notification data: {type(fields).__name__}")

    @staticmethod
    def _call_data(fields: CallFields) -> dict[str, str]:
        # Field names follow flutter_callkit_incoming; the camelCase duplicates
        # are read by the app after the call is accepted.
        return _stringify(
            {
                "id": fields.call_id,
                "nameCaller": fields.caller_name,
                "handle": fields.caller_name,
                "type": "1" if fields.is_video else "0",
                "avatar": fields.caller_avatar,
                "duration": CALL_RING_DURATION_MS,
                "callId": fields.call_id,
                "callerId": fields.caller_id,
                "callerName": fields.caller_name,
                "callerAvatar": fields.caller_avatar,
                "callType": fields.call_type.value,
                "receiverId": fields.receiver_id,
                "timestamp": fields.timestamp,
            }
        )

    def _ios_call(self, token: str, fields: CallFields) -> dict[str, Any]:
        # Data-only: CallKit draws the incoming call screen, so no alert or sound.
        return {
            "token": token,
            "data": self._call_data(fields),
            "apns": {
                "headers": {
                    "apns-priority": "10",
                    "apns-push-type": "background",
                },
                "payload": {"aps": {"content-available": 1}},
            },
        }

    def _android_call(self, token: str, payload: NotificationPayload, fields: CallFields) -> dict[str, Any]:
        return {
            "token": token,
            "notification": {"title": payload.title, "body": payload.body},
            "data": self._call_data(fields),
            "android": {
                "priority": "high",
                "ttl": CALL_TTL_SECONDS,
                "directBootOk": True,
                "notification": {
                    "sound": "default",
                    "clickAction": CLICK_ACTION,
                    "channelId": CALL_CHANNEL_ID,
                    "priority": "max",
                    "visibility": "public",
                    "defaultSound": True,
                    "defaultVibrateTimings": True,
                },
            },
        }
