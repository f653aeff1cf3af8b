from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Annotated, Any, Literal, Optional, Union

from pydantic import BaseModel, Field, field_validator


class Platform(str, Enum):
    IOS = "ios"
    ANDROID = "android"


class CallType(str, Enum):
    VOICE = "voice"
    VIDEO = "video"


class PushToken(BaseModel):
    token: str
    platform: Platform
    last_used: Optional[datetime] = None
    created_at: Optional[datetime] = None
    user_agent: str = "Unknown"


class DeviceRegistration(BaseModel):
    user_id: str
    platform: str = ""
    token: str = ""
    user_agent: Optional[str] = None


class DeviceUnregistration(BaseModel):
    user_id: str
    token: str = ""


# Caller-facing inputs. The chat/call domain hands these to the facade.


class MessageData(BaseModel):
    id: str = Field(min_length=1)
    sender_id: str = Field(min_length=1)
    sender_name: Optional[str] = None
    text: Optional[str] = None
    image: Optional[str] = None
    audio: Optional[str] = None
    video: Optional[str] = None
    file: Optional[str] = None
    group_id: Optional[str] = None

    @field_validator("id", "sender_id", "group_id", mode="before")
    @classmethod
    def _stringify_ids(cls, value: Any) -> Any:
        if value is None or isinstance(value, str):
            return value
        return str(value)


class GroupData(BaseModel):
    id: str = Field(min_length=1)
    name: Optional[str] = None

    @field_validator("id", mode="before")
    @classmethod
    def _stringify_id(cls, value: Any) -> Any:
        if value is None or isinstance(value, str):
            return value
        return str(value)


class CallData(BaseModel):
    call_id: str = Field(min_length=1)
    caller_id: str = Field(min_length=1)
    caller_name: Optional[str] = None
    caller_avatar: Optional[str] = None
    call_type: CallType = CallType.VOICE

    @field_validator("call_id", "caller_id", mode="before")
    @classmethod
    def _stringify_ids(cls, value: Any) -> Any:
        if value is None or isinstance(value, str):
            return value
        return str(value)

    @property
    def is_video(self) -> bool:
        return self.call_type == CallType.VIDEO


# Typed data blocks, one per notification kind. PayloadBuilder flattens them
# into the provider's string-only data map.


class MessageFields(BaseModel):
    kind: Literal["message"] = "message"
    message_id: str
    sender_id: str
    sender_name: str
    receiver_id: str
    group_id: str = ""


class GroupMessageFields(BaseModel):
    kind: Literal["group_message"] = "group_message"
    message_id: str
    sender_id: str
    sender_name: str
    receiver_id: str
    group_id: str
    group_name: str


class CallFields(BaseModel):
    kind: Literal["call"] = "call"
    call_id: str
    caller_id: str
    caller_name: str
    caller_avatar: str = ""
    call_type: CallType = CallType.VOICE
    receiver_id: str
    timestamp: int

    @property
    def is_video(self) -> bool:
        return self.call_type == CallType.VIDEO


class MissedCallFields(BaseModel):
    kind: Literal["missed_call"] = "missed_call"
    call_id: str
    caller_id: str
    caller_name: str
    call_type: CallType = CallType.VOICE


class CustomFields(BaseModel):
    kind: Literal["custom"] = "custom"
    values: dict[str, Any] = {}


NotificationData = Annotated[
    Union[MessageFields, GroupMessageFields, CallFields, MissedCallFields, CustomFields],
    Field(discriminator="kind"),
]


class NotificationPayload(BaseModel):
    title: str = ""
    body: str = ""
    data: NotificationData = Field(default_factory=CustomFields)

    @property
    def kind(self) -> str:
        return self.data.kind


class DeliveryAttemptResult(BaseModel):
    token: str
    platform: Platform
    success: bool
    message_id: Optional[str] = None
    error_kind: Optional[str] = None
    error: Optional[str] = None
    retryable: bool = False


class DeliverySummary(BaseModel):
    success: bool = False
    sent: int = 0
    failed: int = 0
    total: int = 0
    invalid_removed: int = 0
    duration_ms: int = 0
    error: Optional[str] = None
    results: list[DeliveryAttemptResult] = []

    @classmethod
    def failure(cls, error: str, duration_ms: int = 0) -> "DeliverySummary":
        return cls(success=False, error=error, duration_ms=duration_ms)


class CircuitStatus(BaseModel):
    open: bool
    failure_count: int
    threshold: int
    open_seconds: float
    last_failure_at: Optional[float] = None
