from __future__ import annotations

import threading
from abc import ABC, abstractmethod
from collections import defaultdict
from datetime import datetime
from typing import Iterable

from src.models.notification import Platform, PushToken
from src.utils.time import utc_now


class TokenStore(ABC):
    """Per-user push token collection. Tokens are unique within a user by value."""

    @abstractmethod
    def register(self, user_id: str, platform: str, token: str, user_agent: str | None = None) -> int:
        raise NotImplementedError

    @abstractmethod
    def unregister(self, user_id: str, token: str) -> int:
        raise NotImplementedError

    @abstractmethod
    def find_tokens_by_user_id(self, user_id: str) -> list[PushToken]:
        raise NotImplementedError

    @abstractmethod
    def remove_tokens(self, user_id: str, tokens: Iterable[str]) -> int:
        raise NotImplementedError

    @abstractmethod
    def touch_last_used(self, user_id: str, tokens: Iterable[str], at: datetime | None = None) -> int:
        raise NotImplementedError

    def list_tokens(self, user_id: str, platform: str | None = None) -> list[str]:
        records = self.find_tokens_by_user_id(user_id)
        if platform:
            return [r.token for r in records if r.platform.value == platform]
        return [r.token for r in records]


class DeviceRepository(TokenStore):
    def __init__(self) -> None:
        self._devices: dict[str, list[PushToken]] = defaultdict(list)
        self._lock = threading.Lock()

    def register(self, user_id: str, platform: str, token: str, user_agent: str | None = None) -> int:
        now = utc_now()
        with self._lock:
            existing = next((d for d in self._devices[user_id] if d.token == token), None)
            devices = [d for d in self._devices[user_id] if d.token != token]
            devices.append(
                PushToken(
                    token=token,
                    platform=Platform(platform),
                    user_agent=user_agent or "Unknown",
                    last_used=now,
                    created_at=existing.created_at if existing else now,
                )
            )
            self._devices[user_id] = devices
            return len(devices)

    def unregister(self, user_id: str, token: str) -> int:
        self.remove_tokens(user_id, [token])
        with self._lock:
            return len(self._devices.get(user_id, []))

    def find_tokens_by_user_id(self, user_id: str) -> list[PushToken]:
        with self._lock:
            return [d.model_copy() for d in self._devices.get(user_id, [])]

    def remove_tokens(self, user_id: str, tokens: Iterable[str]) -> int:
        doomed = set(tokens)
        with self._lock:
            devices = self._devices.get(user_id, [])
            kept = [d for d in devices if d.token not in doomed]
            self._devices[user_id] = kept
            return len(devices) - len(kept)

    def touch_last_used(self, user_id: str, tokens: Iterable[str], at: datetime | None = None) -> int:
        stamp = at or utc_now()
        used = set(tokens)
        touched = 0
        with self._lock:
            for device in self._devices.get(user_id, []):
                if device.token in used:
                    device.last_used = stamp
                    touched += 1
        return touched
