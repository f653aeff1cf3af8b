from __future__ import annotations

from typing import Any

from src.notifications.errors import ProviderError
from src.notifications.providers import BaseNotificationProvider


def make_token(label: str, length: int = 64) -> str:
    return (label + "-" + "x" * length)[:length]


class FakeClock:
    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class RecordingSleep:
    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


class ScriptedProvider(BaseNotificationProvider):
    """Answers per token: "error:<code>" raises ProviderError, a list is consumed per call."""

    name = "scripted"

    def __init__(self, outcomes: dict[str, Any] | None = None, configured: bool = True) -> None:
        self.outcomes = outcomes or {}
        self.configured = configured
        self.calls: list[dict[str, Any]] = []

    @property
    def is_configured(self) -> bool:
        return self.configured

    async def send(self, message: dict[str, Any]) -> str:
        self.calls.append(message)
        outcome = self.outcomes.get(message["token"])
        if isinstance(outcome, list):
            outcome = outcome.pop(0) if outcome else None
        if isinstance(outcome, BaseException):
            raise outcome
        if isinstance(outcome, str) and outcome.startswith("error:"):
            raise ProviderError(outcome.removeprefix("error:"))
        return f"msg-{len(self.calls)}"

