from __future__ import annotations

from typing import Iterable

from src.config import settings
from src.models.notification import PushToken


def is_valid_push_token(
    token: object,
    min_length: int = settings.token_min_length,
    max_length: int = settings.token_max_length,
) -> bool:
    # Structural pre-filter only; the provider still has the final word.
    if not token or not isinstance(token, str):
        return False
    return min_length <= len(token) <= max_length


def filter_valid_tokens(tokens: Iterable[PushToken]) -> list[PushToken]:
    return [t for t in tokens if is_valid_push_token(t.token)]


def mask_token(token: str) -> str:
    return f"{token[:20]}..."
