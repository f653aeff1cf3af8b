from __future__ import annotations

import asyncio
import logging
from datetime import datetime

from src.storage.repository import TokenStore
from src.utils.time import utc_now

logger = logging.getLogger(__name__)


class TokenCleanupCoordinator:
    def __init__(self, store: TokenStore) -> None:
        self.store = store

    async def remove_invalid(self, user_id: str, tokens: list[str]) -> int:
        if not tokens:
            return 0
        removed = await asyncio.to_thread(self.store.remove_tokens, user_id, tokens)
        logger.info(
            "Removed invalid push tokens",
            extra={"user_id": user_id, "requested": len(tokens), "removed": removed},
        )
        return removed

    async def persist(
        self,
        user_id: str,
        invalid_tokens: list[str],
        used_tokens: list[str],
        used_at: datetime | None = None,
    ) -> bool:
        """Apply one post-dispatch persistence pass. Returns False if the store failed.

        Failures are logged only: the sends already happened and their counts stand.
        """
        if not invalid_tokens and not used_tokens:
            return True
        try:
            await self.remove_invalid(user_id, invalid_tokens)
            if used_tokens:
                await asyncio.to_thread(self.store.touch_last_used, user_id, used_tokens, used_at or utc_now())
            return True
        except Exception as exc:
            logger.exception(
                "Failed to persist push token updates",
                extra={"user_id": user_id, "invalid": len(invalid_tokens), "error": str(exc)},
            )
            return False
