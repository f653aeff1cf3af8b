from __future__ import annotations

import time
from datetime import datetime, timezone


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def epoch_millis() -> int:
    return int(time.time() * 1000)


def elapsed_ms(started: float) -> int:
    return int((time.perf_counter() - started) * 1000)
