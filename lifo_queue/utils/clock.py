import time
from typing import Optional

def now_ms() -> int:
    """Wall-clock time as integer milliseconds since the epoch."""
    return time.time_ns() // 1_000_000

def resolve_now(now: Optional[int]) -> int:
    return now_ms() if now is None else now
