from __future__ import annotations

import random
from typing import Optional


def compute_backoff(
    attempt: int,
    base: float = 1.5,
    jitter: float = 0.5,
    cap: Optional[float] = None,
) -> float:
    """Compute exponential backoff with jitter, optionally capped."""
    delay = base ** attempt + random.uniform(0, jitter)
    if cap is not None:
        delay = min(delay, cap)
    return delay
