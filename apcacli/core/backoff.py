from __future__ import annotations

import random
from dataclasses import dataclass
from typing import Callable, Optional


def backoff_delay(attempt: int, *, base: float, cap: float) -> float:
    """Upper bound of the delay before retry number `attempt` (0-based)."""
    if attempt < 0:
        attempt = 0
    # 2**attempt overflows floats long before it matters
    if attempt > 62:
        return cap
    return min(cap, base * (2**attempt))


def jittered(bound: float, rng: Callable[[], float] = random.random) -> float:
    return bound / 2 + (bound / 2) * rng()


@dataclass(frozen=True)
class BackoffPolicy:
    base: float = 1.0
    cap: float = 30.0
    jitter: bool = True

    def delay(self, attempt: int, rng: Optional[Callable[[], float]] = None) -> float:
        bound = backoff_delay(attempt, base=self.base, cap=self.cap)
        if not self.jitter:
            return bound
        return jittered(bound, rng or random.random)


DISPATCH_BACKOFF = BackoffPolicy(base=0.5, cap=4.0)
STREAM_BACKOFF = BackoffPolicy(base=1.0, cap=30.0)
