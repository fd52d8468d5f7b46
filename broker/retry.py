from __future__ import annotations

from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True)
class RetryPolicy:
    """Delay schedule for unbounded retry loops.

    ``multiplier=1.0`` (the default) gives a fixed interval; anything larger
    grows the delay per attempt up to ``max_delay``.
    """

    initial_delay: float
    multiplier: float = 1.0
    max_delay: Optional[float] = None

    @classmethod
    def fixed(cls, seconds: float) -> "RetryPolicy":
        return cls(initial_delay=seconds)

    def delay_for(self, attempt: int) -> float:
        """Seconds to wait after failed attempt number ``attempt`` (1-indexed)."""
        delay = self.initial_delay * (self.multiplier ** max(attempt - 1, 0))
        if self.max_delay is not None:
            delay = min(delay, self.max_delay)
        return max(0.0, delay)
