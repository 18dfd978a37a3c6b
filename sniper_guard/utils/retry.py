"""
Retry policy for liquidation attempts.

Linear backoff between attempts: base_delay * attempt_number
(1s, 2s, 3s ... with the default base delay).
"""

from dataclasses import dataclass
from typing import Iterator


@dataclass(frozen=True)
class RetryPolicy:
    """
    Per-position retry schedule.

    Usage:
        policy = RetryPolicy(max_attempts=3, base_delay_sec=1.0)
        for attempt in policy.attempts():
            ...
            if not policy.is_last(attempt):
                await asyncio.sleep(policy.delay_for(attempt))
    """
    max_attempts: int = 3
    base_delay_sec: float = 1.0

    def __post_init__(self):
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        if self.base_delay_sec < 0:
            raise ValueError("base_delay_sec must be >= 0")

    def attempts(self) -> Iterator[int]:
        """Attempt numbers, starting at 1"""
        return iter(range(1, self.max_attempts + 1))

    def is_last(self, attempt: int) -> bool:
        return attempt >= self.max_attempts

    def delay_for(self, attempt: int) -> float:
        """Seconds to wait after a failed `attempt` before the next one"""
        return self.base_delay_sec * attempt
