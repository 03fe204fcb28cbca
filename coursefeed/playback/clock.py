"""Time sources for playback adapters and gesture handling."""

import time
from typing import Protocol


class Clock(Protocol):
    """Anything that returns seconds from an arbitrary, monotonic origin."""

    def now(self) -> float: ...


class MonotonicClock:
    """Production clock (immune to wall-clock adjustments)."""

    def now(self) -> float:
        return time.monotonic()
