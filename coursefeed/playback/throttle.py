"""Emission throttle for raw playback readings."""

from .clock import Clock


class StepThrottle:
    """Decides whether a reading is worth forwarding to the progress store.

    A reading is emitted when it advanced at least ``step_pct`` points since
    the previous emission, or when ``interval_seconds`` elapsed and the
    reading still increased. Forced emissions always pass.
    """

    def __init__(self, clock: Clock, step_pct: float = 2, interval_seconds: float = 2.0):
        self.clock = clock
        self.step_pct = step_pct
        self.interval_seconds = interval_seconds
        self.last_pct: float | None = None
        self.last_at: float | None = None

    def should_emit(self, pct: float, force: bool = False) -> bool:
        if force or self.last_pct is None:
            return True
        if pct <= self.last_pct:
            return False
        if pct - self.last_pct >= self.step_pct:
            return True
        return self.clock.now() - (self.last_at or 0.0) >= self.interval_seconds

    def mark(self, pct: float) -> None:
        self.last_pct = pct
        self.last_at = self.clock.now()

    def reset(self) -> None:
        self.last_pct = None
        self.last_at = None
