"""Wheel/trackpad gesture normalization.

A single physical scroll produces a burst of small wheel deltas. The
normalizer collapses a burst into at most one unit transition: deltas
accumulate until their magnitude reaches a threshold, one direction is
emitted, and further transitions are locked for a cool-down period.
"""

from coursefeed.playback.clock import Clock


DEFAULT_DELTA_THRESHOLD = 120.0
DEFAULT_COOLDOWN_SECONDS = 0.5
DEFAULT_IDLE_RESET_SECONDS = 0.2


class WheelGestureNormalizer:
    """Turns raw wheel deltas into at most one step per gesture."""

    def __init__(
        self,
        clock: Clock,
        delta_threshold: float = DEFAULT_DELTA_THRESHOLD,
        cooldown_seconds: float = DEFAULT_COOLDOWN_SECONDS,
        idle_reset_seconds: float = DEFAULT_IDLE_RESET_SECONDS,
    ):
        self.clock = clock
        self.delta_threshold = delta_threshold
        self.cooldown_seconds = cooldown_seconds
        self.idle_reset_seconds = idle_reset_seconds
        self.accumulated = 0.0
        self._locked_until: float | None = None
        self._last_input_at: float | None = None

    @property
    def locked(self) -> bool:
        return self._locked_until is not None and self.clock.now() < self._locked_until

    def feed(
        self,
        delta: float,
        zoom: bool = False,
        inside_scrollable: bool = False,
    ) -> int | None:
        """Feed one wheel event; returns +1/-1 when a step should happen.

        Zoom gestures (ctrl/meta held) and events coming from an inner
        scrollable region belong to something else and are ignored.
        """
        if zoom or inside_scrollable:
            return None

        now = self.clock.now()
        if (
            self._last_input_at is not None
            and now - self._last_input_at >= self.idle_reset_seconds
        ):
            self.accumulated = 0.0
        self._last_input_at = now

        self.accumulated += delta
        if self.locked or abs(self.accumulated) < self.delta_threshold:
            return None

        direction = 1 if self.accumulated > 0 else -1
        self.accumulated = 0.0
        self._locked_until = now + self.cooldown_seconds
        return direction

    def lock(self) -> None:
        """Start the cool-down now (a late transition went through)."""
        self._locked_until = self.clock.now() + self.cooldown_seconds
        self.accumulated = 0.0

    def unlock(self) -> None:
        """Release the lock right away (the transition was refused)."""
        self._locked_until = None
        self.accumulated = 0.0
