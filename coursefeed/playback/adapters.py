"""Playback adapters: raw player signals -> progress readings.

One adapter per unit. Each adapter converts the signals of its content type
into a percentage, keeps the highest reading observed so far and forwards it
to a sink (normally ``ProgressStore.record_progress``) through a
``StepThrottle``. Adapters never decide completion.
"""

import math
from collections.abc import Callable
from enum import Enum
from typing import Any

import structlog

from coursefeed.progress.models import clamp_pct
from coursefeed.units.models import ContentType, Unit

from .clock import Clock
from .throttle import StepThrottle


logger = structlog.get_logger(__name__)

ProgressSink = Callable[[Unit, float], Any]
UnitCallback = Callable[[Unit], Any]

DEFAULT_ASSIGNMENT_PROMPT_PCT = 95.0
DEFAULT_IMAGE_DWELL_SECONDS = 10.0
DEFAULT_SLIDE_SETTLE_SECONDS = 0.3
DEFAULT_TEXT_END_PCT = 98.0
DEFAULT_QUIZ_CAP_PCT = 99.0


class SlideSource(str, Enum):
    """How the learner moved to another slide."""

    SWIPE = "swipe"
    ARROW = "arrow"
    DOT = "dot"


class PlaybackAdapter:
    """Common watermark and emission handling."""

    def __init__(
        self,
        unit: Unit,
        sink: ProgressSink,
        clock: Clock,
        emit_step_pct: float = 2,
        emit_interval_seconds: float = 2.0,
    ):
        self.unit = unit
        self.sink = sink
        self.clock = clock
        self.throttle = StepThrottle(clock, emit_step_pct, emit_interval_seconds)
        self.max_reading = 0.0
        self.active = False

    def activate(self) -> None:
        self.active = True

    def deactivate(self) -> None:
        self.active = False

    def tick(self) -> None:
        """Advance time-driven state. Only some content types need it."""

    def _observe(self, pct: float, force: bool = False) -> None:
        reading = clamp_pct(pct)
        if reading > self.max_reading:
            self.max_reading = reading
        elif not force:
            return
        if self.throttle.should_emit(self.max_reading, force):
            self._emit()

    def _emit(self) -> None:
        self.throttle.mark(self.max_reading)
        self.sink(self.unit, self.max_reading)


# ==============================================================================
# Media (video, audio)
# ==============================================================================


class MediaAdapter(PlaybackAdapter):
    """Time-update driven adapter for players with a known duration."""

    def on_time_update(self, current_time: float, duration: float) -> None:
        if not duration or duration <= 0 or math.isnan(duration):
            return
        self._observe(current_time / duration * 100)

    def on_pause(self) -> None:
        self._observe(self.max_reading, force=True)

    def on_seek_end(self) -> None:
        self._observe(self.max_reading, force=True)

    def on_ended(self) -> None:
        self._observe(100.0, force=True)


class VideoAdapter(MediaAdapter):
    """Video player adapter with the one-shot assignment prompt."""

    def __init__(
        self,
        unit: Unit,
        sink: ProgressSink,
        clock: Clock,
        on_assignment_prompt: UnitCallback | None = None,
        assignment_prompt_pct: float = DEFAULT_ASSIGNMENT_PROMPT_PCT,
        **kwargs: Any,
    ):
        super().__init__(unit, sink, clock, **kwargs)
        self.on_assignment_prompt = on_assignment_prompt
        self.assignment_prompt_pct = assignment_prompt_pct
        self.assignment_prompted = False

    def _observe(self, pct: float, force: bool = False) -> None:
        super()._observe(pct, force)
        if (
            self.unit.has_assignment
            and not self.assignment_prompted
            and self.max_reading >= self.assignment_prompt_pct
        ):
            self.assignment_prompted = True
            logger.info("assignment_prompted", feed_id=self.unit.feed_id)
            if self.on_assignment_prompt is not None:
                self.on_assignment_prompt(self.unit)


class AudioAdapter(MediaAdapter):
    """Audio player adapter."""


# ==============================================================================
# Image carousel
# ==============================================================================


class ImageCarouselAdapter(PlaybackAdapter):
    """Slides viewed for carousels, dwell time for single images.

    With several slides, a slide counts once the learner stayed on it for
    ``settle_seconds``. A single image counts proportionally to the time it
    was active, and reaches 100 only after ``dwell_seconds``.
    """

    def __init__(
        self,
        unit: Unit,
        sink: ProgressSink,
        clock: Clock,
        dwell_seconds: float = DEFAULT_IMAGE_DWELL_SECONDS,
        settle_seconds: float = DEFAULT_SLIDE_SETTLE_SECONDS,
        **kwargs: Any,
    ):
        super().__init__(unit, sink, clock, **kwargs)
        self.slide_count = max(1, unit.image_count)
        self.dwell_seconds = dwell_seconds
        self.settle_seconds = settle_seconds
        self._pending: tuple[int, float] | None = None
        self._dwell_accumulated = 0.0
        self._dwell_started: float | None = None

    @property
    def is_single_image(self) -> bool:
        return self.slide_count == 1

    def activate(self) -> None:
        super().activate()
        if self.is_single_image:
            if self._dwell_started is None:
                self._dwell_started = self.clock.now()
            self._observe(0.0, force=True)
        else:
            # The first slide is visible as soon as the unit is
            self.on_slide_change(0, SlideSource.SWIPE)

    def deactivate(self) -> None:
        if self._dwell_started is not None:
            self._dwell_accumulated += self.clock.now() - self._dwell_started
            self._dwell_started = None
        self._pending = None
        super().deactivate()

    def on_slide_change(self, index: int, source: SlideSource | str) -> None:
        SlideSource(source)
        if self.is_single_image:
            return
        if not 0 <= index < self.slide_count:
            raise ValueError(f"Slide index {index} out of range")
        self._pending = (index, self.clock.now())

    def dwell_elapsed(self) -> float:
        elapsed = self._dwell_accumulated
        if self._dwell_started is not None:
            elapsed += self.clock.now() - self._dwell_started
        return elapsed

    def tick(self) -> None:
        if self.is_single_image:
            if self._dwell_started is None:
                return
            pct = min(100.0, self.dwell_elapsed() / self.dwell_seconds * 100)
            self._observe(pct, force=pct >= 100.0)
            return

        if self._pending is None:
            return
        index, changed_at = self._pending
        if self.clock.now() - changed_at < self.settle_seconds:
            return
        self._pending = None
        self._observe((index + 1) / self.slide_count * 100, force=True)


# ==============================================================================
# Text
# ==============================================================================


class TextScrollAdapter(PlaybackAdapter):
    """Scroll position of a text container, plus the end-reached edge."""

    def __init__(
        self,
        unit: Unit,
        sink: ProgressSink,
        clock: Clock,
        on_end_reached: UnitCallback | None = None,
        end_pct: float = DEFAULT_TEXT_END_PCT,
        **kwargs: Any,
    ):
        super().__init__(unit, sink, clock, **kwargs)
        self.on_end_reached = on_end_reached
        self.end_pct = end_pct
        self.interacted = False
        self.end_fired = False
        self._last_top = 0.0

    def activate(self) -> None:
        super().activate()
        self.interacted = False
        self.end_fired = False
        self._last_top = 0.0

    def on_scroll(
        self,
        scroll_top: float,
        scroll_height: float,
        client_height: float,
        user_initiated: bool = True,
    ) -> None:
        """Record scroll depth; the end edge needs a downward user scroll.

        Layout events (``user_initiated=False``) move the reading but never
        fire ``on_end_reached``. Text that fits without scrolling ends on
        the first user interaction.
        """
        if user_initiated:
            self.interacted = True

        scrollable = scroll_height - client_height
        if scrollable <= 0:
            if not self.interacted:
                return
            pct = 100.0
            moved_down = True
        else:
            pct = clamp_pct(scroll_top / scrollable * 100)
            moved_down = scroll_top > self._last_top
        self._last_top = scroll_top
        self._observe(pct)

        if (
            pct >= self.end_pct
            and moved_down
            and user_initiated
            and not self.end_fired
        ):
            self.end_fired = True
            if self.on_end_reached is not None:
                self.on_end_reached(self.unit)


# ==============================================================================
# Quiz
# ==============================================================================


class QuizAdapter(PlaybackAdapter):
    """Answered-question ratio, capped until the quiz is submitted."""

    def __init__(
        self,
        unit: Unit,
        sink: ProgressSink,
        clock: Clock,
        cap_pct: float = DEFAULT_QUIZ_CAP_PCT,
        **kwargs: Any,
    ):
        super().__init__(unit, sink, clock, **kwargs)
        self.cap_pct = cap_pct
        self.answered: set[str] = set()
        self.submitted = False

    def on_answer(self, question_id: str) -> None:
        self.answered.add(str(question_id))
        total = self.unit.question_count
        if total <= 0:
            return
        pct = math.floor(min(len(self.answered), total) / total * 100)
        if not self.submitted:
            pct = min(pct, self.cap_pct)
        self._observe(pct)

    def mark_submitted(self) -> None:
        self.submitted = True
        self._observe(100.0, force=True)

    def restore_submitted(self) -> None:
        """Existing submission found at load: lift the cap without re-grading."""
        self.mark_submitted()


# ==============================================================================
# Factory
# ==============================================================================


def build_adapter(
    unit: Unit,
    sink: ProgressSink,
    clock: Clock,
    settings: Any,
    on_assignment_prompt: UnitCallback | None = None,
    on_end_reached: UnitCallback | None = None,
) -> PlaybackAdapter:
    """Create the adapter matching the content type of a unit."""
    common = {
        "emit_step_pct": settings.playback_emit_step_pct,
        "emit_interval_seconds": settings.playback_emit_interval_seconds,
    }
    if unit.content_type == ContentType.AUDIO:
        return AudioAdapter(unit, sink, clock, **common)
    if unit.content_type == ContentType.IMAGE:
        return ImageCarouselAdapter(
            unit,
            sink,
            clock,
            dwell_seconds=settings.image_dwell_seconds,
            settle_seconds=settings.slide_settle_seconds,
            **common,
        )
    if unit.content_type == ContentType.TEXT:
        return TextScrollAdapter(
            unit,
            sink,
            clock,
            on_end_reached=on_end_reached,
            end_pct=settings.text_end_pct,
            **common,
        )
    if unit.content_type == ContentType.QUIZ:
        return QuizAdapter(unit, sink, clock, cap_pct=settings.quiz_cap_pct, **common)
    return VideoAdapter(
        unit,
        sink,
        clock,
        on_assignment_prompt=on_assignment_prompt,
        assignment_prompt_pct=settings.assignment_prompt_pct,
        **common,
    )
