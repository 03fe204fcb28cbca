"""Tests for playback adapters."""

import pytest

from coursefeed.playback.adapters import (
    AudioAdapter,
    ImageCarouselAdapter,
    QuizAdapter,
    SlideSource,
    TextScrollAdapter,
    VideoAdapter,
    build_adapter,
)
from coursefeed.playback.throttle import StepThrottle
from coursefeed.units.models import ContentType
from tests.fakes import FakeClock, make_settings, make_unit


class Sink:
    """Collects emitted readings."""

    def __init__(self):
        self.readings: list[float] = []

    def __call__(self, unit, pct):
        self.readings.append(pct)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def sink() -> Sink:
    return Sink()


class TestStepThrottle:
    def test_emits_on_step_or_interval(self, clock):
        throttle = StepThrottle(clock, step_pct=2, interval_seconds=2.0)
        assert throttle.should_emit(0.5)
        throttle.mark(0.5)
        assert not throttle.should_emit(1.0)
        assert throttle.should_emit(2.5)
        clock.advance(2.0)
        assert throttle.should_emit(1.0)
        assert not throttle.should_emit(0.5)
        assert throttle.should_emit(0.5, force=True)


class TestMediaAdapter:
    """Video and audio readings from time updates."""

    def test_time_update_maps_to_percentage(self, clock, sink):
        adapter = VideoAdapter(make_unit("v1"), sink, clock)
        adapter.on_time_update(30, 120)
        assert sink.readings == [25.0]

    def test_reading_never_decreases_after_seek_back(self, clock, sink):
        adapter = AudioAdapter(make_unit("a1", ContentType.AUDIO), sink, clock)
        adapter.on_time_update(60, 100)
        adapter.on_time_update(10, 100)
        adapter.on_seek_end()
        assert adapter.max_reading == 60
        assert max(sink.readings) == 60
        assert sink.readings[-1] == 60

    def test_invalid_duration_is_ignored(self, clock, sink):
        adapter = VideoAdapter(make_unit("v1"), sink, clock)
        adapter.on_time_update(10, 0)
        adapter.on_time_update(10, float("nan"))
        assert sink.readings == []

    def test_small_advances_are_throttled(self, clock, sink):
        adapter = VideoAdapter(make_unit("v1"), sink, clock)
        adapter.on_time_update(10, 1000)
        adapter.on_time_update(11, 1000)
        adapter.on_time_update(15, 1000)
        assert sink.readings == pytest.approx([1.0])
        clock.advance(2.5)
        adapter.on_time_update(16, 1000)
        assert sink.readings == pytest.approx([1.0, 1.6])

    def test_pause_forces_emission(self, clock, sink):
        adapter = VideoAdapter(make_unit("v1"), sink, clock)
        adapter.on_time_update(10, 1000)
        adapter.on_time_update(15, 1000)
        adapter.on_pause()
        assert sink.readings[-1] == pytest.approx(1.5)

    def test_ended_reports_full(self, clock, sink):
        adapter = VideoAdapter(make_unit("v1"), sink, clock)
        adapter.on_time_update(50, 100)
        adapter.on_ended()
        assert sink.readings[-1] == 100.0


class TestAssignmentPrompt:
    def test_prompt_fires_once_at_95(self, clock, sink):
        prompts = []
        unit = make_unit("v1", has_assignment=True)
        adapter = VideoAdapter(unit, sink, clock, on_assignment_prompt=prompts.append)
        adapter.on_time_update(90, 100)
        assert prompts == []
        adapter.on_time_update(96, 100)
        adapter.on_ended()
        assert prompts == [unit]

    def test_no_prompt_without_assignment(self, clock, sink):
        prompts = []
        adapter = VideoAdapter(make_unit("v1"), sink, clock, on_assignment_prompt=prompts.append)
        adapter.on_ended()
        assert prompts == []


class TestImageCarousel:
    """Slides viewed, or dwell time for a single image."""

    def test_first_slide_counts_after_settle(self, clock, sink):
        adapter = ImageCarouselAdapter(
            make_unit("i1", ContentType.IMAGE, image_count=4), sink, clock
        )
        adapter.activate()
        adapter.tick()
        assert sink.readings == []
        clock.advance(0.5)
        adapter.tick()
        assert sink.readings == [25.0]

    def test_last_slide_reaches_full(self, clock, sink):
        adapter = ImageCarouselAdapter(
            make_unit("i1", ContentType.IMAGE, image_count=4), sink, clock
        )
        adapter.activate()
        adapter.on_slide_change(3, SlideSource.DOT)
        clock.advance(0.5)
        adapter.tick()
        assert sink.readings == [100.0]

    def test_unsettled_slide_does_not_count(self, clock, sink):
        adapter = ImageCarouselAdapter(
            make_unit("i1", ContentType.IMAGE, image_count=4), sink, clock
        )
        adapter.activate()
        adapter.on_slide_change(3, "swipe")
        clock.advance(0.1)
        adapter.on_slide_change(1, "arrow")
        clock.advance(0.4)
        adapter.tick()
        assert sink.readings == [50.0]

    def test_invalid_slide_rejected(self, clock, sink):
        adapter = ImageCarouselAdapter(
            make_unit("i1", ContentType.IMAGE, image_count=2), sink, clock
        )
        with pytest.raises(ValueError):
            adapter.on_slide_change(5, "swipe")
        with pytest.raises(ValueError):
            adapter.on_slide_change(0, "pinch")

    def test_single_image_needs_full_dwell(self, clock, sink):
        adapter = ImageCarouselAdapter(
            make_unit("i1", ContentType.IMAGE, image_count=1),
            sink,
            clock,
            dwell_seconds=10,
        )
        adapter.activate()
        clock.advance(5)
        adapter.tick()
        assert adapter.max_reading == 50.0

        adapter.deactivate()
        clock.advance(60)
        adapter.activate()
        clock.advance(4)
        adapter.tick()
        assert adapter.max_reading == pytest.approx(90.0)

        clock.advance(1)
        adapter.tick()
        assert sink.readings[-1] == 100.0


class TestTextScroll:
    """Scroll depth and the end-reached edge."""

    def test_scroll_ratio(self, clock, sink):
        adapter = TextScrollAdapter(make_unit("t1", ContentType.TEXT), sink, clock)
        adapter.activate()
        adapter.on_scroll(scroll_top=250, scroll_height=1500, client_height=500)
        assert sink.readings == [25.0]

    def test_end_reached_fires_once(self, clock, sink):
        ends = []
        unit = make_unit("t1", ContentType.TEXT)
        adapter = TextScrollAdapter(unit, sink, clock, on_end_reached=ends.append)
        adapter.activate()
        adapter.on_scroll(990, 1500, 500)
        adapter.on_scroll(1000, 1500, 500)
        assert ends == [unit]

        adapter.deactivate()
        adapter.activate()
        adapter.on_scroll(1000, 1500, 500)
        assert ends == [unit, unit]

    def test_programmatic_scroll_does_not_end(self, clock, sink):
        ends = []
        adapter = TextScrollAdapter(
            make_unit("t1", ContentType.TEXT), sink, clock, on_end_reached=ends.append
        )
        adapter.activate()
        adapter.on_scroll(1000, 1500, 500, user_initiated=False)
        assert ends == []

    def test_layout_reflow_after_user_scroll_does_not_end(self, clock, sink):
        ends = []
        adapter = TextScrollAdapter(
            make_unit("t1", ContentType.TEXT), sink, clock, on_end_reached=ends.append
        )
        adapter.activate()
        adapter.on_scroll(500, 2000, 1000)
        # Content shrank: same offset is now the bottom
        adapter.on_scroll(500, 1500, 1000, user_initiated=False)
        assert ends == []
        assert adapter.max_reading == 100.0

    def test_scroll_without_movement_does_not_end(self, clock, sink):
        ends = []
        adapter = TextScrollAdapter(
            make_unit("t1", ContentType.TEXT), sink, clock, on_end_reached=ends.append
        )
        adapter.activate()
        adapter.on_scroll(500, 2000, 1000)
        adapter.on_scroll(500, 1500, 1000)
        assert ends == []

    def test_reactivation_forgets_previous_offset(self, clock, sink):
        ends = []
        unit = make_unit("t1", ContentType.TEXT)
        adapter = TextScrollAdapter(unit, sink, clock, on_end_reached=ends.append)
        adapter.activate()
        adapter.on_scroll(1200, 2000, 500)
        adapter.deactivate()

        adapter.activate()
        adapter.on_scroll(1000, 1500, 500)
        assert ends == [unit]

    def test_short_text_counts_after_interaction(self, clock, sink):
        adapter = TextScrollAdapter(make_unit("t1", ContentType.TEXT), sink, clock)
        adapter.activate()
        adapter.on_scroll(0, 400, 500, user_initiated=False)
        assert sink.readings == []
        adapter.on_scroll(0, 400, 500)
        assert sink.readings == [100.0]


class TestQuizAdapter:
    """Answered ratio, capped until submission."""

    def test_two_of_three_reads_66(self, clock, sink):
        adapter = QuizAdapter(make_unit("q1", ContentType.QUIZ, question_count=3), sink, clock)
        adapter.on_answer("a")
        adapter.on_answer("b")
        assert adapter.max_reading == 66

    def test_all_answered_is_capped(self, clock, sink):
        adapter = QuizAdapter(make_unit("q1", ContentType.QUIZ, question_count=2), sink, clock)
        adapter.on_answer("a")
        adapter.on_answer("b")
        adapter.on_answer("b")
        assert adapter.max_reading == 99

    def test_submission_lifts_cap(self, clock, sink):
        adapter = QuizAdapter(make_unit("q1", ContentType.QUIZ, question_count=2), sink, clock)
        adapter.on_answer("a")
        adapter.mark_submitted()
        assert sink.readings[-1] == 100.0


class TestBuildAdapter:
    @pytest.mark.parametrize(
        ("content_type", "expected"),
        [
            (ContentType.VIDEO, VideoAdapter),
            (ContentType.AUDIO, AudioAdapter),
            (ContentType.IMAGE, ImageCarouselAdapter),
            (ContentType.TEXT, TextScrollAdapter),
            (ContentType.QUIZ, QuizAdapter),
        ],
    )
    def test_adapter_per_content_type(self, clock, sink, content_type, expected):
        adapter = build_adapter(make_unit("u1", content_type), sink, clock, make_settings())
        assert type(adapter) is expected
