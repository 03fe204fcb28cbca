"""Playback adapters turning raw player signals into progress readings."""

from .adapters import (
    AudioAdapter,
    ImageCarouselAdapter,
    MediaAdapter,
    PlaybackAdapter,
    QuizAdapter,
    SlideSource,
    TextScrollAdapter,
    VideoAdapter,
    build_adapter,
)
from .clock import Clock, MonotonicClock
from .throttle import StepThrottle


__all__ = [
    "AudioAdapter",
    "Clock",
    "ImageCarouselAdapter",
    "MediaAdapter",
    "MonotonicClock",
    "PlaybackAdapter",
    "QuizAdapter",
    "SlideSource",
    "StepThrottle",
    "TextScrollAdapter",
    "VideoAdapter",
    "build_adapter",
]
