"""Feed navigation and same-course gating."""

from .gestures import WheelGestureNormalizer
from .navigation import (
    FORUM_REQUIRED_MESSAGE,
    PROGRESS_INCOMPLETE_MESSAGE,
    FeedSequence,
    GatingController,
    GatingError,
    NavigationDecision,
    NavigationReason,
    UnknownTargetError,
)


__all__ = [
    "FORUM_REQUIRED_MESSAGE",
    "PROGRESS_INCOMPLETE_MESSAGE",
    "FeedSequence",
    "GatingController",
    "GatingError",
    "NavigationDecision",
    "NavigationReason",
    "UnknownTargetError",
    "WheelGestureNormalizer",
]
