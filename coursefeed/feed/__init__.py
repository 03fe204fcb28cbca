"""Learner feed: per-learner sessions and the HTTP surface."""

from .registry import FeedSessionRegistry, build_cassandra_backends
from .router import router
from .session import (
    FeedBackends,
    FeedError,
    FeedView,
    InvalidSignalError,
    LearnerFeedSession,
    SessionNotStartedError,
    UnitNotFoundError,
    UnitView,
)


__all__ = [
    "FeedBackends",
    "FeedError",
    "FeedSessionRegistry",
    "FeedView",
    "InvalidSignalError",
    "LearnerFeedSession",
    "SessionNotStartedError",
    "UnitNotFoundError",
    "UnitView",
    "build_cassandra_backends",
    "router",
]
