# Core infrastructure
from coursefeed.core.context import (
    LearnerContext,
    clear_context,
    get_context,
    get_enrollment_scope,
    get_learner_id,
    get_request_id,
    get_trace_id,
    set_enrollment_scope,
    set_learner_id,
    set_request_id,
    set_trace_id,
)
from coursefeed.core.database import init_async_cassandra, shutdown_async_cassandra
from coursefeed.core.logging import configure_structlog, get_logger
from coursefeed.core.middleware import RequestContextMiddleware


__all__ = [
    "LearnerContext",
    "RequestContextMiddleware",
    "clear_context",
    "configure_structlog",
    "get_context",
    "get_enrollment_scope",
    "get_learner_id",
    "get_logger",
    "get_request_id",
    "get_trace_id",
    "init_async_cassandra",
    "set_enrollment_scope",
    "set_learner_id",
    "set_request_id",
    "set_trace_id",
    "shutdown_async_cassandra",
]
