"""Request and learner context management using contextvars.

Every HTTP request gets a request ID; feed operations additionally bind the
learner and the enrollment scope they act on, so log lines emitted deep inside
the progress store or the like transaction carry them without threading
parameters through every call.
"""

from contextvars import ContextVar
from typing import Any
from uuid import UUID, uuid4


request_id_var: ContextVar[str] = ContextVar("request_id", default="")
learner_id_var: ContextVar[str | None] = ContextVar("learner_id", default=None)
enrollment_scope_var: ContextVar[str | None] = ContextVar(
    "enrollment_scope", default=None
)
trace_id_var: ContextVar[str | None] = ContextVar("trace_id", default=None)


def generate_request_id() -> str:
    """Generate a new unique request ID."""
    return str(uuid4())


def get_request_id() -> str:
    """Get the current request ID."""
    return request_id_var.get()


def set_request_id(request_id: str | None = None) -> str:
    """Set the request ID for the current context.

    Args:
        request_id: Optional request ID. If not provided, generates a new one.

    Returns:
        The request ID that was set.
    """
    rid = request_id or generate_request_id()
    request_id_var.set(rid)
    return rid


def get_learner_id() -> str | None:
    """Get the current learner ID."""
    return learner_id_var.get()


def set_learner_id(learner_id: str | UUID | None) -> None:
    """Set the learner ID for the current context."""
    learner_id_var.set(str(learner_id) if learner_id is not None else None)


def get_enrollment_scope() -> str | None:
    """Get the enrollment scope progress is being written under."""
    return enrollment_scope_var.get()


def set_enrollment_scope(scope: str | None) -> None:
    """Set the enrollment scope for the current context."""
    enrollment_scope_var.set(scope)


def get_trace_id() -> str | None:
    """Get the current trace ID."""
    return trace_id_var.get()


def set_trace_id(trace_id: str | None) -> None:
    """Set the trace ID from distributed tracing headers."""
    trace_id_var.set(trace_id)


def get_context() -> dict[str, Any]:
    """Get all non-empty context variables as a dictionary."""
    context: dict[str, Any] = {}

    request_id = get_request_id()
    if request_id:
        context["request_id"] = request_id

    learner_id = get_learner_id()
    if learner_id:
        context["learner_id"] = learner_id

    scope = get_enrollment_scope()
    if scope:
        context["enrollment_scope"] = scope

    trace_id = get_trace_id()
    if trace_id:
        context["trace_id"] = trace_id

    return context


def clear_context() -> None:
    """Clear all context variables.

    Called at the end of each request to prevent leakage between requests.
    """
    request_id_var.set("")
    learner_id_var.set(None)
    enrollment_scope_var.set(None)
    trace_id_var.set(None)


class LearnerContext:
    """Context manager binding a learner (and optionally a scope).

    Usage:
        with LearnerContext(learner_id="...", enrollment_scope="..."):
            logger.info("progress_reconciled")  # carries learner_id
    """

    def __init__(
        self,
        learner_id: str | UUID,
        enrollment_scope: str | None = None,
    ) -> None:
        self.learner_id = str(learner_id)
        self.enrollment_scope = enrollment_scope
        self._tokens: list[tuple[ContextVar, Any]] = []

    def __enter__(self) -> "LearnerContext":
        self._tokens.append((learner_id_var, learner_id_var.set(self.learner_id)))
        if self.enrollment_scope is not None:
            self._tokens.append(
                (enrollment_scope_var, enrollment_scope_var.set(self.enrollment_scope))
            )
        return self

    def __exit__(self, *_: object) -> None:
        for var, token in reversed(self._tokens):
            var.reset(token)
        self._tokens.clear()
