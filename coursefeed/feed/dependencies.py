"""FastAPI dependencies for the learner feed.

Provides dependency injection for:
- Feed session registry
- Learner identity (X-Learner-ID header)
- Error handlers
"""

from typing import Annotated

from fastapi import Depends, Header, HTTPException, Request, status

from coursefeed.core.context import set_learner_id
from coursefeed.engagement.likes import EngagementError
from coursefeed.forum.service import ForumError
from coursefeed.gating.navigation import GatingError
from coursefeed.progress.service import ProgressError
from coursefeed.submissions.service import SubmissionError

from .registry import FeedSessionRegistry
from .session import FeedError


FEED_ERRORS = (
    FeedError,
    ProgressError,
    GatingError,
    ForumError,
    SubmissionError,
    EngagementError,
)
FeedDomainError = (
    FeedError | ProgressError | GatingError | ForumError | SubmissionError | EngagementError
)


async def get_feed_registry(request: Request) -> FeedSessionRegistry:
    """Get feed session registry from app state.

    Args:
        request: FastAPI request

    Returns:
        FeedSessionRegistry instance
    """
    app_state = request.app.state
    if not hasattr(app_state, "feed_registry") or not app_state.feed_registry:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Feed service not available",
        )
    return app_state.feed_registry


async def get_learner_id(
    x_learner_id: Annotated[str, Header(min_length=1, max_length=128)],
) -> str:
    """Opaque learner identity supplied by the calling surface."""
    learner_id = x_learner_id.strip()
    if not learner_id:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="X-Learner-ID header is empty",
        )
    set_learner_id(learner_id)
    return learner_id


# Type aliases for dependency injection
FeedRegistryDep = Annotated[FeedSessionRegistry, Depends(get_feed_registry)]
LearnerIdDep = Annotated[str, Depends(get_learner_id)]


def handle_feed_error(error: FeedDomainError) -> HTTPException:
    """Convert feed domain errors to HTTP exceptions.

    Args:
        error: Any feed, progress, gating, forum, submission or engagement error

    Returns:
        HTTPException with appropriate status code
    """
    status_map = {
        "unit_not_found": status.HTTP_404_NOT_FOUND,
        "unknown_target": status.HTTP_404_NOT_FOUND,
        "session_not_started": status.HTTP_409_CONFLICT,
        "invalid_signal": status.HTTP_422_UNPROCESSABLE_ENTITY,
        "invalid_lifecycle_event": status.HTTP_422_UNPROCESSABLE_ENTITY,
        "invalid_reading": status.HTTP_422_UNPROCESSABLE_ENTITY,
        "forum_not_required": status.HTTP_409_CONFLICT,
        "invalid_forum_post": status.HTTP_422_UNPROCESSABLE_ENTITY,
        "incomplete_quiz": status.HTTP_422_UNPROCESSABLE_ENTITY,
        "invalid_submission": status.HTTP_422_UNPROCESSABLE_ENTITY,
        "submission_locked": status.HTTP_409_CONFLICT,
        "submission_write_failed": status.HTTP_503_SERVICE_UNAVAILABLE,
        "like_transaction_failed": status.HTTP_503_SERVICE_UNAVAILABLE,
        "comment_write_failed": status.HTTP_503_SERVICE_UNAVAILABLE,
        "invalid_comment": status.HTTP_422_UNPROCESSABLE_ENTITY,
    }

    status_code = status_map.get(error.code, status.HTTP_500_INTERNAL_SERVER_ERROR)

    return HTTPException(
        status_code=status_code,
        detail=error.message,
    )
