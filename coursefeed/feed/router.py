"""Learner feed API endpoints.

Provides routes for:
- Session start (resolution + reconciliation) and feed views
- Playback signals per unit
- Navigation (jump, next, previous, table of contents, wheel)
- Lifecycle persistence triggers
- Quiz, assignment and forum submissions
- Likes and comments
"""

from fastapi import APIRouter, status

from coursefeed.core.context import set_enrollment_scope
from coursefeed.forum.models import ForumPostPayload

from .dependencies import FEED_ERRORS, FeedRegistryDep, LearnerIdDep, handle_feed_error
from .schemas import (
    AssignmentSubmitRequest,
    CommentResponse,
    CommentThreadResponse,
    CourseContentsResponse,
    CreateCommentRequest,
    FeedResponse,
    ForumPostRequest,
    ForumPostResponse,
    LifecycleRequest,
    LifecycleResponse,
    LikeResponse,
    NavigateRequest,
    NavigationResponse,
    PlaybackSignalRequest,
    QuizSubmitRequest,
    SignalResponse,
    SubmissionResponse,
    UnitResponse,
)


router = APIRouter(prefix="/v1/feed", tags=["feed"])


# ==============================================================================
# Session Endpoints
# ==============================================================================


@router.post(
    "/session",
    response_model=FeedResponse,
    summary="Start feed session",
)
async def start_session(registry: FeedRegistryDep, learner_id: LearnerIdDep) -> FeedResponse:
    """Resolve enrollments, reconcile progress and position the feed.

    Replaces any previous session of the learner in this process.
    """
    try:
        session = await registry.start(learner_id)
    except FEED_ERRORS as e:
        raise handle_feed_error(e) from e
    set_enrollment_scope(session.enrollment_scope)
    return FeedResponse.from_view(session.view())


@router.get(
    "/session",
    response_model=FeedResponse,
    summary="Get feed",
)
async def get_session(registry: FeedRegistryDep, learner_id: LearnerIdDep) -> FeedResponse:
    """Current feed view (gating evaluated fresh for every unit)."""
    try:
        session = registry.get(learner_id)
        await session.refresh_forum_statuses()
        return FeedResponse.from_view(session.view())
    except FEED_ERRORS as e:
        raise handle_feed_error(e) from e


@router.get(
    "/contents",
    response_model=list[CourseContentsResponse],
    summary="Table of contents",
)
async def table_of_contents(
    registry: FeedRegistryDep, learner_id: LearnerIdDep
) -> list[CourseContentsResponse]:
    """Feed grouped by course and lesson with completion counts."""
    try:
        session = registry.get(learner_id)
        await session.refresh_forum_statuses()
        return [CourseContentsResponse.from_contents(c) for c in session.table_of_contents()]
    except FEED_ERRORS as e:
        raise handle_feed_error(e) from e


# ==============================================================================
# Playback Endpoints
# ==============================================================================


@router.post(
    "/progress/{feed_id}/signal",
    response_model=SignalResponse,
    summary="Report playback signal",
)
async def report_signal(
    feed_id: str,
    data: PlaybackSignalRequest,
    registry: FeedRegistryDep,
    learner_id: LearnerIdDep,
) -> SignalResponse:
    """Feed a raw player signal to the unit's adapter.

    Text units that were read to the end may auto-advance the feed; the
    outcome is returned in ``auto_advance``.
    """
    try:
        session = registry.get(learner_id)
        session.last_auto_advance = None
        view = session.record_signal(feed_id, data.signal, **data.model_dump(exclude={"signal"}))
        auto_advance = await session.settle_auto_advance()
        if auto_advance is not None:
            view = session.unit_view(view.index)
        active_index = session.controller.active_index
        return SignalResponse(
            unit=UnitResponse.from_view(view),
            active_index=active_index,
            assignment_prompt=feed_id in session.assignment_prompts,
            auto_advance=(
                NavigationResponse.from_decision(auto_advance, active_index)
                if auto_advance is not None
                else None
            ),
        )
    except FEED_ERRORS as e:
        raise handle_feed_error(e) from e


# ==============================================================================
# Navigation Endpoints
# ==============================================================================


@router.post(
    "/navigate",
    response_model=NavigationResponse,
    summary="Navigate feed",
)
async def navigate(
    data: NavigateRequest,
    registry: FeedRegistryDep,
    learner_id: LearnerIdDep,
) -> NavigationResponse:
    """Move the feed cursor.

    A refused move is a normal response (``allowed=false``) carrying the
    advisory; the cursor does not change.
    """
    try:
        session = registry.get(learner_id)
        if data.action == "jump":
            decision = await session.jump(data.target_index)
        elif data.action == "next":
            decision = await session.next()
        elif data.action == "previous":
            decision = await session.previous()
        elif data.action == "select":
            decision = await session.select(data.feed_id)
        else:
            decision = await session.wheel(
                data.delta, zoom=data.zoom, inside_scrollable=data.inside_scrollable
            )
        return NavigationResponse.from_decision(decision, session.controller.active_index)
    except FEED_ERRORS as e:
        raise handle_feed_error(e) from e


@router.post(
    "/lifecycle",
    response_model=LifecycleResponse,
    summary="Lifecycle event",
)
async def lifecycle(
    data: LifecycleRequest,
    registry: FeedRegistryDep,
    learner_id: LearnerIdDep,
) -> LifecycleResponse:
    """Persist progress on visibility change, teardown or unload."""
    try:
        session = registry.get(learner_id)
        session.lifecycle(data.event)
        if data.event == "teardown":
            await registry.close(learner_id)
        return LifecycleResponse(
            event=data.event,
            pending_remote_writes=len(session.store.dirty),
        )
    except FEED_ERRORS as e:
        raise handle_feed_error(e) from e


# ==============================================================================
# Submission Endpoints
# ==============================================================================


@router.post(
    "/quiz/{feed_id}/submit",
    response_model=SubmissionResponse,
    summary="Submit quiz",
)
async def submit_quiz(
    feed_id: str,
    data: QuizSubmitRequest,
    registry: FeedRegistryDep,
    learner_id: LearnerIdDep,
) -> SubmissionResponse:
    """Grade and store a quiz; a repeated submit returns the first result."""
    try:
        session = registry.get(learner_id)
        result = await session.submit_quiz(feed_id, data.answers, learner_name=data.learner_name)
        return SubmissionResponse.from_result(result)
    except FEED_ERRORS as e:
        raise handle_feed_error(e) from e


@router.post(
    "/assignment/{feed_id}/submit",
    response_model=SubmissionResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Submit assignment",
)
async def submit_assignment(
    feed_id: str,
    data: AssignmentSubmitRequest,
    registry: FeedRegistryDep,
    learner_id: LearnerIdDep,
) -> SubmissionResponse:
    """Deliver an assignment; allowed again until it is graded."""
    try:
        session = registry.get(learner_id)
        result = await session.submit_assignment(
            feed_id,
            data.content,
            file_url=data.file_url,
            learner_name=data.learner_name,
        )
        return SubmissionResponse.from_result(result)
    except FEED_ERRORS as e:
        raise handle_feed_error(e) from e


@router.post(
    "/forum/{feed_id}",
    response_model=ForumPostResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Post forum contribution",
)
async def post_forum_contribution(
    feed_id: str,
    data: ForumPostRequest,
    registry: FeedRegistryDep,
    learner_id: LearnerIdDep,
) -> ForumPostResponse:
    """Post the contribution a forum-required unit asks for."""
    try:
        session = registry.get(learner_id)
        post = await session.contribute_forum(
            feed_id,
            ForumPostPayload(format=data.format, content=data.content, media_url=data.media_url),
        )
        unit = session.unit(feed_id)
        return ForumPostResponse.from_post(
            post, UnitResponse.from_view(session.unit_view(unit.feed_position))
        )
    except FEED_ERRORS as e:
        raise handle_feed_error(e) from e


# ==============================================================================
# Engagement Endpoints
# ==============================================================================


@router.post(
    "/likes/{feed_id}/toggle",
    response_model=LikeResponse,
    summary="Toggle like",
)
async def toggle_like(
    feed_id: str,
    registry: FeedRegistryDep,
    learner_id: LearnerIdDep,
) -> LikeResponse:
    """Like or unlike a unit; failures roll back and return an advisory."""
    try:
        session = registry.get(learner_id)
        return LikeResponse.from_result(await session.toggle_like(feed_id))
    except FEED_ERRORS as e:
        raise handle_feed_error(e) from e


@router.get(
    "/comments/{feed_id}",
    response_model=CommentThreadResponse,
    summary="List comments",
)
async def list_comments(
    feed_id: str,
    registry: FeedRegistryDep,
    learner_id: LearnerIdDep,
) -> CommentThreadResponse:
    """Comment thread: newest roots first, replies in order."""
    try:
        session = registry.get(learner_id)
        nodes = await session.comment_thread(feed_id)
        return CommentThreadResponse(
            feed_id=feed_id,
            total=session.comments.comment_count(feed_id),
            comments=[CommentResponse.from_node(node) for node in nodes],
        )
    except FEED_ERRORS as e:
        raise handle_feed_error(e) from e


@router.post(
    "/comments/{feed_id}",
    response_model=CommentResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Add comment",
)
async def add_comment(
    feed_id: str,
    data: CreateCommentRequest,
    registry: FeedRegistryDep,
    learner_id: LearnerIdDep,
) -> CommentResponse:
    """Publish a comment or a reply."""
    try:
        session = registry.get(learner_id)
        comment = await session.add_comment(
            feed_id,
            data.text,
            parent_id=data.parent_id,
            author_name=data.author_name,
        )
        return CommentResponse(
            comment_id=comment.comment_id,
            author_id=comment.author_id,
            author_name=comment.author_name,
            text=comment.text,
            parent_id=comment.parent_id,
            created_at=comment.created_at,
        )
    except FEED_ERRORS as e:
        raise handle_feed_error(e) from e
