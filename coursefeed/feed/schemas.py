"""Pydantic schemas for the learner feed API.

Request and response models for:
- Session start and feed views
- Playback signals
- Navigation and lifecycle events
- Quiz, assignment and forum submissions
- Likes and comments
"""

from datetime import datetime
from typing import Annotated, Literal
from uuid import UUID

from pydantic import BaseModel, Field, model_validator

from coursefeed.engagement.models import CommentNode, LikeToggleResult
from coursefeed.forum.models import ForumPost
from coursefeed.gating.navigation import NavigationDecision
from coursefeed.playback.adapters import SlideSource
from coursefeed.submissions.models import SubmissionResult
from coursefeed.units.models import ContentType, ForumFormat

from .session import CourseContents, FeedView, UnitView


# ==============================================================================
# Feed Schemas
# ==============================================================================


class UnitResponse(BaseModel):
    """One unit of the feed with its learner state."""

    feed_id: str
    index: int
    course_id: str
    lesson_id: str
    content_id: str
    content_type: ContentType
    title: str = ""
    course_title: str = ""
    lesson_title: str = ""
    progress_pct: float = Field(description="Effective progress 0-100")
    complete: bool
    locked: bool
    block_reason: str | None = None
    forum_required: bool = False
    forum_format: ForumFormat | None = None
    forum_satisfied: bool = True
    has_assignment: bool = False
    submitted: bool = False
    liked: bool | None = None
    like_count: int | None = None
    comment_count: int = 0

    @classmethod
    def from_view(cls, view: UnitView) -> "UnitResponse":
        unit = view.unit
        return cls(
            feed_id=unit.feed_id,
            index=view.index,
            course_id=unit.course_id,
            lesson_id=unit.lesson_id,
            content_id=unit.content_id,
            content_type=unit.content_type,
            title=unit.title,
            course_title=unit.course_title,
            lesson_title=unit.lesson_title,
            progress_pct=round(view.progress_pct, 2),
            complete=view.complete,
            locked=view.locked,
            block_reason=view.block_reason.value if view.block_reason else None,
            forum_required=unit.forum_required,
            forum_format=unit.forum_format,
            forum_satisfied=view.forum_satisfied,
            has_assignment=unit.has_assignment,
            submitted=view.submitted,
            liked=view.liked,
            like_count=view.like_count,
            comment_count=view.comment_count,
        )


class FeedResponse(BaseModel):
    """The learner's whole feed."""

    learner_id: str
    enrollment_scope: str | None = None
    active_index: int
    units: list[UnitResponse] = Field(default_factory=list)

    @classmethod
    def from_view(cls, view: FeedView) -> "FeedResponse":
        return cls(
            learner_id=view.learner_id,
            enrollment_scope=view.enrollment_scope,
            active_index=view.active_index,
            units=[UnitResponse.from_view(u) for u in view.units],
        )


class LessonContentsResponse(BaseModel):
    lesson_id: str
    title: str
    completed: int
    units: list[UnitResponse]


class CourseContentsResponse(BaseModel):
    course_id: str
    title: str
    completed: int
    total: int
    lessons: list[LessonContentsResponse]

    @classmethod
    def from_contents(cls, contents: CourseContents) -> "CourseContentsResponse":
        return cls(
            course_id=contents.course_id,
            title=contents.title,
            completed=contents.completed,
            total=contents.total,
            lessons=[
                LessonContentsResponse(
                    lesson_id=lesson.lesson_id,
                    title=lesson.title,
                    completed=lesson.completed,
                    units=[UnitResponse.from_view(v) for v in lesson.units],
                )
                for lesson in contents.lessons
            ],
        )


# ==============================================================================
# Playback Signal Schemas
# ==============================================================================


class TimeUpdateSignal(BaseModel):
    signal: Literal["time_update"]
    current_time: float = Field(..., ge=0, description="Playback position in seconds")
    duration: float = Field(..., description="Media duration in seconds")


class BareSignal(BaseModel):
    """Signals without a payload."""

    signal: Literal["pause", "seek_end", "ended", "tick"]


class SlideChangeSignal(BaseModel):
    signal: Literal["slide_change"]
    index: int = Field(..., ge=0)
    source: SlideSource = SlideSource.SWIPE


class ScrollSignal(BaseModel):
    signal: Literal["scroll"]
    scroll_top: float = Field(..., ge=0)
    scroll_height: float = Field(..., ge=0)
    client_height: float = Field(..., ge=0)
    user_initiated: bool = True


class AnswerSignal(BaseModel):
    signal: Literal["answer"]
    question_id: str = Field(..., min_length=1)


PlaybackSignalRequest = Annotated[
    TimeUpdateSignal | BareSignal | SlideChangeSignal | ScrollSignal | AnswerSignal,
    Field(discriminator="signal"),
]


# ==============================================================================
# Navigation Schemas
# ==============================================================================


class NavigateRequest(BaseModel):
    """Navigation input, normalized by action."""

    action: Literal["jump", "next", "previous", "select", "wheel"]
    target_index: int | None = None
    feed_id: str | None = None
    delta: float | None = None
    zoom: bool = False
    inside_scrollable: bool = False

    @model_validator(mode="after")
    def check_action_fields(self) -> "NavigateRequest":
        if self.action == "jump" and self.target_index is None:
            raise ValueError("target_index is required for jump")
        if self.action == "select" and not self.feed_id:
            raise ValueError("feed_id is required for select")
        if self.action == "wheel" and self.delta is None:
            raise ValueError("delta is required for wheel")
        return self


class NavigationResponse(BaseModel):
    """Navigation outcome; refusals carry the advisory message."""

    allowed: bool
    moved: bool = False
    active_index: int
    target_index: int | None = None
    reason: str | None = None
    message: str | None = None
    progress_pct: int | None = None
    blocking_feed_id: str | None = None

    @classmethod
    def from_decision(
        cls, decision: NavigationDecision | None, active_index: int
    ) -> "NavigationResponse":
        if decision is None:
            return cls(allowed=True, moved=False, active_index=active_index)
        return cls(
            allowed=decision.allowed,
            moved=decision.allowed,
            active_index=active_index,
            target_index=decision.target_index,
            reason=decision.reason.value if decision.reason else None,
            message=decision.message,
            progress_pct=decision.progress_pct,
            blocking_feed_id=(
                decision.blocking_unit.feed_id if decision.blocking_unit else None
            ),
        )


class SignalResponse(BaseModel):
    unit: UnitResponse
    active_index: int
    assignment_prompt: bool = False
    auto_advance: NavigationResponse | None = None


class LifecycleRequest(BaseModel):
    event: Literal["hidden", "teardown", "before_unload"]


class LifecycleResponse(BaseModel):
    event: str
    pending_remote_writes: int


# ==============================================================================
# Submission Schemas
# ==============================================================================


class QuizSubmitRequest(BaseModel):
    answers: dict[str, str] = Field(..., description="question_id -> option_id")
    learner_name: str = Field(default="", max_length=200)


class AssignmentSubmitRequest(BaseModel):
    content: str = Field(default="", max_length=20000)
    file_url: str | None = Field(default=None, max_length=2000)
    learner_name: str = Field(default="", max_length=200)


class SubmissionResponse(BaseModel):
    submission_id: UUID
    feed_id: str
    kind: str
    status: str
    grade: int | None = None
    already_submitted: bool = False
    submitted_at: datetime

    @classmethod
    def from_result(cls, result: SubmissionResult) -> "SubmissionResponse":
        submission = result.submission
        return cls(
            submission_id=submission.submission_id,
            feed_id=submission.feed_id,
            kind=submission.kind.value,
            status=submission.status.value,
            grade=submission.grade,
            already_submitted=result.already_submitted,
            submitted_at=submission.submitted_at,
        )


class ForumPostRequest(BaseModel):
    format: ForumFormat = ForumFormat.TEXT
    content: str = Field(default="", max_length=5000)
    media_url: str | None = Field(default=None, max_length=2000)


class ForumPostResponse(BaseModel):
    post_id: UUID
    feed_id: str
    format: ForumFormat
    created_at: datetime
    unit: UnitResponse

    @classmethod
    def from_post(cls, post: ForumPost, unit: UnitResponse) -> "ForumPostResponse":
        return cls(
            post_id=post.post_id,
            feed_id=post.unit_key.feed_id,
            format=post.format,
            created_at=post.created_at,
            unit=unit,
        )


# ==============================================================================
# Engagement Schemas
# ==============================================================================


class LikeResponse(BaseModel):
    liked: bool
    count: int
    committed: bool = True
    ignored: bool = False
    advisory: str | None = None

    @classmethod
    def from_result(cls, result: LikeToggleResult) -> "LikeResponse":
        return cls(
            liked=result.liked,
            count=result.count,
            committed=result.committed,
            ignored=result.ignored,
            advisory=result.advisory,
        )


class CreateCommentRequest(BaseModel):
    text: str = Field(..., min_length=1, max_length=5000)
    parent_id: str | None = None
    author_name: str = Field(default="", max_length=200)


class CommentResponse(BaseModel):
    comment_id: str
    author_id: str
    author_name: str = ""
    text: str
    parent_id: str | None = None
    created_at: datetime
    temporary: bool = False
    replies: list["CommentResponse"] = Field(default_factory=list)

    @classmethod
    def from_node(cls, node: CommentNode) -> "CommentResponse":
        comment = node.comment
        return cls(
            comment_id=comment.comment_id,
            author_id=comment.author_id,
            author_name=comment.author_name,
            text=comment.text,
            parent_id=comment.parent_id,
            created_at=comment.created_at,
            temporary=comment.temporary,
            replies=[cls.from_node(reply) for reply in node.replies],
        )


class CommentThreadResponse(BaseModel):
    feed_id: str
    total: int
    comments: list[CommentResponse]
