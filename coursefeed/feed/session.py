"""Learner feed session.

Wires the per-learner pieces together: enrollment resolution, the progress
store, forum checker, playback adapters, gating controller, submissions and
engagement. One session lives for as long as the learner keeps the feed
open.
"""

from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

import structlog

from coursefeed.completion.policy import BlockReason, CompletionPolicy
from coursefeed.engagement.comments import CommentLog, CommentService
from coursefeed.engagement.likes import LikeLedger, LikeService
from coursefeed.engagement.models import CommentNode, CommentRecord, LikeToggleResult
from coursefeed.forum.models import ForumPost, ForumPostPayload
from coursefeed.forum.service import ForumCollaborator, ForumRequirementChecker
from coursefeed.gating.gestures import WheelGestureNormalizer
from coursefeed.gating.navigation import FeedSequence, GatingController, NavigationDecision
from coursefeed.playback.adapters import (
    ImageCarouselAdapter,
    MediaAdapter,
    PlaybackAdapter,
    QuizAdapter,
    TextScrollAdapter,
    build_adapter,
)
from coursefeed.playback.clock import Clock, MonotonicClock
from coursefeed.progress.ledgers import LocalCache, RemoteProgressLedger, SeenLedger
from coursefeed.progress.service import ProgressStore
from coursefeed.submissions.models import SubmissionResult
from coursefeed.submissions.service import (
    AssignmentSubmissionService,
    InvalidSubmissionError,
    QuizCatalog,
    QuizSubmissionService,
    SubmissionCollaborator,
    SubmissionWriteError,
)
from coursefeed.units.models import ContentType, Unit, flatten_feed
from coursefeed.units.resolver import EnrollmentResolver


logger = structlog.get_logger(__name__)


# ==============================================================================
# Custom Exceptions
# ==============================================================================


class FeedError(Exception):
    """Base feed error."""

    def __init__(self, message: str, code: str = "feed_error"):
        self.message = message
        self.code = code
        super().__init__(message)


class UnitNotFoundError(FeedError):
    def __init__(self, message: str = "Unit is not part of this feed"):
        super().__init__(message, "unit_not_found")


class SessionNotStartedError(FeedError):
    def __init__(self, message: str = "Feed session has not been started"):
        super().__init__(message, "session_not_started")


class InvalidSignalError(FeedError):
    """Playback signal does not apply to the unit's content type."""

    def __init__(self, message: str = "Signal does not apply to this unit"):
        super().__init__(message, "invalid_signal")


# ==============================================================================
# Collaborators and Views
# ==============================================================================


@dataclass
class FeedBackends:
    """Every external collaborator a feed session talks to."""

    resolver: EnrollmentResolver
    remote_progress: RemoteProgressLedger
    seen_ledger: SeenLedger
    local_cache: LocalCache
    forum: ForumCollaborator
    submissions: SubmissionCollaborator
    quizzes: QuizCatalog
    likes: LikeLedger
    comments: CommentLog
    redis: Any = None


@dataclass
class UnitView:
    """Per-unit state as shown in the feed."""

    unit: Unit
    index: int
    progress_pct: float
    complete: bool
    locked: bool
    block_reason: BlockReason | None = None
    forum_satisfied: bool = True
    submitted: bool = False
    liked: bool | None = None
    like_count: int | None = None
    comment_count: int = 0


@dataclass
class FeedView:
    learner_id: str
    enrollment_scope: str | None
    active_index: int
    units: list[UnitView] = field(default_factory=list)


@dataclass
class LessonContents:
    lesson_id: str
    title: str
    units: list[UnitView] = field(default_factory=list)

    @property
    def completed(self) -> int:
        return sum(1 for view in self.units if view.complete)


@dataclass
class CourseContents:
    course_id: str
    title: str
    lessons: list[LessonContents] = field(default_factory=list)

    @property
    def completed(self) -> int:
        return sum(lesson.completed for lesson in self.lessons)

    @property
    def total(self) -> int:
        return sum(len(lesson.units) for lesson in self.lessons)


# ==============================================================================
# Session
# ==============================================================================


class LearnerFeedSession:
    """The feed of one learner."""

    def __init__(
        self,
        learner_id: str,
        backends: FeedBackends,
        settings: Any,
        clock: Clock | None = None,
    ):
        self.learner_id = learner_id
        self.backends = backends
        self.settings = settings
        self.clock = clock or MonotonicClock()
        self.policy = CompletionPolicy.from_settings(settings)

        self.forum = ForumRequirementChecker(backends.forum, learner_id)
        self.quizzes = QuizSubmissionService(backends.submissions)
        self.assignments = AssignmentSubmissionService(backends.submissions)
        self.likes = LikeService(
            backends.likes,
            learner_id,
            max_attempts=settings.like_max_attempts,
            backoff_seconds=settings.like_retry_backoff_seconds,
        )
        self.comments = CommentService(
            backends.comments,
            redis=backends.redis,
            max_length=settings.comment_max_length,
            cache_ttl_seconds=settings.comment_cache_ttl_seconds,
        )

        self.enrollment_scope: str | None = None
        self._store: ProgressStore | None = None
        self._controller: GatingController | None = None
        self._adapters: dict[str, PlaybackAdapter] = {}
        self._active_feed_id: str | None = None
        self.submitted: set[str] = set()
        self.assignment_prompts: set[str] = set()
        self.last_auto_advance: NavigationDecision | None = None

    # ==========================================================================
    # Startup
    # ==========================================================================

    @property
    def started(self) -> bool:
        return self._controller is not None

    @property
    def store(self) -> ProgressStore:
        if self._store is None:
            raise SessionNotStartedError
        return self._store

    @property
    def controller(self) -> GatingController:
        if self._controller is None:
            raise SessionNotStartedError
        return self._controller

    @property
    def sequence(self) -> FeedSequence:
        return self.controller.sequence

    async def start(self) -> FeedView:
        """Resolve, reconcile and position the feed.

        Gating is only trusted after reconciliation, so positioning happens
        last.
        """
        resolution = await self.backends.resolver.resolve(self.learner_id)
        units = flatten_feed(resolution.courses)
        self.enrollment_scope = resolution.enrollment_scope

        self._store = ProgressStore(
            learner_id=self.learner_id,
            enrollment_scope=self.enrollment_scope,
            policy=self.policy,
            remote=self.backends.remote_progress,
            seen_ledger=self.backends.seen_ledger,
            local_cache=self.backends.local_cache,
            flush_step_pct=self.settings.remote_flush_step_pct,
        )
        self._store.register_units(units)
        await self._store.reconcile()
        await self.forum.load(units)
        await self._restore_submissions(units)

        sequence = FeedSequence(units)
        self._controller = GatingController(
            sequence,
            self._store,
            self.forum,
            self.policy,
            gestures=WheelGestureNormalizer(
                self.clock,
                delta_threshold=self.settings.wheel_delta_threshold,
                cooldown_seconds=self.settings.wheel_cooldown_seconds,
                idle_reset_seconds=self.settings.wheel_idle_reset_seconds,
            ),
        )
        self._controller.position_at_first_pending()
        self._sync_active()

        logger.info(
            "feed_session_started",
            units=len(units),
            courses=len(resolution.courses),
            active_index=self._controller.active_index,
        )
        return self.view()

    async def _restore_submissions(self, units: list[Unit]) -> None:
        for unit in units:
            if unit.content_type != ContentType.QUIZ:
                continue
            existing = await self.quizzes.load_existing(unit, self.learner_id)
            if existing is not None:
                self.submitted.add(unit.feed_id)
                adapter = self.adapter(unit)
                if isinstance(adapter, QuizAdapter):
                    adapter.restore_submitted()

    # ==========================================================================
    # Units and Adapters
    # ==========================================================================

    def unit(self, feed_id: str) -> Unit:
        index = self.sequence.index_of(feed_id)
        if index is None:
            raise UnitNotFoundError
        return self.sequence[index]

    def adapter(self, unit: Unit) -> PlaybackAdapter:
        adapter = self._adapters.get(unit.feed_id)
        if adapter is None:
            adapter = build_adapter(
                unit,
                self.store.record_progress,
                self.clock,
                self.settings,
                on_assignment_prompt=self._on_assignment_prompt,
                on_end_reached=self._on_text_end_reached,
            )
            self._adapters[unit.feed_id] = adapter
        return adapter

    def _sync_active(self) -> None:
        """Activate the adapter under the cursor, deactivate the previous one."""
        if not len(self.sequence):
            return
        unit = self.sequence[self.controller.active_index]
        if unit.feed_id == self._active_feed_id:
            return
        if self._active_feed_id is not None:
            previous = self._adapters.get(self._active_feed_id)
            if previous is not None:
                previous.deactivate()
        self._active_feed_id = unit.feed_id
        self.adapter(unit).activate()

    def _on_assignment_prompt(self, unit: Unit) -> None:
        self.assignment_prompts.add(unit.feed_id)

    def _on_text_end_reached(self, unit: Unit) -> None:
        index = self.sequence.index_of(unit.feed_id)
        if index is None:
            return
        decision = self.controller.on_text_end_reached(index)
        if decision is not None:
            self.last_auto_advance = decision
            if decision.allowed:
                self._sync_active()

    # ==========================================================================
    # Playback Signals
    # ==========================================================================

    def record_signal(self, feed_id: str, signal: str, **payload: Any) -> UnitView:
        """Route a raw playback signal to the unit's adapter."""
        unit = self.unit(feed_id)
        adapter = self.adapter(unit)
        handler = self._signal_handler(adapter, signal)
        if handler is None:
            raise InvalidSignalError(
                f"Signal '{signal}' does not apply to {unit.content_type.value} units"
            )
        try:
            handler(**payload)
        except (TypeError, ValueError) as e:
            raise InvalidSignalError(str(e)) from e
        return self.unit_view(unit.feed_position)

    @staticmethod
    def _signal_handler(
        adapter: PlaybackAdapter, signal: str
    ) -> Callable[..., Any] | None:
        if signal == "tick":
            return adapter.tick
        if isinstance(adapter, MediaAdapter):
            handlers = {
                "time_update": adapter.on_time_update,
                "pause": adapter.on_pause,
                "seek_end": adapter.on_seek_end,
                "ended": adapter.on_ended,
            }
        elif isinstance(adapter, ImageCarouselAdapter):
            handlers = {"slide_change": adapter.on_slide_change}
        elif isinstance(adapter, TextScrollAdapter):
            handlers = {"scroll": adapter.on_scroll}
        elif isinstance(adapter, QuizAdapter):
            handlers = {"answer": adapter.on_answer}
        else:
            handlers = {}
        return handlers.get(signal)

    # ==========================================================================
    # Navigation
    # ==========================================================================

    async def _after_navigation(
        self, decision: NavigationDecision | None, gesture: bool = False
    ) -> NavigationDecision | None:
        """Re-check forum refusals, then activate the unit under the cursor.

        The newly active unit's forum status is asked again as well.
        """
        decision = await self.controller.recheck_forum(decision, gesture=gesture)
        if decision is not None and decision.allowed:
            self._sync_active()
            await self.forum.refresh(self.sequence[self.controller.active_index])
        return decision

    async def jump(self, target_index: int) -> NavigationDecision:
        return await self._after_navigation(self.controller.request_jump(target_index))

    async def next(self) -> NavigationDecision:
        return await self._after_navigation(self.controller.next())

    async def previous(self) -> NavigationDecision:
        return await self._after_navigation(self.controller.previous())

    async def select(self, feed_id: str) -> NavigationDecision:
        return await self._after_navigation(self.controller.select(feed_id))

    async def wheel(
        self, delta: float, zoom: bool = False, inside_scrollable: bool = False
    ) -> NavigationDecision | None:
        return await self._after_navigation(
            self.controller.on_wheel(delta, zoom=zoom, inside_scrollable=inside_scrollable),
            gesture=True,
        )

    async def settle_auto_advance(self) -> NavigationDecision | None:
        """Re-check a text auto-advance that a stale forum status refused."""
        decision = self.last_auto_advance
        if decision is None or decision.allowed:
            return decision
        self.last_auto_advance = await self._after_navigation(decision)
        return self.last_auto_advance

    async def refresh_forum_statuses(self) -> None:
        """Ask again for every forum requirement not yet known satisfied."""
        await self.forum.load(list(self.sequence))

    # ==========================================================================
    # Lifecycle
    # ==========================================================================

    def lifecycle(self, event: str) -> None:
        triggers = {
            "hidden": self.store.on_visibility_hidden,
            "teardown": self.store.on_page_teardown,
            "before_unload": self.store.on_before_unload,
        }
        trigger = triggers.get(event)
        if trigger is None:
            raise FeedError(f"Unknown lifecycle event '{event}'", "invalid_lifecycle_event")
        trigger()

    async def close(self) -> None:
        """Persist everything and wait for background writes."""
        if self._store is None:
            return
        self._store.on_page_teardown()
        await self._store.drain()
        logger.info("feed_session_closed")

    # ==========================================================================
    # Submissions and Forum
    # ==========================================================================

    async def submit_quiz(
        self, feed_id: str, answers: dict[str, str], learner_name: str = ""
    ) -> SubmissionResult:
        unit = self.unit(feed_id)
        if unit.content_type != ContentType.QUIZ:
            raise InvalidSubmissionError("Unit is not a quiz")
        try:
            questions = await self.backends.quizzes.questions(unit)
        except Exception as e:
            logger.warning("quiz_questions_unavailable", feed_id=feed_id, error=str(e))
            raise SubmissionWriteError("Quiz could not be loaded, try again") from e

        adapter = self.adapter(unit)
        if isinstance(adapter, QuizAdapter):
            for question_id, option_id in answers.items():
                if option_id:
                    adapter.on_answer(question_id)
            on_committed = adapter.mark_submitted
        else:
            on_committed = None

        result = await self.quizzes.submit(
            unit,
            self.learner_id,
            answers,
            questions,
            on_committed=on_committed,
            learner_name=learner_name,
        )
        self.submitted.add(feed_id)
        return result

    async def submit_assignment(
        self,
        feed_id: str,
        content: str,
        file_url: str | None = None,
        learner_name: str = "",
    ) -> SubmissionResult:
        unit = self.unit(feed_id)
        return await self.assignments.submit(
            unit, self.learner_id, content, file_url=file_url, learner_name=learner_name
        )

    async def contribute_forum(self, feed_id: str, payload: ForumPostPayload) -> ForumPost:
        return await self.forum.contribute(self.unit(feed_id), payload)

    # ==========================================================================
    # Engagement
    # ==========================================================================

    async def toggle_like(self, feed_id: str) -> LikeToggleResult:
        return await self.likes.toggle(self.unit(feed_id))

    async def comment_thread(self, feed_id: str) -> list[CommentNode]:
        return await self.comments.list_thread(self.unit(feed_id))

    async def add_comment(
        self,
        feed_id: str,
        text: str,
        parent_id: str | None = None,
        author_name: str = "",
    ) -> CommentRecord:
        return await self.comments.add_comment(
            self.unit(feed_id),
            self.learner_id,
            text,
            parent_id=parent_id,
            author_name=author_name,
        )

    # ==========================================================================
    # Views
    # ==========================================================================

    def unit_view(self, index: int) -> UnitView:
        unit = self.sequence[index]
        record = self.store.get(unit.feed_id)
        forum_satisfied = self.forum.is_satisfied(unit)
        block = self.policy.block_reason(record, unit, forum_satisfied)
        like = self.likes.visible(unit)
        return UnitView(
            unit=unit,
            index=index,
            progress_pct=self.policy.effective_progress(record),
            complete=block is None,
            locked=not self.controller.can_advance_to(index).allowed,
            block_reason=block,
            forum_satisfied=forum_satisfied,
            submitted=unit.feed_id in self.submitted,
            liked=like.liked if like else None,
            like_count=like.count if like else None,
            comment_count=self.comments.comment_count(unit.feed_id),
        )

    def view(self) -> FeedView:
        return FeedView(
            learner_id=self.learner_id,
            enrollment_scope=self.enrollment_scope,
            active_index=self.controller.active_index,
            units=[self.unit_view(i) for i in range(len(self.sequence))],
        )

    def table_of_contents(self) -> list[CourseContents]:
        """Feed grouped by course and lesson, with completion counts."""
        courses: dict[str, CourseContents] = {}
        lessons: dict[tuple[str, str], LessonContents] = {}
        for index, unit in enumerate(self.sequence):
            course = courses.get(unit.course_id)
            if course is None:
                course = CourseContents(unit.course_id, unit.course_title)
                courses[unit.course_id] = course
            lesson_key = (unit.course_id, unit.lesson_id)
            lesson = lessons.get(lesson_key)
            if lesson is None:
                lesson = LessonContents(unit.lesson_id, unit.lesson_title)
                lessons[lesson_key] = lesson
                course.lessons.append(lesson)
            lesson.units.append(self.unit_view(index))
        return list(courses.values())
