"""In-memory collaborators for feed tests."""

import asyncio
from dataclasses import replace
from typing import Any

from coursefeed.config import Settings
from coursefeed.engagement.models import CommentRecord, LikeSnapshot
from coursefeed.feed.session import FeedBackends
from coursefeed.forum.models import ForumPost, ForumPostPayload
from coursefeed.progress.ledgers import MemoryLocalCache
from coursefeed.progress.models import ProgressRecord, SeenEntry
from coursefeed.submissions.models import QuizOption, QuizQuestion, Submission
from coursefeed.units.models import (
    ContentType,
    CourseOutline,
    ForumFormat,
    LessonOutline,
    Unit,
    UnitKey,
)
from coursefeed.units.resolver import EnrollmentResolution


def make_settings(**overrides: Any) -> Settings:
    values: dict[str, Any] = {
        "environment": "testing",
        "local_cache_backend": "memory",
        "like_retry_backoff_seconds": 0.0,
    }
    values.update(overrides)
    return Settings(**values)


def make_unit(
    content_id: str,
    content_type: ContentType = ContentType.VIDEO,
    course_id: str = "c1",
    lesson_id: str = "l1",
    feed_position: int = 0,
    **fields: Any,
) -> Unit:
    return Unit(
        key=UnitKey(course_id, lesson_id, content_id),
        content_type=content_type,
        feed_position=feed_position,
        **fields,
    )


def outline_unit(content_id: str, position: int, content_type: str = "video", **extra: Any):
    return {"content_id": content_id, "position": position, "content_type": content_type, **extra}


def make_course(course_id: str, *lessons: tuple[str, list[dict[str, Any]]], **extra: Any):
    return CourseOutline(
        course_id=course_id,
        title=extra.pop("title", course_id.upper()),
        lessons=[
            LessonOutline(lesson_id=lesson_id, position=i, title=lesson_id, units=units)
            for i, (lesson_id, units) in enumerate(lessons)
        ],
        **extra,
    )


def quiz_question(question_id: str, correct: str | None = "a") -> QuizQuestion:
    return QuizQuestion(
        question_id=question_id,
        text=f"Question {question_id}",
        options=[
            QuizOption("a", "Option A", None if correct is None else correct == "a"),
            QuizOption("b", "Option B", None if correct is None else correct == "b"),
        ],
    )


class FakeClock:
    def __init__(self, start: float = 1000.0):
        self.current = start

    def now(self) -> float:
        return self.current

    def advance(self, seconds: float) -> None:
        self.current += seconds


class FakeResolver:
    def __init__(self, courses: list[CourseOutline] | None = None, scope: str | None = "scope-1"):
        self.courses = courses or []
        self.scope = scope

    async def resolve(self, learner_id: str) -> EnrollmentResolution:
        return EnrollmentResolution(
            learner_id=learner_id, enrollment_scope=self.scope, courses=self.courses
        )


class FakeProgressLedger:
    """Partial upserts; the highest write time wins per unit."""

    def __init__(self) -> None:
        self.records: dict[str, dict[str, ProgressRecord]] = {}
        self.write_times: dict[tuple[str, str], int] = {}
        self.writes: list[tuple[str, str, dict[str, Any], int | None]] = []
        self.fail_reads = False
        self.fail_writes = False

    async def get(self, scope: str) -> dict[str, ProgressRecord]:
        if self.fail_reads:
            raise ConnectionError("remote unavailable")
        return {k: v.copy() for k, v in self.records.get(scope, {}).items()}

    async def set(
        self,
        scope: str,
        feed_id: str,
        partial: dict[str, Any],
        write_time_us: int | None = None,
    ) -> None:
        if self.fail_writes:
            raise ConnectionError("remote unavailable")
        self.writes.append((scope, feed_id, dict(partial), write_time_us))
        key = (scope, feed_id)
        if write_time_us is not None and write_time_us < self.write_times.get(key, 0):
            return
        self.write_times[key] = write_time_us or 0
        current = self.records.setdefault(scope, {}).get(feed_id) or ProgressRecord(feed_id)
        values = current.to_dict()
        values.update(partial)
        self.records[scope][feed_id] = ProgressRecord(**values)


class FakeSeenLedger:
    def __init__(self) -> None:
        self.entries: dict[str, dict[str, SeenEntry]] = {}
        self.writes: list[tuple[str, str]] = []
        self.fail = False

    async def get(self, learner_id: str) -> dict[str, SeenEntry]:
        if self.fail:
            raise ConnectionError("seen ledger unavailable")
        return dict(self.entries.get(learner_id, {}))

    async def set(self, learner_id: str, feed_id: str, entry: SeenEntry) -> None:
        if self.fail:
            raise ConnectionError("seen ledger unavailable")
        self.writes.append((learner_id, feed_id))
        self.entries.setdefault(learner_id, {})[feed_id] = entry


class FakeForum:
    def __init__(self) -> None:
        self.posts: dict[tuple[str, str], ForumPost] = {}
        self.fail = False
        self.checks = 0

    async def has_contribution(
        self, unit: Unit, learner_id: str, required_format: ForumFormat | None
    ) -> bool:
        self.checks += 1
        if self.fail:
            raise ConnectionError("forum unavailable")
        post = self.posts.get((unit.feed_id, learner_id))
        if post is None:
            return False
        return required_format is None or post.format == required_format

    async def submit(self, unit: Unit, learner_id: str, payload: ForumPostPayload) -> ForumPost:
        if self.fail:
            raise ConnectionError("forum unavailable")
        post = self.posts.get((unit.feed_id, learner_id))
        if post is None:
            post = ForumPost(
                unit_key=unit.key,
                learner_id=learner_id,
                format=payload.format,
                content=payload.content,
                media_url=payload.media_url,
            )
            self.posts[(unit.feed_id, learner_id)] = post
        return post


class FakeSubmissions:
    def __init__(self) -> None:
        self.records: dict[tuple[str, str], Submission] = {}
        self.creates = 0
        self.fail_reads = False
        self.fail_writes = False

    async def find_existing(self, unit: Unit, learner_id: str) -> Submission | None:
        if self.fail_reads:
            raise ConnectionError("submissions unavailable")
        return self.records.get((unit.feed_id, learner_id))

    async def create(self, submission: Submission) -> Submission:
        if self.fail_writes:
            raise ConnectionError("submissions unavailable")
        self.creates += 1
        key = (submission.feed_id, submission.learner_id)
        return self.records.setdefault(key, submission)

    async def update(self, submission: Submission) -> Submission:
        if self.fail_writes:
            raise ConnectionError("submissions unavailable")
        self.records[(submission.feed_id, submission.learner_id)] = replace(submission)
        return submission


class FakeQuizCatalog:
    def __init__(self, questions: dict[str, list[QuizQuestion]] | None = None):
        self.by_feed_id = questions or {}

    async def questions(self, unit: Unit) -> list[QuizQuestion]:
        return list(self.by_feed_id.get(unit.feed_id, []))


class FakeLikeLedger:
    """Yields between read and compare-and-set so concurrent callers interleave."""

    def __init__(self) -> None:
        self.markers: set[tuple[str, str]] = set()
        self.counts: dict[str, int] = {}
        self.fail = False
        self.conflicts = 0

    async def read(self, unit_key: UnitKey, learner_id: str) -> LikeSnapshot:
        await asyncio.sleep(0)
        if self.fail:
            raise ConnectionError("likes unavailable")
        return LikeSnapshot(
            liked=(unit_key.feed_id, learner_id) in self.markers,
            count=self.counts.get(unit_key.feed_id, 0),
        )

    async def compare_and_set(
        self, unit_key: UnitKey, learner_id: str, expected_count: int, like: bool
    ) -> bool:
        await asyncio.sleep(0)
        if self.fail:
            raise ConnectionError("likes unavailable")
        feed_id = unit_key.feed_id
        marker = (feed_id, learner_id)
        if self.counts.get(feed_id, 0) != expected_count:
            self.conflicts += 1
            return False
        if like:
            if marker in self.markers:
                return False
            self.markers.add(marker)
            self.counts[feed_id] = expected_count + 1
        else:
            if marker not in self.markers:
                return False
            self.markers.discard(marker)
            self.counts[feed_id] = max(0, expected_count - 1)
        return True


class FakeCommentLog:
    def __init__(self) -> None:
        self.comments: dict[str, list[CommentRecord]] = {}
        self.fail_append = False
        self.fail_list = False
        self.list_calls = 0

    async def append(self, comment: CommentRecord) -> CommentRecord:
        if self.fail_append:
            raise ConnectionError("comments unavailable")
        self.comments.setdefault(comment.feed_id, []).append(comment)
        return comment

    async def list(self, feed_id: str, limit: int = 100) -> list[CommentRecord]:
        self.list_calls += 1
        if self.fail_list:
            raise ConnectionError("comments unavailable")
        comments = self.comments.get(feed_id, [])
        newest_first = sorted(comments, key=lambda c: c.created_at, reverse=True)
        return newest_first[:limit]


def make_backends(
    courses: list[CourseOutline] | None = None,
    scope: str | None = "scope-1",
    **overrides: Any,
) -> FeedBackends:
    """FeedBackends wired to fresh fakes; any collaborator can be overridden."""
    values: dict[str, Any] = {
        "resolver": FakeResolver(courses, scope),
        "remote_progress": FakeProgressLedger(),
        "seen_ledger": FakeSeenLedger(),
        "local_cache": MemoryLocalCache(),
        "forum": FakeForum(),
        "submissions": FakeSubmissions(),
        "quizzes": FakeQuizCatalog(),
        "likes": FakeLikeLedger(),
        "comments": FakeCommentLog(),
        "redis": None,
    }
    values.update(overrides)
    return FeedBackends(**values)


def sample_courses() -> list[CourseOutline]:
    """c1: a(video), q(quiz) | t(text, forum) ; c2: x(video, assignment)."""
    return [
        make_course(
            "c1",
            ("l1", [outline_unit("a", 0), outline_unit("q", 1, "quiz", question_count=2)]),
            ("l2", [outline_unit("t", 0, "text", forum_required=True, forum_format="text")]),
        ),
        make_course("c2", ("m1", [outline_unit("x", 0, has_assignment=True)])),
    ]


def sample_quizzes() -> FakeQuizCatalog:
    return FakeQuizCatalog({"c1-q": [quiz_question("q1"), quiz_question("q2", correct="b")]})
