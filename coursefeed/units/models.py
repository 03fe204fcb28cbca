"""Unit identity and the flattened learner feed.

A unit is one consumable item (video, audio, image carousel, text or quiz)
inside a lesson. Units are authored elsewhere and are read-only here; the
feed is the concatenation of every enrolled, non-archived course, ordered
by lesson position and then by unit position within the lesson.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class ContentType(str, Enum):
    """Unit content type."""

    VIDEO = "video"
    AUDIO = "audio"
    IMAGE = "image"
    TEXT = "text"
    QUIZ = "quiz"


class ForumFormat(str, Enum):
    """Format a required forum contribution must be posted in."""

    TEXT = "text"
    AUDIO = "audio"
    VIDEO = "video"


_TYPE_ALIASES: dict[str, ContentType] = {
    "text": ContentType.TEXT,
    "texto": ContentType.TEXT,
    "article": ContentType.TEXT,
    "document": ContentType.TEXT,
    "doc": ContentType.TEXT,
    "image": ContentType.IMAGE,
    "imagen": ContentType.IMAGE,
    "photo": ContentType.IMAGE,
    "foto": ContentType.IMAGE,
    "picture": ContentType.IMAGE,
    "gallery": ContentType.IMAGE,
    "audio": ContentType.AUDIO,
    "podcast": ContentType.AUDIO,
    "sonido": ContentType.AUDIO,
    "quiz": ContentType.QUIZ,
    "test": ContentType.QUIZ,
    "assessment": ContentType.QUIZ,
    "examen": ContentType.QUIZ,
    "video": ContentType.VIDEO,
}


def normalize_content_type(raw: Any) -> ContentType:
    """Map loosely authored type names onto a ContentType.

    Empty and unknown values are treated as video, the platform default.
    """
    value = str(raw or "").strip().lower()
    return _TYPE_ALIASES.get(value, ContentType.VIDEO)


def normalize_forum_format(raw: Any) -> ForumFormat | None:
    """Parse a forum format, returning None when no format is required."""
    value = str(raw or "").strip().lower()
    if not value:
        return None
    try:
        return ForumFormat(value)
    except ValueError:
        return ForumFormat.TEXT


@dataclass(frozen=True)
class UnitKey:
    """Composite identity of a unit."""

    course_id: str
    lesson_id: str
    content_id: str

    @property
    def feed_id(self) -> str:
        """Synthetic id, unique across every course a learner is enrolled in."""
        return f"{self.course_id}-{self.content_id}"


@dataclass(frozen=True)
class Unit:
    """One consumable item of the feed.

    Attributes:
        key: Composite (course, lesson, content) identity
        content_type: What kind of playback adapter measures it
        lesson_position: Order of the lesson within its course
        unit_position: Order of the unit within its lesson
        feed_position: Index in the flattened feed
        forum_required: Completion additionally needs a forum contribution
        forum_format: Format the contribution must have (None = any)
        has_assignment: Unit carries an assignment prompt
        image_count: Number of slides (image units)
        question_count: Number of questions (quiz units)
    """

    key: UnitKey
    content_type: ContentType
    lesson_position: int = 0
    unit_position: int = 0
    feed_position: int = 0
    forum_required: bool = False
    forum_format: ForumFormat | None = None
    has_assignment: bool = False
    image_count: int = 0
    question_count: int = 0
    title: str = ""
    course_title: str = ""
    lesson_title: str = ""

    @property
    def feed_id(self) -> str:
        return self.key.feed_id

    @property
    def course_id(self) -> str:
        return self.key.course_id

    @property
    def lesson_id(self) -> str:
        return self.key.lesson_id

    @property
    def content_id(self) -> str:
        return self.key.content_id


@dataclass
class LessonOutline:
    """A lesson and its units, as returned by the enrollment resolver."""

    lesson_id: str
    position: int
    title: str = ""
    units: list[dict[str, Any]] = field(default_factory=list)


@dataclass
class CourseOutline:
    """An enrolled course with its lessons."""

    course_id: str
    title: str = ""
    archived: bool = False
    lessons: list[LessonOutline] = field(default_factory=list)


def unit_from_outline(
    course: CourseOutline,
    lesson: LessonOutline,
    raw: dict[str, Any],
    feed_position: int,
) -> Unit:
    """Build a Unit from the raw unit metadata of an outline."""
    forum_format = normalize_forum_format(raw.get("forum_format"))
    return Unit(
        key=UnitKey(
            course_id=course.course_id,
            lesson_id=lesson.lesson_id,
            content_id=str(raw["content_id"]),
        ),
        content_type=normalize_content_type(raw.get("content_type")),
        lesson_position=lesson.position,
        unit_position=int(raw.get("position", 0)),
        feed_position=feed_position,
        forum_required=bool(raw.get("forum_required", False)),
        forum_format=forum_format,
        has_assignment=bool(raw.get("has_assignment", False)),
        image_count=int(raw.get("image_count", 0)),
        question_count=int(raw.get("question_count", 0)),
        title=raw.get("title", ""),
        course_title=course.title,
        lesson_title=lesson.title,
    )


def flatten_feed(courses: list[CourseOutline]) -> list[Unit]:
    """Flatten enrolled courses into the ordered feed.

    Course order is kept as given (enrollment order); archived courses are
    skipped. Within a course, lessons sort by position and units by position.
    """
    units: list[Unit] = []
    for course in courses:
        if course.archived:
            continue
        for lesson in sorted(course.lessons, key=lambda lesson: lesson.position):
            ordered = sorted(lesson.units, key=lambda raw: int(raw.get("position", 0)))
            for raw in ordered:
                units.append(unit_from_outline(course, lesson, raw, len(units)))
    return units
