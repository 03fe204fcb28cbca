"""Enrollment resolution: learner -> ordered course outlines.

The outlines are authored by the instructor surfaces; this module only
reads them. Cassandra layout:
- learner_enrollments: enrollments per learner, in enrollment order
- course_units: every unit of a course, clustered by lesson then unit order
"""

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Protocol

import structlog

from .models import CourseOutline, LessonOutline


if TYPE_CHECKING:
    from cassandra.cluster import Session

logger = structlog.get_logger(__name__)


LEARNER_ENROLLMENTS_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.learner_enrollments (
    learner_id TEXT,
    enrolled_at TIMESTAMP,
    course_id TEXT,
    enrollment_id TEXT,
    course_title TEXT,
    archived BOOLEAN,
    PRIMARY KEY (learner_id, enrolled_at, course_id)
) WITH CLUSTERING ORDER BY (enrolled_at ASC, course_id ASC)
"""

COURSE_UNITS_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.course_units (
    course_id TEXT,
    lesson_position INT,
    lesson_id TEXT,
    unit_position INT,
    content_id TEXT,
    lesson_title TEXT,
    title TEXT,
    content_type TEXT,
    forum_required BOOLEAN,
    forum_format TEXT,
    has_assignment BOOLEAN,
    image_count INT,
    question_count INT,
    PRIMARY KEY ((course_id), lesson_position, lesson_id, unit_position, content_id)
)
"""

UNITS_TABLES_CQL = [LEARNER_ENROLLMENTS_TABLE_CQL, COURSE_UNITS_TABLE_CQL]


@dataclass
class EnrollmentResolution:
    """What a learner is enrolled in, and the scope progress is written under."""

    learner_id: str
    enrollment_scope: str | None
    courses: list[CourseOutline] = field(default_factory=list)


class EnrollmentResolver(Protocol):
    """Resolves the ordered course/lesson/unit metadata for a learner."""

    async def resolve(self, learner_id: str) -> EnrollmentResolution: ...


class CassandraEnrollmentResolver:
    """Enrollment resolver backed by Cassandra."""

    def __init__(self, session: "Session", keyspace: str):
        self.session = session
        self.keyspace = keyspace
        self._prepare_statements()

    def _prepare_statements(self) -> None:
        self._get_enrollments = self.session.prepare(f"""
            SELECT * FROM {self.keyspace}.learner_enrollments
            WHERE learner_id = ?
        """)
        self._get_course_units = self.session.prepare(f"""
            SELECT * FROM {self.keyspace}.course_units
            WHERE course_id = ?
        """)

    async def resolve(self, learner_id: str) -> EnrollmentResolution:
        """Load enrollments in enrollment order, then each course's units."""
        rows = await self.session.aexecute(self._get_enrollments, [learner_id])

        # Courses keep their first enrollment position; the latest enrollment
        # of a course decides whether it is archived
        latest: dict[str, Any] = {}
        for row in rows:
            latest[row.course_id] = row

        active = [row for row in latest.values() if not row.archived]
        courses = [
            await self._load_course(row.course_id, row.course_title or "")
            for row in active
        ]
        # The most recent active enrollment is the progress scope
        scope = None
        if active:
            scope = max(active, key=lambda row: row.enrolled_at).enrollment_id or None

        logger.debug(
            "enrollments_resolved",
            learner_id=learner_id,
            courses=len(courses),
        )
        return EnrollmentResolution(
            learner_id=learner_id,
            enrollment_scope=scope,
            courses=courses,
        )

    async def _load_course(self, course_id: str, title: str) -> CourseOutline:
        rows = await self.session.aexecute(self._get_course_units, [course_id])

        lessons: dict[str, LessonOutline] = {}
        for row in rows:
            lesson = lessons.get(row.lesson_id)
            if lesson is None:
                lesson = LessonOutline(
                    lesson_id=row.lesson_id,
                    position=row.lesson_position or 0,
                    title=row.lesson_title or "",
                )
                lessons[row.lesson_id] = lesson
            lesson.units.append(
                {
                    "content_id": row.content_id,
                    "position": row.unit_position or 0,
                    "title": row.title or "",
                    "content_type": row.content_type,
                    "forum_required": bool(row.forum_required),
                    "forum_format": row.forum_format,
                    "has_assignment": bool(row.has_assignment),
                    "image_count": row.image_count or 0,
                    "question_count": row.question_count or 0,
                }
            )

        return CourseOutline(
            course_id=course_id,
            title=title,
            lessons=list(lessons.values()),
        )
