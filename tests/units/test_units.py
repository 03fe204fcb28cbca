"""Tests for unit identity, feed flattening and enrollment resolution."""

from datetime import datetime
from unittest.mock import AsyncMock, Mock

import pytest
from cassandra.cluster import Session

from coursefeed.units.models import (
    ContentType,
    ForumFormat,
    flatten_feed,
    normalize_content_type,
    normalize_forum_format,
)
from coursefeed.units.resolver import CassandraEnrollmentResolver
from tests.fakes import make_course, outline_unit


class TestNormalization:
    @pytest.mark.parametrize(
        ("raw", "expected"),
        [
            ("Texto", ContentType.TEXT),
            ("document", ContentType.TEXT),
            ("gallery", ContentType.IMAGE),
            ("podcast", ContentType.AUDIO),
            ("assessment", ContentType.QUIZ),
            ("", ContentType.VIDEO),
            (None, ContentType.VIDEO),
            ("hologram", ContentType.VIDEO),
        ],
    )
    def test_content_type_aliases(self, raw, expected):
        assert normalize_content_type(raw) == expected

    def test_forum_format(self):
        assert normalize_forum_format(None) is None
        assert normalize_forum_format(" Audio ") == ForumFormat.AUDIO
        assert normalize_forum_format("carrier pigeon") == ForumFormat.TEXT


class TestFlattenFeed:
    """Course order as given, then lesson and unit positions."""

    def test_order_and_positions(self):
        feed = flatten_feed(
            [
                make_course(
                    "c2",
                    ("l1", [outline_unit("b", 1), outline_unit("a", 0)]),
                ),
                make_course("c1", ("m1", [outline_unit("z", 0, "texto")])),
            ]
        )
        assert [u.feed_id for u in feed] == ["c2-a", "c2-b", "c1-z"]
        assert [u.feed_position for u in feed] == [0, 1, 2]
        assert feed[2].content_type == ContentType.TEXT
        assert feed[2].course_title == "C1"

    def test_lessons_sorted_by_position(self):
        course = make_course("c1", ("l1", [outline_unit("a", 0)]), ("l2", [outline_unit("b", 0)]))
        course.lessons.reverse()
        assert [u.lesson_id for u in flatten_feed([course])] == ["l1", "l2"]

    def test_archived_courses_skipped(self):
        feed = flatten_feed(
            [
                make_course("c1", ("l1", [outline_unit("a", 0)]), archived=True),
                make_course("c2", ("l1", [outline_unit("a", 0)])),
            ]
        )
        assert [u.feed_id for u in feed] == ["c2-a"]

    def test_feed_id_is_unique_across_courses(self):
        feed = flatten_feed(
            [
                make_course("c1", ("l1", [outline_unit("intro", 0)])),
                make_course("c2", ("l1", [outline_unit("intro", 0)])),
            ]
        )
        assert len({u.feed_id for u in feed}) == 2


class TestCassandraEnrollmentResolver:
    """Resolution against mocked Cassandra rows."""

    @staticmethod
    def enrollment(course_id, enrollment_id, day, archived=False):
        return Mock(
            course_id=course_id,
            enrollment_id=enrollment_id,
            course_title=course_id.upper(),
            archived=archived,
            enrolled_at=datetime(2024, 1, day),
        )

    @staticmethod
    def unit_row(content_id, lesson_position, unit_position, **fields):
        values = {
            "lesson_id": f"l{lesson_position}",
            "lesson_position": lesson_position,
            "lesson_title": "",
            "unit_position": unit_position,
            "content_id": content_id,
            "title": content_id,
            "content_type": "video",
            "forum_required": None,
            "forum_format": None,
            "has_assignment": None,
            "image_count": None,
            "question_count": None,
        }
        values.update(fields)
        return Mock(**values)

    @pytest.fixture
    def mock_session(self):
        session = Mock(spec=Session)
        session.prepare = Mock(side_effect=lambda cql: Mock(query_string=cql))
        session.aexecute = AsyncMock()
        return session

    @pytest.mark.asyncio
    async def test_resolve(self, mock_session):
        enrollments = [
            self.enrollment("c1", "e1", 1),
            self.enrollment("c2", "e2", 2),
            self.enrollment("c3", "e3", 3, archived=True),
        ]
        units = {
            "c1": [self.unit_row("a", 0, 0), self.unit_row("q", 0, 1, content_type="quiz")],
            "c2": [self.unit_row("x", 0, 0, forum_required=True, forum_format="audio")],
        }

        async def aexecute(statement, params):
            if "learner_enrollments" in statement.query_string:
                return enrollments
            return units[params[0]]

        mock_session.aexecute.side_effect = aexecute
        resolver = CassandraEnrollmentResolver(mock_session, "test_ks")

        resolution = await resolver.resolve("learner-1")

        assert resolution.enrollment_scope == "e2"
        assert [c.course_id for c in resolution.courses] == ["c1", "c2"]
        feed = flatten_feed(resolution.courses)
        assert [u.feed_id for u in feed] == ["c1-a", "c1-q", "c2-x"]
        assert feed[1].content_type == ContentType.QUIZ
        assert feed[2].forum_required
        assert feed[2].forum_format == ForumFormat.AUDIO

    @pytest.mark.asyncio
    async def test_reenrollment_after_archive(self, mock_session):
        enrollments = [
            self.enrollment("c1", "old", 1, archived=True),
            self.enrollment("c1", "new", 5),
        ]

        async def aexecute(statement, params):
            if "learner_enrollments" in statement.query_string:
                return enrollments
            return [self.unit_row("a", 0, 0)]

        mock_session.aexecute.side_effect = aexecute
        resolver = CassandraEnrollmentResolver(mock_session, "test_ks")

        resolution = await resolver.resolve("learner-1")

        assert [c.course_id for c in resolution.courses] == ["c1"]
        assert resolution.enrollment_scope == "new"

    @pytest.mark.asyncio
    async def test_no_enrollments(self, mock_session):
        mock_session.aexecute.return_value = []
        resolver = CassandraEnrollmentResolver(mock_session, "test_ks")

        resolution = await resolver.resolve("learner-1")

        assert resolution.courses == []
        assert resolution.enrollment_scope is None
