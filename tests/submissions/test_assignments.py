"""Tests for assignment submissions and the Cassandra submission store."""

from datetime import datetime
from unittest.mock import AsyncMock, Mock
from uuid import uuid4

import pytest
from cassandra.cluster import Session

from coursefeed.submissions.models import Submission, SubmissionKind, SubmissionStatus
from coursefeed.submissions.service import (
    AssignmentSubmissionService,
    CassandraSubmissionCollaborator,
    InvalidSubmissionError,
    SubmissionLockedError,
    SubmissionWriteError,
)
from tests.fakes import FakeSubmissions, make_unit


LESSON = make_unit("v1", has_assignment=True)


@pytest.fixture
def collaborator() -> FakeSubmissions:
    return FakeSubmissions()


@pytest.fixture
def service(collaborator) -> AssignmentSubmissionService:
    return AssignmentSubmissionService(collaborator)


class TestAssignmentSubmission:
    """Deliveries can be replaced until graded."""

    @pytest.mark.asyncio
    async def test_first_delivery(self, service):
        result = await service.submit(LESSON, "learner-1", "  My essay  ")
        assert result.already_submitted is False
        assert result.submission.kind == SubmissionKind.ASSIGNMENT
        assert result.submission.content == "My essay"
        assert result.submission.status == SubmissionStatus.PENDING

    @pytest.mark.asyncio
    async def test_resubmission_replaces_pending(self, service, collaborator):
        first = await service.submit(LESSON, "learner-1", "Draft")
        second = await service.submit(
            LESSON, "learner-1", "", file_url="https://cdn/final.pdf"
        )
        assert second.already_submitted is True
        assert second.submission.submission_id == first.submission.submission_id
        stored = collaborator.records[(LESSON.feed_id, "learner-1")]
        assert stored.file_url == "https://cdn/final.pdf"

    @pytest.mark.asyncio
    async def test_graded_delivery_is_locked(self, service, collaborator):
        await service.submit(LESSON, "learner-1", "Draft")
        stored = collaborator.records[(LESSON.feed_id, "learner-1")]
        stored.status = SubmissionStatus.GRADED
        with pytest.raises(SubmissionLockedError):
            await service.submit(LESSON, "learner-1", "Late change")

    @pytest.mark.asyncio
    async def test_unit_without_assignment(self, service):
        with pytest.raises(InvalidSubmissionError):
            await service.submit(make_unit("v2"), "learner-1", "Text")

    @pytest.mark.asyncio
    async def test_empty_delivery(self, service):
        with pytest.raises(InvalidSubmissionError):
            await service.submit(LESSON, "learner-1", "   ")

    @pytest.mark.asyncio
    async def test_store_failure(self, service, collaborator):
        collaborator.fail_reads = True
        with pytest.raises(SubmissionWriteError):
            await service.submit(LESSON, "learner-1", "Text")


class TestCassandraSubmissionCollaborator:
    """Lightweight transactions on the submissions table."""

    @pytest.fixture
    def mock_session(self):
        session = Mock(spec=Session)
        session.prepare = Mock(return_value=Mock())
        session.aexecute = AsyncMock()
        return session

    def submission(self) -> Submission:
        return Submission(
            unit_key=LESSON.key,
            learner_id="learner-1",
            kind=SubmissionKind.ASSIGNMENT,
            content="Essay",
        )

    @pytest.mark.asyncio
    async def test_create_applied(self, mock_session):
        mock_session.aexecute.return_value = Mock(was_applied=True)
        collaborator = CassandraSubmissionCollaborator(mock_session, "test_ks")
        submission = self.submission()

        assert await collaborator.create(submission) is submission
        params = mock_session.aexecute.call_args.args[1]
        assert params[:2] == [LESSON.feed_id, "learner-1"]
        assert params[6] == "assignment"

    @pytest.mark.asyncio
    async def test_create_not_applied_returns_stored(self, mock_session):
        stored_id = uuid4()
        row = Mock(
            submission_id=stored_id,
            course_id="c1",
            lesson_id="l1",
            content_id="v1",
            learner_id="learner-1",
            kind="assignment",
            status="graded",
            grade=90,
            answers=None,
            content="Original",
            file_url=None,
            learner_name="",
            submitted_at=datetime(2024, 1, 1),
        )
        result = Mock(was_applied=False)
        result.one.return_value = row
        mock_session.aexecute.return_value = result
        collaborator = CassandraSubmissionCollaborator(mock_session, "test_ks")

        stored = await collaborator.create(self.submission())

        assert stored.submission_id == stored_id
        assert stored.status == SubmissionStatus.GRADED
        assert stored.content == "Original"

    @pytest.mark.asyncio
    async def test_update_of_graded_record_is_locked(self, mock_session):
        mock_session.aexecute.return_value = Mock(was_applied=False)
        collaborator = CassandraSubmissionCollaborator(mock_session, "test_ks")
        with pytest.raises(SubmissionLockedError):
            await collaborator.update(self.submission())
        params = mock_session.aexecute.call_args.args[1]
        assert params[-1] == "pending"
