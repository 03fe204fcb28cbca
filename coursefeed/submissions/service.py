"""Quiz and assignment submission services.

Quiz submission is the one completion path that is an explicit action: the
quiz adapter keeps its reading below 100 until a submission record exists,
so a failed write leaves the unit incomplete and resubmittable.
"""

from collections.abc import Callable
from dataclasses import replace
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any, Protocol

import structlog

from coursefeed.units.models import Unit

from .models import (
    QuizAnswer,
    QuizQuestion,
    Submission,
    SubmissionKind,
    SubmissionResult,
    SubmissionStatus,
)


if TYPE_CHECKING:
    from cassandra.cluster import Session

logger = structlog.get_logger(__name__)


# ==============================================================================
# Custom Exceptions
# ==============================================================================


class SubmissionError(Exception):
    """Base submission error."""

    def __init__(self, message: str, code: str = "submission_error"):
        self.message = message
        self.code = code
        super().__init__(message)


class SubmissionWriteError(SubmissionError):
    """The submission store could not be reached."""

    def __init__(self, message: str = "Submission could not be saved, try again"):
        super().__init__(message, "submission_write_failed")


class IncompleteQuizError(SubmissionError):
    """Some questions have no answer."""

    def __init__(self, message: str = "Answer every question before submitting"):
        super().__init__(message, "incomplete_quiz")


class SubmissionLockedError(SubmissionError):
    """Submission was already graded and cannot change."""

    def __init__(self, message: str = "Submission was already graded"):
        super().__init__(message, "submission_locked")


class InvalidSubmissionError(SubmissionError):
    """Submission does not apply to the unit or carries nothing."""

    def __init__(self, message: str = "Invalid submission"):
        super().__init__(message, "invalid_submission")


# ==============================================================================
# Collaborator
# ==============================================================================


class SubmissionCollaborator(Protocol):
    """Durable store of submissions, one per (unit, learner)."""

    async def find_existing(self, unit: Unit, learner_id: str) -> Submission | None: ...

    async def create(self, submission: Submission) -> Submission: ...

    async def update(self, submission: Submission) -> Submission: ...


class QuizCatalog(Protocol):
    """Read-only access to the questions of a quiz unit."""

    async def questions(self, unit: Unit) -> list[QuizQuestion]: ...


class CassandraQuizCatalog:
    """Quiz questions on the quiz_questions table."""

    def __init__(self, session: "Session", keyspace: str):
        self.session = session
        self.keyspace = keyspace
        self._get_questions = self.session.prepare(f"""
            SELECT * FROM {self.keyspace}.quiz_questions
            WHERE feed_id = ?
        """)

    async def questions(self, unit: Unit) -> list[QuizQuestion]:
        rows = await self.session.aexecute(self._get_questions, [unit.feed_id])
        return [QuizQuestion.from_row(row) for row in rows]


class CassandraSubmissionCollaborator:
    """Submissions on the submissions table."""

    def __init__(self, session: "Session", keyspace: str):
        self.session = session
        self.keyspace = keyspace
        self._prepare_statements()

    def _prepare_statements(self) -> None:
        self._get_submission = self.session.prepare(f"""
            SELECT * FROM {self.keyspace}.submissions
            WHERE feed_id = ? AND learner_id = ?
        """)
        self._insert_submission = self.session.prepare(f"""
            INSERT INTO {self.keyspace}.submissions (
                feed_id, learner_id, submission_id, course_id, lesson_id,
                content_id, kind, status, grade, answers, content, file_url,
                learner_name, submitted_at
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            IF NOT EXISTS
        """)
        self._update_pending = self.session.prepare(f"""
            UPDATE {self.keyspace}.submissions
            SET content = ?, file_url = ?, submitted_at = ?
            WHERE feed_id = ? AND learner_id = ?
            IF status = ?
        """)

    async def find_existing(self, unit: Unit, learner_id: str) -> Submission | None:
        result = await self.session.aexecute(self._get_submission, [unit.feed_id, learner_id])
        row = result.one()
        return Submission.from_row(row) if row else None

    async def create(self, submission: Submission) -> Submission:
        """Insert unless a record exists; the stored record is returned."""
        key = submission.unit_key
        result = await self.session.aexecute(
            self._insert_submission,
            [
                submission.feed_id,
                submission.learner_id,
                submission.submission_id,
                key.course_id,
                key.lesson_id,
                key.content_id,
                submission.kind.value,
                submission.status.value,
                submission.grade,
                submission.answers_json(),
                submission.content,
                submission.file_url,
                submission.learner_name,
                submission.submitted_at,
            ],
        )
        if result.was_applied:
            return submission
        # Lost the race: the first record is the submission
        row = result.one()
        if row is not None and getattr(row, "submission_id", None) is not None:
            return Submission.from_row(row)
        return submission

    async def update(self, submission: Submission) -> Submission:
        """Rewrite a pending submission; graded ones are left untouched."""
        result = await self.session.aexecute(
            self._update_pending,
            [
                submission.content,
                submission.file_url,
                submission.submitted_at,
                submission.feed_id,
                submission.learner_id,
                SubmissionStatus.PENDING.value,
            ],
        )
        if not result.was_applied:
            raise SubmissionLockedError
        return submission


# ==============================================================================
# Grading
# ==============================================================================


def grade_quiz(
    questions: list[QuizQuestion], answers: dict[str, str]
) -> tuple[SubmissionStatus, int | None, list[QuizAnswer]]:
    """Grade a fully answered quiz.

    A quiz is auto-gradable only if every question has an answer key; then
    the grade is the rounded share of correct answers and the status is
    graded. Otherwise the submission waits for manual grading.
    """
    detailed: list[QuizAnswer] = []
    correct = 0
    for question in questions:
        option_id = answers.get(question.question_id, "")
        option = question.option(option_id)
        detailed.append(
            QuizAnswer(
                question_id=question.question_id,
                question=question.text,
                selected_option_id=option_id,
                selected_option_text=option.text if option else option_id,
            )
        )
        if option is not None and option.is_correct is True:
            correct += 1

    if questions and all(q.auto_gradable for q in questions):
        return SubmissionStatus.GRADED, round(correct / len(questions) * 100), detailed
    return SubmissionStatus.PENDING, None, detailed


def summarize_answers(answers: list[QuizAnswer]) -> str:
    """Readable one-line-per-question summary for graders."""
    return "\n".join(
        f"Q{i}: {a.question or 'Question'} -> {a.selected_option_text or 'No answer'}"
        for i, a in enumerate(answers, start=1)
    )


# ==============================================================================
# Services
# ==============================================================================


class QuizSubmissionService:
    """Submits quizzes exactly once per (unit, learner)."""

    def __init__(self, collaborator: SubmissionCollaborator):
        self.collaborator = collaborator

    async def load_existing(self, unit: Unit, learner_id: str) -> Submission | None:
        """Existing submission at session start (lookup failures read as none)."""
        try:
            return await self.collaborator.find_existing(unit, learner_id)
        except Exception as e:
            logger.warning("submission_lookup_failed", feed_id=unit.feed_id, error=str(e))
            return None

    async def submit(
        self,
        unit: Unit,
        learner_id: str,
        answers: dict[str, str],
        questions: list[QuizQuestion],
        on_committed: Callable[[], Any] | None = None,
        learner_name: str = "",
    ) -> SubmissionResult:
        """Grade and store a quiz submission.

        ``on_committed`` runs only once a record is known to exist, which is
        what lifts the quiz progress cap.
        """
        missing = [q.question_id for q in questions if not answers.get(q.question_id)]
        if not questions or missing:
            raise IncompleteQuizError

        try:
            existing = await self.collaborator.find_existing(unit, learner_id)
        except Exception as e:
            logger.warning("quiz_submit_failed", feed_id=unit.feed_id, error=str(e))
            raise SubmissionWriteError from e

        if existing is not None:
            logger.info("quiz_already_submitted", feed_id=unit.feed_id)
            if on_committed is not None:
                on_committed()
            return SubmissionResult(submission=existing, already_submitted=True)

        status, grade, detailed = grade_quiz(questions, answers)
        submission = Submission(
            unit_key=unit.key,
            learner_id=learner_id,
            kind=SubmissionKind.QUIZ,
            status=status,
            grade=grade,
            answers=detailed,
            content=summarize_answers(detailed),
            learner_name=learner_name,
        )
        try:
            stored = await self.collaborator.create(submission)
        except Exception as e:
            logger.warning("quiz_submit_failed", feed_id=unit.feed_id, error=str(e))
            raise SubmissionWriteError from e

        if on_committed is not None:
            on_committed()

        already = stored.submission_id != submission.submission_id
        logger.info(
            "quiz_submitted",
            feed_id=unit.feed_id,
            status=stored.status.value,
            grade=stored.grade,
            already_submitted=already,
        )
        return SubmissionResult(submission=stored, already_submitted=already)


class AssignmentSubmissionService:
    """Assignment deliveries; resubmission is allowed until graded."""

    def __init__(self, collaborator: SubmissionCollaborator):
        self.collaborator = collaborator

    async def submit(
        self,
        unit: Unit,
        learner_id: str,
        content: str,
        file_url: str | None = None,
        learner_name: str = "",
    ) -> SubmissionResult:
        if not unit.has_assignment:
            raise InvalidSubmissionError("This unit has no assignment")
        content = (content or "").strip()
        if not content and not file_url:
            raise InvalidSubmissionError("Assignment is empty")

        try:
            existing = await self.collaborator.find_existing(unit, learner_id)
            if existing is not None:
                if existing.status != SubmissionStatus.PENDING:
                    raise SubmissionLockedError
                updated = replace(
                    existing,
                    content=content,
                    file_url=file_url,
                    submitted_at=datetime.now(UTC),
                )
                stored = await self.collaborator.update(updated)
                resubmitted = True
            else:
                stored = await self.collaborator.create(
                    Submission(
                        unit_key=unit.key,
                        learner_id=learner_id,
                        kind=SubmissionKind.ASSIGNMENT,
                        content=content,
                        file_url=file_url,
                        learner_name=learner_name,
                    )
                )
                resubmitted = False
        except SubmissionError:
            raise
        except Exception as e:
            logger.warning("assignment_submit_failed", feed_id=unit.feed_id, error=str(e))
            raise SubmissionWriteError from e

        logger.info(
            "assignment_submitted",
            feed_id=unit.feed_id,
            resubmitted=resubmitted,
        )
        return SubmissionResult(submission=stored, already_submitted=resubmitted)
