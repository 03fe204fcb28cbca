"""Database models for quiz and assignment submissions.

Cassandra table definitions for:
- Submissions: one record per (unit, learner), created with a lightweight
  transaction so duplicate creates collapse into the first one
"""

from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any
from uuid import UUID, uuid4

import orjson

from coursefeed.progress.models import ensure_utc_aware
from coursefeed.units.models import UnitKey


class SubmissionKind(str, Enum):
    """What was submitted."""

    QUIZ = "quiz"
    ASSIGNMENT = "assignment"


class SubmissionStatus(str, Enum):
    """Grading status of a submission."""

    PENDING = "pending"
    GRADED = "graded"
    LATE = "late"


# ==============================================================================
# CQL Table Definitions
# ==============================================================================

# Partition by feed_id, clustering by learner_id: one record per learner/unit
SUBMISSIONS_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.submissions (
    feed_id TEXT,
    learner_id TEXT,
    submission_id UUID,
    course_id TEXT,
    lesson_id TEXT,
    content_id TEXT,
    kind TEXT,
    status TEXT,
    grade INT,
    answers TEXT,
    content TEXT,
    file_url TEXT,
    learner_name TEXT,
    submitted_at TIMESTAMP,
    PRIMARY KEY ((feed_id), learner_id)
)
"""

# Quiz questions, authored elsewhere; options stored as a JSON list
QUIZ_QUESTIONS_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.quiz_questions (
    feed_id TEXT,
    position INT,
    question_id TEXT,
    text TEXT,
    options TEXT,
    PRIMARY KEY ((feed_id), position, question_id)
)
"""

SUBMISSIONS_TABLES_CQL = [SUBMISSIONS_TABLE_CQL, QUIZ_QUESTIONS_TABLE_CQL]


# ==============================================================================
# Quiz Content
# ==============================================================================


@dataclass
class QuizOption:
    """One answer option; ``is_correct`` is None when there is no key."""

    option_id: str
    text: str = ""
    is_correct: bool | None = None


@dataclass
class QuizQuestion:
    question_id: str
    text: str = ""
    options: list[QuizOption] = field(default_factory=list)

    @property
    def auto_gradable(self) -> bool:
        return any(option.is_correct is not None for option in self.options)

    def option(self, option_id: str) -> QuizOption | None:
        return next((o for o in self.options if o.option_id == option_id), None)

    @classmethod
    def from_row(cls, row: Any) -> "QuizQuestion":
        options = []
        if row.options:
            for item in orjson.loads(row.options):
                is_correct = item.get("is_correct")
                options.append(
                    QuizOption(
                        option_id=str(item["option_id"]),
                        text=item.get("text", ""),
                        is_correct=is_correct if isinstance(is_correct, bool) else None,
                    )
                )
        return cls(question_id=row.question_id, text=row.text or "", options=options)


@dataclass
class QuizAnswer:
    """The learner's choice for one question, as stored."""

    question_id: str
    question: str = ""
    selected_option_id: str = ""
    selected_option_text: str = ""

    def to_dict(self) -> dict[str, str]:
        return {
            "question_id": self.question_id,
            "question": self.question,
            "selected_option_id": self.selected_option_id,
            "selected_option_text": self.selected_option_text,
        }


# ==============================================================================
# Entity Classes
# ==============================================================================


@dataclass
class Submission:
    """A quiz or assignment submission of one learner for one unit."""

    unit_key: UnitKey
    learner_id: str
    kind: SubmissionKind
    status: SubmissionStatus = SubmissionStatus.PENDING
    grade: int | None = None
    answers: list[QuizAnswer] = field(default_factory=list)
    content: str = ""
    file_url: str | None = None
    learner_name: str = ""
    submission_id: UUID = field(default_factory=uuid4)
    submitted_at: datetime = field(default_factory=lambda: datetime.now(UTC))

    @property
    def feed_id(self) -> str:
        return self.unit_key.feed_id

    def answers_json(self) -> str:
        return orjson.dumps([a.to_dict() for a in self.answers]).decode()

    @classmethod
    def from_row(cls, row: Any) -> "Submission":
        """Create Submission from a Cassandra row."""
        answers = []
        if row.answers:
            try:
                answers = [QuizAnswer(**item) for item in orjson.loads(row.answers)]
            except (orjson.JSONDecodeError, TypeError):
                answers = []
        return cls(
            unit_key=UnitKey(row.course_id, row.lesson_id, row.content_id),
            learner_id=row.learner_id,
            kind=SubmissionKind(row.kind),
            status=SubmissionStatus(row.status or SubmissionStatus.PENDING.value),
            grade=row.grade,
            answers=answers,
            content=row.content or "",
            file_url=row.file_url,
            learner_name=row.learner_name or "",
            submission_id=row.submission_id,
            submitted_at=ensure_utc_aware(row.submitted_at),
        )


@dataclass
class SubmissionResult:
    """Outcome of a submit call."""

    submission: Submission
    already_submitted: bool = False
