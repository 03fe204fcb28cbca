"""Quiz and assignment submissions."""

from .models import (
    SUBMISSIONS_TABLES_CQL,
    QuizAnswer,
    QuizOption,
    QuizQuestion,
    Submission,
    SubmissionKind,
    SubmissionResult,
    SubmissionStatus,
)
from .service import (
    AssignmentSubmissionService,
    CassandraQuizCatalog,
    CassandraSubmissionCollaborator,
    IncompleteQuizError,
    InvalidSubmissionError,
    QuizCatalog,
    QuizSubmissionService,
    SubmissionCollaborator,
    SubmissionError,
    SubmissionLockedError,
    SubmissionWriteError,
    grade_quiz,
)


__all__ = [
    "SUBMISSIONS_TABLES_CQL",
    "AssignmentSubmissionService",
    "CassandraQuizCatalog",
    "CassandraSubmissionCollaborator",
    "IncompleteQuizError",
    "InvalidSubmissionError",
    "QuizAnswer",
    "QuizCatalog",
    "QuizOption",
    "QuizQuestion",
    "QuizSubmissionService",
    "Submission",
    "SubmissionCollaborator",
    "SubmissionError",
    "SubmissionKind",
    "SubmissionLockedError",
    "SubmissionResult",
    "SubmissionStatus",
    "SubmissionWriteError",
    "grade_quiz",
]
