"""Forum requirement module."""

from .models import FORUM_TABLES_CQL, ForumPost, ForumPostPayload, ForumStatus
from .service import (
    CassandraForumCollaborator,
    ForumCollaborator,
    ForumError,
    ForumNotRequiredError,
    ForumRequirementChecker,
    InvalidForumPostError,
)


__all__ = [
    "FORUM_TABLES_CQL",
    "CassandraForumCollaborator",
    "ForumCollaborator",
    "ForumError",
    "ForumNotRequiredError",
    "ForumPost",
    "ForumPostPayload",
    "ForumRequirementChecker",
    "ForumStatus",
    "InvalidForumPostError",
]
