"""Unit engagement: likes and comments."""

from .comments import (
    CassandraCommentLog,
    CommentLog,
    CommentService,
    CommentWriteError,
    InvalidCommentError,
    build_thread,
    sanitize_comment,
)
from .likes import (
    CassandraLikeLedger,
    EngagementError,
    LikeLedger,
    LikeService,
    LikeTransactionError,
    run_like_transaction,
)
from .models import (
    ENGAGEMENT_TABLES_CQL,
    CommentNode,
    CommentRecord,
    LikeSnapshot,
    LikeToggleResult,
)


__all__ = [
    "ENGAGEMENT_TABLES_CQL",
    "CassandraCommentLog",
    "CassandraLikeLedger",
    "CommentLog",
    "CommentNode",
    "CommentRecord",
    "CommentService",
    "CommentWriteError",
    "EngagementError",
    "InvalidCommentError",
    "LikeLedger",
    "LikeService",
    "LikeSnapshot",
    "LikeToggleResult",
    "LikeTransactionError",
    "build_thread",
    "run_like_transaction",
    "sanitize_comment",
]
