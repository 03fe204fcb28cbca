"""Unit identity, content types and the flattened feed."""

from .models import (
    ContentType,
    CourseOutline,
    ForumFormat,
    LessonOutline,
    Unit,
    UnitKey,
    flatten_feed,
    normalize_content_type,
)
from .resolver import (
    UNITS_TABLES_CQL,
    CassandraEnrollmentResolver,
    EnrollmentResolution,
    EnrollmentResolver,
)


__all__ = [
    "UNITS_TABLES_CQL",
    "CassandraEnrollmentResolver",
    "ContentType",
    "CourseOutline",
    "EnrollmentResolution",
    "EnrollmentResolver",
    "ForumFormat",
    "LessonOutline",
    "Unit",
    "UnitKey",
    "flatten_feed",
    "normalize_content_type",
]
