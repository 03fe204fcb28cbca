"""Completion policy: the single authority on whether a unit is done.

Image units need every slide (or the full single-image dwell time), so they
require 100%. Quiz units only reach 100% through a stored submission and
require it as well, so answers alone never open the gate. Every other type
tolerates players stopping slightly short of the true end and requires a
lower bar. On top of the percentage, a unit that requires a forum
contribution is only complete once the learner posted one.
"""

from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING

from coursefeed.units.models import ContentType, Unit


if TYPE_CHECKING:
    from coursefeed.progress.models import ProgressRecord


DEFAULT_COMPLETION_THRESHOLD = 80.0
DEFAULT_IMAGE_THRESHOLD = 100.0
QUIZ_THRESHOLD = 100.0


class BlockReason(str, Enum):
    """Why a unit does not count as complete."""

    FORUM_REQUIRED = "forum_required"
    PROGRESS_INCOMPLETE = "progress_incomplete"


@dataclass(frozen=True)
class CompletionPolicy:
    """Maps (content type, measured %, forum status) to completion."""

    completion_threshold_pct: float = DEFAULT_COMPLETION_THRESHOLD
    image_threshold_pct: float = DEFAULT_IMAGE_THRESHOLD

    @classmethod
    def from_settings(cls, settings) -> "CompletionPolicy":
        return cls(
            completion_threshold_pct=settings.completion_threshold_pct,
            image_threshold_pct=settings.image_threshold_pct,
        )

    def required_threshold(self, content_type: ContentType) -> float:
        if content_type == ContentType.IMAGE:
            return self.image_threshold_pct
        if content_type == ContentType.QUIZ:
            return QUIZ_THRESHOLD
        return self.completion_threshold_pct

    @staticmethod
    def effective_progress(record: "ProgressRecord | None") -> float:
        """Stored watermark, raised to 100 when the unit is known seen."""
        if record is None:
            return 0.0
        return max(record.progress_pct, 100.0 if record.is_completed else 0.0)

    def meets_threshold(self, record: "ProgressRecord | None", unit: Unit) -> bool:
        """Percentage half of the completion conjunction."""
        return self.effective_progress(record) >= self.required_threshold(
            unit.content_type
        )

    def reaches_threshold(self, pct: float, unit: Unit) -> bool:
        return pct >= self.required_threshold(unit.content_type)

    def is_complete(
        self,
        record: "ProgressRecord | None",
        unit: Unit,
        forum_satisfied: bool,
    ) -> bool:
        if not self.meets_threshold(record, unit):
            return False
        return forum_satisfied or not unit.forum_required

    def block_reason(
        self,
        record: "ProgressRecord | None",
        unit: Unit,
        forum_satisfied: bool,
    ) -> BlockReason | None:
        """Why the unit is incomplete, or None when it is complete.

        A missing forum contribution is reported first: the learner can act on
        it right away, while progress needs more watching either way.
        """
        if self.is_complete(record, unit, forum_satisfied):
            return None
        if unit.forum_required and not forum_satisfied:
            return BlockReason.FORUM_REQUIRED
        return BlockReason.PROGRESS_INCOMPLETE
