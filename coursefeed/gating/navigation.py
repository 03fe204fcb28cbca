"""Feed navigation and same-course gating.

The feed is one flattened sequence across every enrolled course. Each
course enforces its own order: a unit can only be reached once the units
before it in the same course are complete. Units of different courses never
gate each other. Decisions are evaluated on every request, never cached.
"""

from collections.abc import Iterator
from dataclasses import dataclass
from enum import Enum

import structlog

from coursefeed.completion.policy import BlockReason, CompletionPolicy
from coursefeed.forum.service import ForumRequirementChecker
from coursefeed.progress.service import ProgressStore
from coursefeed.units.models import Unit

from .gestures import WheelGestureNormalizer


logger = structlog.get_logger(__name__)

FORUM_REQUIRED_MESSAGE = "Participate in the required forum to continue."
PROGRESS_INCOMPLETE_MESSAGE = "Complete the previous unit of this course (progress {pct}%)."
OUT_OF_RANGE_MESSAGE = "There is no unit at that position."


# ==============================================================================
# Custom Exceptions
# ==============================================================================


class GatingError(Exception):
    """Base gating error."""

    def __init__(self, message: str, code: str = "gating_error"):
        self.message = message
        self.code = code
        super().__init__(message)


class UnknownTargetError(GatingError):
    """Navigation target is not part of the learner's feed."""

    def __init__(self, message: str = "Unit is not part of this feed"):
        super().__init__(message, "unknown_target")


# ==============================================================================
# Decisions
# ==============================================================================


class NavigationReason(str, Enum):
    """Why a navigation request was refused."""

    FORUM_REQUIRED = "forum_required"
    PROGRESS_INCOMPLETE = "progress_incomplete"
    OUT_OF_RANGE = "out_of_range"


@dataclass(frozen=True)
class NavigationDecision:
    """Outcome of a navigation request.

    A refusal is a normal outcome, not an error: ``message`` carries the
    advisory shown to the learner.
    """

    allowed: bool
    target_index: int
    reason: NavigationReason | None = None
    message: str | None = None
    progress_pct: int | None = None
    blocking_unit: Unit | None = None


# ==============================================================================
# Sequence
# ==============================================================================


class FeedSequence:
    """Ordered, flattened units of every enrolled course."""

    def __init__(self, units: list[Unit]):
        self.units = list(units)
        self._positions = {unit.feed_id: i for i, unit in enumerate(self.units)}

    def __len__(self) -> int:
        return len(self.units)

    def __getitem__(self, index: int) -> Unit:
        return self.units[index]

    def __iter__(self) -> Iterator[Unit]:
        return iter(self.units)

    @property
    def last_index(self) -> int:
        return max(0, len(self.units) - 1)

    def in_range(self, index: int) -> bool:
        return 0 <= index < len(self.units)

    def index_of(self, feed_id: str) -> int | None:
        return self._positions.get(feed_id)

    def same_course_predecessors(self, index: int) -> Iterator[int]:
        """Indexes before ``index`` in the same course, nearest first."""
        course_id = self.units[index].course_id
        for i in range(index - 1, -1, -1):
            if self.units[i].course_id == course_id:
                yield i

    def previous_same_course(self, index: int) -> int | None:
        return next(self.same_course_predecessors(index), None)


# ==============================================================================
# Controller
# ==============================================================================


class GatingController:
    """Owns the active index and every navigation decision."""

    def __init__(
        self,
        sequence: FeedSequence,
        store: ProgressStore,
        forum: ForumRequirementChecker,
        policy: CompletionPolicy,
        gestures: WheelGestureNormalizer | None = None,
    ):
        self.sequence = sequence
        self.store = store
        self.forum = forum
        self.policy = policy
        self.gestures = gestures
        self.active_index = 0
        self.initial_positioned = False

    def is_complete(self, index: int) -> bool:
        unit = self.sequence[index]
        return self.policy.is_complete(
            self.store.get(unit.feed_id), unit, self.forum.is_satisfied(unit)
        )

    def first_pending_index(self) -> int:
        """First incomplete unit; parks at the last unit when all are done."""
        for index in range(len(self.sequence)):
            if not self.is_complete(index):
                return index
        return self.sequence.last_index

    def position_at_first_pending(self) -> int:
        """Move to the first pending unit, once per session."""
        if not self.initial_positioned:
            self.active_index = self.first_pending_index()
            self.initial_positioned = True
            logger.info(
                "feed_positioned",
                active_index=self.active_index,
                units=len(self.sequence),
            )
        return self.active_index

    def previous_same_course(self, index: int) -> int | None:
        return self.sequence.previous_same_course(index)

    def can_advance_to(self, target: int) -> NavigationDecision:
        """Whether the learner may move to ``target``.

        Every earlier unit of the target's course must be complete; the
        nearest incomplete one is reported as the blocker.
        """
        if not self.sequence.in_range(target):
            return NavigationDecision(
                allowed=False,
                target_index=target,
                reason=NavigationReason.OUT_OF_RANGE,
                message=OUT_OF_RANGE_MESSAGE,
            )

        for index in self.sequence.same_course_predecessors(target):
            unit = self.sequence[index]
            record = self.store.get(unit.feed_id)
            block = self.policy.block_reason(record, unit, self.forum.is_satisfied(unit))
            if block is None:
                continue
            pct = round(self.policy.effective_progress(record))
            if block == BlockReason.FORUM_REQUIRED:
                reason = NavigationReason.FORUM_REQUIRED
                message = FORUM_REQUIRED_MESSAGE
            else:
                reason = NavigationReason.PROGRESS_INCOMPLETE
                message = PROGRESS_INCOMPLETE_MESSAGE.format(pct=pct)
            return NavigationDecision(
                allowed=False,
                target_index=target,
                reason=reason,
                message=message,
                progress_pct=pct,
                blocking_unit=unit,
            )

        return NavigationDecision(allowed=True, target_index=target)

    def request_jump(self, target: int) -> NavigationDecision:
        decision = self.can_advance_to(target)
        if decision.allowed:
            self.active_index = target
        else:
            logger.info(
                "navigation_refused",
                target_index=target,
                reason=decision.reason.value if decision.reason else None,
                blocking_feed_id=(
                    decision.blocking_unit.feed_id if decision.blocking_unit else None
                ),
            )
        return decision

    def next(self) -> NavigationDecision:
        return self.request_jump(self.active_index + 1)

    def previous(self) -> NavigationDecision:
        return self.request_jump(self.active_index - 1)

    def select(self, feed_id: str) -> NavigationDecision:
        """Jump requested from the table of contents."""
        index = self.sequence.index_of(feed_id)
        if index is None:
            raise UnknownTargetError
        return self.request_jump(index)

    async def recheck_forum(
        self, decision: NavigationDecision | None, gesture: bool = False
    ) -> NavigationDecision | None:
        """Settle a forum refusal against fresh forum status.

        A negative forum answer is only a snapshot: the learner may have
        posted from another session since. The blocking unit is asked again
        and the move retried for as long as that clears the blocker.
        """
        retried = False
        while (
            decision is not None
            and decision.reason == NavigationReason.FORUM_REQUIRED
            and decision.blocking_unit is not None
            and await self.forum.refresh(decision.blocking_unit)
        ):
            decision = self.request_jump(decision.target_index)
            retried = True
        if retried and gesture and decision.allowed and self.gestures is not None:
            self.gestures.lock()
        return decision

    def on_text_end_reached(self, index: int) -> NavigationDecision | None:
        """Auto-advance after a text unit was read to its end."""
        if index != self.active_index or index >= self.sequence.last_index:
            return None
        return self.request_jump(index + 1)

    def on_wheel(
        self,
        delta: float,
        zoom: bool = False,
        inside_scrollable: bool = False,
    ) -> NavigationDecision | None:
        """Route a wheel event; at most one transition per gesture."""
        if self.gestures is None:
            return None
        direction = self.gestures.feed(delta, zoom=zoom, inside_scrollable=inside_scrollable)
        if direction is None:
            return None
        decision = self.request_jump(self.active_index + direction)
        if not decision.allowed:
            self.gestures.unlock()
        return decision
