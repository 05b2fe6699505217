from __future__ import annotations

import threading
from collections.abc import Callable, Iterable, Sequence
from datetime import UTC, datetime, timedelta
from typing import TYPE_CHECKING, Dict, List, Optional

from .config import DEFAULT_INTERVAL_DAYS, MAX_INTERVAL_DAYS_LIMIT
from .logging import logger
from .models import ReviewItem

if TYPE_CHECKING:
    from .config import Settings


Clock = Callable[[], datetime]

# beyond the table the last interval doubles per box; the exponent is bounded
_MAX_EXTRA_DOUBLINGS = 32


def utc_now() -> datetime:
    return datetime.now(UTC)


class LeitnerScheduler:
    """Fixed leveled-box scheduler.

    - correct: box + 1, next due after the interval of the new box
    - wrong: box reset to 1, next due after `relearn_after` (same-day retry)
    - interval table defaults to 1/3/7/14/30 days; past the table the last
      interval doubles per box up to `max_interval_days`
    - box and due date are updated together under a per-item lock
    """

    def __init__(
        self,
        interval_days: Sequence[int] = DEFAULT_INTERVAL_DAYS,
        *,
        relearn_after: Optional[timedelta] = timedelta(hours=4),
        max_interval_days: int = 365,
        clock: Clock = utc_now,
    ) -> None:
        table = tuple(int(days) for days in interval_days)
        if not table:
            raise ValueError("interval_days must not be empty")
        if any(days <= 0 for days in table):
            raise ValueError("interval_days must be positive")
        if any(later < earlier for earlier, later in zip(table, table[1:])):
            raise ValueError("interval_days must be non-decreasing")
        if max_interval_days < table[-1]:
            raise ValueError("max_interval_days must be >= the last interval")
        if max_interval_days > MAX_INTERVAL_DAYS_LIMIT:
            raise ValueError(f"max_interval_days must be <= {MAX_INTERVAL_DAYS_LIMIT}")
        if relearn_after is not None and relearn_after <= timedelta(0):
            raise ValueError("relearn_after must be positive")

        self._interval_days = table
        self._relearn_after = relearn_after
        self._max_interval_days = max_interval_days
        self._clock = clock
        self._registry_lock = threading.Lock()
        self._item_locks: Dict[str, threading.Lock] = {}

    @classmethod
    def from_settings(cls, config: "Settings", *, clock: Clock = utc_now) -> "LeitnerScheduler":
        relearn_hours = config.review_relearn_after_hours
        return cls(
            config.review_interval_days,
            relearn_after=timedelta(hours=relearn_hours) if relearn_hours > 0 else None,
            max_interval_days=config.review_max_interval_days,
            clock=clock,
        )

    @property
    def interval_days(self) -> tuple[int, ...]:
        return self._interval_days

    def now(self) -> datetime:
        """Read the clock once; naive readings are taken as UTC."""
        current = self._clock()
        if current.tzinfo is None:
            return current.replace(tzinfo=UTC)
        return current

    def interval_for(self, box: int) -> timedelta:
        """Return the review interval for a box (1-based)."""
        if box < 1:
            raise ValueError(f"box must be >= 1, got {box}")
        table = self._interval_days
        if box <= len(table):
            days = table[box - 1]
        else:
            extra = min(box - len(table), _MAX_EXTRA_DOUBLINGS)
            days = table[-1] * (2 ** extra)
        return timedelta(days=min(days, self._max_interval_days))

    def _lock_for(self, item_id: str) -> threading.Lock:
        with self._registry_lock:
            lock = self._item_locks.get(item_id)
            if lock is None:
                lock = threading.Lock()
                self._item_locks[item_id] = lock
            return lock

    def schedule_next(self, item: ReviewItem, was_correct: bool) -> ReviewItem:
        """Move the item to its next box and due date in place."""
        with self._lock_for(item.id):
            now = self.now()
            previous_box = item.box
            if was_correct:
                box = previous_box + 1
                delay = self.interval_for(box)
            else:
                box = 1
                delay = self._relearn_after if self._relearn_after is not None else self.interval_for(1)
            item.box = box
            item.last_reviewed_at = now
            item.next_due_at = now + delay

        logger.info(
            "review_item_scheduled",
            item_id=item.id,
            was_correct=was_correct,
            previous_box=previous_box,
            box=item.box,
            next_due_at=item.next_due_at.isoformat(),
        )
        return item

    def get_due_items(self, items: Iterable[ReviewItem]) -> List[ReviewItem]:
        """Items due at the current instant, in input order (boundary inclusive)."""
        now = self.now()
        return [item for item in items if item.next_due_at <= now]

    def get_overdue_items(self, items: Iterable[ReviewItem]) -> List[ReviewItem]:
        now = self.now()
        overdue = [item for item in items if item.next_due_at < now]
        return sorted(overdue, key=lambda item: item.next_due_at)

    def get_upcoming_items(self, items: Iterable[ReviewItem], within_days: int = 7) -> List[ReviewItem]:
        now = self.now()
        horizon = now + timedelta(days=within_days)
        upcoming = [item for item in items if now < item.next_due_at <= horizon]
        return sorted(upcoming, key=lambda item: item.next_due_at)
