from __future__ import annotations

from collections.abc import Callable, Iterable
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from .models import ReviewItem, SessionSummary


AnswerJudge = Callable[[ReviewItem, Any], bool]


class SessionMisuseError(RuntimeError):
    """Raised when an answer is submitted out of order or after completion."""


class SessionState(str, Enum):
    IN_PROGRESS = "in_progress"
    COMPLETE = "complete"


@dataclass(frozen=True)
class AnswerRecord:
    item_id: str
    answer: Any
    was_correct: bool


def answer_is_not_blank(item: ReviewItem, answer: Any) -> bool:
    """Default answer judgment.

    - bool: 呼び出し側の判定をそのまま採用
    - str: 空白除去後に空でなければ正解
    - None: 不正解
    """
    if isinstance(answer, bool):
        return answer
    if answer is None:
        return False
    if isinstance(answer, str):
        return bool(answer.strip())
    return True


class ReviewSession:
    """Single-use walk over a fixed batch of review items.

    The session records answers and moves its cursor; it never touches the
    scheduler. Submitting after completion or for an item other than the
    current one raises `SessionMisuseError` and leaves the session unchanged.
    """

    def __init__(self, items: Iterable[ReviewItem], judge: AnswerJudge = answer_is_not_blank) -> None:
        self._items: Tuple[ReviewItem, ...] = tuple(items)
        self._judge = judge
        self._current_index = 0
        self._records: List[AnswerRecord] = []

    @property
    def items(self) -> Tuple[ReviewItem, ...]:
        return self._items

    @property
    def current_index(self) -> int:
        return self._current_index

    @property
    def is_complete(self) -> bool:
        return self._current_index >= len(self._items)

    @property
    def state(self) -> SessionState:
        return SessionState.COMPLETE if self.is_complete else SessionState.IN_PROGRESS

    @property
    def current_item(self) -> Optional[ReviewItem]:
        if self.is_complete:
            return None
        return self._items[self._current_index]

    @property
    def progress(self) -> float:
        # 空のセッションは開始時点で完了扱い
        if not self._items:
            return 1.0
        return self._current_index / len(self._items)

    @property
    def answered_count(self) -> int:
        return len(self._records)

    @property
    def correct_count(self) -> int:
        return sum(1 for record in self._records if record.was_correct)

    @property
    def records(self) -> Tuple[AnswerRecord, ...]:
        return tuple(self._records)

    def submit_answer(self, answer: Any, item: ReviewItem) -> bool:
        """Record the answer for the current item and advance; returns correctness."""
        was_correct = self.judge_answer(answer, item)
        self.record_answer(answer, item, was_correct)
        return was_correct

    def judge_answer(self, answer: Any, item: ReviewItem) -> bool:
        """Judge an answer for the current item without advancing."""
        current = self._require_current(item)
        return bool(self._judge(current, answer))

    def record_answer(self, answer: Any, item: ReviewItem, was_correct: bool) -> None:
        """Record an already judged answer and advance.

        `item` replaces the session's copy so that `items` reflects the
        rescheduled state (box / next_due_at) once it has been persisted.
        """
        self._require_current(item)
        index = self._current_index
        self._items = self._items[:index] + (item,) + self._items[index + 1:]
        self._records.append(AnswerRecord(item_id=item.id, answer=answer, was_correct=was_correct))
        self._current_index += 1

    def _require_current(self, item: ReviewItem) -> ReviewItem:
        current = self.current_item
        if current is None:
            raise SessionMisuseError("review session is already complete")
        if item.id != current.id:
            raise SessionMisuseError(
                f"answer submitted for {item.id!r} but current item is {current.id!r}"
            )
        return current

    def results(self) -> Dict[str, bool]:
        return {record.item_id: record.was_correct for record in self._records}

    def summary(self) -> SessionSummary:
        correct = self.correct_count
        return SessionSummary(
            total=len(self._items),
            answered=self.answered_count,
            correct=correct,
            incorrect=self.answered_count - correct,
            is_complete=self.is_complete,
        )
