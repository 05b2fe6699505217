from __future__ import annotations

from datetime import datetime
from typing import Any, Iterable, List, Optional

from .config import Settings, settings
from .id_factory import generate_review_item_id
from .logging import logger
from .models import ReviewGradeResult, ReviewItem, ReviewItemKind, ReviewStats, SessionSummary
from .scheduler import LeitnerScheduler
from .session import AnswerJudge, ReviewSession, SessionMisuseError, answer_is_not_blank
from .store import ReviewItemRepository, SQLiteReviewItemStore


class ReviewService:
    """Coordinates the item store, the scheduler and the active review session.

    アプリ全体で共有していたデータマネージャの代わりに、ストアとスケジューラを
    明示的に受け取って組み立てる。セッションへの回答は正誤判定のあと
    スケジューラへ転送し、更新後のアイテムをストアへ保存する。
    """

    def __init__(
        self,
        store: ReviewItemRepository,
        scheduler: LeitnerScheduler,
        *,
        session_limit: Optional[int] = None,
        upcoming_window_days: int = 7,
        judge: AnswerJudge = answer_is_not_blank,
    ) -> None:
        self._store = store
        self._scheduler = scheduler
        self._session_limit = session_limit
        self._upcoming_window_days = upcoming_window_days
        self._judge = judge
        self._session: Optional[ReviewSession] = None

    @classmethod
    def from_settings(cls, config: Settings = settings) -> "ReviewService":
        store = SQLiteReviewItemStore(config.review_db_path)
        scheduler = LeitnerScheduler.from_settings(config)
        return cls(
            store,
            scheduler,
            session_limit=config.review_session_max_items,
            upcoming_window_days=config.review_upcoming_window_days,
        )

    @property
    def current_session(self) -> Optional[ReviewSession]:
        return self._session

    @property
    def is_active(self) -> bool:
        return self._session is not None

    # --- items ---
    def add_item(self, kind: ReviewItemKind, payload_ref: str) -> ReviewItem:
        """Register new content for review; it is due immediately in box 1."""
        now = self._scheduler.now()
        item = ReviewItem(
            id=generate_review_item_id(kind, payload_ref),
            kind=kind,
            payload_ref=payload_ref,
            next_due_at=now,
        )
        self._store.add(item, created_at=now)
        logger.info("review_item_added", item_id=item.id, kind=kind.value, payload_ref=payload_ref)
        return item

    def due_items(self, limit: Optional[int] = None) -> List[ReviewItem]:
        due = self._scheduler.get_due_items(self._store.list_items())
        return due if limit is None else due[:limit]

    def overdue_items(self) -> List[ReviewItem]:
        return self._scheduler.get_overdue_items(self._store.list_items())

    def upcoming_items(self, within_days: Optional[int] = None) -> List[ReviewItem]:
        window = self._upcoming_window_days if within_days is None else within_days
        return self._scheduler.get_upcoming_items(self._store.list_items(), within_days=window)

    # --- session ---
    def start_session(
        self,
        items: Optional[Iterable[ReviewItem]] = None,
        limit: Optional[int] = None,
    ) -> ReviewSession:
        """Start a session over `items`, or over the currently due items."""
        cap = limit if limit is not None else self._session_limit
        if items is None:
            batch = self.due_items(limit=cap)
        else:
            batch = list(items)
            if cap is not None:
                batch = batch[:cap]
        if self._session is not None and not self._session.is_complete:
            logger.info("review_session_replaced", answered=self._session.answered_count)
        self._session = ReviewSession(batch, judge=self._judge)
        logger.info("review_session_started", items=len(batch))
        return self._session

    def submit_answer(self, answer: Any, item: ReviewItem) -> ReviewGradeResult:
        """Judge, reschedule and persist, then advance the session.

        永続化に失敗した場合はセッションを進めないため、回答済みなのに
        再スケジュールされていないアイテムは生じない。
        """
        if self._session is None:
            raise SessionMisuseError("no active review session")
        was_correct = self._session.judge_answer(answer, item)
        updated = self._apply(item.id, was_correct)
        self._session.record_answer(answer, updated, was_correct)
        logger.info(
            "review_answer_recorded",
            item_id=item.id,
            was_correct=was_correct,
            progress=round(self._session.progress, 4),
        )
        return self._result(updated, was_correct)

    def grade_item(self, item_id: str, was_correct: bool) -> ReviewGradeResult:
        """Schedule the stored item and persist it, with or without a session."""
        return self._result(self._apply(item_id, was_correct), was_correct)

    def _apply(self, item_id: str, was_correct: bool) -> ReviewItem:
        # the store reads, reschedules and writes in one transaction
        return self._store.apply_review(item_id, was_correct, self._scheduler.schedule_next)

    @staticmethod
    def _result(item: ReviewItem, was_correct: bool) -> ReviewGradeResult:
        return ReviewGradeResult(
            item_id=item.id,
            was_correct=was_correct,
            box=item.box,
            next_due_at=item.next_due_at,
        )

    def end_session(self) -> Optional[SessionSummary]:
        if self._session is None:
            return None
        summary = self._session.summary()
        self._session = None
        logger.info(
            "review_session_ended",
            total=summary.total,
            answered=summary.answered,
            correct=summary.correct,
            is_complete=summary.is_complete,
        )
        return summary

    # --- stats ---
    def stats(self) -> ReviewStats:
        items = self._store.list_items()
        now = self._scheduler.now()
        today_start = datetime(now.year, now.month, now.day, tzinfo=now.tzinfo)
        return ReviewStats(
            total=len(items),
            due_now=len(self._scheduler.get_due_items(items)),
            overdue=len(self._scheduler.get_overdue_items(items)),
            upcoming=len(self._scheduler.get_upcoming_items(items, within_days=self._upcoming_window_days)),
            reviewed_today=self._store.count_reviews_since(today_start),
        )
