from __future__ import annotations

import sqlite3
import threading
from collections.abc import Callable
from datetime import UTC, datetime
from pathlib import Path
from typing import Dict, List, Optional, Protocol

from .logging import logger
from .models import ReviewItem, ReviewItemKind


Reschedule = Callable[[ReviewItem, bool], ReviewItem]


class ReviewItemNotFoundError(LookupError):
    """Raised when a review item id is not present in the store."""


class ReviewItemRepository(Protocol):
    """Storage boundary for review items.

    スケジューラが更新したアイテムの box / 次回出題時刻を永続化する。
    採点は `apply_review` で読み取りから書き込み・履歴記録までを一度に行い、
    同じアイテムへの同時採点でも更新が失われないようにする。
    """

    def list_items(self) -> List[ReviewItem]: ...

    def get(self, item_id: str) -> Optional[ReviewItem]: ...

    def add(self, item: ReviewItem, *, created_at: Optional[datetime] = None) -> None: ...

    def save(self, item: ReviewItem) -> None: ...

    def apply_review(self, item_id: str, was_correct: bool, reschedule: Reschedule) -> ReviewItem: ...

    def count_reviews_since(self, since: datetime) -> int: ...


def _utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


def _reviewed_at(item: ReviewItem) -> datetime:
    if item.last_reviewed_at is None:
        raise ValueError(f"review item {item.id!r} was not rescheduled (last_reviewed_at unset)")
    return item.last_reviewed_at


class InMemoryReviewItemStore:
    """Process-local store. Returns the stored objects themselves."""

    def __init__(self, items: Optional[List[ReviewItem]] = None) -> None:
        self._lock = threading.Lock()
        self._items: Dict[str, ReviewItem] = {}
        self._reviews: List[tuple[str, datetime, bool]] = []
        for item in items or []:
            self.add(item)

    def list_items(self) -> List[ReviewItem]:
        with self._lock:
            return list(self._items.values())

    def get(self, item_id: str) -> Optional[ReviewItem]:
        with self._lock:
            return self._items.get(item_id)

    def add(self, item: ReviewItem, *, created_at: Optional[datetime] = None) -> None:
        with self._lock:
            if item.id in self._items:
                raise ValueError(f"review item {item.id!r} already exists")
            self._items[item.id] = item

    def save(self, item: ReviewItem) -> None:
        with self._lock:
            if item.id not in self._items:
                raise ReviewItemNotFoundError(item.id)
            self._items[item.id] = item

    def apply_review(self, item_id: str, was_correct: bool, reschedule: Reschedule) -> ReviewItem:
        with self._lock:
            stored = self._items.get(item_id)
            if stored is None:
                raise ReviewItemNotFoundError(item_id)
            item = reschedule(stored, was_correct)
            reviewed_at = _reviewed_at(item)
            self._items[item_id] = item
            self._reviews.append((item.id, reviewed_at, was_correct))
            return item

    def count_reviews_since(self, since: datetime) -> int:
        since = _utc(since)
        with self._lock:
            return sum(1 for _, reviewed_at, _ in self._reviews if reviewed_at >= since)


class SQLiteReviewItemStore:
    """SQLite-backed review item store.

    - one connection per operation (WAL, foreign keys on)
    - timestamps are stored as UTC ISO-8601 strings
    - `save` and `apply_review` run under BEGIN IMMEDIATE so concurrent writers serialize
    - every graded answer is appended to `review_log`
    """

    def __init__(self, db_path: str) -> None:
        self.db_path = db_path
        self._ensure_dirs()
        self._init_db()

    # --- low-level helpers ---
    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self.db_path, timeout=10.0, isolation_level=None, check_same_thread=False)
        conn.row_factory = sqlite3.Row
        with conn:  # autocommit on PRAGMA
            conn.execute("PRAGMA journal_mode=WAL;")
            conn.execute("PRAGMA foreign_keys=ON;")
        return conn

    def _ensure_dirs(self) -> None:
        p = Path(self.db_path)
        if p.parent and not p.parent.exists():
            p.parent.mkdir(parents=True, exist_ok=True)

    def _init_db(self) -> None:
        conn = self._connect()
        try:
            with conn:
                conn.execute(
                    """
                    CREATE TABLE IF NOT EXISTS review_items (
                        id TEXT PRIMARY KEY,
                        kind TEXT NOT NULL,
                        payload_ref TEXT NOT NULL,
                        box INTEGER NOT NULL DEFAULT 1 CHECK (box >= 1),
                        last_reviewed_at TEXT,
                        next_due_at TEXT NOT NULL,
                        created_at TEXT NOT NULL
                    );
                    """
                )
                conn.execute(
                    """
                    CREATE TABLE IF NOT EXISTS review_log (
                        id INTEGER PRIMARY KEY AUTOINCREMENT,
                        item_id TEXT NOT NULL,
                        reviewed_at TEXT NOT NULL,
                        was_correct INTEGER NOT NULL,
                        box INTEGER NOT NULL,
                        next_due_at TEXT NOT NULL,
                        FOREIGN KEY(item_id) REFERENCES review_items(id) ON DELETE CASCADE
                    );
                    """
                )
                conn.execute("CREATE INDEX IF NOT EXISTS idx_review_items_next_due_at ON review_items(next_due_at);")
                conn.execute("CREATE INDEX IF NOT EXISTS idx_review_log_reviewed_at ON review_log(reviewed_at);")
        finally:
            conn.close()

    @staticmethod
    def _to_text(value: Optional[datetime]) -> Optional[str]:
        # fixed width keeps lexical order equal to chronological order
        return None if value is None else _utc(value).isoformat(timespec="microseconds")

    @staticmethod
    def _row_to_item(row: sqlite3.Row) -> ReviewItem:
        last_reviewed = row["last_reviewed_at"]
        return ReviewItem(
            id=row["id"],
            kind=ReviewItemKind(row["kind"]),
            payload_ref=row["payload_ref"],
            box=int(row["box"]),
            last_reviewed_at=datetime.fromisoformat(last_reviewed) if last_reviewed else None,
            next_due_at=datetime.fromisoformat(row["next_due_at"]),
        )

    # --- public API ---
    def list_items(self) -> List[ReviewItem]:
        conn = self._connect()
        try:
            cur = conn.execute(
                "SELECT id, kind, payload_ref, box, last_reviewed_at, next_due_at FROM review_items ORDER BY rowid ASC;"
            )
            return [self._row_to_item(row) for row in cur.fetchall()]
        finally:
            conn.close()

    def get(self, item_id: str) -> Optional[ReviewItem]:
        conn = self._connect()
        try:
            cur = conn.execute(
                "SELECT id, kind, payload_ref, box, last_reviewed_at, next_due_at FROM review_items WHERE id = ?;",
                (item_id,),
            )
            row = cur.fetchone()
            return None if row is None else self._row_to_item(row)
        finally:
            conn.close()

    def add(self, item: ReviewItem, *, created_at: Optional[datetime] = None) -> None:
        # new items are due at creation unless the caller says otherwise
        created = self._to_text(created_at or item.next_due_at)
        conn = self._connect()
        try:
            with conn:
                conn.execute(
                    """
                    INSERT INTO review_items(id, kind, payload_ref, box, last_reviewed_at, next_due_at, created_at)
                    VALUES (?, ?, ?, ?, ?, ?, ?);
                    """,
                    (
                        item.id,
                        item.kind.value,
                        item.payload_ref,
                        item.box,
                        self._to_text(item.last_reviewed_at),
                        self._to_text(item.next_due_at),
                        created,
                    ),
                )
        except sqlite3.IntegrityError as exc:
            raise ValueError(f"review item {item.id!r} already exists") from exc
        finally:
            conn.close()

    def save(self, item: ReviewItem) -> None:
        conn = self._connect()
        try:
            # BEGIN IMMEDIATE to avoid concurrent writers on the same row
            conn.execute("BEGIN IMMEDIATE;")
            if not self._update_row(conn, item):
                conn.execute("ROLLBACK;")
                raise ReviewItemNotFoundError(item.id)
            conn.execute("COMMIT;")
        except sqlite3.Error:
            if conn.in_transaction:
                conn.execute("ROLLBACK;")
            logger.exception("review_item_save_failed", item_id=item.id)
            raise
        finally:
            conn.close()

    def apply_review(self, item_id: str, was_correct: bool, reschedule: Reschedule) -> ReviewItem:
        """Load, reschedule and persist one item inside a single write transaction.

        SELECT も BEGIN IMMEDIATE の内側で行うため、同じアイテムを同時に採点しても
        読み取った box が古くなることはない。履歴（review_log）も同じトランザクションで記録する。
        """
        conn = self._connect()
        try:
            conn.execute("BEGIN IMMEDIATE;")
            cur = conn.execute(
                "SELECT id, kind, payload_ref, box, last_reviewed_at, next_due_at FROM review_items WHERE id = ?;",
                (item_id,),
            )
            row = cur.fetchone()
            if row is None:
                conn.execute("ROLLBACK;")
                raise ReviewItemNotFoundError(item_id)

            item = reschedule(self._row_to_item(row), was_correct)
            self._update_row(conn, item)
            conn.execute(
                """
                INSERT INTO review_log(item_id, reviewed_at, was_correct, box, next_due_at)
                VALUES (?, ?, ?, ?, ?);
                """,
                (
                    item.id,
                    self._to_text(_reviewed_at(item)),
                    int(was_correct),
                    item.box,
                    self._to_text(item.next_due_at),
                ),
            )
            conn.execute("COMMIT;")
            return item
        except Exception:
            if conn.in_transaction:
                conn.execute("ROLLBACK;")
            raise
        finally:
            conn.close()

    def _update_row(self, conn: sqlite3.Connection, item: ReviewItem) -> bool:
        cur = conn.execute(
            """
            UPDATE review_items
            SET box = ?, last_reviewed_at = ?, next_due_at = ?
            WHERE id = ?;
            """,
            (item.box, self._to_text(item.last_reviewed_at), self._to_text(item.next_due_at), item.id),
        )
        return cur.rowcount > 0

    def count_reviews_since(self, since: datetime) -> int:
        conn = self._connect()
        try:
            cur = conn.execute(
                "SELECT COUNT(1) AS c FROM review_log WHERE reviewed_at >= ?;",
                (self._to_text(since),),
            )
            return int(cur.fetchone()["c"])
        finally:
            conn.close()
