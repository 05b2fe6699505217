"""ReviewService による復習フロー全体（抽出→セッション→再スケジュール）のテスト。"""

import sqlite3
import threading
from datetime import timedelta

import pytest

from dharma_review.models import ReviewItemKind
from dharma_review.service import ReviewService
from dharma_review.session import SessionMisuseError
from dharma_review.store import InMemoryReviewItemStore, ReviewItemNotFoundError


@pytest.fixture
def service(any_store, scheduler) -> ReviewService:
    return ReviewService(any_store, scheduler)


def test_added_item_is_due_immediately(service):
    item = service.add_item(ReviewItemKind.verse, "2.47")

    assert item.box == 1
    assert item.id.startswith("verse_2.47_")
    assert [due.id for due in service.due_items()] == [item.id]


def test_session_runs_over_due_items_and_reschedules(service, any_store, clock):
    first = service.add_item(ReviewItemKind.verse, "2.47")
    second = service.add_item(ReviewItemKind.qa, "karma-yoga")
    later = service.add_item(ReviewItemKind.word, "dharma")
    not_due = any_store.get(later.id)
    not_due.next_due_at = clock.now + timedelta(days=2)
    any_store.save(not_due)

    session = service.start_session()
    assert [item.id for item in session.items] == [first.id, second.id]

    result = service.submit_answer("Perform your duty", session.current_item)
    assert result.was_correct is True
    assert result.box == 2
    assert result.next_due_at == clock.now + timedelta(days=3)

    result = service.submit_answer("", session.current_item)
    assert result.was_correct is False
    assert result.box == 1
    assert result.next_due_at == clock.now + timedelta(hours=4)

    assert session.is_complete
    assert any_store.get(first.id).box == 2
    assert service.due_items() == []


def test_submit_without_session_is_rejected(service):
    item = service.add_item(ReviewItemKind.verse, "1.1")

    with pytest.raises(SessionMisuseError):
        service.submit_answer("x", item)


def test_submit_for_unknown_item_leaves_session_untouched(scheduler, make_item):
    ghost = make_item("ghost")
    service = ReviewService(InMemoryReviewItemStore(), scheduler)
    session = service.start_session(items=[ghost])

    with pytest.raises(ReviewItemNotFoundError):
        service.submit_answer("x", ghost)
    assert session.current_index == 0


def test_session_limit_caps_batch(any_store, scheduler):
    service = ReviewService(any_store, scheduler, session_limit=2)
    for ref in ("1.1", "1.2", "1.3"):
        service.add_item(ReviewItemKind.verse, ref)

    assert len(service.start_session().items) == 2
    assert len(service.start_session(limit=1).items) == 1


def test_end_session_returns_summary(service):
    item = service.add_item(ReviewItemKind.verse, "2.47")
    session = service.start_session()
    service.submit_answer(True, item)

    summary = service.end_session()

    assert summary is not None
    assert summary.total == 1
    assert summary.correct == 1
    assert summary.is_complete is True
    assert service.is_active is False
    assert session.is_complete
    assert service.end_session() is None


def test_grade_item_outside_session(service):
    item = service.add_item(ReviewItemKind.word, "ahimsa")

    result = service.grade_item(item.id, True)

    assert result.box == 2
    with pytest.raises(ReviewItemNotFoundError):
        service.grade_item("missing", True)


def test_stats(service, any_store, clock):
    due = service.add_item(ReviewItemKind.verse, "2.47")
    overdue = service.add_item(ReviewItemKind.verse, "3.19")
    upcoming = service.add_item(ReviewItemKind.verse, "4.7")

    stored = any_store.get(overdue.id)
    stored.next_due_at = clock.now - timedelta(days=1)
    any_store.save(stored)
    stored = any_store.get(upcoming.id)
    stored.next_due_at = clock.now + timedelta(days=2)
    any_store.save(stored)
    service.grade_item(due.id, False)

    stats = service.stats()

    assert stats.total == 3
    assert stats.due_now == 1
    assert stats.overdue == 1
    assert stats.upcoming == 2
    assert stats.reviewed_today == 1


def test_concurrent_grading_on_sqlite_loses_no_updates(sqlite_store, scheduler):
    service = ReviewService(sqlite_store, scheduler)
    item = service.add_item(ReviewItemKind.word, "dharma")
    workers, per_worker = 8, 10

    def grade_many() -> None:
        for _ in range(per_worker):
            service.grade_item(item.id, True)

    threads = [threading.Thread(target=grade_many) for _ in range(workers)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert sqlite_store.get(item.id).box == 1 + workers * per_worker
    assert service.stats().reviewed_today == workers * per_worker


def test_failed_persist_does_not_advance_session(sqlite_store, scheduler, monkeypatch):
    service = ReviewService(sqlite_store, scheduler)
    item = service.add_item(ReviewItemKind.verse, "2.47")
    session = service.start_session()

    def locked(conn, updated):
        raise sqlite3.OperationalError("database is locked")

    monkeypatch.setattr(sqlite_store, "_update_row", locked)
    with pytest.raises(sqlite3.OperationalError):
        service.submit_answer("Perform your duty", session.current_item)

    assert session.current_index == 0
    assert session.answered_count == 0
    assert session.is_complete is False
    assert sqlite_store.get(item.id).box == 1
    assert service.stats().reviewed_today == 0

    # ストアが復旧すれば同じアイテムをそのまま再送できる
    monkeypatch.undo()
    result = service.submit_answer("Perform your duty", session.current_item)
    assert result.box == 2
    assert session.is_complete


def test_session_items_reflect_persisted_state(service, clock):
    first = service.add_item(ReviewItemKind.verse, "2.47")
    second = service.add_item(ReviewItemKind.qa, "karma-yoga")
    session = service.start_session()

    service.submit_answer(True, session.current_item)
    service.submit_answer(False, session.current_item)

    refreshed = {item.id: item for item in session.items}
    assert refreshed[first.id].box == 2
    assert refreshed[first.id].next_due_at == clock.now + timedelta(days=3)
    assert refreshed[second.id].box == 1
    assert refreshed[second.id].last_reviewed_at == clock.now
