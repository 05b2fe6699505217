"""Shared fixtures for scheduler/session/store tests."""

import os
from datetime import timedelta
from pathlib import Path

import pytest

# Sentry は無効化し、.env の値に左右されないようにする
os.environ.pop("SENTRY_DSN", None)

from dharma_review.models import ReviewItem, ReviewItemKind  # noqa: E402
from dharma_review.scheduler import LeitnerScheduler  # noqa: E402
from dharma_review.store import InMemoryReviewItemStore, SQLiteReviewItemStore  # noqa: E402
from tests.fakes import FakeClock  # noqa: E402


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def scheduler(clock: FakeClock) -> LeitnerScheduler:
    return LeitnerScheduler(clock=clock)


@pytest.fixture
def make_item(clock: FakeClock):
    def _make(item_id: str, *, box: int = 1, due_in_hours: float = 0.0, kind: ReviewItemKind = ReviewItemKind.verse) -> ReviewItem:
        return ReviewItem(
            id=item_id,
            kind=kind,
            payload_ref=f"ref-{item_id}",
            box=box,
            next_due_at=clock.now + timedelta(hours=due_in_hours),
        )

    return _make


@pytest.fixture
def sqlite_store(tmp_path: Path) -> SQLiteReviewItemStore:
    return SQLiteReviewItemStore(str(tmp_path / "data" / "review.sqlite3"))


@pytest.fixture(params=["memory", "sqlite"])
def any_store(request: pytest.FixtureRequest, tmp_path: Path):
    if request.param == "memory":
        return InMemoryReviewItemStore()
    return SQLiteReviewItemStore(str(tmp_path / "review.sqlite3"))
