"""ReviewSession の状態遷移・進捗・誤用時の挙動を検証するテスト。"""

import pytest

from dharma_review.session import (
    ReviewSession,
    SessionMisuseError,
    SessionState,
    answer_is_not_blank,
)


def test_three_item_session_progress(make_item):
    items = [make_item("a"), make_item("b"), make_item("c")]
    session = ReviewSession(items)

    assert session.progress == 0.0
    assert session.state is SessionState.IN_PROGRESS
    assert session.current_item is items[0]

    session.submit_answer("karma", items[0])
    assert session.progress == pytest.approx(1 / 3)
    assert not session.is_complete

    session.submit_answer("dharma", items[1])
    session.submit_answer("yoga", items[2])
    assert session.progress == 1.0
    assert session.is_complete
    assert session.state is SessionState.COMPLETE
    assert session.current_item is None


@pytest.mark.parametrize("count", [1, 2, 5, 7])
def test_progress_is_answered_over_total(make_item, count):
    items = [make_item(f"i{n}") for n in range(count)]
    session = ReviewSession(items)

    for answered, item in enumerate(items, start=1):
        assert not session.is_complete
        session.submit_answer("answer", item)
        assert session.progress == pytest.approx(answered / count)
        assert session.current_index == answered

    assert session.is_complete


def test_empty_session_starts_complete():
    session = ReviewSession([])

    assert session.is_complete
    assert session.state is SessionState.COMPLETE
    assert session.progress == 1.0
    assert session.current_item is None


def test_submit_after_completion_is_rejected(make_item):
    item = make_item("a")
    session = ReviewSession([item])
    session.submit_answer("ok", item)

    with pytest.raises(SessionMisuseError):
        session.submit_answer("again", item)
    assert session.answered_count == 1
    assert session.current_index == 1


def test_submit_on_empty_session_is_rejected(make_item):
    with pytest.raises(SessionMisuseError):
        ReviewSession([]).submit_answer("x", make_item("a"))


def test_submit_for_non_current_item_is_rejected(make_item):
    first, second = make_item("a"), make_item("b")
    session = ReviewSession([first, second])

    with pytest.raises(SessionMisuseError):
        session.submit_answer("x", second)

    assert session.current_index == 0
    assert session.current_item is first
    assert session.results() == {}


def test_results_and_summary(make_item):
    items = [make_item("a"), make_item("b"), make_item("c")]
    session = ReviewSession(items)

    assert session.submit_answer("sattva", items[0]) is True
    assert session.submit_answer("   ", items[1]) is False

    assert session.results() == {"a": True, "b": False}
    assert [record.item_id for record in session.records] == ["a", "b"]

    summary = session.summary()
    assert summary.total == 3
    assert summary.answered == 2
    assert summary.correct == 1
    assert summary.incorrect == 1
    assert summary.is_complete is False


def test_custom_judge_decides_correctness(make_item):
    item = make_item("a")
    session = ReviewSession([item], judge=lambda it, answer: answer == it.payload_ref)

    assert session.submit_answer("ref-a", item) is True
    assert session.correct_count == 1


def test_judge_failure_leaves_session_unchanged(make_item):
    item = make_item("a")

    def _boom(it, answer):
        raise RuntimeError("judge unavailable")

    session = ReviewSession([item], judge=_boom)
    with pytest.raises(RuntimeError):
        session.submit_answer("x", item)
    assert session.current_index == 0


def test_items_are_fixed_at_construction(make_item):
    source = [make_item("a")]
    session = ReviewSession(source)
    source.append(make_item("b"))

    assert len(session.items) == 1


def test_judge_answer_does_not_advance(make_item):
    item = make_item("a")
    session = ReviewSession([item])

    assert session.judge_answer("karma", item) is True
    assert session.judge_answer("", item) is False
    assert session.current_index == 0
    assert session.answered_count == 0


def test_record_answer_replaces_the_current_item(make_item):
    stale = make_item("a")
    fresh = make_item("a", box=2, due_in_hours=72)
    session = ReviewSession([stale, make_item("b")])

    session.record_answer("karma", fresh, True)

    assert session.items[0] is fresh
    assert session.current_index == 1
    assert session.results() == {"a": True}
    with pytest.raises(SessionMisuseError):
        session.record_answer("x", fresh, True)


@pytest.mark.parametrize(
    ("answer", "expected"),
    [
        ("Bhagavad Gita 2.47", True),
        ("  \n\t", False),
        ("", False),
        (None, False),
        (True, True),
        (False, False),
        (3, True),
    ],
)
def test_answer_is_not_blank(make_item, answer, expected):
    assert answer_is_not_blank(make_item("a"), answer) is expected
