from datetime import UTC, datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, field_validator


def _utc_now() -> datetime:
    return datetime.now(UTC)


class ReviewItemKind(str, Enum):
    word = "word"
    verse = "verse"
    qa = "qa"


class ReviewItem(BaseModel):
    """One learnable unit under spaced repetition.

    学習者が復習する単位（詩句・単語・Q&A）。内容そのものは `payload_ref` で
    外部のコンテンツに委ね、ここではボックスと次回出題時刻だけを持つ。
    - box: 1 以上。正解で +1、不正解で 1 に戻る
    - next_due_at: この時刻以降に出題対象となる（UTC）
    """

    model_config = ConfigDict(validate_assignment=True)

    id: str = Field(min_length=1)
    kind: ReviewItemKind
    payload_ref: str
    box: int = Field(default=1, ge=1)
    last_reviewed_at: datetime | None = None
    next_due_at: datetime = Field(default_factory=_utc_now)

    @field_validator("last_reviewed_at", "next_due_at", mode="after")
    @classmethod
    def _ensure_utc(cls, value: datetime | None) -> datetime | None:
        # naive な時刻は UTC とみなす（aware/naive 混在の比較エラーを防ぐ）
        if value is None:
            return None
        if value.tzinfo is None:
            return value.replace(tzinfo=UTC)
        return value.astimezone(UTC)


class ReviewGradeResult(BaseModel):
    """Outcome of forwarding one answer to the scheduler."""

    item_id: str
    was_correct: bool
    box: int
    next_due_at: datetime


class ReviewStats(BaseModel):
    """進捗の見える化 用の統計。

    - total: 登録済みアイテム数
    - due_now: 現在時点で出題すべき件数
    - overdue: 期限を過ぎている件数
    - upcoming: 近日中（既定 7 日）に出題予定の件数
    - reviewed_today: 当日 00:00 UTC 以降に採点された回数
    """

    total: int
    due_now: int
    overdue: int
    upcoming: int
    reviewed_today: int


class SessionSummary(BaseModel):
    total: int
    answered: int
    correct: int
    incorrect: int
    is_complete: bool
