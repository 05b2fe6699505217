from typing import Annotated

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic_settings.sources.types import NoDecode


DEFAULT_DB_PATH = ".data/review.sqlite3"
DEFAULT_INTERVAL_DAYS = (1, 3, 7, 14, 30)
# keeps now + interval well inside datetime range
MAX_INTERVAL_DAYS_LIMIT = 36500


class Settings(BaseSettings):
    """Application settings loaded from environment variables.

    環境変数から読み込まれる復習エンジンの設定クラス。
    - environment: 実行環境（development/staging/production など）
    - review_*: Leitner ボックスの間隔やセッション上限
    - log_level / sentry_dsn: ロギングと監視
    """

    environment: str = Field(
        default="development",
        description="Runtime environment / 実行環境",
    )

    # --- 復習データの永続化 ---
    review_db_path: str = Field(
        default=DEFAULT_DB_PATH,
        description="Path to SQLite database for review items / 復習アイテム用SQLite DBパス",
    )

    # --- Leitner ボックスの間隔 ---
    review_interval_days: Annotated[tuple[int, ...], NoDecode] = Field(
        default=DEFAULT_INTERVAL_DAYS,
        description=(
            "Review interval per box in days, comma separated / "
            "ボックスごとの復習間隔（日、カンマ区切り）"
        ),
    )
    review_max_interval_days: int = Field(
        default=365,
        description="Upper bound for any review interval (days) / 復習間隔の上限（日）",
    )
    review_relearn_after_hours: float = Field(
        default=4.0,
        description=(
            "Delay before a missed item is shown again (hours, 0 disables) / "
            "不正解アイテムを再出題するまでの時間（時間、0で無効）"
        ),
    )
    review_upcoming_window_days: int = Field(
        default=7,
        description="Window for upcoming review listings (days) / 近日の復習一覧の対象期間（日）",
    )
    review_session_max_items: int | None = Field(
        default=None,
        description="Max items per review session (unset = unlimited) / 1セッションの最大出題数",
    )

    # --- Logging / Observability ---
    log_level: str = Field(
        default="INFO",
        description="Root log level / ルートロガーのログレベル",
    )
    sentry_dsn: str | None = Field(default=None, description="Sentry DSN (enable if set)")

    # --- Strict mode ---
    strict_mode: bool = Field(
        default=True,
        description="Fail fast on missing/invalid configuration (disable only for tests)",
    )

    model_config = SettingsConfigDict(
        env_file=".env",
        extra="ignore",
        case_sensitive=False,
    )

    @field_validator("review_interval_days", mode="before")
    @classmethod
    def _parse_interval_days(cls, raw: object) -> tuple[int, ...] | object:
        """Accept `1,3,7` style strings as well as sequences.

        `.env` ではカンマ区切りで書くのが自然なので、空要素を捨てて整数タプルへ変換する。
        """

        if raw is None:
            return DEFAULT_INTERVAL_DAYS
        if isinstance(raw, str):
            parts = [part.strip() for part in raw.split(",")]
            return tuple(int(part) for part in parts if part)
        return raw

    @field_validator("log_level", mode="after")
    @classmethod
    def _normalise_log_level(cls, value: str) -> str:
        return (value or "INFO").strip().upper()

    @model_validator(mode="after")
    def _validate_intervals(self) -> "Settings":
        """Reject interval tables the scheduler could not honour.

        間隔表が空・非正・減少している、または上限が最後の間隔より小さい場合は
        起動時点で失敗させる。ボックスが上がるほど間隔が短くなる設定は復習の意味を失う。
        """

        intervals = self.review_interval_days
        if not intervals:
            raise ValueError("review_interval_days must not be empty")
        if any(days <= 0 for days in intervals):
            raise ValueError("review_interval_days must be positive")
        if any(later < earlier for earlier, later in zip(intervals, intervals[1:])):
            raise ValueError("review_interval_days must be non-decreasing")
        if self.review_max_interval_days < intervals[-1]:
            raise ValueError("review_max_interval_days must be >= the last review interval")
        if self.review_max_interval_days > MAX_INTERVAL_DAYS_LIMIT:
            raise ValueError(f"review_max_interval_days must be <= {MAX_INTERVAL_DAYS_LIMIT}")
        if self.review_relearn_after_hours < 0:
            raise ValueError("review_relearn_after_hours must be >= 0")
        if self.review_session_max_items is not None and self.review_session_max_items <= 0:
            raise ValueError("review_session_max_items must be positive when set")
        return self


settings = Settings()
