from .review import (
    ReviewGradeResult,
    ReviewItem,
    ReviewItemKind,
    ReviewStats,
    SessionSummary,
)

__all__ = [
    "ReviewGradeResult",
    "ReviewItem",
    "ReviewItemKind",
    "ReviewStats",
    "SessionSummary",
]
