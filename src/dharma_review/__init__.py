from .models import ReviewGradeResult, ReviewItem, ReviewItemKind, ReviewStats, SessionSummary
from .scheduler import LeitnerScheduler
from .service import ReviewService
from .session import ReviewSession, SessionMisuseError, SessionState
from .store import InMemoryReviewItemStore, ReviewItemNotFoundError, SQLiteReviewItemStore

__all__ = [
    "InMemoryReviewItemStore",
    "LeitnerScheduler",
    "ReviewGradeResult",
    "ReviewItem",
    "ReviewItemKind",
    "ReviewItemNotFoundError",
    "ReviewService",
    "ReviewSession",
    "ReviewStats",
    "SQLiteReviewItemStore",
    "SessionMisuseError",
    "SessionState",
    "SessionSummary",
]
