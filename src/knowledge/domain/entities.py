"""
Knowledge Domain Entities
=========================

Dialogs (answered questions kept for reuse), feedback events, and the
result objects produced by search and the auto-answer gate.

Pure Python; no persistence or HTTP concerns.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone, date
from typing import List, Optional

from src.config import AnswerType
from src.core import ValidationException
from src.core.numbers import percent, round_half_up


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class Dialog:
    """
    A stored question/answer unit.

    Created when an operator answers a new question. Afterwards only feedback
    (confidence, helpfulness, review flag) and usage (used_count,
    last_used_at) change it. Removal is logical: is_active=False or an
    expires_at in the past.
    """

    id: str
    question_text: str
    answer_text: str
    question_hash: str

    question_embedding: Optional[List[float]] = None
    question_category: Optional[str] = None
    question_language: str = "ru"

    answered_by: Optional[str] = None
    answer_type: str = AnswerType.MANUAL

    channel_id: Optional[str] = None
    client_type: Optional[str] = None
    resolution_minutes: Optional[int] = None

    # Quality
    was_helpful: Optional[bool] = None
    confidence_score: float = 0.5
    used_count: int = 0
    requires_human_review: bool = False

    # Lifecycle
    version: int = 1
    is_active: bool = True
    expires_at: Optional[datetime] = None
    is_duplicate_of: Optional[str] = None

    created_at: datetime = field(default_factory=utc_now)
    updated_at: datetime = field(default_factory=utc_now)
    last_used_at: Optional[datetime] = None

    def __post_init__(self):
        if not 0.0 <= self.confidence_score <= 1.0:
            raise ValueError("confidence_score must be between 0 and 1")
        if self.used_count < 0:
            raise ValueError("used_count cannot be negative")

    @property
    def is_duplicate(self) -> bool:
        return self.is_duplicate_of is not None

    @property
    def canonical_id(self) -> str:
        """Id of the record that carries this question's statistics."""
        return self.is_duplicate_of or self.id

    def is_expired(self, now: datetime) -> bool:
        return self.expires_at is not None and self.expires_at <= now


@dataclass(frozen=True)
class Feedback:
    """One immutable client/operator judgment on an answer."""
    id: str
    rating: str
    dialog_id: Optional[str] = None
    channel_id: Optional[str] = None
    message_id: Optional[str] = None
    comment: Optional[str] = None
    created_at: datetime = field(default_factory=utc_now)


@dataclass(frozen=True)
class RankedDialog:
    """
    A dialog as returned by similarity search.

    Frozen: the gate reasons over this snapshot, so feedback that lands while
    a decision is being made cannot change it.
    """
    id: str
    question_text: str
    answer_text: str
    answered_by: Optional[str]
    answer_type: str
    question_category: Optional[str]
    was_helpful: Optional[bool]
    confidence_score: float
    used_count: int
    version: int
    created_at: datetime
    similarity: float
    similarity_percent: int

    @classmethod
    def from_match(cls, dialog: Dialog, similarity: float) -> "RankedDialog":
        return cls(
            id=dialog.id,
            question_text=dialog.question_text,
            answer_text=dialog.answer_text,
            answered_by=dialog.answered_by,
            answer_type=dialog.answer_type,
            question_category=dialog.question_category,
            was_helpful=dialog.was_helpful,
            confidence_score=dialog.confidence_score,
            used_count=dialog.used_count,
            version=dialog.version,
            created_at=dialog.created_at,
            similarity=round_half_up(similarity, 2),
            similarity_percent=percent(similarity),
        )


@dataclass(frozen=True)
class SearchOptions:
    """
    Similarity search filters.

    Expired dialogs are excluded unless exclude_expired is turned off, which
    only internal callers do; the HTTP surface never exposes it.
    """
    limit: int = 5
    min_similarity: float = 0.70
    helpful_only: bool = True
    category: Optional[str] = None
    exclude_expired: bool = True

    def __post_init__(self):
        if self.limit < 1:
            raise ValidationException("limit must be at least 1", {"limit": self.limit})
        if not 0.0 <= self.min_similarity <= 1.0:
            raise ValidationException(
                "min_similarity must be between 0 and 1",
                {"min_similarity": self.min_similarity}
            )


@dataclass
class DialogSearchResult:
    """Outcome of a similarity search; embedding_failed marks the degraded case."""
    results: List[RankedDialog]
    total_candidates: int = 0
    embedding_failed: bool = False
    error: Optional[str] = None

    @property
    def filtered_count(self) -> int:
        return len(self.results)


class AutoAnswerReason:
    """Human-readable reasons attached to gate decisions."""
    NO_MATCH = "No similar dialogs found"
    NOT_HELPFUL = "Best match was marked as not helpful"
    LOW_CONFIDENCE = "Best match has low confidence score"
    LOW_USAGE = "Best match not used enough times - suggest to human"
    APPROVED = "High confidence match with good history"
    EMBEDDING_UNAVAILABLE = "Embedding unavailable - use keyword fallback"


@dataclass(frozen=True)
class AutoAnswerDecision:
    """
    Whether a question may be answered without a human.

    answer/dialog_id are also set on the "suggest to human" outcome, where
    can_auto is False but the match is still worth showing.
    """
    can_auto: bool
    confidence: float
    reason: str
    answer: Optional[str] = None
    dialog_id: Optional[str] = None
    embedding_failed: bool = False


@dataclass(frozen=True)
class AutoReply:
    """Gate decision plus rendered reply text (only when can_auto)."""
    decision: AutoAnswerDecision
    reply_text: Optional[str] = None


@dataclass(frozen=True)
class DialogCreated:
    dialog_id: str
    is_duplicate: bool
    duplicate_of: Optional[str]
    has_embedding: bool
    language: str


@dataclass(frozen=True)
class FeedbackOutcome:
    """
    Result of submit_feedback.

    stats_recorded is False when the best-effort daily counter failed; the
    dialog mutation has still been applied.
    """
    feedback_id: str
    rating: str
    dialog_id: Optional[str]
    confidence_score: Optional[float]
    stats_recorded: bool


@dataclass(frozen=True)
class DialogCorpusStats:
    total: int = 0
    helpful: int = 0
    not_helpful: int = 0
    unrated: int = 0
    avg_confidence: Optional[float] = None
    total_uses: int = 0
    needs_review: int = 0


@dataclass(frozen=True)
class FeedbackTotals:
    total: int = 0
    helpful: int = 0
    not_helpful: int = 0
    partially: int = 0


@dataclass(frozen=True)
class DailyFeedbackCount:
    day: date
    positive: int = 0
    negative: int = 0
    partial: int = 0


@dataclass(frozen=True)
class LearningStats:
    dialogs: DialogCorpusStats
    feedback: FeedbackTotals
    daily: List[DailyFeedbackCount]
