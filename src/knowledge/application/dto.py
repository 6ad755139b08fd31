"""
Knowledge Application DTOs
==========================

Data Transfer Objects for the knowledge API layer.

Pydantic models for request validation and response serialization.
"""

from dataclasses import asdict
from datetime import date, datetime
from typing import List, Literal, Optional

from pydantic import BaseModel, Field

from src.knowledge.domain import (
    AutoAnswerDecision,
    Dialog,
    DialogCreated,
    DialogSearchResult,
    FeedbackOutcome,
    LearningStats,
    RankedDialog,
)
from src.solutions.application.dto import RecommendResponse

# ========== Type Aliases for Literals ==========
AnswerTypeStr = Literal["manual", "automatic"]
FeedbackRatingStr = Literal["helpful", "not_helpful", "partially"]
SuggestionSourceStr = Literal["dialogs", "solutions", "none"]

QUESTION_MAX_LENGTH = 10000


# ========== Request DTOs ==========

class SearchRequest(BaseModel):
    """Request model for similarity search."""
    question: str = Field(..., min_length=1, max_length=QUESTION_MAX_LENGTH)
    limit: Optional[int] = Field(None, ge=1, le=50)
    min_similarity: Optional[float] = Field(None, ge=0.0, le=1.0)
    category: Optional[str] = Field(None, max_length=100)
    helpful_only: bool = True


class QuestionRequest(BaseModel):
    """A bare question (auto-answer check)."""
    question: str = Field(..., min_length=1, max_length=QUESTION_MAX_LENGTH)


class AutoAnswerRequest(BaseModel):
    question: str = Field(..., min_length=1, max_length=QUESTION_MAX_LENGTH)
    client_name: Optional[str] = Field(None, max_length=200)


class SuggestRequest(BaseModel):
    question: str = Field(..., min_length=1, max_length=QUESTION_MAX_LENGTH)
    category: Optional[str] = Field(None, max_length=100)
    limit: Optional[int] = Field(None, ge=1, le=50)


class DialogCreateRequest(BaseModel):
    """Request model for saving an answered question."""
    question: str = Field(..., min_length=1, max_length=QUESTION_MAX_LENGTH)
    answer: str = Field(..., min_length=1, max_length=20000)
    answered_by: Optional[str] = Field(None, max_length=100)
    answer_type: AnswerTypeStr = "manual"
    category: Optional[str] = Field(None, max_length=100)
    channel_id: Optional[str] = Field(None, max_length=50)
    client_type: Optional[str] = Field(None, max_length=50)
    resolution_minutes: Optional[int] = Field(None, ge=0)
    expires_at: Optional[datetime] = None


class DialogUpdateRequest(BaseModel):
    """Partial update; confidence_adjust is added and clamped."""
    was_helpful: Optional[bool] = None
    confidence_adjust: Optional[float] = Field(None, ge=-1.0, le=1.0)
    version: Optional[int] = Field(None, ge=1)
    expires_at: Optional[datetime] = None
    is_active: Optional[bool] = None


class FeedbackRequest(BaseModel):
    rating: FeedbackRatingStr
    dialog_id: Optional[str] = Field(None, max_length=50)
    comment: Optional[str] = Field(None, max_length=5000)
    channel_id: Optional[str] = Field(None, max_length=50)
    message_id: Optional[str] = Field(None, max_length=50)


# ========== Response DTOs ==========

class RankedDialogDTO(BaseModel):
    """One similarity search hit."""
    id: str
    question: str
    answer: str
    answered_by: Optional[str] = None
    answer_type: AnswerTypeStr
    category: Optional[str] = None
    was_helpful: Optional[bool] = None
    confidence_score: float
    used_count: int
    version: int
    created_at: datetime
    similarity: float
    similarity_percent: int

    @classmethod
    def from_ranked(cls, r: RankedDialog) -> "RankedDialogDTO":
        return cls(
            id=r.id,
            question=r.question_text,
            answer=r.answer_text,
            answered_by=r.answered_by,
            answer_type=r.answer_type,
            category=r.question_category,
            was_helpful=r.was_helpful,
            confidence_score=r.confidence_score,
            used_count=r.used_count,
            version=r.version,
            created_at=r.created_at,
            similarity=r.similarity,
            similarity_percent=r.similarity_percent,
        )


class SearchResponse(BaseModel):
    results: List[RankedDialogDTO]
    total_candidates: int
    filtered_count: int
    embedding_failed: bool = False
    error: Optional[str] = None

    @classmethod
    def from_result(cls, result: DialogSearchResult) -> "SearchResponse":
        return cls(
            results=[RankedDialogDTO.from_ranked(r) for r in result.results],
            total_candidates=result.total_candidates,
            filtered_count=result.filtered_count,
            embedding_failed=result.embedding_failed,
            error=result.error,
        )


class AutoAnswerDecisionResponse(BaseModel):
    can_auto: bool
    confidence: float
    reason: str
    answer: Optional[str] = None
    dialog_id: Optional[str] = None
    embedding_failed: bool = False

    @classmethod
    def from_decision(cls, d: AutoAnswerDecision) -> "AutoAnswerDecisionResponse":
        return cls(
            can_auto=d.can_auto,
            confidence=d.confidence,
            reason=d.reason,
            answer=d.answer,
            dialog_id=d.dialog_id,
            embedding_failed=d.embedding_failed,
        )


class AutoAnswerResponse(AutoAnswerDecisionResponse):
    reply_text: Optional[str] = None


class SuggestResponse(BaseModel):
    source: SuggestionSourceStr
    dialogs: List[RankedDialogDTO] = Field(default_factory=list)
    solutions: Optional[RecommendResponse] = None
    embedding_failed: bool = False


class DialogCreatedResponse(BaseModel):
    dialog_id: str
    is_duplicate: bool
    duplicate_of: Optional[str] = None
    has_embedding: bool
    language: str

    @classmethod
    def from_created(cls, c: DialogCreated) -> "DialogCreatedResponse":
        return cls(
            dialog_id=c.dialog_id,
            is_duplicate=c.is_duplicate,
            duplicate_of=c.duplicate_of,
            has_embedding=c.has_embedding,
            language=c.language,
        )


class DialogDTO(BaseModel):
    """A stored dialog as listed to operators."""
    id: str
    question: str
    answer: str
    category: Optional[str] = None
    language: str
    answered_by: Optional[str] = None
    answer_type: AnswerTypeStr
    was_helpful: Optional[bool] = None
    confidence_score: float
    used_count: int
    requires_human_review: bool
    version: int
    is_active: bool
    expires_at: Optional[datetime] = None
    is_duplicate_of: Optional[str] = None
    has_embedding: bool
    created_at: datetime
    updated_at: datetime
    last_used_at: Optional[datetime] = None

    @classmethod
    def from_entity(cls, d: Dialog) -> "DialogDTO":
        return cls(
            id=d.id,
            question=d.question_text,
            answer=d.answer_text,
            category=d.question_category,
            language=d.question_language,
            answered_by=d.answered_by,
            answer_type=d.answer_type,
            was_helpful=d.was_helpful,
            confidence_score=d.confidence_score,
            used_count=d.used_count,
            requires_human_review=d.requires_human_review,
            version=d.version,
            is_active=d.is_active,
            expires_at=d.expires_at,
            is_duplicate_of=d.is_duplicate_of,
            has_embedding=d.question_embedding is not None,
            created_at=d.created_at,
            updated_at=d.updated_at,
            last_used_at=d.last_used_at,
        )


class CorpusStatsDTO(BaseModel):
    total: int
    helpful: int
    not_helpful: int
    unrated: int
    avg_confidence: Optional[float] = None
    total_uses: int
    needs_review: int


class DialogListResponse(BaseModel):
    dialogs: List[DialogDTO]
    stats: CorpusStatsDTO


class FeedbackResponse(BaseModel):
    feedback_id: str
    rating: FeedbackRatingStr
    dialog_id: Optional[str] = None
    confidence_score: Optional[float] = None
    stats_recorded: bool

    @classmethod
    def from_outcome(cls, o: FeedbackOutcome) -> "FeedbackResponse":
        return cls(
            feedback_id=o.feedback_id,
            rating=o.rating,
            dialog_id=o.dialog_id,
            confidence_score=o.confidence_score,
            stats_recorded=o.stats_recorded,
        )


class FeedbackTotalsDTO(BaseModel):
    total: int
    helpful: int
    not_helpful: int
    partially: int


class DailyFeedbackDTO(BaseModel):
    day: date
    positive: int
    negative: int
    partial: int


class LearningStatsResponse(BaseModel):
    dialogs: CorpusStatsDTO
    feedback: FeedbackTotalsDTO
    daily: List[DailyFeedbackDTO]

    @classmethod
    def from_stats(cls, s: LearningStats) -> "LearningStatsResponse":
        return cls(
            dialogs=CorpusStatsDTO(**asdict(s.dialogs)),
            feedback=FeedbackTotalsDTO(**asdict(s.feedback)),
            daily=[
                DailyFeedbackDTO(day=d.day, positive=d.positive, negative=d.negative, partial=d.partial)
                for d in s.daily
            ],
        )
