"""
Knowledge Application Services
==============================

Application services for the learning corpus of answered questions.

Orchestrates embedding, similarity search, the auto-answer gate, feedback
and deduplication between domain objects and repositories.
"""

import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from typing import Callable, List, Optional, Tuple

from src.config import (
    AnswerType,
    SuggestionSource,
    VALID_ANSWER_TYPES,
    VALID_FEEDBACK_RATINGS,
)
from src.core import (
    DomainException,
    RepositoryException,
    ResourceNotFoundException,
    ValidationException,
)
from src.infrastructure.embeddings import Embedder
from src.knowledge.domain import (
    AutoAnswerDecision,
    AutoAnswerGate,
    AutoAnswerReason,
    AutoReply,
    DailyFeedbackCount,
    Dialog,
    DialogCorpusStats,
    DialogCreated,
    DialogSearchResult,
    Feedback,
    FeedbackEffect,
    FeedbackOutcome,
    FeedbackPolicy,
    FeedbackTotals,
    LearningStats,
    RankedDialog,
    ReplyFields,
    ReplyTemplate,
    SearchDefaults,
    SearchOptions,
    utc_now,
)
from src.knowledge.domain.text import detect_language, question_hash, redact_personal_data
from src.shared.infrastructure.logging import get_logger
from src.solutions.application.services import SolutionService
from src.solutions.domain import Recommendation

logger = get_logger(__name__)


class DuplicateQuestionException(DomainException):
    """A canonical dialog with the same question hash already exists."""

    def __init__(self, question_hash: str):
        self.question_hash = question_hash
        super().__init__("Question already stored", {"question_hash": question_hash})


# ========== Repository Interfaces ==========

class IDialogRepository(ABC):
    """Interface for dialog storage and vector search."""

    @abstractmethod
    async def get_by_id(self, dialog_id: str) -> Optional[Dialog]:
        """Get dialog by ID (active or not)."""

    @abstractmethod
    async def find_canonical_by_hash(self, question_hash: str) -> Optional[Dialog]:
        """Active, non-duplicate dialog with this question hash."""

    @abstractmethod
    async def add(self, dialog: Dialog) -> Dialog:
        """
        Persist a new dialog.

        Raises DuplicateQuestionException when a canonical dialog with the
        same hash appeared concurrently.
        """

    @abstractmethod
    async def nearest(
        self,
        vector: List[float],
        limit: int,
        helpful_only: bool,
        category: Optional[str],
        exclude_expired: bool,
        now: datetime
    ) -> List[Tuple[Dialog, float]]:
        """
        Up to `limit` (dialog, similarity) pairs ordered by cosine distance.

        Only active, non-duplicate dialogs with an embedding are considered.
        """

    @abstractmethod
    async def apply_feedback(
        self, dialog_id: str, effect: FeedbackEffect, now: datetime
    ) -> Optional[float]:
        """Atomically apply a feedback effect. Returns the new confidence or None if missing."""

    @abstractmethod
    async def adjust_confidence(self, dialog_id: str, delta: float, now: datetime) -> Optional[float]:
        """Atomic clamped confidence += delta. Returns the new value or None if missing."""

    @abstractmethod
    async def record_usage(self, dialog_id: str, now: datetime) -> bool:
        """Atomic used_count += 1, last_used_at = now."""

    @abstractmethod
    async def merge_duplicate(self, canonical_id: str, answer_text: str, now: datetime) -> bool:
        """Count a repeat of the canonical question; keep the longer answer."""

    @abstractmethod
    async def update_fields(self, dialog_id: str, changes: dict, now: datetime) -> bool:
        """Set plain columns (was_helpful, version, expires_at, is_active)."""

    @abstractmethod
    async def list(
        self,
        limit: int,
        offset: int,
        category: Optional[str] = None,
        helpful_only: bool = False
    ) -> List[Dialog]:
        """Active canonical dialogs ordered by used_count desc, confidence desc."""

    @abstractmethod
    async def corpus_stats(self) -> DialogCorpusStats:
        """Aggregates over active canonical dialogs."""


class IFeedbackRepository(ABC):
    """Interface for feedback event storage."""

    @abstractmethod
    async def add(self, feedback: Feedback) -> Feedback:
        """Store one feedback event."""

    @abstractmethod
    async def totals(self) -> FeedbackTotals:
        """Counts per rating."""


class ILearningStatsRepository(ABC):
    """Interface for the daily feedback counters."""

    @abstractmethod
    async def increment_feedback(self, day: date, rating: str, now: datetime) -> None:
        """Add one to the day's counter for the rating. Raises RepositoryException."""

    @abstractmethod
    async def daily_since(self, since: date) -> List[DailyFeedbackCount]:
        """Daily counters from `since` onwards, newest first."""


def _require_text(value: Optional[str], name: str) -> str:
    if value is None or not value.strip():
        raise ValidationException(f"{name} is required", {"field": name})
    return value.strip()


# ========== Application Services ==========

class DialogService:
    """
    Writes to the learning corpus.

    Questions are redacted and hashed before storage. A question whose hash
    matches an active canonical dialog is stored as a linked duplicate with
    no embedding, and the canonical record absorbs the usage.
    """

    def __init__(
        self,
        dialogs: IDialogRepository,
        embedder: Embedder,
        clock: Callable[[], datetime] = utc_now
    ):
        self._dialogs = dialogs
        self._embedder = embedder
        self._clock = clock

    async def create_dialog(
        self,
        question: str,
        answer: str,
        answered_by: Optional[str] = None,
        answer_type: str = AnswerType.MANUAL,
        category: Optional[str] = None,
        channel_id: Optional[str] = None,
        client_type: Optional[str] = None,
        resolution_minutes: Optional[int] = None,
        expires_at: Optional[datetime] = None,
    ) -> DialogCreated:
        question = redact_personal_data(_require_text(question, "question"))
        answer = redact_personal_data(_require_text(answer, "answer"))
        if answer_type not in VALID_ANSWER_TYPES:
            raise ValidationException(
                f"Invalid answer type '{answer_type}'", {"valid_answer_types": VALID_ANSWER_TYPES}
            )

        digest = question_hash(question)
        language = detect_language(question)

        canonical = await self._dialogs.find_canonical_by_hash(digest)
        if canonical is None:
            # Embed before the write: cancellation leaves no row, failure stores a null embedding.
            embedding = await self._embedder.embed(question)
            now = self._clock()
            dialog = Dialog(
                id=f"dlg_{uuid.uuid4().hex[:16]}",
                question_text=question,
                answer_text=answer,
                question_hash=digest,
                question_embedding=embedding,
                question_category=category,
                question_language=language,
                answered_by=answered_by,
                answer_type=answer_type,
                channel_id=channel_id,
                client_type=client_type,
                resolution_minutes=resolution_minutes,
                expires_at=expires_at,
                created_at=now,
                updated_at=now,
            )
            try:
                await self._dialogs.add(dialog)
            except DuplicateQuestionException:
                canonical = await self._dialogs.find_canonical_by_hash(digest)
                if canonical is None:
                    raise
            else:
                logger.info(
                    "Dialog saved",
                    extra={
                        "dialog_id": dialog.id,
                        "has_embedding": embedding is not None,
                        "language": language,
                        "category": category,
                    }
                )
                return DialogCreated(
                    dialog_id=dialog.id,
                    is_duplicate=False,
                    duplicate_of=None,
                    has_embedding=embedding is not None,
                    language=language,
                )

        return await self._store_duplicate(
            canonical, question, answer, digest, language,
            answered_by, answer_type, category, channel_id, client_type, resolution_minutes,
        )

    async def _store_duplicate(
        self,
        canonical: Dialog,
        question: str,
        answer: str,
        digest: str,
        language: str,
        answered_by: Optional[str],
        answer_type: str,
        category: Optional[str],
        channel_id: Optional[str],
        client_type: Optional[str],
        resolution_minutes: Optional[int],
    ) -> DialogCreated:
        now = self._clock()
        duplicate = Dialog(
            id=f"dlg_{uuid.uuid4().hex[:16]}",
            question_text=question,
            answer_text=answer,
            question_hash=digest,
            question_category=category,
            question_language=language,
            answered_by=answered_by,
            answer_type=answer_type,
            channel_id=channel_id,
            client_type=client_type,
            resolution_minutes=resolution_minutes,
            is_duplicate_of=canonical.id,
            created_at=now,
            updated_at=now,
        )
        await self._dialogs.add(duplicate)
        await self._dialogs.merge_duplicate(canonical.id, answer, now)

        logger.info(
            "Duplicate question linked to canonical dialog",
            extra={"dialog_id": duplicate.id, "canonical_id": canonical.id}
        )
        return DialogCreated(
            dialog_id=duplicate.id,
            is_duplicate=True,
            duplicate_of=canonical.id,
            has_embedding=False,
            language=language,
        )

    async def list_dialogs(
        self,
        limit: int = 50,
        offset: int = 0,
        category: Optional[str] = None,
        helpful_only: bool = False
    ) -> Tuple[List[Dialog], DialogCorpusStats]:
        dialogs = await self._dialogs.list(limit, offset, category, helpful_only)
        stats = await self._dialogs.corpus_stats()
        return dialogs, stats

    async def update_dialog(
        self,
        dialog_id: str,
        was_helpful: Optional[bool] = None,
        confidence_adjust: Optional[float] = None,
        version: Optional[int] = None,
        expires_at: Optional[datetime] = None,
        is_active: Optional[bool] = None,
    ) -> Dialog:
        now = self._clock()
        changes = {}
        if was_helpful is not None:
            changes["was_helpful"] = was_helpful
        if version is not None:
            changes["version"] = version
        if expires_at is not None:
            changes["expires_at"] = expires_at
        if is_active is not None:
            changes["is_active"] = is_active

        if not changes and confidence_adjust is None:
            raise ValidationException("No fields to update")

        if changes and not await self._dialogs.update_fields(dialog_id, changes, now):
            raise ResourceNotFoundException("Dialog", dialog_id)
        if confidence_adjust is not None:
            if await self._dialogs.adjust_confidence(dialog_id, confidence_adjust, now) is None:
                raise ResourceNotFoundException("Dialog", dialog_id)

        updated = await self._dialogs.get_by_id(dialog_id)
        if updated is None:
            raise ResourceNotFoundException("Dialog", dialog_id)
        return updated

    async def deactivate_dialog(self, dialog_id: str) -> None:
        if not await self._dialogs.update_fields(dialog_id, {"is_active": False}, self._clock()):
            raise ResourceNotFoundException("Dialog", dialog_id)
        logger.info("Dialog deactivated", extra={"dialog_id": dialog_id})

    async def record_usage(self, dialog_id: str) -> None:
        dialog = await self._dialogs.get_by_id(dialog_id)
        if dialog is None:
            raise ResourceNotFoundException("Dialog", dialog_id)
        await self._dialogs.record_usage(dialog.canonical_id, self._clock())


class KnowledgeSearchService:
    """
    Similarity search and the auto-answer decision.

    Embedding failures never raise: they come back as
    DialogSearchResult.embedding_failed / AutoAnswerDecision.embedding_failed
    so callers can fall back to keyword scoring.
    """

    def __init__(
        self,
        dialogs: IDialogRepository,
        embedder: Embedder,
        defaults: SearchDefaults,
        gate: AutoAnswerGate,
        clock: Callable[[], datetime] = utc_now
    ):
        self._dialogs = dialogs
        self._embedder = embedder
        self._defaults = defaults
        self._gate = gate
        self._clock = clock

    def default_options(self, **overrides) -> SearchOptions:
        values = {"limit": self._defaults.limit, "min_similarity": self._defaults.min_similarity}
        values.update({k: v for k, v in overrides.items() if v is not None})
        return SearchOptions(**values)

    async def search(
        self,
        question: str,
        options: Optional[SearchOptions] = None
    ) -> DialogSearchResult:
        """
        Rank stored dialogs against a question.

        Fetches overfetch_factor * limit nearest candidates, keeps those at
        or above min_similarity, and truncates to limit.
        """
        question = redact_personal_data(_require_text(question, "question"))
        options = options or self.default_options()

        vector = await self._embedder.embed(question)
        if vector is None:
            return DialogSearchResult(
                results=[], embedding_failed=True, error="Failed to create embedding"
            )

        candidates = await self._dialogs.nearest(
            vector,
            limit=options.limit * self._defaults.overfetch_factor,
            helpful_only=options.helpful_only,
            category=options.category,
            exclude_expired=options.exclude_expired,
            now=self._clock(),
        )
        ranked = [
            RankedDialog.from_match(dialog, similarity)
            for dialog, similarity in candidates
            if similarity >= options.min_similarity
        ]
        return DialogSearchResult(results=ranked[:options.limit], total_candidates=len(candidates))

    async def can_auto_answer(self, question: str) -> AutoAnswerDecision:
        policy = self._gate.policy
        result = await self.search(
            question,
            SearchOptions(limit=1, min_similarity=policy.min_similarity, helpful_only=True),
        )
        if result.embedding_failed:
            decision = AutoAnswerDecision(
                can_auto=False,
                confidence=0.0,
                reason=AutoAnswerReason.EMBEDDING_UNAVAILABLE,
                embedding_failed=True,
            )
        else:
            decision = self._gate.decide(result.results[0] if result.results else None)

        logger.info(
            "Auto-answer decision",
            extra={
                "can_auto": decision.can_auto,
                "reason": decision.reason,
                "similarity": decision.confidence,
                "dialog_id": decision.dialog_id,
            }
        )
        return decision

    async def auto_answer(
        self,
        question: str,
        template: ReplyTemplate,
        client_name: Optional[str] = None
    ) -> AutoReply:
        """
        Gate the question and, when approved, count the usage and render
        the reply. Delivery is the caller's job.
        """
        decision = await self.can_auto_answer(question)
        if not decision.can_auto:
            return AutoReply(decision=decision)

        await self._dialogs.record_usage(decision.dialog_id, self._clock())
        reply = template.render(ReplyFields(answer=decision.answer, name=client_name))
        return AutoReply(decision=decision, reply_text=reply)


class FeedbackService:
    """
    Applies ratings to dialogs.

    Each event is stored once and causes exactly one atomic mutation on the
    canonical dialog. The daily counter is best-effort: its failure is
    logged and reported through FeedbackOutcome.stats_recorded.
    """

    def __init__(
        self,
        dialogs: IDialogRepository,
        feedback: IFeedbackRepository,
        learning_stats: ILearningStatsRepository,
        policy: FeedbackPolicy,
        clock: Callable[[], datetime] = utc_now
    ):
        self._dialogs = dialogs
        self._feedback = feedback
        self._stats = learning_stats
        self._policy = policy
        self._clock = clock

    async def submit_feedback(
        self,
        rating: str,
        dialog_id: Optional[str] = None,
        comment: Optional[str] = None,
        channel_id: Optional[str] = None,
        message_id: Optional[str] = None,
    ) -> FeedbackOutcome:
        if rating not in VALID_FEEDBACK_RATINGS:
            raise ValidationException(
                f"Invalid rating '{rating}'", {"valid_ratings": VALID_FEEDBACK_RATINGS}
            )
        effect = self._policy.effect_for(rating)

        canonical_id = None
        if dialog_id:
            dialog = await self._dialogs.get_by_id(dialog_id)
            if dialog is None:
                raise ResourceNotFoundException("Dialog", dialog_id)
            canonical_id = dialog.canonical_id

        now = self._clock()
        feedback = Feedback(
            id=f"fb_{uuid.uuid4().hex[:16]}",
            rating=rating,
            dialog_id=canonical_id,
            channel_id=channel_id,
            message_id=message_id,
            comment=redact_personal_data(comment) if comment else None,
            created_at=now,
        )
        await self._feedback.add(feedback)

        confidence = None
        if canonical_id is not None:
            confidence = await self._dialogs.apply_feedback(canonical_id, effect, now)
            if confidence is None:
                raise ResourceNotFoundException("Dialog", canonical_id)
            logger.info(
                "Feedback applied",
                extra={
                    "dialog_id": canonical_id,
                    "rating": rating,
                    "confidence": confidence,
                    "requires_review": effect.mark_for_review,
                }
            )

        stats_recorded = await self._record_daily(rating, now)

        return FeedbackOutcome(
            feedback_id=feedback.id,
            rating=rating,
            dialog_id=canonical_id,
            confidence_score=confidence,
            stats_recorded=stats_recorded,
        )

    async def _record_daily(self, rating: str, now: datetime) -> bool:
        try:
            await self._stats.increment_feedback(now.date(), rating, now)
        except RepositoryException as e:
            logger.warning(
                "Learning stats update failed",
                extra={"rating": rating, "reason": e.message}
            )
            return False
        return True


class LearningStatsService:
    """Read-side reporting over dialogs, feedback and daily counters."""

    def __init__(
        self,
        dialogs: IDialogRepository,
        feedback: IFeedbackRepository,
        learning_stats: ILearningStatsRepository,
        clock: Callable[[], datetime] = utc_now
    ):
        self._dialogs = dialogs
        self._feedback = feedback
        self._stats = learning_stats
        self._clock = clock

    async def get_stats(self, days: int = 30) -> LearningStats:
        if days < 1:
            raise ValidationException("days must be at least 1", {"days": days})
        since = self._clock().date() - timedelta(days=days - 1)
        return LearningStats(
            dialogs=await self._dialogs.corpus_stats(),
            feedback=await self._feedback.totals(),
            daily=await self._stats.daily_since(since),
        )


@dataclass
class Suggestion:
    """Dialog matches, or solution recommendations when no dialog qualified."""
    source: str
    dialogs: List[RankedDialog] = field(default_factory=list)
    recommendation: Optional[Recommendation] = None
    embedding_failed: bool = False


class SuggestionService:
    """Similarity search first, keyword-scored solutions second."""

    def __init__(self, search: KnowledgeSearchService, solutions: SolutionService):
        self._search = search
        self._solutions = solutions

    async def suggest(
        self,
        question: str,
        category: Optional[str] = None,
        limit: Optional[int] = None
    ) -> Suggestion:
        result = await self._search.search(
            question, self._search.default_options(category=category, limit=limit)
        )
        if result.results:
            return Suggestion(source=SuggestionSource.DIALOGS, dialogs=result.results)

        if result.embedding_failed:
            logger.info("Embedding unavailable, falling back to keyword scoring")

        recommendation = await self._solutions.recommend(
            question, category=category, limit=limit or 5
        )
        source = SuggestionSource.SOLUTIONS if recommendation.items else SuggestionSource.NONE
        return Suggestion(
            source=source,
            dialogs=[],
            recommendation=recommendation,
            embedding_failed=result.embedding_failed,
        )

