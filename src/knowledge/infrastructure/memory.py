"""
In-memory knowledge repositories.

Used with storage_backend=memory for local development and by the test
suite. Every mutation runs under an asyncio.Lock and applies the same
ConfidenceCalculator arithmetic as the SQL path; reads return copies, so
callers never hold a reference into the store.
"""

import asyncio
import math
from dataclasses import replace
from datetime import date, datetime
from typing import Dict, List, Optional, Tuple

from src.config import FeedbackRating
from src.knowledge.application.services import (
    DuplicateQuestionException,
    IDialogRepository,
    IFeedbackRepository,
    ILearningStatsRepository,
)
from src.knowledge.domain import (
    ConfidenceCalculator,
    DailyFeedbackCount,
    Dialog,
    DialogCorpusStats,
    Feedback,
    FeedbackEffect,
    FeedbackTotals,
)

_UPDATABLE_FIELDS = {"was_helpful", "version", "expires_at", "is_active"}


def cosine_similarity(a: List[float], b: List[float]) -> float:
    """1 - cosine distance; 0.0 when either vector has zero length."""
    if len(a) != len(b):
        raise ValueError("Vectors must have the same dimension")
    norm_a = math.sqrt(sum(x * x for x in a))
    norm_b = math.sqrt(sum(y * y for y in b))
    if norm_a == 0 or norm_b == 0:
        return 0.0
    return sum(x * y for x, y in zip(a, b)) / (norm_a * norm_b)


class InMemoryDialogRepository(IDialogRepository):

    def __init__(self, dialogs: Optional[List[Dialog]] = None):
        self._items: Dict[str, Dialog] = {}
        self._lock = asyncio.Lock()
        for d in dialogs or []:
            self._items[d.id] = replace(d)

    def _canonical_active(self) -> List[Dialog]:
        return [d for d in self._items.values() if d.is_active and not d.is_duplicate]

    async def get_by_id(self, dialog_id: str) -> Optional[Dialog]:
        item = self._items.get(dialog_id)
        return replace(item) if item else None

    async def find_canonical_by_hash(self, question_hash: str) -> Optional[Dialog]:
        matches = [d for d in self._canonical_active() if d.question_hash == question_hash]
        if not matches:
            return None
        return replace(min(matches, key=lambda d: d.created_at))

    async def add(self, dialog: Dialog) -> Dialog:
        async with self._lock:
            if not dialog.is_duplicate and dialog.is_active:
                for existing in self._canonical_active():
                    if existing.question_hash == dialog.question_hash:
                        raise DuplicateQuestionException(dialog.question_hash)
            self._items[dialog.id] = replace(dialog)
        return dialog

    async def nearest(
        self,
        vector: List[float],
        limit: int,
        helpful_only: bool,
        category: Optional[str],
        exclude_expired: bool,
        now: datetime
    ) -> List[Tuple[Dialog, float]]:
        scored = []
        for d in self._canonical_active():
            if d.question_embedding is None:
                continue
            if helpful_only and d.was_helpful is False:
                continue
            if category and d.question_category != category:
                continue
            if exclude_expired and d.is_expired(now):
                continue
            scored.append((replace(d), cosine_similarity(vector, d.question_embedding)))

        scored.sort(key=lambda pair: pair[1], reverse=True)
        return scored[:limit]

    async def apply_feedback(
        self, dialog_id: str, effect: FeedbackEffect, now: datetime
    ) -> Optional[float]:
        async with self._lock:
            item = self._items.get(dialog_id)
            if item is None:
                return None
            item.confidence_score = ConfidenceCalculator.apply_delta(
                item.confidence_score, effect.confidence_delta
            )
            if effect.was_helpful is not None:
                item.was_helpful = effect.was_helpful
            if effect.mark_for_review:
                item.requires_human_review = True
            if effect.count_usage:
                item.used_count += 1
                item.last_used_at = now
            item.updated_at = now
            return item.confidence_score

    async def adjust_confidence(self, dialog_id: str, delta: float, now: datetime) -> Optional[float]:
        async with self._lock:
            item = self._items.get(dialog_id)
            if item is None:
                return None
            item.confidence_score = ConfidenceCalculator.apply_delta(item.confidence_score, delta)
            item.updated_at = now
            return item.confidence_score

    async def record_usage(self, dialog_id: str, now: datetime) -> bool:
        async with self._lock:
            item = self._items.get(dialog_id)
            if item is None:
                return False
            item.used_count += 1
            item.last_used_at = now
            item.updated_at = now
            return True

    async def merge_duplicate(self, canonical_id: str, answer_text: str, now: datetime) -> bool:
        async with self._lock:
            item = self._items.get(canonical_id)
            if item is None:
                return False
            item.used_count += 1
            item.last_used_at = now
            if len(answer_text) > len(item.answer_text):
                item.answer_text = answer_text
            item.updated_at = now
            return True

    async def update_fields(self, dialog_id: str, changes: dict, now: datetime) -> bool:
        unknown = set(changes) - _UPDATABLE_FIELDS
        if unknown:
            raise ValueError(f"Fields not updatable: {sorted(unknown)}")

        async with self._lock:
            item = self._items.get(dialog_id)
            if item is None:
                return False
            for key, value in changes.items():
                setattr(item, key, value)
            item.updated_at = now
            return True

    async def list(
        self,
        limit: int,
        offset: int,
        category: Optional[str] = None,
        helpful_only: bool = False
    ) -> List[Dialog]:
        items = self._canonical_active()
        if category:
            items = [d for d in items if d.question_category == category]
        if helpful_only:
            items = [d for d in items if d.was_helpful is True]
        items.sort(key=lambda d: (-d.used_count, -d.confidence_score))
        return [replace(d) for d in items[offset:offset + limit]]

    async def corpus_stats(self) -> DialogCorpusStats:
        items = self._canonical_active()
        if not items:
            return DialogCorpusStats()
        return DialogCorpusStats(
            total=len(items),
            helpful=sum(1 for d in items if d.was_helpful is True),
            not_helpful=sum(1 for d in items if d.was_helpful is False),
            unrated=sum(1 for d in items if d.was_helpful is None),
            avg_confidence=round(sum(d.confidence_score for d in items) / len(items), 2),
            total_uses=sum(d.used_count for d in items),
            needs_review=sum(1 for d in items if d.requires_human_review),
        )


class InMemoryFeedbackRepository(IFeedbackRepository):

    def __init__(self):
        self._items: List[Feedback] = []

    @property
    def items(self) -> List[Feedback]:
        return list(self._items)

    async def add(self, feedback: Feedback) -> Feedback:
        self._items.append(feedback)
        return feedback

    async def totals(self) -> FeedbackTotals:
        ratings = [f.rating for f in self._items]
        return FeedbackTotals(
            total=len(ratings),
            helpful=ratings.count(FeedbackRating.HELPFUL),
            not_helpful=ratings.count(FeedbackRating.NOT_HELPFUL),
            partially=ratings.count(FeedbackRating.PARTIALLY),
        )


class InMemoryLearningStatsRepository(ILearningStatsRepository):

    def __init__(self):
        self._days: Dict[date, DailyFeedbackCount] = {}
        self._lock = asyncio.Lock()

    async def increment_feedback(self, day: date, rating: str, now: datetime) -> None:
        async with self._lock:
            current = self._days.get(day, DailyFeedbackCount(day=day))
            if rating == FeedbackRating.HELPFUL:
                current = replace(current, positive=current.positive + 1)
            elif rating == FeedbackRating.NOT_HELPFUL:
                current = replace(current, negative=current.negative + 1)
            else:
                current = replace(current, partial=current.partial + 1)
            self._days[day] = current

    async def daily_since(self, since: date) -> List[DailyFeedbackCount]:
        return sorted(
            (d for d in self._days.values() if d.day >= since),
            key=lambda d: d.day,
            reverse=True,
        )
