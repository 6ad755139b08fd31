"""
Knowledge Infrastructure Repositories
=====================================

Concrete implementations of the knowledge repository interfaces using
SQLAlchemy and pgvector.

Counters and confidence are changed with single UPDATE statements that
compute the new value from the current column (clamped with
GREATEST/LEAST), so concurrent feedback on the same dialog composes instead
of overwriting.
"""

from datetime import date, datetime
from decimal import Decimal
from typing import List, Optional, Tuple

from sqlalchemy import case, func, select, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from src.config import FeedbackRating
from src.core import RepositoryException
from src.infrastructure.database import repository_errors
from src.knowledge.application.services import (
    DuplicateQuestionException,
    IDialogRepository,
    IFeedbackRepository,
    ILearningStatsRepository,
)
from src.knowledge.domain import (
    DailyFeedbackCount,
    Dialog,
    DialogCorpusStats,
    Feedback,
    FeedbackEffect,
    FeedbackTotals,
)
from src.knowledge.infrastructure.models import DialogModel, FeedbackModel, LearningStatsModel

_UPDATABLE_FIELDS = {"was_helpful", "version", "expires_at", "is_active"}

_DAILY_COLUMNS = {
    FeedbackRating.HELPFUL: "feedback_positive",
    FeedbackRating.NOT_HELPFUL: "feedback_negative",
    FeedbackRating.PARTIALLY: "feedback_partial",
}


def _clamped(delta: float):
    """SQL expression: confidence_score + delta kept within [0, 1]."""
    return func.greatest(
        0, func.least(1, DialogModel.confidence_score + Decimal(str(delta)))
    )


def _to_entity(model: DialogModel) -> Dialog:
    embedding = model.question_embedding
    return Dialog(
        id=model.id,
        question_text=model.question_text,
        answer_text=model.answer_text,
        question_hash=model.question_hash,
        # pgvector hands back a numpy array
        question_embedding=[float(x) for x in embedding] if embedding is not None else None,
        question_category=model.question_category,
        question_language=model.question_language,
        answered_by=model.answered_by,
        answer_type=model.answer_type,
        channel_id=model.channel_id,
        client_type=model.client_type,
        resolution_minutes=model.resolution_minutes,
        was_helpful=model.was_helpful,
        confidence_score=float(model.confidence_score),
        used_count=model.used_count,
        requires_human_review=model.requires_human_review,
        version=model.version,
        is_active=model.is_active,
        expires_at=model.expires_at,
        is_duplicate_of=model.is_duplicate_of,
        created_at=model.created_at,
        updated_at=model.updated_at,
        last_used_at=model.last_used_at,
    )


class SQLAlchemyDialogRepository(IDialogRepository):
    """
    SQLAlchemy implementation of dialog repository.

    Similarity is 1 - cosine distance, computed by pgvector.
    """

    def __init__(self, session: AsyncSession):
        self._session = session

    @staticmethod
    def _canonical_active():
        return (
            DialogModel.is_active.is_(True),
            DialogModel.is_duplicate_of.is_(None),
        )

    async def get_by_id(self, dialog_id: str) -> Optional[Dialog]:
        with repository_errors("get_dialog"):
            model = await self._session.get(DialogModel, dialog_id, populate_existing=True)
        return _to_entity(model) if model else None

    async def find_canonical_by_hash(self, question_hash: str) -> Optional[Dialog]:
        stmt = (
            select(DialogModel)
            .where(DialogModel.question_hash == question_hash, *self._canonical_active())
            .order_by(DialogModel.created_at)
            .limit(1)
        )
        with repository_errors("find_dialog_by_hash"):
            result = await self._session.execute(stmt)
        model = result.scalar_one_or_none()
        return _to_entity(model) if model else None

    async def add(self, dialog: Dialog) -> Dialog:
        model = DialogModel(
            id=dialog.id,
            question_text=dialog.question_text,
            question_embedding=dialog.question_embedding,
            question_category=dialog.question_category,
            question_language=dialog.question_language,
            question_hash=dialog.question_hash,
            answer_text=dialog.answer_text,
            answered_by=dialog.answered_by,
            answer_type=dialog.answer_type,
            channel_id=dialog.channel_id,
            client_type=dialog.client_type,
            resolution_minutes=dialog.resolution_minutes,
            was_helpful=dialog.was_helpful,
            confidence_score=dialog.confidence_score,
            used_count=dialog.used_count,
            requires_human_review=dialog.requires_human_review,
            version=dialog.version,
            is_active=dialog.is_active,
            expires_at=dialog.expires_at,
            is_duplicate_of=dialog.is_duplicate_of,
            created_at=dialog.created_at,
            updated_at=dialog.updated_at,
            last_used_at=dialog.last_used_at,
        )
        try:
            # SAVEPOINT: a lost race on the canonical hash must not poison the transaction
            async with self._session.begin_nested():
                self._session.add(model)
                await self._session.flush()
        except IntegrityError as e:
            if dialog.is_duplicate_of is None:
                raise DuplicateQuestionException(dialog.question_hash) from e
            raise RepositoryException("Failed to store dialog", {"dialog_id": dialog.id}) from e
        except SQLAlchemyError as e:
            raise RepositoryException("Database operation failed: add_dialog", {"dialog_id": dialog.id}) from e
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
        distance = DialogModel.question_embedding.cosine_distance(vector)
        stmt = select(DialogModel, (1 - distance).label("similarity")).where(
            *self._canonical_active(),
            DialogModel.question_embedding.is_not(None),
        )
        if helpful_only:
            stmt = stmt.where(
                (DialogModel.was_helpful.is_(None)) | (DialogModel.was_helpful.is_(True))
            )
        if category:
            stmt = stmt.where(DialogModel.question_category == category)
        if exclude_expired:
            stmt = stmt.where(
                (DialogModel.expires_at.is_(None)) | (DialogModel.expires_at > now)
            )
        stmt = stmt.order_by(distance).limit(limit)

        with repository_errors("similarity_search"):
            result = await self._session.execute(stmt)
            rows = result.all()
        return [(_to_entity(model), float(similarity)) for model, similarity in rows]

    async def _update_returning(self, operation: str, stmt):
        with repository_errors(operation):
            result = await self._session.execute(stmt)
        return result.first()

    async def apply_feedback(
        self, dialog_id: str, effect: FeedbackEffect, now: datetime
    ) -> Optional[float]:
        values = {
            "confidence_score": _clamped(effect.confidence_delta),
            "updated_at": now,
        }
        if effect.was_helpful is not None:
            values["was_helpful"] = effect.was_helpful
        if effect.mark_for_review:
            values["requires_human_review"] = True
        if effect.count_usage:
            values["used_count"] = DialogModel.used_count + 1
            values["last_used_at"] = now

        stmt = (
            update(DialogModel)
            .where(DialogModel.id == dialog_id)
            .values(**values)
            .returning(DialogModel.confidence_score)
        )
        row = await self._update_returning("apply_feedback", stmt)
        return float(row[0]) if row else None

    async def adjust_confidence(self, dialog_id: str, delta: float, now: datetime) -> Optional[float]:
        stmt = (
            update(DialogModel)
            .where(DialogModel.id == dialog_id)
            .values(confidence_score=_clamped(delta), updated_at=now)
            .returning(DialogModel.confidence_score)
        )
        row = await self._update_returning("adjust_confidence", stmt)
        return float(row[0]) if row else None

    async def record_usage(self, dialog_id: str, now: datetime) -> bool:
        stmt = (
            update(DialogModel)
            .where(DialogModel.id == dialog_id)
            .values(used_count=DialogModel.used_count + 1, last_used_at=now, updated_at=now)
            .returning(DialogModel.id)
        )
        return await self._update_returning("record_usage", stmt) is not None

    async def merge_duplicate(self, canonical_id: str, answer_text: str, now: datetime) -> bool:
        longer_answer = case(
            (func.length(DialogModel.answer_text) < len(answer_text), answer_text),
            else_=DialogModel.answer_text,
        )
        stmt = (
            update(DialogModel)
            .where(DialogModel.id == canonical_id)
            .values(
                used_count=DialogModel.used_count + 1,
                last_used_at=now,
                answer_text=longer_answer,
                updated_at=now,
            )
            .returning(DialogModel.id)
        )
        return await self._update_returning("merge_duplicate", stmt) is not None

    async def update_fields(self, dialog_id: str, changes: dict, now: datetime) -> bool:
        unknown = set(changes) - _UPDATABLE_FIELDS
        if unknown:
            raise ValueError(f"Fields not updatable: {sorted(unknown)}")

        stmt = (
            update(DialogModel)
            .where(DialogModel.id == dialog_id)
            .values(**changes, updated_at=now)
            .returning(DialogModel.id)
        )
        return await self._update_returning("update_dialog", stmt) is not None

    async def list(
        self,
        limit: int,
        offset: int,
        category: Optional[str] = None,
        helpful_only: bool = False
    ) -> List[Dialog]:
        stmt = select(DialogModel).where(*self._canonical_active())
        if category:
            stmt = stmt.where(DialogModel.question_category == category)
        if helpful_only:
            stmt = stmt.where(DialogModel.was_helpful.is_(True))
        stmt = stmt.order_by(
            DialogModel.used_count.desc(),
            DialogModel.confidence_score.desc(),
        ).offset(offset).limit(limit)

        with repository_errors("list_dialogs"):
            result = await self._session.execute(stmt)
        return [_to_entity(m) for m in result.scalars().all()]

    async def corpus_stats(self) -> DialogCorpusStats:
        stmt = select(
            func.count(),
            func.count().filter(DialogModel.was_helpful.is_(True)),
            func.count().filter(DialogModel.was_helpful.is_(False)),
            func.count().filter(DialogModel.was_helpful.is_(None)),
            func.avg(DialogModel.confidence_score),
            func.coalesce(func.sum(DialogModel.used_count), 0),
            func.count().filter(DialogModel.requires_human_review.is_(True)),
        ).where(*self._canonical_active())

        with repository_errors("dialog_stats"):
            result = await self._session.execute(stmt)
        total, helpful, not_helpful, unrated, avg_conf, uses, review = result.one()
        return DialogCorpusStats(
            total=total,
            helpful=helpful,
            not_helpful=not_helpful,
            unrated=unrated,
            avg_confidence=round(float(avg_conf), 2) if avg_conf is not None else None,
            total_uses=int(uses),
            needs_review=review,
        )


class SQLAlchemyFeedbackRepository(IFeedbackRepository):
    """Feedback events in 'support_feedback'."""

    def __init__(self, session: AsyncSession):
        self._session = session

    async def add(self, feedback: Feedback) -> Feedback:
        with repository_errors("add_feedback"):
            self._session.add(FeedbackModel(
                id=feedback.id,
                dialog_id=feedback.dialog_id,
                channel_id=feedback.channel_id,
                message_id=feedback.message_id,
                rating=feedback.rating,
                comment=feedback.comment,
                created_at=feedback.created_at,
            ))
            await self._session.flush()
        return feedback

    async def totals(self) -> FeedbackTotals:
        stmt = select(FeedbackModel.rating, func.count()).group_by(FeedbackModel.rating)
        with repository_errors("feedback_totals"):
            result = await self._session.execute(stmt)
        counts = {rating: count for rating, count in result.all()}
        return FeedbackTotals(
            total=sum(counts.values()),
            helpful=counts.get(FeedbackRating.HELPFUL, 0),
            not_helpful=counts.get(FeedbackRating.NOT_HELPFUL, 0),
            partially=counts.get(FeedbackRating.PARTIALLY, 0),
        )


class SQLAlchemyLearningStatsRepository(ILearningStatsRepository):
    """
    Daily counters in 'support_learning_stats'.

    The upsert runs in its own SAVEPOINT, so a failure here rolls back only
    the counter and leaves the surrounding feedback transaction usable.
    """

    def __init__(self, session: AsyncSession):
        self._session = session

    async def increment_feedback(self, day: date, rating: str, now: datetime) -> None:
        column = _DAILY_COLUMNS[rating]
        # Core table: the ORM attribute 'day' maps to the 'date' column
        table = LearningStatsModel.__table__
        with repository_errors("increment_learning_stats"):
            stmt = (
                pg_insert(table)
                .values({"date": day, "updated_at": now, column: 1})
                .on_conflict_do_update(
                    index_elements=[table.c.date],
                    set_={column: table.c[column] + 1, "updated_at": now},
                )
            )
            async with self._session.begin_nested():
                await self._session.execute(stmt)

    async def daily_since(self, since: date) -> List[DailyFeedbackCount]:
        stmt = (
            select(LearningStatsModel)
            .where(LearningStatsModel.day >= since)
            .order_by(LearningStatsModel.day.desc())
        )
        with repository_errors("daily_learning_stats"):
            result = await self._session.execute(stmt)
        return [
            DailyFeedbackCount(
                day=m.day,
                positive=m.feedback_positive,
                negative=m.feedback_negative,
                partial=m.feedback_partial,
            )
            for m in result.scalars().all()
        ]
