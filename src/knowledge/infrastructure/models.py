"""
Knowledge Infrastructure Models
===============================

SQLAlchemy ORM models for the knowledge module.

Dialog embeddings use the pgvector column type; confidence is stored as
NUMERIC(3, 2) so repeated additive updates stay exact.
"""

from datetime import date, datetime, timezone
from typing import List, Optional

from pgvector.sqlalchemy import Vector
from sqlalchemy import Boolean, Date, DateTime, Index, Integer, Numeric, String, Text, text
from sqlalchemy.orm import Mapped, mapped_column

from src.infrastructure.database import Base

EMBEDDING_DIMENSION = 1536


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class DialogModel(Base):
    """
    Database model for Dialog entity.

    Maps to the 'support_dialogs' table.
    """
    __tablename__ = "support_dialogs"

    id: Mapped[str] = mapped_column(String(50), primary_key=True)

    # Question
    question_text: Mapped[str] = mapped_column(Text, nullable=False)
    question_embedding: Mapped[Optional[List[float]]] = mapped_column(Vector(EMBEDDING_DIMENSION), nullable=True)
    question_category: Mapped[Optional[str]] = mapped_column(String(100), nullable=True, index=True)
    question_language: Mapped[str] = mapped_column(String(10), nullable=False, default="ru")
    question_hash: Mapped[str] = mapped_column(String(64), nullable=False, index=True)

    # Answer
    answer_text: Mapped[str] = mapped_column(Text, nullable=False)
    answered_by: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    answer_type: Mapped[str] = mapped_column(String(20), nullable=False, default="manual")

    # Context
    channel_id: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    client_type: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    resolution_minutes: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)

    # Quality
    was_helpful: Mapped[Optional[bool]] = mapped_column(Boolean, nullable=True)
    confidence_score: Mapped[float] = mapped_column(
        Numeric(3, 2, asdecimal=False), nullable=False, default=0.5
    )
    used_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    requires_human_review: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    # Lifecycle
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    expires_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    is_duplicate_of: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_utc_now)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_utc_now)
    last_used_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        # One canonical record per normalized question
        Index(
            "uq_support_dialogs_canonical_hash",
            "question_hash",
            unique=True,
            postgresql_where=text("is_duplicate_of IS NULL AND is_active"),
        ),
        Index(
            "ix_support_dialogs_embedding",
            "question_embedding",
            postgresql_using="hnsw",
            postgresql_ops={"question_embedding": "vector_cosine_ops"},
        ),
    )


class FeedbackModel(Base):
    """
    Database model for Feedback entity.

    Maps to the 'support_feedback' table.
    """
    __tablename__ = "support_feedback"

    id: Mapped[str] = mapped_column(String(50), primary_key=True)
    dialog_id: Mapped[Optional[str]] = mapped_column(String(50), nullable=True, index=True)
    channel_id: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    message_id: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    rating: Mapped[str] = mapped_column(String(20), nullable=False)
    comment: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_utc_now)


class LearningStatsModel(Base):
    """
    Daily feedback counters.

    Maps to the 'support_learning_stats' table, one row per date.
    """
    __tablename__ = "support_learning_stats"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    day: Mapped[date] = mapped_column("date", Date, nullable=False, unique=True)
    feedback_positive: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    feedback_negative: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    feedback_partial: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_utc_now)
