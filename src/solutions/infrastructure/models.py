"""
Solutions Infrastructure Models
===============================

SQLAlchemy ORM model for the solutions catalog.
"""

from datetime import datetime, timezone
from typing import List, Optional

from sqlalchemy import Boolean, DateTime, Index, Integer, String, Text
from sqlalchemy.dialects.postgresql import ARRAY, JSONB
from sqlalchemy.orm import Mapped, mapped_column

from src.infrastructure.database import Base


class SolutionModel(Base):
    """
    Database model for Solution entity.

    Maps to the 'support_solutions' table.
    """
    __tablename__ = "support_solutions"

    id: Mapped[str] = mapped_column(String(50), primary_key=True)
    case_id: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)

    category: Mapped[Optional[str]] = mapped_column(String(100), nullable=True, index=True)
    subcategory: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)

    # Matching
    problem_keywords: Mapped[List[str]] = mapped_column(ARRAY(Text), nullable=False, default=list)
    problem_pattern: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # Content
    solution_text: Mapped[str] = mapped_column(Text, nullable=False)
    solution_steps: Mapped[List[str]] = mapped_column(JSONB, nullable=False, default=list)

    # Quality
    success_score: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    resolution_time_minutes: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    used_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    helpful_votes: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    not_helpful_votes: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    is_verified: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    created_by: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc))
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc))

    __table_args__ = (
        Index("ix_support_solutions_ranking", "is_active", "used_count", "success_score"),
    )
