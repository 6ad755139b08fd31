"""
Knowledge Infrastructure Layer
==============================

SQLAlchemy/pgvector repositories and their in-memory counterparts.
"""

from src.knowledge.infrastructure.memory import (
    InMemoryDialogRepository,
    InMemoryFeedbackRepository,
    InMemoryLearningStatsRepository,
    cosine_similarity,
)
from src.knowledge.infrastructure.repositories import (
    SQLAlchemyDialogRepository,
    SQLAlchemyFeedbackRepository,
    SQLAlchemyLearningStatsRepository,
)

__all__ = [
    "InMemoryDialogRepository",
    "InMemoryFeedbackRepository",
    "InMemoryLearningStatsRepository",
    "cosine_similarity",
    "SQLAlchemyDialogRepository",
    "SQLAlchemyFeedbackRepository",
    "SQLAlchemyLearningStatsRepository",
]
