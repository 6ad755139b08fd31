"""
Solutions Infrastructure Layer
==============================

SQLAlchemy model/repository and the in-memory repository.
"""

from src.solutions.infrastructure.memory import InMemorySolutionRepository
from src.solutions.infrastructure.repositories import SQLAlchemySolutionRepository

__all__ = ["InMemorySolutionRepository", "SQLAlchemySolutionRepository"]
