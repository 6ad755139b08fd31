"""Shared fixtures: scripted embeddings, seeded in-memory stores, an app client."""

import math
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional

import pytest
from fastapi.testclient import TestClient

from src.config import load_settings
from src.container import Repositories, ServiceContainer
from src.core import EmbeddingException, RepositoryException
from src.infrastructure.embeddings import Embedder, EmbeddingResult, IEmbeddingProvider
from src.infrastructure.policy import KnowledgePolicy
from src.knowledge.domain import Dialog
from src.knowledge.domain.text import question_hash
from src.knowledge.infrastructure import (
    InMemoryDialogRepository,
    InMemoryFeedbackRepository,
    InMemoryLearningStatsRepository,
)
from src.main import create_app
from src.solutions.domain import Solution
from src.solutions.infrastructure import InMemorySolutionRepository

FIXED_NOW = datetime(2026, 3, 2, 12, 0, tzinfo=timezone.utc)

BASE_VECTOR = [1.0, 0.0, 0.0]
FAR_VECTOR = [0.0, 0.0, 1.0]


def vector_at(similarity: float) -> List[float]:
    """Unit vector whose cosine similarity to BASE_VECTOR is `similarity`."""
    return [similarity, math.sqrt(1.0 - similarity * similarity), 0.0]


class ScriptedEmbeddingProvider(IEmbeddingProvider):
    """Returns configured vectors per text; unknown text maps far away."""

    name = "scripted"

    def __init__(self, vectors: Optional[Dict[str, List[float]]] = None):
        self.vectors = dict(vectors or {})
        self.failing = False
        self.calls: List[str] = []

    async def generate_embedding(self, text: str) -> EmbeddingResult:
        self.calls.append(text)
        if self.failing:
            raise EmbeddingException("provider down")
        return EmbeddingResult(embedding=self.vectors.get(text, FAR_VECTOR), model="scripted")


class FailingLearningStatsRepository(InMemoryLearningStatsRepository):
    async def increment_feedback(self, day, rating, now):
        raise RepositoryException("stats table locked")


def make_dialog(
    dialog_id: str,
    question: str = "Как подключить API?",
    answer: str = "Откройте настройки интеграции и создайте ключ.",
    embedding: Optional[List[float]] = None,
    confidence: float = 0.6,
    was_helpful: Optional[bool] = True,
    used_count: int = 5,
    category: Optional[str] = None,
    **kwargs
) -> Dialog:
    return Dialog(
        id=dialog_id,
        question_text=question,
        answer_text=answer,
        question_hash=question_hash(question),
        question_embedding=list(embedding or BASE_VECTOR),
        question_category=category,
        confidence_score=confidence,
        was_helpful=was_helpful,
        used_count=used_count,
        created_at=FIXED_NOW - timedelta(days=10),
        updated_at=FIXED_NOW - timedelta(days=10),
        **kwargs
    )


def make_solution(solution_id: str, **kwargs) -> Solution:
    defaults = dict(
        solution_text="Перевыпустите ключ API в личном кабинете.",
        problem_keywords=["api", "ключ"],
        problem_pattern="ошибка api при оформлении заказа",
        category="integration",
        created_at=FIXED_NOW,
        updated_at=FIXED_NOW,
    )
    defaults.update(kwargs)
    return Solution(id=solution_id, **defaults)


@pytest.fixture
def clock():
    return lambda: FIXED_NOW


@pytest.fixture
def provider() -> ScriptedEmbeddingProvider:
    return ScriptedEmbeddingProvider()


@pytest.fixture
def embedder(provider) -> Embedder:
    return Embedder(provider, timeout_seconds=1.0, max_chars=8000)


@pytest.fixture
def dialogs() -> InMemoryDialogRepository:
    return InMemoryDialogRepository()


@pytest.fixture
def solutions() -> InMemorySolutionRepository:
    return InMemorySolutionRepository()


@pytest.fixture
def repos(dialogs, solutions) -> Repositories:
    return Repositories(
        dialogs=dialogs,
        feedback=InMemoryFeedbackRepository(),
        learning_stats=InMemoryLearningStatsRepository(),
        solutions=solutions,
    )


@pytest.fixture
def settings():
    return load_settings(storage_backend="memory", embedding_provider="mock", environment="development")


@pytest.fixture
def container(settings, embedder, repos, clock) -> ServiceContainer:
    return ServiceContainer(settings, KnowledgePolicy(), embedder, memory=repos, clock=clock)


@pytest.fixture
def client(container) -> TestClient:
    return TestClient(create_app(container))
