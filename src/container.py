"""
Service Container
=================

Builds and owns the per-process collaborators (settings, policy, embedder,
database or in-memory stores) and hands out per-request services.

One container is created in the application lifespan and stored on
app.state; there are no module-level service globals.
"""

from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import datetime
from typing import AsyncIterator, Callable, Optional

from src.config import Settings
from src.core import ConfigurationException
from src.infrastructure.database import Database
from src.infrastructure.embeddings import Embedder, build_embedder
from src.infrastructure.policy import KnowledgePolicy, load_policy
from src.knowledge.application import (
    DialogService,
    FeedbackService,
    IDialogRepository,
    IFeedbackRepository,
    ILearningStatsRepository,
    KnowledgeSearchService,
    LearningStatsService,
    SuggestionService,
)
from src.knowledge.domain import AutoAnswerGate, ReplyTemplate, utc_now
from src.knowledge.infrastructure import (
    InMemoryDialogRepository,
    InMemoryFeedbackRepository,
    InMemoryLearningStatsRepository,
    SQLAlchemyDialogRepository,
    SQLAlchemyFeedbackRepository,
    SQLAlchemyLearningStatsRepository,
)
from src.knowledge.infrastructure.models import EMBEDDING_DIMENSION
from src.shared.infrastructure.logging import get_logger
from src.solutions.application import ISolutionRepository, SolutionService
from src.solutions.domain import RelevanceScorer
from src.solutions.infrastructure import InMemorySolutionRepository, SQLAlchemySolutionRepository

logger = get_logger(__name__)


@dataclass
class Repositories:
    """The repositories of one unit of work."""
    dialogs: IDialogRepository
    feedback: IFeedbackRepository
    learning_stats: ILearningStatsRepository
    solutions: ISolutionRepository

    @classmethod
    def in_memory(cls) -> "Repositories":
        return cls(
            dialogs=InMemoryDialogRepository(),
            feedback=InMemoryFeedbackRepository(),
            learning_stats=InMemoryLearningStatsRepository(),
            solutions=InMemorySolutionRepository(),
        )


class ServiceContainer:
    """
    Explicitly constructed dependency holder.

    With a Database, every unit of work gets a fresh session and SQLAlchemy
    repositories; without one, the same in-memory repositories are shared
    for the life of the container.
    """

    def __init__(
        self,
        settings: Settings,
        policy: KnowledgePolicy,
        embedder: Embedder,
        database: Optional[Database] = None,
        memory: Optional[Repositories] = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.settings = settings
        self.policy = policy
        self.embedder = embedder
        self.database = database
        self._memory = memory if database is None else None
        if database is None and self._memory is None:
            self._memory = Repositories.in_memory()
        self._clock = clock

        self.gate = AutoAnswerGate(policy.gate)
        self.scorer = RelevanceScorer(policy.scoring, policy.recommendations)
        self.reply_template = ReplyTemplate(policy.auto_reply_template)

    @classmethod
    def from_settings(cls, settings: Settings) -> "ServiceContainer":
        policy = load_policy(settings.knowledge_config_path)
        embedder = build_embedder(settings)
        database = None
        if settings.storage_backend == "postgres":
            if settings.embedding_dimension != EMBEDDING_DIMENSION:
                raise ConfigurationException(
                    "embedding_dimension does not match the support_dialogs vector column",
                    {
                        "embedding_dimension": settings.embedding_dimension,
                        "column_dimension": EMBEDDING_DIMENSION,
                    }
                )
            database = Database(settings)
        logger.info(
            "Service container built",
            extra={
                "storage_backend": settings.storage_backend,
                "embedding_provider": embedder.provider_name,
            }
        )
        return cls(settings, policy, embedder, database=database)

    async def startup(self) -> None:
        if self.database is None:
            return
        try:
            await self.database.create_tables()
        except Exception as e:
            # Service still starts; database-backed routes answer 503 until it is reachable
            logger.warning("Database not available - running in degraded mode", extra={"reason": str(e)})

    async def shutdown(self) -> None:
        if self.database is not None:
            await self.database.dispose()

    @asynccontextmanager
    async def repositories(self) -> AsyncIterator[Repositories]:
        """One unit of work: commit on success, roll back on error."""
        if self._memory is not None:
            yield self._memory
            return

        async with self.database.session() as session:
            yield Repositories(
                dialogs=SQLAlchemyDialogRepository(session),
                feedback=SQLAlchemyFeedbackRepository(session),
                learning_stats=SQLAlchemyLearningStatsRepository(session),
                solutions=SQLAlchemySolutionRepository(session),
            )

    # ========== Service factories ==========

    def dialog_service(self, repos: Repositories) -> DialogService:
        return DialogService(repos.dialogs, self.embedder, clock=self._clock)

    def search_service(self, repos: Repositories) -> KnowledgeSearchService:
        return KnowledgeSearchService(
            repos.dialogs, self.embedder, self.policy.search, self.gate, clock=self._clock
        )

    def feedback_service(self, repos: Repositories) -> FeedbackService:
        return FeedbackService(
            repos.dialogs, repos.feedback, repos.learning_stats, self.policy.feedback,
            clock=self._clock
        )

    def stats_service(self, repos: Repositories) -> LearningStatsService:
        return LearningStatsService(
            repos.dialogs, repos.feedback, repos.learning_stats, clock=self._clock
        )

    def solution_service(self, repos: Repositories) -> SolutionService:
        return SolutionService(
            repos.solutions, self.scorer, self.policy.recommendations, clock=self._clock
        )

    def suggestion_service(self, repos: Repositories) -> SuggestionService:
        return SuggestionService(self.search_service(repos), self.solution_service(repos))
