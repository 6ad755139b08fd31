"""
Solutions Application Services
==============================

Recommendation, voting and creation for the solutions catalog.
"""

import uuid
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Callable, List, Optional

from src.config import MatchType, VALID_SOLUTION_VOTES
from src.core import ResourceNotFoundException, ValidationException
from src.shared.infrastructure.logging import get_logger
from src.solutions.domain import (
    Recommendation,
    RecommendationPolicy,
    RelevanceScorer,
    ScoredSolution,
    Solution,
    extract_keywords,
)
from src.solutions.domain.entities import utc_now

logger = get_logger(__name__)


# ========== Repository Interfaces ==========

class ISolutionRepository(ABC):
    """Interface for solution catalog access."""

    @abstractmethod
    async def get_by_id(self, solution_id: str) -> Optional[Solution]:
        """Get solution by ID."""

    @abstractmethod
    async def add(self, solution: Solution) -> Solution:
        """Persist a new solution."""

    @abstractmethod
    async def list_top_active(self, limit: int) -> List[Solution]:
        """Active solutions ordered by used_count desc, success_score desc."""

    @abstractmethod
    async def list_top_in_category(self, category: str, limit: int) -> List[Solution]:
        """Same ordering as list_top_active, restricted to one category."""

    @abstractmethod
    async def record_vote(self, solution_id: str, vote: str, now: datetime) -> bool:
        """Atomically apply a vote. False when the solution does not exist."""


# ========== Application Services ==========

class SolutionService:
    """
    Keyword-path recommendations over the solutions catalog.

    Also serves as the fallback for the knowledge context when the embedding
    provider is unavailable or no dialog qualifies.
    """

    def __init__(
        self,
        repository: ISolutionRepository,
        scorer: RelevanceScorer,
        policy: RecommendationPolicy,
        clock: Callable[[], datetime] = utc_now
    ):
        self._repo = repository
        self._scorer = scorer
        self._policy = policy
        self._clock = clock

    async def recommend(
        self,
        problem_text: str,
        category: Optional[str] = None,
        limit: int = 5
    ) -> Recommendation:
        """
        Rank catalog solutions for a problem description.

        Falls back to the top entries of the requested category (fixed
        confidence, match_type=category_fallback) when nothing scores above
        the threshold.
        """
        if not problem_text or not problem_text.strip():
            raise ValidationException("Problem text is required")
        if limit < 1:
            raise ValidationException("limit must be at least 1", {"limit": limit})

        keywords = extract_keywords(problem_text, self._policy.max_keywords)
        candidates = await self._repo.list_top_active(self._policy.candidate_pool)
        ranked = self._scorer.rank(candidates, keywords, category, limit)

        if ranked:
            return Recommendation(
                items=ranked,
                match_type=MatchType.KEYWORD_MATCH,
                keywords=keywords,
                total_candidates=len(candidates),
            )

        if category:
            fallback = await self._repo.list_top_in_category(category, limit)
            logger.info(
                "No keyword match, using category fallback",
                extra={"category": category, "fallback_count": len(fallback)}
            )
            return Recommendation(
                items=[
                    ScoredSolution(solution=s, confidence=self._policy.fallback_confidence)
                    for s in fallback
                ],
                match_type=MatchType.CATEGORY_FALLBACK,
                keywords=keywords,
                total_candidates=len(candidates),
            )

        return Recommendation(
            items=[],
            match_type=MatchType.NO_MATCH,
            keywords=keywords,
            total_candidates=len(candidates),
        )

    async def record_usage(self, solution_id: str, vote: str) -> Solution:
        """Apply a vote atomically and return the entry with its updated counters."""
        if vote not in VALID_SOLUTION_VOTES:
            raise ValidationException(
                f"Invalid vote '{vote}'", {"valid_votes": VALID_SOLUTION_VOTES}
            )

        found = await self._repo.record_vote(solution_id, vote, self._clock())
        if not found:
            raise ResourceNotFoundException("Solution", solution_id)

        logger.info("Solution vote recorded", extra={"solution_id": solution_id, "vote": vote})
        return await self._repo.get_by_id(solution_id)

    async def create_solution(
        self,
        solution_text: str,
        problem_pattern: Optional[str] = None,
        solution_steps: Optional[List[str]] = None,
        category: Optional[str] = None,
        subcategory: Optional[str] = None,
        resolution_minutes: Optional[int] = None,
        case_id: Optional[str] = None,
        created_by: Optional[str] = None,
    ) -> Solution:
        """Add a catalog entry; keywords come from the pattern, else the solution text."""
        if not solution_text or not solution_text.strip():
            raise ValidationException("Solution text is required")

        keywords = extract_keywords(problem_pattern or solution_text, self._policy.max_keywords)
        now = self._clock()
        solution = Solution(
            id=f"sol_{uuid.uuid4().hex[:16]}",
            solution_text=solution_text.strip(),
            problem_keywords=keywords,
            problem_pattern=problem_pattern,
            solution_steps=list(solution_steps or []),
            category=category,
            subcategory=subcategory,
            case_id=case_id,
            created_by=created_by,
            resolution_time_minutes=resolution_minutes,
            created_at=now,
            updated_at=now,
        )
        saved = await self._repo.add(solution)

        logger.info(
            "Solution created",
            extra={"solution_id": saved.id, "keyword_count": len(keywords), "category": category}
        )
        return saved


