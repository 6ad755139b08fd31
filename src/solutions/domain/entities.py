"""
Solutions Domain Entities
=========================

Catalog entries (reusable fixes harvested from resolved cases) and the
recommendation result objects built from them.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import List, Optional


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class Solution:
    """A catalog entry matched by keywords rather than embeddings."""

    id: str
    solution_text: str
    problem_keywords: List[str] = field(default_factory=list)
    problem_pattern: Optional[str] = None
    solution_steps: List[str] = field(default_factory=list)

    category: Optional[str] = None
    subcategory: Optional[str] = None
    case_id: Optional[str] = None
    created_by: Optional[str] = None

    success_score: Optional[int] = None
    resolution_time_minutes: Optional[int] = None
    used_count: int = 0
    helpful_votes: int = 0
    not_helpful_votes: int = 0
    is_verified: bool = False
    is_active: bool = True

    created_at: datetime = field(default_factory=utc_now)
    updated_at: datetime = field(default_factory=utc_now)

    def __post_init__(self):
        if self.success_score is not None and not 1 <= self.success_score <= 5:
            raise ValueError("success_score must be between 1 and 5")

    @property
    def helpful_ratio(self) -> float:
        """Share of helpful votes; 0 for an untested entry."""
        return self.helpful_votes / max(self.helpful_votes + self.not_helpful_votes, 1)


@dataclass(frozen=True)
class ScoredSolution:
    """
    A recommended solution.

    relevance_score is None for category fallbacks, which are not scored.
    """
    solution: Solution
    confidence: int
    relevance_score: Optional[int] = None


@dataclass(frozen=True)
class Recommendation:
    items: List[ScoredSolution]
    match_type: str
    keywords: List[str]
    total_candidates: int = 0
