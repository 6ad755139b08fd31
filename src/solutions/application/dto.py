"""
Solutions Application DTOs
==========================

Request/response models for the solutions API.
"""

from datetime import datetime
from typing import List, Literal, Optional

from pydantic import BaseModel, Field

from src.core.numbers import percent
from src.solutions.domain import Recommendation, ScoredSolution, Solution

SolutionVoteStr = Literal["helpful", "not_helpful", "used"]
MatchTypeStr = Literal["keyword_match", "category_fallback", "no_match"]


# ========== Request DTOs ==========

class RecommendRequest(BaseModel):
    """Request model for solution recommendations."""
    problem_text: str = Field(..., min_length=1, max_length=10000, description="Problem description")
    category: Optional[str] = Field(None, max_length=100, description="Category hint")
    limit: int = Field(default=5, ge=1, le=50)


class SolutionCreateRequest(BaseModel):
    """Request model for adding a solution from a resolved case."""
    solution_text: str = Field(..., min_length=1, max_length=20000)
    problem_pattern: Optional[str] = Field(None, max_length=5000)
    solution_steps: List[str] = Field(default_factory=list)
    category: Optional[str] = Field(None, max_length=100)
    subcategory: Optional[str] = Field(None, max_length=100)
    resolution_minutes: Optional[int] = Field(None, ge=0)
    case_id: Optional[str] = Field(None, max_length=50)
    created_by: Optional[str] = Field(None, max_length=100)


class SolutionVoteRequest(BaseModel):
    vote: SolutionVoteStr


# ========== Response DTOs ==========

class SolutionRecommendationDTO(BaseModel):
    """One recommended solution."""
    id: str
    category: Optional[str] = None
    subcategory: Optional[str] = None
    problem_pattern: Optional[str] = None
    solution_text: str
    solution_steps: List[str] = Field(default_factory=list)
    confidence: int = Field(..., ge=0, le=99)
    relevance_score: Optional[int] = None
    used_count: int
    avg_resolution_minutes: Optional[int] = None
    is_verified: bool
    helpful_ratio: int = Field(..., ge=0, le=100, description="Helpful votes, percent")

    @classmethod
    def from_scored(cls, scored: ScoredSolution) -> "SolutionRecommendationDTO":
        s = scored.solution
        return cls(
            id=s.id,
            category=s.category,
            subcategory=s.subcategory,
            problem_pattern=s.problem_pattern,
            solution_text=s.solution_text,
            solution_steps=s.solution_steps,
            confidence=scored.confidence,
            relevance_score=scored.relevance_score,
            used_count=s.used_count,
            avg_resolution_minutes=s.resolution_time_minutes,
            is_verified=s.is_verified,
            helpful_ratio=percent(s.helpful_ratio),
        )


class RecommendResponse(BaseModel):
    recommendations: List[SolutionRecommendationDTO]
    match_type: MatchTypeStr
    keywords: List[str]
    total_solutions: int

    @classmethod
    def from_recommendation(cls, rec: Recommendation) -> "RecommendResponse":
        return cls(
            recommendations=[SolutionRecommendationDTO.from_scored(s) for s in rec.items],
            match_type=rec.match_type,
            keywords=rec.keywords,
            total_solutions=rec.total_candidates,
        )


class SolutionCreatedResponse(BaseModel):
    solution_id: str
    keywords: List[str]
    created_at: datetime

    @classmethod
    def from_entity(cls, solution: Solution) -> "SolutionCreatedResponse":
        return cls(
            solution_id=solution.id,
            keywords=solution.problem_keywords,
            created_at=solution.created_at,
        )


class SolutionVoteResponse(BaseModel):
    success: bool = True
    solution_id: str
    vote: SolutionVoteStr
    used_count: int
    helpful_votes: int
    not_helpful_votes: int

    @classmethod
    def from_vote(cls, solution: Solution, vote: str) -> "SolutionVoteResponse":
        return cls(
            solution_id=solution.id,
            vote=vote,
            used_count=solution.used_count,
            helpful_votes=solution.helpful_votes,
            not_helpful_votes=solution.not_helpful_votes,
        )
