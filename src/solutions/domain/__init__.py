"""
Solutions Domain Layer
======================
"""

from src.solutions.domain.entities import Solution, ScoredSolution, Recommendation
from src.solutions.domain.scoring import (
    STOP_WORDS,
    extract_keywords,
    ScoringWeights,
    RecommendationPolicy,
    RelevanceScorer,
)

__all__ = [
    "Solution",
    "ScoredSolution",
    "Recommendation",
    "STOP_WORDS",
    "extract_keywords",
    "ScoringWeights",
    "RecommendationPolicy",
    "RelevanceScorer",
]
