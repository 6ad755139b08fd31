"""
Solutions Application Layer
===========================

Contains:
- Services: recommendation, voting, catalog creation
- DTOs: API request/response models
"""

from src.solutions.application.dto import (
    RecommendRequest,
    SolutionCreateRequest,
    SolutionVoteRequest,
    SolutionRecommendationDTO,
    RecommendResponse,
    SolutionCreatedResponse,
    SolutionVoteResponse,
)
from src.solutions.application.services import ISolutionRepository, SolutionService

__all__ = [
    # DTOs
    "RecommendRequest",
    "SolutionCreateRequest",
    "SolutionVoteRequest",
    "SolutionRecommendationDTO",
    "RecommendResponse",
    "SolutionCreatedResponse",
    "SolutionVoteResponse",
    # Services
    "SolutionService",
    # Repository Interfaces
    "ISolutionRepository",
]
