"""
Solutions Controllers (API Routes)
==================================

FastAPI routes for the solutions catalog: keyword recommendations,
catalog entries from resolved cases, and usage votes.
"""

from fastapi import APIRouter, Body, Depends, Request, status

from src.container import Repositories, ServiceContainer
from src.shared.api.dependencies import get_container, get_repositories
from src.shared.infrastructure.logging import get_logger
from src.solutions.application import (
    RecommendRequest,
    RecommendResponse,
    SolutionCreateRequest,
    SolutionCreatedResponse,
    SolutionVoteRequest,
    SolutionVoteResponse,
)

logger = get_logger(__name__)
router = APIRouter(prefix="/solutions", tags=["Solutions"])


# ========== Example payloads for Swagger ==========

RECOMMEND_REQUEST_EXAMPLE = {
    "problem_text": "Заказы не проходят, ошибка API",
    "category": "integration",
    "limit": 3
}


# ========== Route Handlers ==========

@router.post(
    "/recommend",
    response_model=RecommendResponse,
    summary="Recommend catalog solutions for a problem description",
    description="""
    Scores active solutions by keyword overlap, category, success score,
    usage, helpful votes, verification and resolution time.

    When no solution clears the relevance threshold and a category is
    given, the most used solutions of that category are returned with a
    fixed confidence of 40.
    """,
)
async def recommend_solutions(
    request: Request,
    body: RecommendRequest = Body(..., examples=[RECOMMEND_REQUEST_EXAMPLE]),
    container: ServiceContainer = Depends(get_container),
    repos: Repositories = Depends(get_repositories),
):
    recommendation = await container.solution_service(repos).recommend(
        body.problem_text, category=body.category, limit=body.limit
    )

    logger.info(
        "Solutions recommended",
        extra={
            "correlation_id": getattr(request.state, "correlation_id", "unknown"),
            "match_type": recommendation.match_type,
            "count": len(recommendation.items),
        }
    )
    return RecommendResponse.from_recommendation(recommendation)


@router.post(
    "",
    response_model=SolutionCreatedResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Add a solution from a resolved case",
)
async def create_solution(
    body: SolutionCreateRequest,
    container: ServiceContainer = Depends(get_container),
    repos: Repositories = Depends(get_repositories),
):
    solution = await container.solution_service(repos).create_solution(
        solution_text=body.solution_text,
        problem_pattern=body.problem_pattern,
        solution_steps=body.solution_steps,
        category=body.category,
        subcategory=body.subcategory,
        resolution_minutes=body.resolution_minutes,
        case_id=body.case_id,
        created_by=body.created_by,
    )
    return SolutionCreatedResponse.from_entity(solution)


@router.post(
    "/{solution_id}/votes",
    response_model=SolutionVoteResponse,
    summary="Record that a solution was used or rated",
)
async def vote_solution(
    solution_id: str,
    body: SolutionVoteRequest,
    container: ServiceContainer = Depends(get_container),
    repos: Repositories = Depends(get_repositories),
):
    solution = await container.solution_service(repos).record_usage(solution_id, body.vote)
    return SolutionVoteResponse.from_vote(solution, body.vote)


solutions_router = router
