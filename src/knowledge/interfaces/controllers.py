"""
Knowledge Controllers (API Routes)
==================================

FastAPI routes for search, auto-answer, dialogs, feedback and stats.

Controllers delegate to application services built by the container.
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query, Request, status

from src.container import Repositories, ServiceContainer
from src.knowledge.application import (
    AutoAnswerDecisionResponse,
    AutoAnswerRequest,
    AutoAnswerResponse,
    CorpusStatsDTO,
    DialogCreateRequest,
    DialogCreatedResponse,
    DialogDTO,
    DialogListResponse,
    DialogUpdateRequest,
    FeedbackRequest,
    FeedbackResponse,
    LearningStatsResponse,
    QuestionRequest,
    RankedDialogDTO,
    SearchRequest,
    SearchResponse,
    SuggestRequest,
    SuggestResponse,
)
from src.shared.api.dependencies import get_container, get_repositories
from src.shared.infrastructure.logging import get_logger
from src.solutions.application import RecommendResponse

logger = get_logger(__name__)
router = APIRouter(prefix="/knowledge", tags=["Knowledge"])


# ========== Example payloads for Swagger ==========

AUTO_ANSWER_CHECK_EXAMPLE = {
    "can_auto": False,
    "confidence": 0.95,
    "reason": "Best match not used enough times - suggest to human",
    "answer": "Проверьте ключ API в настройках интеграции.",
    "dialog_id": "dlg_3f1c2a9b8e7d6c5b",
    "embedding_failed": False
}


# ========== Search & auto-answer ==========

@router.post("/search", response_model=SearchResponse, summary="Similarity search over answered dialogs")
async def search_dialogs(
    body: SearchRequest,
    container: ServiceContainer = Depends(get_container),
    repos: Repositories = Depends(get_repositories),
):
    """Rank stored dialogs by similarity to the question."""
    service = container.search_service(repos)
    options = service.default_options(
        limit=body.limit,
        min_similarity=body.min_similarity,
        category=body.category,
        helpful_only=body.helpful_only,
    )
    result = await service.search(body.question, options)
    return SearchResponse.from_result(result)


@router.post(
    "/auto-answer/check",
    response_model=AutoAnswerDecisionResponse,
    summary="Check whether a question can be answered automatically",
    responses={200: {"content": {"application/json": {"example": AUTO_ANSWER_CHECK_EXAMPLE}}}},
)
async def check_auto_answer(
    body: QuestionRequest,
    container: ServiceContainer = Depends(get_container),
    repos: Repositories = Depends(get_repositories),
):
    """Decide whether the question can be answered without an operator."""
    decision = await container.search_service(repos).can_auto_answer(body.question)
    return AutoAnswerDecisionResponse.from_decision(decision)


@router.post("/auto-answer", response_model=AutoAnswerResponse, summary="Gate and render an automatic reply")
async def auto_answer(
    request: Request,
    body: AutoAnswerRequest,
    container: ServiceContainer = Depends(get_container),
    repos: Repositories = Depends(get_repositories),
):
    """
    Gate the question and render the reply text when approved.

    The reply is returned, not sent; delivery belongs to the chat layer.
    """
    reply = await container.search_service(repos).auto_answer(
        body.question, container.reply_template, client_name=body.client_name
    )
    logger.info(
        "Auto-answer requested",
        extra={
            "correlation_id": getattr(request.state, "correlation_id", "unknown"),
            "can_auto": reply.decision.can_auto,
            "dialog_id": reply.decision.dialog_id,
        }
    )
    base = AutoAnswerDecisionResponse.from_decision(reply.decision)
    return AutoAnswerResponse(**base.model_dump(), reply_text=reply.reply_text)


@router.post("/suggest", response_model=SuggestResponse, summary="Suggest dialogs or catalog solutions to an operator")
async def suggest(
    body: SuggestRequest,
    container: ServiceContainer = Depends(get_container),
    repos: Repositories = Depends(get_repositories),
):
    """Similar dialogs, or keyword-matched solutions when none qualify."""
    suggestion = await container.suggestion_service(repos).suggest(
        body.question, category=body.category, limit=body.limit
    )
    return SuggestResponse(
        source=suggestion.source,
        dialogs=[RankedDialogDTO.from_ranked(d) for d in suggestion.dialogs],
        solutions=(
            RecommendResponse.from_recommendation(suggestion.recommendation)
            if suggestion.recommendation else None
        ),
        embedding_failed=suggestion.embedding_failed,
    )


# ========== Dialogs ==========

@router.post("/dialogs", response_model=DialogCreatedResponse, status_code=status.HTTP_201_CREATED)
async def create_dialog(
    body: DialogCreateRequest,
    container: ServiceContainer = Depends(get_container),
    repos: Repositories = Depends(get_repositories),
):
    """Store an answered question for future reuse."""
    created = await container.dialog_service(repos).create_dialog(
        question=body.question,
        answer=body.answer,
        answered_by=body.answered_by,
        answer_type=body.answer_type,
        category=body.category,
        channel_id=body.channel_id,
        client_type=body.client_type,
        resolution_minutes=body.resolution_minutes,
        expires_at=body.expires_at,
    )
    return DialogCreatedResponse.from_created(created)


@router.get("/dialogs", response_model=DialogListResponse)
async def list_dialogs(
    limit: int = Query(default=50, ge=1, le=500),
    offset: int = Query(default=0, ge=0),
    category: Optional[str] = Query(default=None, max_length=100),
    helpful_only: bool = Query(default=False),
    container: ServiceContainer = Depends(get_container),
    repos: Repositories = Depends(get_repositories),
):
    dialogs, stats = await container.dialog_service(repos).list_dialogs(
        limit=limit, offset=offset, category=category, helpful_only=helpful_only
    )
    return DialogListResponse(
        dialogs=[DialogDTO.from_entity(d) for d in dialogs],
        stats=CorpusStatsDTO(
            total=stats.total,
            helpful=stats.helpful,
            not_helpful=stats.not_helpful,
            unrated=stats.unrated,
            avg_confidence=stats.avg_confidence,
            total_uses=stats.total_uses,
            needs_review=stats.needs_review,
        ),
    )


@router.patch("/dialogs/{dialog_id}", response_model=DialogDTO)
async def update_dialog(
    dialog_id: str,
    body: DialogUpdateRequest,
    container: ServiceContainer = Depends(get_container),
    repos: Repositories = Depends(get_repositories),
):
    dialog = await container.dialog_service(repos).update_dialog(
        dialog_id,
        was_helpful=body.was_helpful,
        confidence_adjust=body.confidence_adjust,
        version=body.version,
        expires_at=body.expires_at,
        is_active=body.is_active,
    )
    return DialogDTO.from_entity(dialog)


@router.delete("/dialogs/{dialog_id}", status_code=status.HTTP_204_NO_CONTENT)
async def deactivate_dialog(
    dialog_id: str,
    container: ServiceContainer = Depends(get_container),
    repos: Repositories = Depends(get_repositories),
):
    """Logical delete: the dialog stays stored but is never searched again."""
    await container.dialog_service(repos).deactivate_dialog(dialog_id)


@router.post("/dialogs/{dialog_id}/usage", status_code=status.HTTP_204_NO_CONTENT)
async def record_dialog_usage(
    dialog_id: str,
    container: ServiceContainer = Depends(get_container),
    repos: Repositories = Depends(get_repositories),
):
    await container.dialog_service(repos).record_usage(dialog_id)


# ========== Feedback & stats ==========

@router.post("/feedback", response_model=FeedbackResponse, status_code=status.HTTP_201_CREATED)
async def submit_feedback(
    request: Request,
    body: FeedbackRequest,
    container: ServiceContainer = Depends(get_container),
    repos: Repositories = Depends(get_repositories),
):
    outcome = await container.feedback_service(repos).submit_feedback(
        rating=body.rating,
        dialog_id=body.dialog_id,
        comment=body.comment,
        channel_id=body.channel_id,
        message_id=body.message_id,
    )
    if not outcome.stats_recorded:
        logger.warning(
            "Feedback stored without daily stats",
            extra={
                "correlation_id": getattr(request.state, "correlation_id", "unknown"),
                "feedback_id": outcome.feedback_id,
            }
        )
    return FeedbackResponse.from_outcome(outcome)


@router.get("/stats", response_model=LearningStatsResponse)
async def learning_stats(
    days: int = Query(default=30, ge=1, le=365),
    container: ServiceContainer = Depends(get_container),
    repos: Repositories = Depends(get_repositories),
):
    stats = await container.stats_service(repos).get_stats(days=days)
    return LearningStatsResponse.from_stats(stats)


knowledge_router = router
