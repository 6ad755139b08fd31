"""
Knowledge Application Layer
===========================

Contains:
- Services: dialog writes, search/auto-answer, feedback, stats, suggestions
- DTOs: API request/response models
"""

from src.knowledge.application.dto import (
    SearchRequest,
    QuestionRequest,
    AutoAnswerRequest,
    SuggestRequest,
    DialogCreateRequest,
    DialogUpdateRequest,
    FeedbackRequest,
    RankedDialogDTO,
    SearchResponse,
    AutoAnswerDecisionResponse,
    AutoAnswerResponse,
    SuggestResponse,
    DialogCreatedResponse,
    DialogDTO,
    CorpusStatsDTO,
    DialogListResponse,
    FeedbackResponse,
    LearningStatsResponse,
)
from src.knowledge.application.services import (
    DuplicateQuestionException,
    IDialogRepository,
    IFeedbackRepository,
    ILearningStatsRepository,
    DialogService,
    KnowledgeSearchService,
    FeedbackService,
    LearningStatsService,
    Suggestion,
    SuggestionService,
)

__all__ = [
    # DTOs
    "SearchRequest",
    "QuestionRequest",
    "AutoAnswerRequest",
    "SuggestRequest",
    "DialogCreateRequest",
    "DialogUpdateRequest",
    "FeedbackRequest",
    "RankedDialogDTO",
    "SearchResponse",
    "AutoAnswerDecisionResponse",
    "AutoAnswerResponse",
    "SuggestResponse",
    "DialogCreatedResponse",
    "DialogDTO",
    "CorpusStatsDTO",
    "DialogListResponse",
    "FeedbackResponse",
    "LearningStatsResponse",
    # Services
    "DialogService",
    "KnowledgeSearchService",
    "FeedbackService",
    "LearningStatsService",
    "Suggestion",
    "SuggestionService",
    "DuplicateQuestionException",
    # Repository Interfaces
    "IDialogRepository",
    "IFeedbackRepository",
    "ILearningStatsRepository",
]
