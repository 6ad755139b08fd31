"""
Knowledge Domain Layer
======================

Dialog entities, text normalization, confidence/gate policies and reply
templates. No I/O.
"""

from src.knowledge.domain.entities import (
    Dialog,
    Feedback,
    RankedDialog,
    SearchOptions,
    DialogSearchResult,
    AutoAnswerDecision,
    AutoAnswerReason,
    AutoReply,
    DialogCreated,
    FeedbackOutcome,
    DialogCorpusStats,
    FeedbackTotals,
    DailyFeedbackCount,
    LearningStats,
    utc_now,
)
from src.knowledge.domain.value_objects import (
    SearchDefaults,
    GatePolicy,
    FeedbackPolicy,
    FeedbackEffect,
    ConfidenceCalculator,
    AutoAnswerGate,
)
from src.knowledge.domain.templates import ReplyTemplate, ReplyFields, DEFAULT_AUTO_REPLY

__all__ = [
    "Dialog",
    "Feedback",
    "RankedDialog",
    "SearchOptions",
    "DialogSearchResult",
    "AutoAnswerDecision",
    "AutoAnswerReason",
    "AutoReply",
    "DialogCreated",
    "FeedbackOutcome",
    "DialogCorpusStats",
    "FeedbackTotals",
    "DailyFeedbackCount",
    "LearningStats",
    "utc_now",
    "SearchDefaults",
    "GatePolicy",
    "FeedbackPolicy",
    "FeedbackEffect",
    "ConfidenceCalculator",
    "AutoAnswerGate",
    "ReplyTemplate",
    "ReplyFields",
    "DEFAULT_AUTO_REPLY",
]
