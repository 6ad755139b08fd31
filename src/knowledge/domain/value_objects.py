"""
Knowledge Value Objects
=======================

Tunable policies (search defaults, gate thresholds, feedback deltas) and the
pure functions that apply them.

The policies are pydantic models so they can be loaded from YAML and
validated once at startup; everything else here is plain functions over
immutable inputs.
"""

from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP
from typing import Optional

from pydantic import BaseModel, Field, model_validator

from src.config import FeedbackRating, VALID_FEEDBACK_RATINGS
from src.core import ValidationException
from src.knowledge.domain.entities import (
    AutoAnswerDecision,
    AutoAnswerReason,
    RankedDialog,
)

_CONFIDENCE_QUANTUM = Decimal("0.01")


class SearchDefaults(BaseModel):
    """Defaults applied when a search request leaves options unset."""
    limit: int = Field(default=5, ge=1, le=50)
    min_similarity: float = Field(default=0.70, ge=0.0, le=1.0)
    overfetch_factor: int = Field(
        default=2, ge=1, le=10,
        description="Candidates fetched per requested result before similarity filtering"
    )


class GatePolicy(BaseModel):
    """Thresholds the best match must clear to be sent without a human."""
    min_similarity: float = Field(default=0.92, ge=0.0, le=1.0)
    min_confidence: float = Field(default=0.5, ge=0.0, le=1.0)
    min_used_count: int = Field(default=2, ge=0)


class FeedbackPolicy(BaseModel):
    """Confidence deltas per rating."""
    helpful_delta: float = Field(default=0.05, ge=0.0, le=1.0)
    not_helpful_delta: float = Field(default=-0.15, ge=-1.0, le=0.0)
    partially_delta: float = Field(default=-0.05, ge=-1.0, le=0.0)

    @model_validator(mode="after")
    def check_ordering(self) -> "FeedbackPolicy":
        if self.not_helpful_delta > self.partially_delta:
            raise ValueError("not_helpful_delta must not be milder than partially_delta")
        return self

    def effect_for(self, rating: str) -> "FeedbackEffect":
        """Map a rating to the mutation it causes on the rated dialog."""
        if rating == FeedbackRating.HELPFUL:
            return FeedbackEffect(
                confidence_delta=self.helpful_delta,
                was_helpful=True,
                mark_for_review=False,
                count_usage=True,
            )
        if rating == FeedbackRating.NOT_HELPFUL:
            return FeedbackEffect(
                confidence_delta=self.not_helpful_delta,
                was_helpful=False,
                mark_for_review=True,
            )
        if rating == FeedbackRating.PARTIALLY:
            return FeedbackEffect(
                confidence_delta=self.partially_delta,
                was_helpful=None,
                mark_for_review=True,
            )
        raise ValidationException(
            f"Invalid rating '{rating}'",
            {"valid_ratings": VALID_FEEDBACK_RATINGS}
        )


@dataclass(frozen=True)
class FeedbackEffect:
    """
    What one feedback event does to a dialog.

    was_helpful=None leaves the flag untouched. Repositories apply the whole
    effect in a single atomic update.
    """
    confidence_delta: float
    was_helpful: Optional[bool]
    mark_for_review: bool
    count_usage: bool = False


class ConfidenceCalculator:
    """Pure confidence arithmetic shared by every repository implementation."""

    @staticmethod
    def clamp(value: float) -> float:
        return max(0.0, min(1.0, value))

    @staticmethod
    def apply_delta(current: float, delta: float) -> float:
        """
        current + delta, clamped to [0, 1] and kept at two decimals.

        Decimal arithmetic keeps repeated steps exact: 0.95 minus three
        0.15 penalties is 0.50, not 0.4999999.
        """
        result = Decimal(str(current)) + Decimal(str(delta))
        result = max(Decimal("0"), min(Decimal("1"), result))
        return float(result.quantize(_CONFIDENCE_QUANTUM, rounding=ROUND_HALF_UP))


class AutoAnswerGate:
    """
    Decides whether the best match can be sent automatically.

    Operates on one immutable RankedDialog snapshot. The checks run in a
    fixed order and the first failing one names the reason.
    """

    def __init__(self, policy: GatePolicy):
        self._policy = policy

    @property
    def policy(self) -> GatePolicy:
        return self._policy

    def decide(self, best: Optional[RankedDialog]) -> AutoAnswerDecision:
        if best is None or best.similarity < self._policy.min_similarity:
            return AutoAnswerDecision(
                can_auto=False, confidence=0.0, reason=AutoAnswerReason.NO_MATCH
            )

        if best.was_helpful is False:
            return AutoAnswerDecision(
                can_auto=False, confidence=best.similarity, reason=AutoAnswerReason.NOT_HELPFUL
            )

        if best.confidence_score < self._policy.min_confidence:
            return AutoAnswerDecision(
                can_auto=False, confidence=best.similarity, reason=AutoAnswerReason.LOW_CONFIDENCE
            )

        if best.used_count < self._policy.min_used_count:
            # Good match with little history: offer it to the operator
            return AutoAnswerDecision(
                can_auto=False,
                confidence=best.similarity,
                reason=AutoAnswerReason.LOW_USAGE,
                answer=best.answer_text,
                dialog_id=best.id,
            )

        return AutoAnswerDecision(
            can_auto=True,
            confidence=best.similarity,
            reason=AutoAnswerReason.APPROVED,
            answer=best.answer_text,
            dialog_id=best.id,
        )
