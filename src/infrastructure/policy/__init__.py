"""
Knowledge Policy Loading
========================

Gate thresholds, feedback deltas and keyword-scoring weights, read once at
startup from a YAML file. A missing file means defaults; an invalid file
raises ConfigurationException.

Example knowledge_config.yaml:

    gate:
      min_similarity: 0.92
    feedback:
      not_helpful_delta: -0.15
    recommendations:
      fallback_confidence: 40
"""

from pathlib import Path
from typing import Optional

import yaml
from pydantic import BaseModel, Field, ValidationError

from src.core import ConfigurationException
from src.knowledge.domain import FeedbackPolicy, GatePolicy, SearchDefaults
from src.knowledge.domain.templates import DEFAULT_AUTO_REPLY
from src.shared.infrastructure.logging import get_logger
from src.solutions.domain import RecommendationPolicy, ScoringWeights

logger = get_logger(__name__)


class KnowledgePolicy(BaseModel):
    """All tunable knobs of the knowledge and solutions contexts."""
    search: SearchDefaults = Field(default_factory=SearchDefaults)
    gate: GatePolicy = Field(default_factory=GatePolicy)
    feedback: FeedbackPolicy = Field(default_factory=FeedbackPolicy)
    scoring: ScoringWeights = Field(default_factory=ScoringWeights)
    recommendations: RecommendationPolicy = Field(default_factory=RecommendationPolicy)
    auto_reply_template: str = Field(default=DEFAULT_AUTO_REPLY, min_length=1)

    model_config = {"extra": "forbid"}


def load_policy(path: Optional[Path]) -> KnowledgePolicy:
    """Load and validate the policy file; defaults when the file is absent."""
    if path is None or not path.exists():
        logger.info("Knowledge policy file not found, using defaults", extra={"path": str(path)})
        return KnowledgePolicy()

    try:
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
    except yaml.YAMLError as e:
        raise ConfigurationException(f"Invalid YAML in {path}: {e}")

    if not isinstance(data, dict):
        raise ConfigurationException(f"{path} must contain a mapping at the top level")

    try:
        policy = KnowledgePolicy(**data)
    except ValidationError as e:
        raise ConfigurationException(
            f"Invalid knowledge policy in {path}",
            {"errors": [f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in e.errors()]}
        )

    logger.info("Knowledge policy loaded", extra={"path": str(path)})
    return policy
