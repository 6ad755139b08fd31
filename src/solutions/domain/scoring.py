"""
Keyword Relevance Scoring
=========================

Ranks catalog solutions against free-text problem descriptions without
embeddings. Used for the solutions catalog and as the fallback when the
embedding provider is unavailable.

The raw score is additive and unbounded; confidence is computed relative
to the best candidate in the current result set and capped at 99.
"""

import re
from typing import Iterable, List, Optional

from pydantic import BaseModel, Field

from src.core.numbers import round_half_up
from src.solutions.domain.entities import ScoredSolution, Solution

STOP_WORDS = frozenset({
    # Russian
    "и", "в", "во", "на", "с", "со", "по", "для", "от", "до", "что", "как", "не",
    "это", "у", "за", "к", "из", "но", "он", "она", "оно", "они", "мы", "вы", "я",
    "так", "же", "то", "все", "всё", "при", "или", "ли", "бы", "уже", "еще", "ещё",
    "там", "тут", "где", "когда", "если", "чтобы", "очень", "мне", "меня", "нас",
    "вас", "его", "её", "их", "был", "была", "было", "были", "есть", "нет", "да",
    "под", "над", "без", "про", "этот", "эта", "эти", "тот", "вот",
    # English
    "the", "a", "an", "is", "are", "was", "were", "be", "been", "being", "have",
    "has", "had", "do", "does", "did", "will", "would", "could", "should", "may",
    "might", "can", "to", "of", "in", "for", "on", "with", "at", "by", "from",
    "or", "and", "not", "this", "that", "these", "those", "it", "its", "but",
    "you", "your", "our", "they", "them", "there", "here", "what", "when", "how",
})

_NON_WORD_RE = re.compile(r"[^\w\s]")


def extract_keywords(text: Optional[str], max_keywords: int = 20) -> List[str]:
    """
    Lowercase, replace punctuation with spaces, split, and keep tokens of
    three or more characters that are not stop words.

    Order follows the input; duplicates are kept.
    """
    if not text:
        return []

    words = _NON_WORD_RE.sub(" ", text.lower()).split()
    keywords = [w for w in words if len(w) > 2 and w not in STOP_WORDS]
    return keywords[:max_keywords]


class ScoringWeights(BaseModel):
    """Additive weights of the relevance formula."""
    category_match: float = Field(default=30, ge=0)
    keyword_tag_match: float = Field(default=10, ge=0)
    pattern_word_match: float = Field(default=5, ge=0)
    success_score_factor: float = Field(default=5, ge=0)
    default_success_score: int = Field(default=3, ge=1, le=5)
    usage_factor: float = Field(default=0.5, ge=0)
    usage_cap: int = Field(default=50, ge=0)
    helpful_ratio_factor: float = Field(default=20, ge=0)
    verified_bonus: float = Field(default=15, ge=0)
    fast_resolution_bonus: float = Field(default=10, ge=0)
    fast_resolution_minutes: int = Field(default=30, ge=1)


class RecommendationPolicy(BaseModel):
    """Candidate pool and thresholds for recommendations."""
    candidate_pool: int = Field(default=100, ge=1)
    min_relevance: int = Field(
        default=20, ge=0,
        description="Candidates scoring at or below this are discarded"
    )
    fallback_confidence: int = Field(default=40, ge=0, le=99)
    max_confidence: int = Field(default=99, ge=1, le=100)
    max_keywords: int = Field(default=20, ge=1)


class RelevanceScorer:
    """Scores and ranks solutions for a keyword set and optional category."""

    def __init__(self, weights: ScoringWeights, policy: RecommendationPolicy):
        self._weights = weights
        self._policy = policy

    def score(
        self,
        solution: Solution,
        keywords: List[str],
        category: Optional[str] = None
    ) -> int:
        w = self._weights
        score = 0.0

        if category and solution.category == category:
            score += w.category_match

        tags = [t.lower() for t in solution.problem_keywords]
        tag_matches = sum(
            1 for k in keywords if any(t in k or k in t for t in tags)
        )
        score += tag_matches * w.keyword_tag_match

        if solution.problem_pattern:
            pattern_words = solution.problem_pattern.lower().split()
            pattern_matches = sum(
                1 for k in keywords if any(k in pw for pw in pattern_words)
            )
            score += pattern_matches * w.pattern_word_match

        score += (solution.success_score or w.default_success_score) * w.success_score_factor
        score += min(solution.used_count, w.usage_cap) * w.usage_factor
        score += solution.helpful_ratio * w.helpful_ratio_factor

        if solution.is_verified:
            score += w.verified_bonus

        minutes = solution.resolution_time_minutes
        if minutes and minutes < w.fast_resolution_minutes:
            score += w.fast_resolution_bonus

        return int(round_half_up(score))

    def rank(
        self,
        solutions: Iterable[Solution],
        keywords: List[str],
        category: Optional[str],
        limit: int
    ) -> List[ScoredSolution]:
        """
        Score, drop weak candidates, sort descending (stable) and attach the
        relative confidence.
        """
        scored = [(s, self.score(s, keywords, category)) for s in solutions]
        kept = [(s, sc) for s, sc in scored if sc > self._policy.min_relevance]
        kept.sort(key=lambda pair: pair[1], reverse=True)
        kept = kept[:limit]

        if not kept:
            return []

        top = kept[0][1]
        return [
            ScoredSolution(
                solution=s,
                relevance_score=sc,
                confidence=min(self._policy.max_confidence, int(round_half_up(sc / top * 100))),
            )
            for s, sc in kept
        ]
