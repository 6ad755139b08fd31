"""Tests for SolutionService over the in-memory catalog."""

import pytest

from src.config import MatchType
from src.core import ResourceNotFoundException, ValidationException
from src.solutions.application import SolutionService
from src.solutions.domain import RecommendationPolicy, RelevanceScorer, ScoringWeights
from src.solutions.infrastructure import InMemorySolutionRepository

from conftest import FIXED_NOW, make_solution

PROBLEM = "Заказы не проходят, ошибка API"


def build_service(solutions, policy=None) -> SolutionService:
    policy = policy or RecommendationPolicy()
    return SolutionService(
        InMemorySolutionRepository(solutions),
        RelevanceScorer(ScoringWeights(), policy),
        policy,
        clock=lambda: FIXED_NOW,
    )


class TestRecommend:

    @pytest.mark.asyncio
    async def test_keyword_match(self):
        service = build_service([
            make_solution("sol_api"),
            make_solution("sol_delivery", problem_keywords=["доставка"],
                          problem_pattern="курьер опоздал", category="delivery"),
        ])
        rec = await service.recommend(PROBLEM)

        assert rec.match_type == MatchType.KEYWORD_MATCH
        assert [s.solution.id for s in rec.items] == ["sol_api"]
        assert rec.items[0].confidence == 99
        assert rec.keywords == ["заказы", "проходят", "ошибка", "api"]
        assert rec.total_candidates == 2

    @pytest.mark.asyncio
    async def test_category_fallback_has_fixed_confidence(self):
        # Pool of one: only the most used (irrelevant) entry is scored
        policy = RecommendationPolicy(candidate_pool=1)
        service = build_service([
            make_solution("sol_popular", problem_keywords=["доставка"], problem_pattern="курьер",
                          category="delivery", used_count=4),
            make_solution("sol_billing", problem_keywords=["счет"], problem_pattern="оплата",
                          category="billing", used_count=1),
        ], policy)

        rec = await service.recommend("Не пришел чек", category="billing")

        assert rec.match_type == MatchType.CATEGORY_FALLBACK
        assert [s.solution.id for s in rec.items] == ["sol_billing"]
        assert rec.items[0].confidence == 40
        assert rec.items[0].relevance_score is None

    @pytest.mark.asyncio
    async def test_no_match_without_category(self):
        service = build_service([
            make_solution("sol_delivery", problem_keywords=["доставка"],
                          problem_pattern="курьер опоздал", category="delivery"),
        ])
        rec = await service.recommend(PROBLEM)
        assert rec.match_type == MatchType.NO_MATCH
        assert rec.items == []

    @pytest.mark.asyncio
    async def test_inactive_solutions_ignored(self):
        service = build_service([make_solution("sol_old", is_active=False)])
        rec = await service.recommend(PROBLEM)
        assert rec.items == []
        assert rec.total_candidates == 0

    @pytest.mark.asyncio
    async def test_empty_problem_rejected(self):
        with pytest.raises(ValidationException):
            await build_service([]).recommend("   ")


class TestVotesAndCreation:

    @pytest.mark.asyncio
    async def test_votes_update_counters(self):
        repo = InMemorySolutionRepository([make_solution("sol_api")])
        policy = RecommendationPolicy()
        service = SolutionService(
            repo, RelevanceScorer(ScoringWeights(), policy), policy, clock=lambda: FIXED_NOW
        )

        await service.record_usage("sol_api", "helpful")
        await service.record_usage("sol_api", "not_helpful")
        updated = await service.record_usage("sol_api", "used")

        assert updated.used_count == 3
        assert updated.helpful_votes == 1
        assert updated.not_helpful_votes == 1
        assert updated.updated_at == FIXED_NOW

    @pytest.mark.asyncio
    async def test_unknown_solution(self):
        with pytest.raises(ResourceNotFoundException):
            await build_service([]).record_usage("sol_missing", "used")

    @pytest.mark.asyncio
    async def test_invalid_vote(self):
        with pytest.raises(ValidationException):
            await build_service([make_solution("sol_api")]).record_usage("sol_api", "love")

    @pytest.mark.asyncio
    async def test_create_extracts_keywords_from_pattern(self):
        service = build_service([])
        solution = await service.create_solution(
            solution_text="Перезапустите синхронизацию.",
            problem_pattern="Остатки не обновляются на сайте",
            category="integration",
        )
        assert solution.id.startswith("sol_")
        assert solution.problem_keywords == ["остатки", "обновляются", "сайте"]
        assert solution.created_at == FIXED_NOW

        rec = await service.recommend("остатки не обновляются")
        assert [s.solution.id for s in rec.items] == [solution.id]

    @pytest.mark.asyncio
    async def test_create_requires_text(self):
        with pytest.raises(ValidationException):
            await build_service([]).create_solution(solution_text=" ")


class TestCatalogOrdering:

    @pytest.mark.asyncio
    async def test_unscored_entries_lead_within_equal_usage(self):
        repo = InMemorySolutionRepository([
            make_solution("sol_scored", used_count=3, success_score=5),
            make_solution("sol_unscored", used_count=3),
            make_solution("sol_popular", used_count=9, success_score=1),
        ])

        top = await repo.list_top_active(3)

        assert [s.id for s in top] == ["sol_popular", "sol_unscored", "sol_scored"]
