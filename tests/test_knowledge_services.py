"""Tests for the knowledge application services over in-memory stores."""

import asyncio
from datetime import timedelta

import pytest

from src.config import MatchType, SuggestionSource
from src.container import Repositories
from src.core import ResourceNotFoundException, ValidationException
from src.knowledge.application import DuplicateQuestionException
from src.knowledge.domain import AutoAnswerReason, SearchOptions
from src.knowledge.infrastructure import (
    InMemoryDialogRepository,
    InMemoryFeedbackRepository,
    InMemoryLearningStatsRepository,
)
from src.solutions.infrastructure import InMemorySolutionRepository

from conftest import (
    BASE_VECTOR,
    FIXED_NOW,
    FailingLearningStatsRepository,
    make_dialog,
    make_solution,
    vector_at,
)

QUERY = "Не работает API"


async def seed(dialogs, *items):
    for item in items:
        await dialogs.add(item)


class YieldingDialogRepository(InMemoryDialogRepository):
    """Suspends on every read so concurrent writers interleave."""

    async def get_by_id(self, dialog_id):
        await asyncio.sleep(0)
        return await super().get_by_id(dialog_id)


@pytest.fixture
def query_vector(provider):
    provider.vectors[QUERY] = list(BASE_VECTOR)


class TestCreateDialog:

    @pytest.mark.asyncio
    async def test_new_question_is_embedded_and_stored(self, container, repos, provider):
        provider.vectors["Как подключить API?"] = list(BASE_VECTOR)
        created = await container.dialog_service(repos).create_dialog(
            question="Как подключить API?", answer="Создайте ключ.", answered_by="operator_1"
        )

        assert created.is_duplicate is False
        assert created.has_embedding is True
        assert created.language == "ru"

        stored = await repos.dialogs.get_by_id(created.dialog_id)
        assert stored.question_embedding == BASE_VECTOR
        assert stored.confidence_score == 0.5
        assert stored.used_count == 0
        assert stored.created_at == FIXED_NOW

    @pytest.mark.asyncio
    async def test_personal_data_redacted_before_storage(self, container, repos, provider):
        created = await container.dialog_service(repos).create_dialog(
            question="Мой номер +998901234567, не приходит SMS",
            answer="Напишите на support@shop.uz",
        )
        stored = await repos.dialogs.get_by_id(created.dialog_id)
        assert "[PHONE]" in stored.question_text
        assert stored.answer_text == "Напишите на [EMAIL]"
        assert provider.calls == ["Мой номер [PHONE], не приходит SMS"]

    @pytest.mark.asyncio
    async def test_embedding_failure_still_stores_dialog(self, container, repos, provider):
        provider.failing = True
        created = await container.dialog_service(repos).create_dialog(
            question="Где мой заказ?", answer="Проверьте статус в кабинете."
        )
        assert created.has_embedding is False
        stored = await repos.dialogs.get_by_id(created.dialog_id)
        assert stored.question_embedding is None

    @pytest.mark.asyncio
    async def test_repeated_question_links_to_canonical(self, container, repos, provider):
        service = container.dialog_service(repos)
        first = await service.create_dialog(question="Как подключить API?", answer="Ключ.")
        second = await service.create_dialog(
            question="как подключить api", answer="Создайте ключ в настройках интеграции."
        )

        assert second.is_duplicate is True
        assert second.duplicate_of == first.dialog_id
        assert second.has_embedding is False
        assert len(provider.calls) == 1

        canonical = await repos.dialogs.get_by_id(first.dialog_id)
        assert canonical.used_count == 1
        assert canonical.answer_text == "Создайте ключ в настройках интеграции."

        duplicate = await repos.dialogs.get_by_id(second.dialog_id)
        assert duplicate.is_duplicate_of == first.dialog_id
        assert duplicate.question_embedding is None

    @pytest.mark.asyncio
    async def test_repository_rejects_second_canonical_with_same_hash(self, dialogs):
        await dialogs.add(make_dialog("dlg_a"))
        with pytest.raises(DuplicateQuestionException):
            await dialogs.add(make_dialog("dlg_b"))

    @pytest.mark.asyncio
    async def test_blank_question_rejected(self, container, repos):
        with pytest.raises(ValidationException):
            await container.dialog_service(repos).create_dialog(question=" ", answer="x")

    @pytest.mark.asyncio
    async def test_invalid_answer_type_rejected(self, container, repos):
        with pytest.raises(ValidationException):
            await container.dialog_service(repos).create_dialog(
                question="Вопрос", answer="Ответ", answer_type="robot"
            )


class TestSearch:

    @pytest.mark.asyncio
    async def test_ranks_and_filters_by_similarity(self, container, repos, query_vector):
        await seed(
            repos.dialogs,
            make_dialog("dlg_high", question="q high", embedding=vector_at(0.95)),
            make_dialog("dlg_mid", question="q mid", embedding=vector_at(0.75)),
            make_dialog("dlg_low", question="q low", embedding=vector_at(0.5)),
        )
        result = await container.search_service(repos).search(QUERY)

        assert [r.id for r in result.results] == ["dlg_high", "dlg_mid"]
        assert [r.similarity for r in result.results] == [0.95, 0.75]
        assert [r.similarity_percent for r in result.results] == [95, 75]
        assert result.total_candidates == 3
        assert result.filtered_count == 2
        assert result.embedding_failed is False

    @pytest.mark.asyncio
    async def test_limit_truncates(self, container, repos, query_vector):
        await seed(
            repos.dialogs,
            make_dialog("dlg_1", question="q1", embedding=vector_at(0.99)),
            make_dialog("dlg_2", question="q2", embedding=vector_at(0.9)),
            make_dialog("dlg_3", question="q3", embedding=vector_at(0.8)),
        )
        service = container.search_service(repos)
        result = await service.search(QUERY, service.default_options(limit=1))
        assert [r.id for r in result.results] == ["dlg_1"]

    @pytest.mark.asyncio
    async def test_excludes_unhelpful_inactive_expired_and_duplicates(
        self, container, repos, query_vector
    ):
        await seed(
            repos.dialogs,
            make_dialog("dlg_ok", question="ok"),
            make_dialog("dlg_bad", question="bad", was_helpful=False),
            make_dialog("dlg_off", question="off", is_active=False),
            make_dialog("dlg_old", question="old", expires_at=FIXED_NOW - timedelta(days=1)),
            make_dialog("dlg_dup", question="ok again", is_duplicate_of="dlg_ok"),
        )
        result = await container.search_service(repos).search(QUERY)
        assert [r.id for r in result.results] == ["dlg_ok"]

    @pytest.mark.asyncio
    async def test_unhelpful_included_when_requested(self, container, repos, query_vector):
        await seed(repos.dialogs, make_dialog("dlg_bad", question="bad", was_helpful=False))
        service = container.search_service(repos)
        result = await service.search(QUERY, service.default_options(helpful_only=False))
        assert [r.id for r in result.results] == ["dlg_bad"]

    @pytest.mark.asyncio
    async def test_category_filter(self, container, repos, query_vector):
        await seed(
            repos.dialogs,
            make_dialog("dlg_pay", question="pay", category="payments"),
            make_dialog("dlg_api", question="api", category="integration"),
        )
        service = container.search_service(repos)
        result = await service.search(QUERY, service.default_options(category="payments"))
        assert [r.id for r in result.results] == ["dlg_pay"]

    @pytest.mark.asyncio
    async def test_embedding_failure_is_reported_not_raised(self, container, repos, provider):
        await seed(repos.dialogs, make_dialog("dlg_ok", question="ok"))
        provider.failing = True

        result = await container.search_service(repos).search(QUERY)

        assert result.embedding_failed is True
        assert result.error == "Failed to create embedding"
        assert result.results == []

    def test_invalid_options_rejected(self):
        with pytest.raises(ValidationException):
            SearchOptions(limit=0)
        with pytest.raises(ValidationException):
            SearchOptions(min_similarity=1.5)


class TestAutoAnswer:

    @pytest.mark.asyncio
    async def test_strong_match_is_approved(self, container, repos, query_vector):
        await seed(repos.dialogs, make_dialog(
            "dlg_1", embedding=vector_at(0.95), confidence=0.6, was_helpful=True, used_count=5
        ))
        decision = await container.search_service(repos).can_auto_answer(QUERY)

        assert decision.can_auto is True
        assert decision.confidence == 0.95
        assert decision.reason == AutoAnswerReason.APPROVED
        assert decision.dialog_id == "dlg_1"

    @pytest.mark.asyncio
    async def test_little_used_match_is_suggested(self, container, repos, query_vector):
        await seed(repos.dialogs, make_dialog("dlg_1", embedding=vector_at(0.95), used_count=1))
        decision = await container.search_service(repos).can_auto_answer(QUERY)

        assert decision.can_auto is False
        assert decision.reason == AutoAnswerReason.LOW_USAGE
        assert decision.answer == "Откройте настройки интеграции и создайте ключ."

    @pytest.mark.asyncio
    async def test_match_below_gate_similarity(self, container, repos, query_vector):
        await seed(repos.dialogs, make_dialog("dlg_1", embedding=vector_at(0.85)))
        decision = await container.search_service(repos).can_auto_answer(QUERY)
        assert decision.can_auto is False
        assert decision.reason == AutoAnswerReason.NO_MATCH

    @pytest.mark.asyncio
    async def test_embedding_unavailable(self, container, repos, provider):
        provider.failing = True
        decision = await container.search_service(repos).can_auto_answer(QUERY)
        assert decision.can_auto is False
        assert decision.embedding_failed is True
        assert decision.reason == AutoAnswerReason.EMBEDDING_UNAVAILABLE

    @pytest.mark.asyncio
    async def test_auto_answer_renders_reply_and_counts_usage(self, container, repos, query_vector):
        await seed(repos.dialogs, make_dialog("dlg_1", embedding=vector_at(0.95), used_count=5))

        reply = await container.search_service(repos).auto_answer(
            QUERY, container.reply_template, client_name="Анна"
        )

        assert reply.decision.can_auto is True
        assert reply.reply_text.startswith("Здравствуйте, Анна!")
        assert "Откройте настройки интеграции и создайте ключ." in reply.reply_text
        stored = await repos.dialogs.get_by_id("dlg_1")
        assert stored.used_count == 6
        assert stored.last_used_at == FIXED_NOW

    @pytest.mark.asyncio
    async def test_rejected_auto_answer_has_no_reply(self, container, repos, query_vector):
        await seed(repos.dialogs, make_dialog("dlg_1", embedding=vector_at(0.95), used_count=0))

        reply = await container.search_service(repos).auto_answer(QUERY, container.reply_template)

        assert reply.reply_text is None
        assert (await repos.dialogs.get_by_id("dlg_1")).used_count == 0


class TestFeedback:

    @pytest.mark.asyncio
    async def test_three_not_helpful_from_095(self, container, repos):
        await seed(repos.dialogs, make_dialog("dlg_1", confidence=0.95))
        service = container.feedback_service(repos)

        for _ in range(3):
            outcome = await service.submit_feedback(rating="not_helpful", dialog_id="dlg_1")

        assert outcome.confidence_score == 0.50
        stored = await repos.dialogs.get_by_id("dlg_1")
        assert stored.confidence_score == 0.50
        assert stored.was_helpful is False
        assert stored.requires_human_review is True

    @pytest.mark.asyncio
    async def test_helpful_counts_usage(self, container, repos):
        await seed(repos.dialogs, make_dialog("dlg_1", confidence=0.6, was_helpful=None, used_count=2))

        outcome = await container.feedback_service(repos).submit_feedback(
            rating="helpful", dialog_id="dlg_1"
        )

        assert outcome.confidence_score == 0.65
        assert outcome.stats_recorded is True
        stored = await repos.dialogs.get_by_id("dlg_1")
        assert stored.was_helpful is True
        assert stored.used_count == 3
        assert stored.requires_human_review is False

    @pytest.mark.asyncio
    async def test_partially_keeps_helpful_flag(self, container, repos):
        await seed(repos.dialogs, make_dialog("dlg_1", confidence=0.6, was_helpful=True))
        await container.feedback_service(repos).submit_feedback(rating="partially", dialog_id="dlg_1")

        stored = await repos.dialogs.get_by_id("dlg_1")
        assert stored.confidence_score == 0.55
        assert stored.was_helpful is True
        assert stored.requires_human_review is True

    @pytest.mark.asyncio
    async def test_feedback_on_duplicate_applies_to_canonical(self, container, repos):
        await seed(
            repos.dialogs,
            make_dialog("dlg_main", confidence=0.6),
            make_dialog("dlg_dup", is_duplicate_of="dlg_main", confidence=0.5),
        )
        outcome = await container.feedback_service(repos).submit_feedback(
            rating="not_helpful", dialog_id="dlg_dup", comment="звоните +998901234567"
        )

        assert outcome.dialog_id == "dlg_main"
        assert (await repos.dialogs.get_by_id("dlg_main")).confidence_score == 0.45
        assert (await repos.dialogs.get_by_id("dlg_dup")).confidence_score == 0.5

        stored = repos.feedback.items[0]
        assert stored.dialog_id == "dlg_main"
        assert stored.comment == "звоните [PHONE]"

    @pytest.mark.asyncio
    async def test_feedback_without_dialog(self, container, repos):
        outcome = await container.feedback_service(repos).submit_feedback(rating="helpful")
        assert outcome.dialog_id is None
        assert outcome.confidence_score is None
        assert outcome.feedback_id.startswith("fb_")

    @pytest.mark.asyncio
    async def test_unknown_dialog(self, container, repos):
        with pytest.raises(ResourceNotFoundException):
            await container.feedback_service(repos).submit_feedback(
                rating="helpful", dialog_id="dlg_missing"
            )
        assert repos.feedback.items == []

    @pytest.mark.asyncio
    async def test_invalid_rating(self, container, repos):
        with pytest.raises(ValidationException):
            await container.feedback_service(repos).submit_feedback(rating="great")

    @pytest.mark.asyncio
    async def test_stats_failure_does_not_undo_feedback(self, container, dialogs, solutions):
        failing = Repositories(
            dialogs=dialogs,
            feedback=InMemoryFeedbackRepository(),
            learning_stats=FailingLearningStatsRepository(),
            solutions=solutions,
        )
        await seed(dialogs, make_dialog("dlg_1", confidence=0.6))

        outcome = await container.feedback_service(failing).submit_feedback(
            rating="not_helpful", dialog_id="dlg_1"
        )

        assert outcome.stats_recorded is False
        assert outcome.confidence_score == 0.45
        assert (await dialogs.get_by_id("dlg_1")).confidence_score == 0.45
        assert len(failing.feedback.items) == 1


    @pytest.mark.asyncio
    @pytest.mark.parametrize("rating,start,count,expected", [
        ("helpful", 0.5, 6, 0.8),
        ("helpful", 0.9, 6, 1.0),
        ("not_helpful", 0.6, 5, 0.0),
        ("partially", 0.6, 4, 0.4),
    ])
    async def test_concurrent_feedback_composes(self, container, rating, start, count, expected):
        dialogs = YieldingDialogRepository()
        await seed(dialogs, make_dialog("dlg_1", confidence=start, used_count=2))
        concurrent = Repositories(
            dialogs=dialogs,
            feedback=InMemoryFeedbackRepository(),
            learning_stats=InMemoryLearningStatsRepository(),
            solutions=InMemorySolutionRepository(),
        )
        service = container.feedback_service(concurrent)

        outcomes = await asyncio.gather(*[
            service.submit_feedback(rating=rating, dialog_id="dlg_1") for _ in range(count)
        ])

        stored = await dialogs.get_by_id("dlg_1")
        assert stored.confidence_score == expected
        assert stored.used_count == (2 + count if rating == "helpful" else 2)
        assert len(concurrent.feedback.items) == count
        assert all(o.stats_recorded for o in outcomes)
        daily = await concurrent.learning_stats.daily_since(FIXED_NOW.date())
        assert sum([daily[0].positive, daily[0].negative, daily[0].partial]) == count


class TestDialogMaintenance:

    @pytest.mark.asyncio
    async def test_confidence_adjust_is_clamped(self, container, repos):
        await seed(repos.dialogs, make_dialog("dlg_1", confidence=0.9))
        updated = await container.dialog_service(repos).update_dialog("dlg_1", confidence_adjust=0.5)
        assert updated.confidence_score == 1.0

    @pytest.mark.asyncio
    async def test_update_fields(self, container, repos):
        await seed(repos.dialogs, make_dialog("dlg_1"))
        updated = await container.dialog_service(repos).update_dialog(
            "dlg_1", was_helpful=False, version=2
        )
        assert updated.was_helpful is False
        assert updated.version == 2
        assert updated.updated_at == FIXED_NOW

    @pytest.mark.asyncio
    async def test_update_without_changes_rejected(self, container, repos):
        await seed(repos.dialogs, make_dialog("dlg_1"))
        with pytest.raises(ValidationException):
            await container.dialog_service(repos).update_dialog("dlg_1")

    @pytest.mark.asyncio
    async def test_update_missing_dialog(self, container, repos):
        with pytest.raises(ResourceNotFoundException):
            await container.dialog_service(repos).update_dialog("dlg_missing", version=2)

    @pytest.mark.asyncio
    async def test_deactivated_dialog_is_not_searched(self, container, repos, query_vector):
        await seed(repos.dialogs, make_dialog("dlg_1"))
        await container.dialog_service(repos).deactivate_dialog("dlg_1")

        result = await container.search_service(repos).search(QUERY)
        assert result.results == []

    @pytest.mark.asyncio
    async def test_usage_of_duplicate_counts_on_canonical(self, container, repos):
        await seed(
            repos.dialogs,
            make_dialog("dlg_main", used_count=1),
            make_dialog("dlg_dup", is_duplicate_of="dlg_main", used_count=0),
        )
        await container.dialog_service(repos).record_usage("dlg_dup")
        assert (await repos.dialogs.get_by_id("dlg_main")).used_count == 2
        assert (await repos.dialogs.get_by_id("dlg_dup")).used_count == 0

    @pytest.mark.asyncio
    async def test_list_skips_duplicates_and_reports_stats(self, container, repos):
        await seed(
            repos.dialogs,
            make_dialog("dlg_a", question="a", used_count=1, confidence=0.4, was_helpful=None),
            make_dialog("dlg_b", question="b", used_count=9, confidence=0.8,
                        requires_human_review=True),
            make_dialog("dlg_dup", question="b", is_duplicate_of="dlg_b"),
        )
        dialogs, stats = await container.dialog_service(repos).list_dialogs()

        assert [d.id for d in dialogs] == ["dlg_b", "dlg_a"]
        assert stats.total == 2
        assert stats.helpful == 1
        assert stats.unrated == 1
        assert stats.avg_confidence == 0.6
        assert stats.total_uses == 10
        assert stats.needs_review == 1


class TestLearningStats:

    @pytest.mark.asyncio
    async def test_daily_counters_and_totals(self, container, repos):
        await seed(repos.dialogs, make_dialog("dlg_1"))
        feedback = container.feedback_service(repos)
        await feedback.submit_feedback(rating="helpful", dialog_id="dlg_1")
        await feedback.submit_feedback(rating="not_helpful", dialog_id="dlg_1")
        await feedback.submit_feedback(rating="partially")

        stats = await container.stats_service(repos).get_stats(days=7)

        assert stats.feedback.total == 3
        assert stats.feedback.helpful == 1
        assert len(stats.daily) == 1
        today = stats.daily[0]
        assert today.day == FIXED_NOW.date()
        assert (today.positive, today.negative, today.partial) == (1, 1, 1)
        assert stats.dialogs.total == 1

    @pytest.mark.asyncio
    async def test_days_must_be_positive(self, container, repos):
        with pytest.raises(ValidationException):
            await container.stats_service(repos).get_stats(days=0)


class TestSuggestions:

    @pytest.mark.asyncio
    async def test_dialog_matches_win(self, container, repos, query_vector):
        await seed(repos.dialogs, make_dialog("dlg_1", embedding=vector_at(0.9)))
        suggestion = await container.suggestion_service(repos).suggest(QUERY)

        assert suggestion.source == SuggestionSource.DIALOGS
        assert [d.id for d in suggestion.dialogs] == ["dlg_1"]
        assert suggestion.recommendation is None

    @pytest.mark.asyncio
    async def test_falls_back_to_solutions_when_embedding_fails(self, container, repos, provider):
        await repos.solutions.add(make_solution("sol_api"))
        provider.failing = True

        suggestion = await container.suggestion_service(repos).suggest("Заказы не проходят, ошибка API")

        assert suggestion.source == SuggestionSource.SOLUTIONS
        assert suggestion.embedding_failed is True
        assert suggestion.recommendation.match_type == MatchType.KEYWORD_MATCH
        assert [s.solution.id for s in suggestion.recommendation.items] == ["sol_api"]

    @pytest.mark.asyncio
    async def test_nothing_found(self, container, repos, query_vector):
        suggestion = await container.suggestion_service(repos).suggest(QUERY)
        assert suggestion.source == SuggestionSource.NONE
        assert suggestion.recommendation.match_type == MatchType.NO_MATCH
