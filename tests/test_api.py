"""HTTP tests for the knowledge and solutions routers."""

import pytest

from src.knowledge.infrastructure import InMemoryDialogRepository
from src.solutions.infrastructure import InMemorySolutionRepository

from conftest import BASE_VECTOR, make_dialog, make_solution, vector_at

QUERY = "Не работает API"


@pytest.fixture
def dialogs() -> InMemoryDialogRepository:
    return InMemoryDialogRepository([
        make_dialog("dlg_ready", question="Как подключить API?", embedding=vector_at(0.95),
                    confidence=0.6, was_helpful=True, used_count=5),
        make_dialog("dlg_new", question="Где ключ API?", embedding=vector_at(0.8), used_count=0),
    ])


@pytest.fixture
def solutions() -> InMemorySolutionRepository:
    return InMemorySolutionRepository([make_solution("sol_api")])


@pytest.fixture(autouse=True)
def query_vector(provider):
    provider.vectors[QUERY] = list(BASE_VECTOR)


class TestSearchRoutes:

    def test_search(self, client):
        response = client.post("/knowledge/search", json={"question": QUERY})

        assert response.status_code == 200
        data = response.json()
        assert [r["id"] for r in data["results"]] == ["dlg_ready", "dlg_new"]
        assert data["results"][0]["similarity"] == 0.95
        assert data["results"][0]["similarity_percent"] == 95
        assert data["total_candidates"] == 2
        assert data["filtered_count"] == 2
        assert data["embedding_failed"] is False

    def test_search_with_threshold(self, client):
        response = client.post(
            "/knowledge/search", json={"question": QUERY, "min_similarity": 0.9, "limit": 3}
        )
        assert [r["id"] for r in response.json()["results"]] == ["dlg_ready"]

    def test_search_embedding_failure(self, client, provider):
        provider.failing = True
        data = client.post("/knowledge/search", json={"question": QUERY}).json()
        assert data["embedding_failed"] is True
        assert data["error"] == "Failed to create embedding"
        assert data["results"] == []

    def test_empty_question_rejected(self, client):
        assert client.post("/knowledge/search", json={"question": ""}).status_code == 422

    def test_auto_answer_check(self, client):
        response = client.post("/knowledge/auto-answer/check", json={"question": QUERY})

        assert response.status_code == 200
        data = response.json()
        assert data["can_auto"] is True
        assert data["dialog_id"] == "dlg_ready"
        assert data["confidence"] == 0.95

    def test_auto_answer_renders_reply(self, client):
        response = client.post(
            "/knowledge/auto-answer", json={"question": QUERY, "client_name": "Анна"}
        )

        data = response.json()
        assert data["can_auto"] is True
        assert data["reply_text"].startswith("Здравствуйте, Анна!")

    def test_suggest_prefers_dialogs(self, client):
        data = client.post("/knowledge/suggest", json={"question": QUERY}).json()
        assert data["source"] == "dialogs"
        assert [d["id"] for d in data["dialogs"]] == ["dlg_ready", "dlg_new"]
        assert data["solutions"] is None

    def test_suggest_falls_back_to_solutions(self, client, provider):
        provider.failing = True
        data = client.post(
            "/knowledge/suggest", json={"question": "Заказы не проходят, ошибка API"}
        ).json()

        assert data["source"] == "solutions"
        assert data["embedding_failed"] is True
        assert data["solutions"]["match_type"] == "keyword_match"
        assert data["solutions"]["recommendations"][0]["id"] == "sol_api"
        assert data["solutions"]["recommendations"][0]["confidence"] == 99


class TestDialogRoutes:

    def test_create_and_duplicate(self, client):
        first = client.post(
            "/knowledge/dialogs",
            json={"question": "Как вернуть товар?", "answer": "Оформите возврат в кабинете."},
        )
        assert first.status_code == 201
        first_data = first.json()
        assert first_data["is_duplicate"] is False
        assert first_data["language"] == "ru"

        second = client.post(
            "/knowledge/dialogs",
            json={"question": "как вернуть товар", "answer": "Через кабинет."},
        )
        assert second.json()["is_duplicate"] is True
        assert second.json()["duplicate_of"] == first_data["dialog_id"]

    def test_create_rejects_unknown_answer_type(self, client):
        response = client.post(
            "/knowledge/dialogs", json={"question": "q", "answer": "a", "answer_type": "robot"}
        )
        assert response.status_code == 422

    def test_list(self, client):
        data = client.get("/knowledge/dialogs", params={"limit": 10}).json()
        assert [d["id"] for d in data["dialogs"]] == ["dlg_ready", "dlg_new"]
        assert data["stats"]["total"] == 2
        assert data["dialogs"][0]["has_embedding"] is True

    def test_patch(self, client):
        response = client.patch("/knowledge/dialogs/dlg_new", json={"confidence_adjust": -0.2})
        assert response.status_code == 200
        assert response.json()["confidence_score"] == 0.4

    def test_patch_without_fields_is_validation_error(self, client):
        response = client.patch("/knowledge/dialogs/dlg_new", json={})
        assert response.status_code == 422
        assert response.json()["error_type"] == "ValidationException"

    def test_patch_missing_dialog(self, client):
        response = client.patch("/knowledge/dialogs/dlg_missing", json={"version": 2})
        assert response.status_code == 404
        assert response.json()["error_type"] == "ResourceNotFoundException"

    def test_delete_removes_from_search(self, client):
        assert client.delete("/knowledge/dialogs/dlg_ready").status_code == 204
        data = client.post("/knowledge/search", json={"question": QUERY}).json()
        assert [r["id"] for r in data["results"]] == ["dlg_new"]

    def test_usage(self, client):
        assert client.post("/knowledge/dialogs/dlg_new/usage").status_code == 204
        listed = client.get("/knowledge/dialogs").json()["dialogs"]
        assert {d["id"]: d["used_count"] for d in listed}["dlg_new"] == 1


class TestFeedbackRoutes:

    def test_feedback_updates_confidence(self, client):
        response = client.post(
            "/knowledge/feedback", json={"rating": "not_helpful", "dialog_id": "dlg_ready"}
        )
        assert response.status_code == 201
        data = response.json()
        assert data["confidence_score"] == 0.45
        assert data["stats_recorded"] is True

    def test_invalid_rating(self, client):
        assert client.post("/knowledge/feedback", json={"rating": "great"}).status_code == 422

    def test_unknown_dialog(self, client):
        response = client.post(
            "/knowledge/feedback", json={"rating": "helpful", "dialog_id": "dlg_missing"}
        )
        assert response.status_code == 404

    def test_stats(self, client):
        client.post("/knowledge/feedback", json={"rating": "helpful", "dialog_id": "dlg_ready"})
        data = client.get("/knowledge/stats", params={"days": 7}).json()

        assert data["feedback"]["total"] == 1
        assert data["daily"][0]["positive"] == 1
        assert data["dialogs"]["total"] == 2


class TestSolutionRoutes:

    def test_recommend(self, client):
        response = client.post(
            "/solutions/recommend", json={"problem_text": "Заказы не проходят, ошибка API"}
        )
        assert response.status_code == 200
        data = response.json()
        assert data["match_type"] == "keyword_match"
        assert data["keywords"] == ["заказы", "проходят", "ошибка", "api"]
        assert data["total_solutions"] == 1
        assert data["recommendations"][0]["confidence"] == 99

    def test_create_solution(self, client):
        response = client.post(
            "/solutions",
            json={"solution_text": "Очистите кэш.", "problem_pattern": "Сайт не открывается"},
        )
        assert response.status_code == 201
        assert response.json()["keywords"] == ["сайт", "открывается"]

    def test_vote(self, client):
        response = client.post("/solutions/sol_api/votes", json={"vote": "helpful"})
        assert response.status_code == 200
        assert response.json() == {
            "success": True,
            "solution_id": "sol_api",
            "vote": "helpful",
            "used_count": 1,
            "helpful_votes": 1,
            "not_helpful_votes": 0,
        }

    def test_vote_unknown_solution(self, client):
        assert client.post("/solutions/sol_missing/votes", json={"vote": "used"}).status_code == 404


class TestServiceRoutes:

    def test_health(self, client):
        data = client.get("/health").json()
        assert data["status"] == "healthy"
        assert data["checks"]["database"] == "in_memory"
        assert data["checks"]["embedding_provider"] == "scripted"

    def test_correlation_id_echoed(self, client):
        response = client.get("/health", headers={"X-Correlation-ID": "abc-123"})
        assert response.headers["X-Correlation-ID"] == "abc-123"

    def test_correlation_id_generated(self, client):
        assert client.get("/").headers.get("X-Correlation-ID")
