"""Tests for building the service container from settings."""

import pytest

from src.config import load_settings
from src.container import ServiceContainer
from src.core import ConfigurationException
from src.knowledge.infrastructure.models import EMBEDDING_DIMENSION


class TestFromSettings:

    def test_memory_backend_has_no_database(self, tmp_path):
        container = ServiceContainer.from_settings(load_settings(
            storage_backend="memory",
            embedding_provider="mock",
            knowledge_config_path=tmp_path / "absent.yaml",
        ))
        assert container.database is None
        assert container.embedder.provider_name == "mock"

    def test_postgres_rejects_dimension_other_than_vector_column(self, tmp_path):
        settings = load_settings(
            storage_backend="postgres",
            embedding_provider="mock",
            embedding_dimension=768,
            knowledge_config_path=tmp_path / "absent.yaml",
        )

        with pytest.raises(ConfigurationException) as exc_info:
            ServiceContainer.from_settings(settings)

        assert exc_info.value.details == {
            "embedding_dimension": 768,
            "column_dimension": EMBEDDING_DIMENSION,
        }

    def test_memory_backend_accepts_any_dimension(self, tmp_path):
        container = ServiceContainer.from_settings(load_settings(
            storage_backend="memory",
            embedding_provider="mock",
            embedding_dimension=768,
            knowledge_config_path=tmp_path / "absent.yaml",
        ))
        assert container.database is None
