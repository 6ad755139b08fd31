"""
Embedding Provider Infrastructure
=================================

Text -> vector clients (OpenAI, Z.AI, deterministic mock) behind one
interface, plus the Embedder facade the application layer talks to.

Providers raise EmbeddingException. The Embedder sanitizes and truncates the
input, enforces the timeout and turns every failure into None; callers
fall back to keyword scoring.
No retries happen here.
"""

import asyncio
import hashlib
import random
import re
import unicodedata
from abc import ABC, abstractmethod
from typing import List, Optional

from openai import AsyncOpenAI
from zai import ZaiClient

from src.config import Settings
from src.core import ConfigurationException, EmbeddingException
from src.shared.infrastructure.logging import get_logger, log_latency

logger = get_logger(__name__)

_WHITESPACE_RE = re.compile(r"\s+")


def prepare_embedding_input(text: str, max_chars: int) -> str:
    """
    Strip control characters, collapse whitespace and truncate.

    Tabs and newlines are folded into single spaces; other control
    characters are dropped.
    """
    cleaned = "".join(
        " " if ch in "\t\n\r\x0b\x0c" else ch
        for ch in text
        if ch in "\t\n\r\x0b\x0c" or unicodedata.category(ch) != "Cc"
    )
    cleaned = _WHITESPACE_RE.sub(" ", cleaned).strip()
    return cleaned[:max_chars]


class EmbeddingResult:
    """Result of an embedding generation."""

    def __init__(self, embedding: List[float], model: str):
        self.embedding = embedding
        self.model = model
        self.dimension = len(embedding)


class IEmbeddingProvider(ABC):
    """Interface for embedding backends."""

    name: str = "provider"

    @abstractmethod
    async def generate_embedding(self, text: str) -> EmbeddingResult:
        """Embed already-prepared text. Raises EmbeddingException."""


class OpenAIEmbeddingProvider(IEmbeddingProvider):
    """OpenAI embeddings API via the async SDK."""

    name = "openai"

    def __init__(self, api_key: Optional[str], model: str, timeout_seconds: float):
        if not api_key:
            raise ConfigurationException("OpenAI API key not configured")
        self._client = AsyncOpenAI(api_key=api_key, timeout=timeout_seconds, max_retries=0)
        self._model = model

    async def generate_embedding(self, text: str) -> EmbeddingResult:
        try:
            response = await self._client.embeddings.create(model=self._model, input=text)
        except Exception as e:
            raise EmbeddingException(f"Embedding generation failed: {e}")

        if not response.data or not response.data[0].embedding:
            raise EmbeddingException("Provider returned no embedding")
        return EmbeddingResult(embedding=list(response.data[0].embedding), model=self._model)


class ZAIEmbeddingProvider(IEmbeddingProvider):
    """
    Z.AI embeddings.

    The SDK is synchronous, so the call runs in a worker thread.
    """

    name = "zai"

    def __init__(self, api_key: Optional[str], model: str):
        if not api_key:
            raise ConfigurationException("Z.AI API key not configured")
        self._client = ZaiClient(api_key=api_key)
        self._model = model

    async def generate_embedding(self, text: str) -> EmbeddingResult:
        try:
            response = await asyncio.to_thread(
                self._client.embeddings.create, model=self._model, input=text
            )
        except Exception as e:
            raise EmbeddingException(f"Embedding generation failed: {e}")

        if not response.data or not response.data[0].embedding:
            raise EmbeddingException("Provider returned no embedding")
        return EmbeddingResult(embedding=list(response.data[0].embedding), model=self._model)


class MockEmbeddingProvider(IEmbeddingProvider):
    """
    Offline provider for development.

    Vectors are pseudo-random but seeded from the text hash, so identical
    input always yields an identical vector (similarity 1.0).
    """

    name = "mock"

    def __init__(self, dimension: int):
        self._dimension = dimension

    async def generate_embedding(self, text: str) -> EmbeddingResult:
        seed = int(hashlib.sha256(text.encode("utf-8")).hexdigest()[:16], 16)
        rng = random.Random(seed)
        return EmbeddingResult(
            embedding=[rng.uniform(-1, 1) for _ in range(self._dimension)],
            model="mock-embedding"
        )


class Embedder:
    """
    The embed(text) -> vector | None contract used by the services.

    Returns None when the provider errors, times out, or answers with a vector
    of the wrong dimension. Cancellation is not swallowed.
    """

    def __init__(
        self,
        provider: IEmbeddingProvider,
        timeout_seconds: float,
        max_chars: int,
        dimension: Optional[int] = None,
    ):
        self._provider = provider
        self._timeout = timeout_seconds
        self._max_chars = max_chars
        self._dimension = dimension

    @property
    def provider_name(self) -> str:
        return self._provider.name

    async def embed(self, text: str) -> Optional[List[float]]:
        prepared = prepare_embedding_input(text, self._max_chars)
        if not prepared:
            logger.warning("Embedding skipped: empty input after sanitizing")
            return None

        try:
            with log_latency(logger, "embedding", provider=self._provider.name):
                result = await asyncio.wait_for(
                    self._provider.generate_embedding(prepared), timeout=self._timeout
                )
        except asyncio.TimeoutError:
            logger.warning(
                "Embedding provider timed out",
                extra={"provider": self._provider.name, "timeout_seconds": self._timeout}
            )
            return None
        except EmbeddingException as e:
            logger.warning(
                "Embedding provider failed",
                extra={"provider": self._provider.name, "reason": e.message}
            )
            return None

        if self._dimension is not None and result.dimension != self._dimension:
            logger.warning(
                "Embedding has unexpected dimension",
                extra={
                    "provider": self._provider.name,
                    "expected": self._dimension,
                    "actual": result.dimension,
                }
            )
            return None

        return result.embedding


def build_embedder(settings: Settings) -> Embedder:
    """Select the provider named in settings and wrap it in an Embedder."""
    if settings.embedding_provider == "openai":
        provider: IEmbeddingProvider = OpenAIEmbeddingProvider(
            settings.openai_api_key, settings.embedding_model, settings.embedding_timeout_seconds
        )
    elif settings.embedding_provider == "zai":
        provider = ZAIEmbeddingProvider(settings.zai_api_key, settings.embedding_model)
    else:
        provider = MockEmbeddingProvider(settings.embedding_dimension)

    return Embedder(
        provider,
        timeout_seconds=settings.embedding_timeout_seconds,
        max_chars=settings.embedding_max_chars,
        dimension=settings.embedding_dimension,
    )
