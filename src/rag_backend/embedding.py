"""Embedding client abstraction for model-agnostic vector generation.

Supports the OpenAI API and any OpenAI-compatible endpoint (Gemini, local
gateways) through ``base_url``. All embedding calls are batched, retried on
transient failures, and deduplicated so each distinct text is embedded once.
"""

import asyncio
import os
from collections.abc import Sequence
from typing import Protocol

from loguru import logger
from openai import APIConnectionError, APIStatusError, AsyncOpenAI, RateLimitError
from pydantic import BaseModel, Field

from rag_backend.errors import EmbeddingUnavailableError


class EmbeddingConfig(BaseModel):
    """Configuration for embedding generation.

    Attributes:
        model: Model identifier (e.g., "openai/text-embedding-3-small")
        dimensions: Expected embedding dimensionality
        batch_size: Number of texts to embed per API call
        max_retries: Maximum retry attempts for transient failures
        timeout_seconds: API request timeout
        api_key: API key for external services (set via env var)
        base_url: Optional OpenAI-compatible endpoint
    """

    model: str
    dimensions: int = Field(ge=128, le=4096)
    batch_size: int = Field(default=100, ge=1, le=500)
    max_retries: int = Field(default=3, ge=1, le=10)
    timeout_seconds: float = Field(default=30.0, ge=1.0, le=300.0)
    api_key: str | None = None
    base_url: str | None = None


class EmbeddingClient(Protocol):
    """Protocol for embedding client implementations."""

    async def embed_batch(self, texts: list[str]) -> list[list[float]]:
        """Generate embeddings for a batch of texts.

        Args:
            texts: List of input texts (max batch_size)

        Returns:
            List of embedding vectors (same order as inputs)

        Raises:
            EmbeddingUnavailableError: For provider failures after retries
        """
        ...

    async def embed_single(self, text: str) -> list[float]:
        """Generate embedding for a single text.

        Args:
            text: Input text

        Returns:
            Embedding vector
        """
        ...


class OpenAIEmbedding:
    """OpenAI embedding client with retry logic and batching."""

    def __init__(self, config: EmbeddingConfig):
        """Initialize OpenAI client.

        Args:
            config: Embedding configuration with API key

        Raises:
            EmbeddingUnavailableError: If no API key is configured
        """
        self.config = config

        api_key = config.api_key or os.environ.get("OPENAI_API_KEY")
        if not api_key:
            raise EmbeddingUnavailableError(
                "Embedding provider is not configured: set embedding.api_key or OPENAI_API_KEY"
            )

        # SDK-level retries disabled; retry policy lives in embed_batch
        self.client = AsyncOpenAI(
            api_key=api_key,
            base_url=config.base_url,
            timeout=config.timeout_seconds,
            max_retries=0,
        )

        self.model_name = config.model.removeprefix("openai/")

    async def embed_batch(self, texts: list[str]) -> list[list[float]]:
        """Generate embeddings for a batch of texts with retry logic.

        Args:
            texts: List of input texts (max batch_size)

        Returns:
            List of embedding vectors (same order as inputs)

        Raises:
            ValueError: If batch size exceeds config limit
            EmbeddingUnavailableError: For API failures after all retries
        """
        if len(texts) > self.config.batch_size:
            raise ValueError(f"Batch size {len(texts)} exceeds limit {self.config.batch_size}")

        if not texts:
            return []

        for attempt in range(self.config.max_retries):
            try:
                response = await self.client.embeddings.create(model=self.model_name, input=texts)

                embeddings = [item.embedding for item in sorted(response.data, key=lambda d: d.index)]

                for i, emb in enumerate(embeddings):
                    if len(emb) != self.config.dimensions:
                        raise EmbeddingUnavailableError(
                            f"Expected {self.config.dimensions} dimensions, "
                            f"got {len(emb)} for text {i}"
                        )

                logger.debug(
                    f"Embedded {len(texts)} texts with {self.model_name} "
                    f"(attempt {attempt + 1}/{self.config.max_retries})"
                )
                return embeddings

            except RateLimitError as e:
                logger.warning(
                    f"Rate limited (attempt {attempt + 1}/{self.config.max_retries}): {e}"
                )
                if attempt < self.config.max_retries - 1:
                    await asyncio.sleep(2 ** (attempt + 1))  # Longer backoff
                else:
                    raise EmbeddingUnavailableError(
                        f"Embedding provider rate limit persisted after {attempt + 1} attempts"
                    ) from e

            except APIConnectionError as e:
                # Includes APITimeoutError
                logger.warning(
                    f"Connection error embedding batch "
                    f"(attempt {attempt + 1}/{self.config.max_retries}): {e}"
                )
                if attempt < self.config.max_retries - 1:
                    await asyncio.sleep(2**attempt)  # Exponential backoff
                else:
                    raise EmbeddingUnavailableError(
                        f"Embedding provider unreachable after {attempt + 1} attempts"
                    ) from e

            except APIStatusError as e:
                # Non-retryable HTTP error
                logger.error(f"HTTP error embedding batch: {e}")
                raise EmbeddingUnavailableError(
                    f"Embedding provider returned HTTP {e.status_code}"
                ) from e

        raise EmbeddingUnavailableError("Exhausted all retry attempts")

    async def embed_single(self, text: str) -> list[float]:
        """Generate embedding for a single text."""
        embeddings = await self.embed_batch([text])
        return embeddings[0]


async def embed_texts(
    client: EmbeddingClient, texts: Sequence[str], batch_size: int = 100
) -> list[list[float]]:
    """Embed texts, calling the provider at most once per distinct text.

    Args:
        client: Embedding client
        texts: Input texts, duplicates allowed
        batch_size: Maximum texts per provider call

    Returns:
        One vector per input text, in input order

    Raises:
        EmbeddingUnavailableError: If the provider fails
    """
    if batch_size < 1:
        raise ValueError(f"batch_size must be positive, got {batch_size}")

    unique = list(dict.fromkeys(texts))
    vectors: dict[str, list[float]] = {}

    for start in range(0, len(unique), batch_size):
        batch = unique[start : start + batch_size]
        try:
            batch_vectors = await client.embed_batch(batch)
        except EmbeddingUnavailableError:
            raise
        except Exception as exc:
            logger.error(f"Embedding provider failed on batch of {len(batch)}: {exc}")
            raise EmbeddingUnavailableError(f"Embedding provider failed: {exc}") from exc

        if len(batch_vectors) != len(batch):
            raise EmbeddingUnavailableError(
                f"Embedding provider returned {len(batch_vectors)} vectors for {len(batch)} texts"
            )
        vectors.update(zip(batch, batch_vectors, strict=True))

    if len(unique) < len(texts):
        logger.debug(f"Embedded {len(unique)} distinct texts for {len(texts)} inputs")

    return [vectors[text] for text in texts]


def create_embedding_client(config: EmbeddingConfig) -> EmbeddingClient:
    """Factory function to create embedding client based on model config.

    Example:
        >>> config = EmbeddingConfig(
        ...     model="openai/text-embedding-3-small",
        ...     dimensions=1536,
        ...     api_key="sk-..."
        ... )
        >>> client = create_embedding_client(config)
    """
    if config.model.startswith("openai/"):
        return OpenAIEmbedding(config)
    raise ValueError(f"Unknown model prefix in {config.model!r}. Expected 'openai/'")
