"""Answer generation client.

Wraps an OpenAI-compatible chat completion endpoint. Gemini and DeepSeek both
expose such endpoints, so the provider is selected through ``base_url``.
"""

import asyncio
import os
from typing import Protocol

from loguru import logger
from openai import APIConnectionError, APIStatusError, AsyncOpenAI, RateLimitError
from pydantic import BaseModel, Field

from rag_backend.errors import GenerationUnavailableError


class GenerationConfig(BaseModel):
    """Configuration for the answer generation model.

    Attributes:
        model: Model identifier (e.g., "openai/gpt-4o-mini")
        temperature: Sampling temperature (low for factual answers)
        max_tokens: Maximum output tokens
        max_retries: Maximum attempts for transient failures
        timeout_seconds: API request timeout
        api_key: API key (set via env var)
        base_url: Optional OpenAI-compatible endpoint
    """

    model: str = "openai/gpt-4o-mini"
    temperature: float = Field(default=0.3, ge=0.0, le=2.0)
    max_tokens: int = Field(default=2048, ge=1, le=32768)
    max_retries: int = Field(default=2, ge=1, le=10)
    timeout_seconds: float = Field(default=60.0, ge=1.0, le=600.0)
    api_key: str | None = None
    base_url: str | None = None


class GenerationClient(Protocol):
    """Protocol for answer generation implementations."""

    async def generate(self, system_prompt: str, question: str) -> str:
        """Produce an answer for question grounded in system_prompt.

        Raises:
            GenerationUnavailableError: If the model cannot be reached
        """
        ...


class OpenAIChatGenerator:
    """Chat-completion generator. The API client is created on first use."""

    def __init__(self, config: GenerationConfig):
        self.config = config
        self.model_name = config.model.split("/", 1)[-1]
        self._client: AsyncOpenAI | None = None

    def _get_client(self) -> AsyncOpenAI:
        if self._client is None:
            api_key = self.config.api_key or os.environ.get("OPENAI_API_KEY")
            if not api_key:
                raise GenerationUnavailableError(
                    "Generation model is not configured: set generation.api_key"
                )
            self._client = AsyncOpenAI(
                api_key=api_key,
                base_url=self.config.base_url,
                timeout=self.config.timeout_seconds,
                max_retries=0,
            )
        return self._client

    async def generate(self, system_prompt: str, question: str) -> str:
        client = self._get_client()

        for attempt in range(self.config.max_retries):
            try:
                response = await client.chat.completions.create(
                    model=self.model_name,
                    messages=[
                        {"role": "system", "content": system_prompt},
                        {"role": "user", "content": question},
                    ],
                    temperature=self.config.temperature,
                    max_tokens=self.config.max_tokens,
                )
                content = response.choices[0].message.content if response.choices else None
                if not content:
                    raise GenerationUnavailableError("Generation model returned an empty answer")
                return content

            except (RateLimitError, APIConnectionError) as e:
                logger.warning(
                    f"Generation attempt {attempt + 1}/{self.config.max_retries} failed: {e}"
                )
                if attempt < self.config.max_retries - 1:
                    await asyncio.sleep(2**attempt)
                else:
                    raise GenerationUnavailableError(
                        "Failed to generate response from AI service"
                    ) from e

            except APIStatusError as e:
                logger.error(f"HTTP error from generation model: {e}")
                raise GenerationUnavailableError(
                    f"Failed to generate response from AI service (HTTP {e.status_code})"
                ) from e

        raise GenerationUnavailableError("Exhausted all retry attempts")


def create_generation_client(config: GenerationConfig) -> GenerationClient:
    """Factory function for the configured generation model."""
    return OpenAIChatGenerator(config)
