"""OpenAI-compatible client for embeddings and chat completions."""

import asyncio
import logging
from typing import Any

from openai import AsyncOpenAI, APIError, APITimeoutError, RateLimitError

logger = logging.getLogger(__name__)


class OpenAIClient:
    """Client for an OpenAI-compatible API (OpenAI or OpenRouter).

    Embedding calls retry with exponential backoff. Chat calls accept
    ``retry=False`` for latency-sensitive callers (reranking, planning)
    that prefer a fast failure over a slow success.
    """

    def __init__(
        self,
        api_key: str,
        model: str = "gpt-4o-mini",
        embedding_model: str = "text-embedding-3-small",
        embedding_dimensions: int | None = 1536,
        base_url: str | None = None,
        timeout: float = 30.0,
        max_retries: int = 3,
    ):
        """Initialize OpenAI client.

        Args:
            api_key: API key for the endpoint
            model: Default chat completion model
            embedding_model: Model name for embeddings
            embedding_dimensions: Requested vector size (None for model default)
            base_url: Alternate OpenAI-compatible endpoint
            timeout: Request timeout in seconds
            max_retries: Maximum attempts for retried calls
        """
        self.client = AsyncOpenAI(
            api_key=api_key,
            base_url=base_url,
            timeout=timeout,
            max_retries=0,  # Retries are handled here
        )
        self.model = model
        self.embedding_model = embedding_model
        self.embedding_dimensions = embedding_dimensions
        self.timeout = timeout
        self.max_retries = max_retries

    @classmethod
    def from_settings(cls, settings) -> "OpenAIClient":
        """Build a client from engine Settings.

        Raises:
            ValueError: If no API key is configured
        """
        if settings.openai_api_key is None:
            raise ValueError("openai_api_key is not configured")
        return cls(
            api_key=settings.openai_api_key.get_secret_value(),
            model=settings.rerank_model,
            embedding_model=settings.embedding_model,
            embedding_dimensions=settings.embedding_dimensions,
            base_url=settings.openai_base_url,
            timeout=settings.llm_timeout,
            max_retries=settings.llm_max_retries,
        )

    async def _retry_with_backoff(self, func, *args, **kwargs) -> Any:
        """Execute an async call, retrying API failures with 1s, 2s, 4s... delays.

        Raises:
            APIError: The last failure once every attempt is used up
        """
        last_exception: Exception | None = None

        for attempt in range(self.max_retries):
            try:
                return await func(*args, **kwargs)
            except (APIError, RateLimitError, APITimeoutError) as e:
                last_exception = e

                if attempt < self.max_retries - 1:
                    delay = 2**attempt
                    logger.warning(
                        f"⚠ OpenAI call failed (attempt {attempt + 1}/{self.max_retries}): "
                        f"{type(e).__name__}: {e}. Retrying in {delay}s..."
                    )
                    await asyncio.sleep(delay)
                else:
                    logger.error(
                        f"✗ OpenAI call failed after {self.max_retries} attempts: "
                        f"{type(e).__name__}: {e}"
                    )

        raise last_exception

    def _embedding_kwargs(self) -> dict[str, Any]:
        kwargs: dict[str, Any] = {"model": self.embedding_model}
        if self.embedding_dimensions is not None:
            kwargs["dimensions"] = self.embedding_dimensions
        return kwargs

    async def embed_text(self, text: str) -> list[float]:
        """Generate embedding for a single text string.

        Raises:
            APITimeoutError: If request times out after retries
            APIError: If API call fails after retries
        """

        async def _embed():
            response = await self.client.embeddings.create(
                input=text,
                **self._embedding_kwargs(),
            )
            return response.data[0].embedding

        return await self._retry_with_backoff(_embed)

    async def embed_batch(self, texts: list[str]) -> list[list[float]]:
        """Generate embeddings for multiple texts in one request.

        Args:
            texts: Texts to embed

        Returns:
            Embedding vectors in input order

        Raises:
            APITimeoutError: If request times out after retries
            APIError: If API call fails after retries
        """
        if not texts:
            return []

        async def _embed():
            response = await self.client.embeddings.create(
                input=texts,
                **self._embedding_kwargs(),
            )
            # Providers may return items out of order
            sorted_data = sorted(response.data, key=lambda x: x.index)
            return [item.embedding for item in sorted_data]

        return await self._retry_with_backoff(_embed)

    async def generate(
        self,
        prompt: str,
        temperature: float = 0.7,
        max_tokens: int = 1000,
        system_message: str | None = None,
        model: str | None = None,
        retry: bool = True,
    ) -> str:
        """Generate a chat completion.

        Args:
            prompt: User prompt
            temperature: Sampling temperature (0.0 to 2.0)
            max_tokens: Maximum tokens in response
            system_message: Optional system message to set context
            model: Model override for this call
            retry: Retry API failures with backoff; a single attempt if False

        Returns:
            Generated text response (empty string if the model returned none)

        Raises:
            APITimeoutError: If request times out
            APIError: If API call fails
        """
        messages = []

        if system_message:
            messages.append({"role": "system", "content": system_message})

        messages.append({"role": "user", "content": prompt})

        async def _generate():
            response = await self.client.chat.completions.create(
                model=model or self.model,
                messages=messages,
                temperature=temperature,
                max_tokens=max_tokens,
            )
            return response.choices[0].message.content or ""

        if not retry:
            return await _generate()
        return await self._retry_with_backoff(_generate)

    async def close(self):
        """Close the client connection."""
        await self.client.close()

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()
