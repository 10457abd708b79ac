"""Embedding provider adapters.

``EmbeddingProvider`` is the capability every backend implements. The base
class owns batching: bounded parallel fan-out, retry of transient failures,
order-preserving reassembly and dimension checks. Subclasses only know how to
embed one text against their API.
"""
import asyncio
from abc import ABC, abstractmethod
from typing import List, Optional, Sequence

import httpx
import structlog
from tenacity import (
    AsyncRetrying,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

from studyforge import config
from studyforge.errors import ConfigurationError, EmbeddingError, ProviderError
from studyforge.llm_client import GeminiClient, OllamaClient
from studyforge.rag.vectors import Embedding

logger = structlog.get_logger()

TRANSIENT_STATUS_CODES = {408, 429}


def is_transient(error: BaseException) -> bool:
    """True for failures worth retrying: timeouts, transport errors, 429 and 5xx."""
    if isinstance(error, ProviderError):
        return error.transient
    if isinstance(error, httpx.HTTPStatusError):
        status = error.response.status_code
        return status >= 500 or status in TRANSIENT_STATUS_CODES
    return isinstance(error, (httpx.TimeoutException, httpx.TransportError))


class EmbeddingProvider(ABC):
    """Turns texts into fixed-dimension embeddings."""

    name = "base"

    def __init__(
        self,
        dimension: int = None,
        concurrency: int = None,
        max_attempts: int = None,
        backoff_initial: float = None,
        backoff_max: float = None,
    ):
        """Initialize the provider.

        Args:
            dimension: Required vector length (default from config)
            concurrency: Maximum in-flight provider requests per batch
            max_attempts: Attempts per text, including the first
            backoff_initial: First retry delay in seconds
            backoff_max: Upper bound for a single retry delay
        """
        self.dimension = config.EMBEDDING_DIMENSION if dimension is None else dimension
        self.concurrency = config.EMBED_CONCURRENCY if concurrency is None else concurrency
        self.max_attempts = (
            config.EMBED_MAX_ATTEMPTS if max_attempts is None else max_attempts
        )
        self.backoff_initial = (
            config.EMBED_BACKOFF_INITIAL if backoff_initial is None else backoff_initial
        )
        self.backoff_max = config.EMBED_BACKOFF_MAX if backoff_max is None else backoff_max

        if self.concurrency < 1 or self.max_attempts < 1:
            raise ConfigurationError(
                "Embedding concurrency and max attempts must be at least 1"
            )

    @abstractmethod
    async def _embed_raw(self, text: str) -> Sequence[float]:
        """Call the provider once for a single text."""

    async def embed_one(self, text: str) -> Embedding:
        """Embed a single text (query-time convenience).

        Raises:
            ProviderError: If the provider fails after retries
        """
        try:
            return await self._embed_with_retry(text)
        except ProviderError:
            raise
        except httpx.HTTPError as e:
            raise ProviderError(
                "Embedding request failed", detail=str(e), transient=is_transient(e)
            ) from e
        except (ValueError, TypeError, AttributeError) as e:
            raise ProviderError(
                f"Malformed embedding reply from {self.name}", detail=str(e)
            ) from e

    async def embed_batch(self, texts: Sequence[str]) -> List[Embedding]:
        """Embed many texts, preserving input order.

        Requests run in parallel up to ``concurrency``. The first failure
        cancels the outstanding requests and fails the whole batch.

        Raises:
            EmbeddingError: Carrying the index of the failed text
        """
        if not texts:
            return []

        semaphore = asyncio.Semaphore(self.concurrency)

        async def run(text: str) -> Embedding:
            async with semaphore:
                return await self._embed_with_retry(text)

        logger.info(
            "embedding_batch_started",
            provider=self.name,
            batch_size=len(texts),
            concurrency=self.concurrency,
        )

        tasks = [asyncio.ensure_future(run(text)) for text in texts]
        try:
            done, pending = await asyncio.wait(
                tasks, return_when=asyncio.FIRST_EXCEPTION
            )
        except BaseException:
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            raise

        failed = [
            index
            for index, task in enumerate(tasks)
            if task in done and not task.cancelled() and task.exception() is not None
        ]
        if failed:
            for task in pending:
                task.cancel()
            await asyncio.gather(*pending, return_exceptions=True)

            index = failed[0]
            error = tasks[index].exception()
            logger.error(
                "embedding_batch_failed",
                provider=self.name,
                index=index,
                error=str(error),
                error_type=type(error).__name__,
            )
            raise EmbeddingError(
                f"Embedding failed for chunk {index} of {len(texts)}",
                detail=str(error),
                index=index,
            ) from error

        logger.info("embedding_batch_completed", provider=self.name, count=len(tasks))
        return [task.result() for task in tasks]

    async def _embed_with_retry(self, text: str) -> Embedding:
        retrying = AsyncRetrying(
            retry=retry_if_exception(is_transient),
            stop=stop_after_attempt(self.max_attempts),
            wait=wait_exponential(
                multiplier=self.backoff_initial, max=self.backoff_max
            ),
            before_sleep=self._log_retry,
            reraise=True,
        )
        async for attempt in retrying:
            with attempt:
                raw = await self._embed_raw(text)
                return self._to_embedding(raw)

    def _to_embedding(self, raw: Optional[Sequence[float]]) -> Embedding:
        if not raw:
            raise ProviderError(f"Empty embedding returned by {self.name}")
        try:
            return Embedding(raw, self.dimension)
        except (ValueError, TypeError) as e:
            raise ProviderError(
                f"Malformed embedding returned by {self.name}", detail=str(e)
            ) from e

    def _log_retry(self, retry_state) -> None:
        error = retry_state.outcome.exception() if retry_state.outcome else None
        logger.warning(
            "embedding_retry",
            provider=self.name,
            attempt=retry_state.attempt_number,
            max_attempts=self.max_attempts,
            error=str(error),
        )


class OllamaEmbeddingProvider(EmbeddingProvider):
    """Embeddings from a local Ollama server."""

    name = "ollama"

    def __init__(self, client: OllamaClient = None, model: str = None, **kwargs):
        super().__init__(**kwargs)
        self.client = client or OllamaClient()
        self.model = model or config.EMBEDDING_MODEL

    async def _embed_raw(self, text: str) -> Sequence[float]:
        response = await self.client.embeddings(prompt=text, model=self.model)
        if not isinstance(response, dict):
            raise ProviderError(f"Unexpected embedding reply from {self.name}")
        return response.get("embedding")


class GeminiEmbeddingProvider(EmbeddingProvider):
    """Embeddings from the Gemini API."""

    name = "gemini"

    def __init__(self, client: GeminiClient = None, model: str = None, **kwargs):
        super().__init__(**kwargs)
        self.client = client or GeminiClient()
        self.model = model or config.GEMINI_EMBEDDING_MODEL

    async def _embed_raw(self, text: str) -> Sequence[float]:
        response = await self.client.embed_content(text, model=self.model)
        embedding = response.get("embedding") if isinstance(response, dict) else None
        if not isinstance(embedding, dict):
            raise ProviderError(f"Unexpected embedding reply from {self.name}")
        return embedding.get("values")


def create_embedding_provider(provider: str = None, **kwargs) -> EmbeddingProvider:
    """Build the embedding provider named in configuration.

    Args:
        provider: "ollama" or "gemini" (default config.AI_PROVIDER)
        **kwargs: Passed to the provider constructor

    Raises:
        ConfigurationError: If the provider is unknown or missing credentials
    """
    provider = (provider or config.AI_PROVIDER).lower()

    if provider == "ollama":
        return OllamaEmbeddingProvider(**kwargs)
    if provider == "gemini":
        if "client" not in kwargs and not config.GEMINI_API_KEY:
            raise ConfigurationError("GEMINI_API_KEY is required for the gemini provider")
        return GeminiEmbeddingProvider(**kwargs)

    raise ConfigurationError(
        f"Unknown AI provider: '{provider}'. Supported: ollama, gemini"
    )
