"""Batching, truncation and retry around an embedding provider."""

from __future__ import annotations

from dataclasses import dataclass
import time
from typing import Callable, Mapping, Sequence

import tiktoken

from docsync.core.config import EmbeddingSettings
from docsync.core.logging import Logger
from docsync.embeddings.errors import (
    EmbeddingProviderDimMismatchError,
    EmbeddingProviderError,
    EmbeddingProviderRetryExceededError,
    is_retryable,
)
from docsync.embeddings.retry import RetryState

from . import (
    EmbeddingVector,
    EmbeddingsProvider,
    ProviderRegistry,
    create_default_provider_registry,
)

__all__ = ["EmbeddingClient", "build_embedding_client"]

_TOKEN_PAD = 8
_FALLBACK_ENCODING = "cl100k_base"

TokenCounter = Callable[[str], int]


@dataclass(frozen=True, slots=True)
class _Batch:
    start: int
    texts: tuple[str, ...]
    tokens: int


class EmbeddingClient:
    """Embed ordered texts with per-text truncation and bounded retries.

    :meth:`embed` returns one vector per input text, or an empty list when
    any request batch fails for good. Callers treat the empty list as
    "skip and do not index" rather than as a run failure.
    """

    def __init__(
        self,
        *,
        provider: EmbeddingsProvider,
        settings: EmbeddingSettings,
        logger: Logger,
        sleep: Callable[[float], None] = time.sleep,
        token_counter: TokenCounter | None = None,
    ) -> None:
        self._provider = provider
        self._settings = settings
        self.logger = logger
        self._sleep = sleep
        self._token_counter = token_counter or self._tiktoken_counter()
        self._stats = {
            "requests": 0,
            "retries": 0,
            "failures": 0,
            "truncated": 0,
        }

    @property
    def stats(self) -> Mapping[str, int]:
        """Return counters captured during the client lifetime."""

        return dict(self._stats)

    @property
    def max_chars(self) -> int:
        return self._settings.max_chars

    def embed(self, texts: Sequence[str]) -> list[EmbeddingVector]:
        """Return vectors for ``texts`` in order, or ``[]`` on failure."""

        if not texts:
            return []

        prepared = [self.truncate(text, index) for index, text in enumerate(texts)]
        results: list[EmbeddingVector] = []
        for batch in self._plan_batches(prepared):
            vectors = self._embed_with_retries(batch)
            if vectors is None:
                self.logger.error(
                    "embedding-batch-abandoned",
                    provider=self._provider.name,
                    batch_start=batch.start,
                    batch_size=len(batch.texts),
                    total_texts=len(texts),
                )
                return []
            results.extend(vectors)
        return results

    def truncate(self, text: str, index: int = 0) -> str:
        """Cut ``text`` to exactly the configured character budget."""

        limit = self._settings.max_chars
        if len(text) <= limit:
            return text
        self._stats["truncated"] += 1
        self.logger.warning(
            "embedding-input-truncated",
            index=index,
            original_chars=len(text),
            max_chars=limit,
        )
        return text[:limit]

    # ------------------------------------------------------------------#
    # Internal helpers
    # ------------------------------------------------------------------#
    def _tiktoken_counter(self) -> TokenCounter:
        encoding: tiktoken.Encoding | None = None

        def count(text: str) -> int:
            nonlocal encoding
            try:
                if encoding is None:
                    try:
                        encoding = tiktoken.encoding_for_model(
                            self._settings.model
                        )
                    except KeyError:
                        encoding = tiktoken.get_encoding(_FALLBACK_ENCODING)
                return _TOKEN_PAD + len(encoding.encode(text))
            except Exception as exc:
                # Encodings are fetched on first use; offline hosts fall back
                # to a character estimate.
                self.logger.warning(
                    "embedding-token-estimate-fallback",
                    model=self._settings.model,
                    error=str(exc),
                )
                return _TOKEN_PAD + len(text) // 3

        return count

    def _plan_batches(self, texts: Sequence[str]) -> list[_Batch]:
        limit = self._settings.max_batch_size
        token_limit = self._settings.max_request_tokens
        batches: list[_Batch] = []
        current: list[str] = []
        current_tokens = 0
        start = 0

        for index, text in enumerate(texts):
            tokens = self._token_counter(text)
            would_exceed_batch = len(current) >= limit
            would_exceed_tokens = current_tokens + tokens > token_limit
            if current and (would_exceed_batch or would_exceed_tokens):
                batches.append(
                    _Batch(start=start, texts=tuple(current), tokens=current_tokens)
                )
                current = []
                current_tokens = 0
                start = index
            current.append(text)
            current_tokens += tokens

        if current:
            batches.append(
                _Batch(start=start, texts=tuple(current), tokens=current_tokens)
            )
        return batches

    def _embed_with_retries(self, batch: _Batch) -> list[EmbeddingVector] | None:
        state = RetryState(
            max_attempts=self._settings.max_attempts,
            base_delay=self._settings.base_delay,
        )
        provider = self._provider.name

        while True:
            try:
                self._stats["requests"] += 1
                vectors = self._provider.embed_batch(batch.texts)
            except Exception as exc:
                retryable = is_retryable(exc)
                delay = state.record_failure() if retryable else None
                if delay is None:
                    self._stats["failures"] += 1
                    error: Exception = exc
                    if retryable:
                        error = EmbeddingProviderRetryExceededError(
                            f"Failed to embed texts after {state.attempt} attempts: "
                            f"{exc}",
                            provider=provider,
                            model=self._settings.model,
                            status_code=getattr(exc, "status_code", None),
                            attempts=state.attempt,
                        )
                    self.logger.error(
                        "embedding-request-failed",
                        provider=provider,
                        attempts=state.attempt,
                        max_attempts=state.max_attempts,
                        retryable=retryable,
                        error_type=error.__class__.__name__,
                        error=str(error),
                    )
                    return None
                self._stats["retries"] += 1
                self.logger.warning(
                    "embedding-retry",
                    provider=provider,
                    attempt=state.attempt,
                    max_attempts=state.max_attempts,
                    retry_delay=delay,
                    error_type=exc.__class__.__name__,
                    status_code=getattr(exc, "status_code", None),
                )
                self._sleep(delay)
                continue

            try:
                self._validate(batch, vectors)
            except EmbeddingProviderError as exc:
                self._stats["failures"] += 1
                self.logger.error(
                    "embedding-response-invalid",
                    error=str(exc),
                    **exc.log_fields(),
                )
                return None

            if state.attempt:
                self.logger.info(
                    "embedding-recovered",
                    provider=provider,
                    attempts=state.attempt + 1,
                )
            return [tuple(vector) for vector in vectors]

    def _validate(
        self,
        batch: _Batch,
        vectors: Sequence[Sequence[float]],
    ) -> None:
        provider = self._provider.name
        model = self._settings.model
        if len(vectors) != len(batch.texts):
            raise EmbeddingProviderError(
                (
                    f"Provider returned {len(vectors)} vectors for "
                    f"{len(batch.texts)} inputs."
                ),
                provider=provider,
                model=model,
            )
        expected = self._settings.dimensions
        for vector in vectors:
            if len(vector) != expected:
                raise EmbeddingProviderDimMismatchError(
                    "Embedding dimension mismatch in provider response.",
                    provider=provider,
                    model=model,
                    expected=expected,
                    actual=len(vector),
                )


def build_embedding_client(
    settings: EmbeddingSettings,
    *,
    logger: Logger,
    registry: ProviderRegistry | None = None,
    sleep: Callable[[float], None] = time.sleep,
) -> EmbeddingClient:
    """Create the configured provider and wrap it in an :class:`EmbeddingClient`.

    Raises:
        EmbeddingProviderConfigurationError: If the provider cannot be built.
    """

    providers = registry or create_default_provider_registry()
    provider = providers.create(
        settings.provider,
        logger=logger.bind(component=f"embeddings-{settings.provider}"),
        settings=settings,
    )
    return EmbeddingClient(
        provider=provider,
        settings=settings,
        logger=logger.bind(component="embedding-client"),
        sleep=sleep,
    )
