"""OpenAI embeddings provider implementation."""

from __future__ import annotations

import os
import time
from typing import Callable, Sequence

import httpx
from openai import (
    APIConnectionError,
    APIStatusError,
    APITimeoutError,
    OpenAI,
    RateLimitError,
)

from docsync.core.config import EmbeddingSettings
from docsync.core.logging import Logger
from docsync.embeddings.errors import (
    EmbeddingProviderConfigurationError,
    EmbeddingProviderError,
    EmbeddingProviderRateLimitError,
    EmbeddingProviderRequestError,
    EmbeddingProviderRetryableError,
    error_for_status,
)

from . import EmbeddingMatrix, ProviderInitContext

__all__ = [
    "OpenAIEmbeddingsProvider",
    "openai_provider_factory",
]


class OpenAIEmbeddingsProvider:
    """Embed texts via the OpenAI embeddings API."""

    name = "openai"

    def __init__(
        self,
        *,
        logger: Logger,
        settings: EmbeddingSettings,
        client: OpenAI | None = None,
        now: Callable[[], float] = time.perf_counter,
    ) -> None:
        self.logger = logger
        self._settings = settings
        self._now = now
        self._client = client or self._build_client()

    @property
    def model(self) -> str:
        return self._settings.model

    def embed_batch(self, texts: Sequence[str]) -> EmbeddingMatrix:
        if not texts:
            return ()

        start = self._now()
        try:
            response = self._client.embeddings.create(
                model=self.model,
                input=list(texts),
            )
        except Exception as exc:
            raise self._translate_exception(exc, model=self.model) from exc

        self.logger.debug(
            "openai-embed-request",
            provider=self.name,
            model=self.model,
            batch_size=len(texts),
            latency=self._now() - start,
        )
        return tuple(
            tuple(float(value) for value in item.embedding)
            for item in response.data
        )

    # ------------------------------------------------------------------#
    # Internal helpers
    # ------------------------------------------------------------------#
    def _build_client(self) -> OpenAI:
        api_key = os.environ.get("OPENAI_API_KEY")
        if not api_key:
            raise EmbeddingProviderConfigurationError(
                "OPENAI_API_KEY must be set to use the OpenAI provider.",
                provider=self.name,
                model=self.model,
            )

        return OpenAI(
            api_key=api_key,
            base_url=os.environ.get("OPENAI_BASE_URL"),
            organization=os.environ.get("OPENAI_ORG_ID"),
            timeout=self._settings.timeout,
            # Retries are driven by EmbeddingClient.
            max_retries=0,
        )

    @staticmethod
    def _extract_context(exc: Exception) -> tuple[int | None, str | None]:
        status: int | None = None
        request_id: str | None = None

        status_value = getattr(exc, "status_code", None)
        if status_value is not None:
            try:
                status = int(status_value)
            except (TypeError, ValueError):
                status = None

        value = getattr(exc, "request_id", None)
        if isinstance(value, str):
            request_id = value
        return status, request_id

    @classmethod
    def _translate_exception(
        cls,
        exc: Exception,
        *,
        model: str,
    ) -> EmbeddingProviderError:
        message = str(exc) or exc.__class__.__name__
        status, request_id = cls._extract_context(exc)
        context = {
            "provider": cls.name,
            "model": model,
            "status_code": status,
            "request_id": request_id,
        }
        if isinstance(exc, RateLimitError):
            return EmbeddingProviderRateLimitError(message, **context)
        if isinstance(
            exc,
            (
                APITimeoutError,
                APIConnectionError,
                httpx.TimeoutException,
                httpx.NetworkError,
            ),
        ):
            return EmbeddingProviderRetryableError(message, **context)
        if isinstance(exc, APIStatusError) and status is not None:
            return error_for_status(
                status,
                message,
                provider=cls.name,
                model=model,
                request_id=request_id,
            )
        return EmbeddingProviderRequestError(message, **context)


def openai_provider_factory(
    context: ProviderInitContext,
) -> OpenAIEmbeddingsProvider:
    """Factory registered with the provider registry."""

    return OpenAIEmbeddingsProvider(
        logger=context.logger,
        settings=context.settings,
    )
