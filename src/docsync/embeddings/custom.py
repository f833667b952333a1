"""Provider for self-hosted OpenAI-compatible embedding endpoints."""

from __future__ import annotations

import os
from typing import Any, Sequence

import httpx

from docsync.core.config import EmbeddingSettings
from docsync.core.logging import Logger
from docsync.embeddings.errors import (
    EmbeddingProviderConfigurationError,
    EmbeddingProviderError,
    EmbeddingProviderRequestError,
    EmbeddingProviderRetryableError,
    error_for_status,
)

from . import EmbeddingMatrix, ProviderInitContext

__all__ = ["CustomEmbeddingsProvider", "custom_provider_factory"]


class CustomEmbeddingsProvider:
    """POST ``{model, input}`` to an endpoint speaking the OpenAI schema."""

    name = "custom"

    def __init__(
        self,
        *,
        logger: Logger,
        settings: EmbeddingSettings,
        client: httpx.Client | None = None,
        api_key: str | None = None,
    ) -> None:
        if not settings.endpoint:
            raise EmbeddingProviderConfigurationError(
                "The custom provider requires an endpoint.",
                provider=self.name,
                model=settings.model,
            )
        self.logger = logger
        self._settings = settings
        self._endpoint = settings.endpoint
        self._api_key = api_key or os.environ.get("OPENAI_API_KEY")
        self._client = client or httpx.Client(timeout=settings.timeout)

    @property
    def model(self) -> str:
        return self._settings.model

    def _headers(self) -> dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self._api_key:
            headers["Authorization"] = f"Bearer {self._api_key}"
        return headers

    def embed_batch(self, texts: Sequence[str]) -> EmbeddingMatrix:
        if not texts:
            return ()

        try:
            response = self._client.post(
                self._endpoint,
                json={"model": self.model, "input": list(texts)},
                headers=self._headers(),
            )
            response.raise_for_status()
            payload = response.json()
        except httpx.HTTPStatusError as exc:
            raise self._status_error(exc) from exc
        except (httpx.TimeoutException, httpx.TransportError) as exc:
            raise EmbeddingProviderRetryableError(
                str(exc) or exc.__class__.__name__,
                provider=self.name,
                model=self.model,
            ) from exc
        except ValueError as exc:
            raise EmbeddingProviderRequestError(
                f"Endpoint returned invalid JSON: {exc}",
                provider=self.name,
                model=self.model,
            ) from exc

        vectors = self._parse_payload(payload)
        self.logger.debug(
            "custom-embed-request",
            provider=self.name,
            model=self.model,
            endpoint=self._endpoint,
            batch_size=len(texts),
        )
        return vectors

    def _parse_payload(self, payload: Any) -> EmbeddingMatrix:
        data = payload.get("data") if isinstance(payload, dict) else None
        if not isinstance(data, list):
            raise EmbeddingProviderRequestError(
                "Invalid response format from custom embedding endpoint",
                provider=self.name,
                model=self.model,
            )
        vectors = []
        for item in data:
            embedding = item.get("embedding") if isinstance(item, dict) else None
            if not isinstance(embedding, list):
                raise EmbeddingProviderRequestError(
                    "Invalid embedding format in response",
                    provider=self.name,
                    model=self.model,
                )
            vectors.append(tuple(float(value) for value in embedding))
        return tuple(vectors)

    def _status_error(self, exc: httpx.HTTPStatusError) -> EmbeddingProviderError:
        status = exc.response.status_code
        request_id = exc.response.headers.get("x-request-id")
        return error_for_status(
            status,
            f"Embedding endpoint returned HTTP {status}",
            provider=self.name,
            model=self.model,
            request_id=request_id,
        )

    def close(self) -> None:
        self._client.close()


def custom_provider_factory(
    context: ProviderInitContext,
) -> CustomEmbeddingsProvider:
    """Factory registered with the provider registry."""

    return CustomEmbeddingsProvider(
        logger=context.logger,
        settings=context.settings,
    )
