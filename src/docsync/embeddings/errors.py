"""Errors raised while turning chunk text into vectors.

Providers translate their transport failures into this hierarchy so the
:class:`~docsync.embeddings.client.EmbeddingClient` can decide, without
knowing any SDK, whether a batch is worth sending again. Anything outside
the hierarchy is treated as transient.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

__all__ = [
    "EmbeddingProviderError",
    "EmbeddingProviderConfigurationError",
    "EmbeddingProviderRequestError",
    "EmbeddingProviderRetryableError",
    "EmbeddingProviderRateLimitError",
    "EmbeddingProviderRetryExceededError",
    "EmbeddingProviderDimMismatchError",
    "error_for_status",
    "is_retryable",
]


@dataclass(slots=True)
class EmbeddingProviderError(RuntimeError):
    """A batch could not be embedded by ``provider``/``model``."""

    message: str
    provider: str
    model: str
    request_id: str | None = None
    status_code: int | None = None

    def __post_init__(self) -> None:
        RuntimeError.__init__(self, self.message)

    def log_fields(self) -> dict[str, Any]:
        fields: dict[str, Any] = {"provider": self.provider, "model": self.model}
        if self.status_code is not None:
            fields["status_code"] = self.status_code
        if self.request_id:
            fields["request_id"] = self.request_id
        return fields


@dataclass(slots=True)
class EmbeddingProviderConfigurationError(EmbeddingProviderError):
    """Missing key, unknown provider, or an unusable endpoint setting."""


@dataclass(slots=True)
class EmbeddingProviderRequestError(EmbeddingProviderError):
    """The provider rejected the batch; resending it cannot help."""


@dataclass(slots=True)
class EmbeddingProviderRetryableError(EmbeddingProviderError):
    """Timeouts, dropped connections and 5xx responses."""


@dataclass(slots=True)
class EmbeddingProviderRateLimitError(EmbeddingProviderRetryableError):
    pass


@dataclass(slots=True)
class EmbeddingProviderRetryExceededError(EmbeddingProviderError):
    """Every attempt for a batch failed; the batch yields no vectors."""

    attempts: int = 0


@dataclass(slots=True)
class EmbeddingProviderDimMismatchError(EmbeddingProviderError):
    """Vectors do not match the dimension of the index being written."""

    expected: int | None = None
    actual: int | None = None


def error_for_status(
    status: int,
    message: str,
    *,
    provider: str,
    model: str,
    request_id: str | None = None,
) -> EmbeddingProviderError:
    """Classify an HTTP status from an embedding endpoint.

    Example:
        >>> error = error_for_status(503, "busy", provider="custom", model="m")
        >>> is_retryable(error)
        True
    """

    context = {
        "provider": provider,
        "model": model,
        "status_code": status,
        "request_id": request_id,
    }
    if status == 429:
        return EmbeddingProviderRateLimitError(message, **context)
    if status >= 500:
        return EmbeddingProviderRetryableError(message, **context)
    return EmbeddingProviderRequestError(message, **context)


def is_retryable(exc: BaseException) -> bool:
    if isinstance(exc, EmbeddingProviderRetryableError):
        return True
    return not isinstance(exc, EmbeddingProviderError)
