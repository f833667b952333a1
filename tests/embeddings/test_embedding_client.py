"""Tests for :class:`docsync.embeddings.client.EmbeddingClient`."""

from __future__ import annotations

from typing import Iterable, Sequence

import pytest
from structlog import get_logger

from docsync.core.config import EmbeddingSettings
from docsync.embeddings import ProviderRegistry
from docsync.embeddings.client import EmbeddingClient, build_embedding_client
from docsync.embeddings.errors import (
    EmbeddingProviderConfigurationError,
    EmbeddingProviderRateLimitError,
    EmbeddingProviderRequestError,
    EmbeddingProviderRetryableError,
)

DIMENSIONS = 4


class _ScriptedProvider:
    """Provider double replaying scripted outcomes per call."""

    name = "scripted"

    def __init__(self, script: Iterable[Exception | None] = ()) -> None:
        self._script = list(script)
        self.calls: list[tuple[str, ...]] = []

    def embed_batch(self, texts: Sequence[str]) -> tuple[tuple[float, ...], ...]:
        self.calls.append(tuple(texts))
        if self._script:
            outcome = self._script.pop(0)
            if outcome is not None:
                raise outcome
        return tuple(
            tuple(float(len(text)) for _ in range(DIMENSIONS)) for text in texts
        )


def _settings(**overrides) -> EmbeddingSettings:
    values = {
        "dimensions": DIMENSIONS,
        "max_chars": 100,
        "max_attempts": 3,
        "base_delay": 1.0,
    }
    values.update(overrides)
    return EmbeddingSettings(**values)


def _client(
    provider: _ScriptedProvider,
    *,
    sleeps: list[float] | None = None,
    **overrides,
) -> EmbeddingClient:
    recorded = sleeps if sleeps is not None else []
    return EmbeddingClient(
        provider=provider,
        settings=_settings(**overrides),
        logger=get_logger("test"),
        sleep=recorded.append,
        token_counter=len,
    )


def _retryable(message: str = "boom") -> EmbeddingProviderRetryableError:
    return EmbeddingProviderRetryableError(message, provider="scripted", model="m")


def test_embed_returns_one_vector_per_text_in_order() -> None:
    provider = _ScriptedProvider()
    client = _client(provider)

    vectors = client.embed(["a", "bbb", "cc"])

    assert [vector[0] for vector in vectors] == [1.0, 3.0, 2.0]
    assert client.embed([]) == []


def test_oversized_text_is_truncated_to_exact_budget() -> None:
    provider = _ScriptedProvider()
    client = _client(provider, max_chars=100)
    long_text = "x" * 1_100

    client.embed(["short", long_text, "also short"])

    sent = provider.calls[0]
    assert sent[0] == "short"
    assert len(sent[1]) == 100
    assert sent[1] == long_text[:100]
    assert sent[2] == "also short"
    assert client.stats["truncated"] == 1


def test_text_at_budget_is_not_truncated() -> None:
    client = _client(_ScriptedProvider(), max_chars=10)

    assert client.truncate("0123456789") == "0123456789"
    assert client.stats["truncated"] == 0


def test_retryable_failures_back_off_exponentially() -> None:
    provider = _ScriptedProvider([_retryable(), _retryable()])
    sleeps: list[float] = []
    client = _client(provider, sleeps=sleeps, base_delay=0.5)

    vectors = client.embed(["hello"])

    assert len(vectors) == 1
    assert sleeps == [0.5, 1.0]
    assert len(provider.calls) == 3
    assert client.stats["retries"] == 2


def test_rate_limits_are_retried() -> None:
    limited = EmbeddingProviderRateLimitError("429", provider="scripted", model="m")
    provider = _ScriptedProvider([limited])
    sleeps: list[float] = []

    assert _client(provider, sleeps=sleeps).embed(["hello"])
    assert sleeps == [1.0]


def test_exhausted_retries_return_empty_result() -> None:
    provider = _ScriptedProvider([_retryable(), _retryable(), _retryable()])
    sleeps: list[float] = []
    client = _client(provider, sleeps=sleeps)

    assert client.embed(["a", "b"]) == []
    assert len(provider.calls) == 3
    assert sleeps == [1.0, 2.0]
    assert client.stats["failures"] == 1


def test_request_errors_are_not_retried() -> None:
    rejected = EmbeddingProviderRequestError("400", provider="scripted", model="m")
    provider = _ScriptedProvider([rejected])
    sleeps: list[float] = []

    assert _client(provider, sleeps=sleeps).embed(["a"]) == []
    assert sleeps == []
    assert len(provider.calls) == 1


def test_unexpected_exceptions_are_retried() -> None:
    provider = _ScriptedProvider([ConnectionResetError("reset")])

    assert _client(provider).embed(["a"])
    assert len(provider.calls) == 2


def test_batches_respect_size_and_token_limits() -> None:
    provider = _ScriptedProvider()
    client = _client(provider, max_batch_size=2, max_request_tokens=6)

    vectors = client.embed(["aa", "bb", "cc", "dddd", "eeee"])

    assert provider.calls == [("aa", "bb"), ("cc", "dddd"), ("eeee",)]
    assert len(vectors) == 5


def test_failure_in_later_batch_discards_whole_call() -> None:
    rejected = EmbeddingProviderRequestError("400", provider="scripted", model="m")
    provider = _ScriptedProvider([None, rejected])
    client = _client(provider, max_batch_size=1)

    assert client.embed(["a", "b"]) == []


def test_dimension_mismatch_is_rejected() -> None:
    class _ShortProvider(_ScriptedProvider):
        def embed_batch(self, texts):
            return tuple((1.0,) for _ in texts)

    assert _client(_ShortProvider()).embed(["a"]) == []


def test_build_embedding_client_uses_registry() -> None:
    provider = _ScriptedProvider()
    registry = ProviderRegistry({"openai": lambda context: provider})

    client = build_embedding_client(
        _settings(),
        logger=get_logger("test"),
        registry=registry,
    )

    assert client.embed(["abc"])[0][0] == 3.0


def test_build_embedding_client_requires_api_key(
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    monkeypatch.delenv("OPENAI_API_KEY", raising=False)

    with pytest.raises(EmbeddingProviderConfigurationError):
        build_embedding_client(_settings(), logger=get_logger("test"))
