"""Embedding provider abstractions and registry."""

from __future__ import annotations

from dataclasses import dataclass
from types import MappingProxyType
from typing import TYPE_CHECKING, Callable, Mapping, Protocol, Sequence, runtime_checkable

from docsync.core.config import EmbeddingSettings
from docsync.core.logging import Logger

__all__ = [
    "EmbeddingVector",
    "EmbeddingMatrix",
    "EmbeddingsProvider",
    "ProviderFactory",
    "ProviderInitContext",
    "ProviderRegistry",
    "ProviderRegistryError",
    "ProviderNotRegisteredError",
    "EmbeddingClient",
    "build_embedding_client",
    "create_default_provider_registry",
    "register_builtin_providers",
]

EmbeddingVector = tuple[float, ...]
EmbeddingMatrix = tuple[EmbeddingVector, ...]


@runtime_checkable
class EmbeddingsProvider(Protocol):
    """Boundary contract for embedding providers.

    Providers perform exactly one request per call and translate failures
    into :mod:`docsync.embeddings.errors` types; retries and batching live
    in :class:`~docsync.embeddings.client.EmbeddingClient`.
    """

    name: str

    def embed_batch(self, texts: Sequence[str]) -> EmbeddingMatrix:
        """Return one vector per input text, in order."""


@dataclass(frozen=True, slots=True)
class ProviderInitContext:
    """Construction context supplied to provider factories."""

    logger: Logger
    settings: EmbeddingSettings


ProviderFactory = Callable[[ProviderInitContext], EmbeddingsProvider]


class ProviderRegistryError(RuntimeError):
    """Base error type raised when interacting with the provider registry."""


class ProviderNotRegisteredError(ProviderRegistryError):
    """Raised when a provider lookup fails for the requested key."""


class ProviderRegistry:
    """Mutable registry mapping provider keys to factory callables."""

    def __init__(
        self,
        factories: Mapping[str, ProviderFactory] | None = None,
    ) -> None:
        self._factories: dict[str, ProviderFactory] = {}
        if factories:
            for key, factory in factories.items():
                self.register(key, factory)

    @staticmethod
    def _normalize_key(key: str) -> str:
        normalized = key.strip().lower()
        if not normalized:
            raise ValueError("provider key cannot be empty")
        return normalized

    def register(self, key: str, factory: ProviderFactory) -> None:
        """Register ``factory`` under ``key``; errors if key already present."""

        normalized = self._normalize_key(key)
        if normalized in self._factories:
            raise ProviderRegistryError(
                f"Provider {normalized!r} already registered",
            )
        self._factories[normalized] = factory

    def get_factory(self, key: str) -> ProviderFactory:
        normalized = self._normalize_key(key)
        try:
            return self._factories[normalized]
        except KeyError as exc:
            raise ProviderNotRegisteredError(
                f"No provider registered under key {normalized!r}",
            ) from exc

    def create(
        self,
        key: str,
        *,
        logger: Logger,
        settings: EmbeddingSettings,
    ) -> EmbeddingsProvider:
        """Instantiate the provider registered under ``key``."""

        factory = self.get_factory(key)
        return factory(ProviderInitContext(logger=logger, settings=settings))

    def snapshot(self) -> Mapping[str, ProviderFactory]:
        return MappingProxyType(dict(self._factories))


if TYPE_CHECKING:  # pragma: no cover - type checker imports only
    from .client import EmbeddingClient, build_embedding_client


def __getattr__(name: str) -> object:
    if name in {"EmbeddingClient", "build_embedding_client"}:
        from .client import EmbeddingClient, build_embedding_client

        exports = {
            "EmbeddingClient": EmbeddingClient,
            "build_embedding_client": build_embedding_client,
        }
        return exports[name]

    message = f"module {__name__!r} has no attribute {name!r}"
    raise AttributeError(message)


def _load_openai_factory() -> ProviderFactory:
    from .openai import openai_provider_factory

    return openai_provider_factory


def _load_custom_factory() -> ProviderFactory:
    from .custom import custom_provider_factory

    return custom_provider_factory


def register_builtin_providers(
    registry: ProviderRegistry,
) -> ProviderRegistry:
    """Register the ``openai`` and ``custom`` providers on ``registry``."""

    current = registry.snapshot()
    if "openai" not in current:
        registry.register("openai", _load_openai_factory())
    if "custom" not in current:
        registry.register("custom", _load_custom_factory())
    return registry


def create_default_provider_registry() -> ProviderRegistry:
    """Return a provider registry populated with built-in providers."""

    registry = ProviderRegistry()
    register_builtin_providers(registry)
    return registry
