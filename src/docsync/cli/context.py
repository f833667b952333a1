"""Shared configuration and service wiring for CLI commands."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any, Sequence

import typer

from docsync.core.config import AppConfig, load_app_config
from docsync.core.errors import ConfigurationError
from docsync.core.logging import Logger, configure_logging, get_logger
from docsync.embeddings.client import EmbeddingClient, build_embedding_client
from docsync.embeddings.errors import EmbeddingProviderConfigurationError
from docsync.query import QueryService

__all__ = [
    "CLIContext",
    "build_embedder",
    "build_query_service",
    "exit_with_error",
    "load_context",
]

EXIT_FAILURE = 1
EXIT_CONFIG = 2


@dataclass(slots=True)
class CLIContext:
    """Configuration and logger shared by one command invocation."""

    config: AppConfig
    logger: Logger
    config_path: Path | None = None


def exit_with_error(message: str, *, code: int = EXIT_FAILURE) -> None:
    typer.secho(message, fg=typer.colors.RED, err=True)
    raise typer.Exit(code=code)


def load_context(
    config_path: Path | None,
    *,
    command: str,
    log_level: str | None = None,
) -> CLIContext:
    """Load configuration and logging, exiting with code 2 on bad config."""

    overrides: dict[str, Any] = {}
    if log_level:
        overrides["log_level"] = log_level
    try:
        config = load_app_config(config_path, cli_overrides=overrides or None)
    except ConfigurationError as exc:
        exit_with_error(f"Configuration error: {exc}", code=EXIT_CONFIG)
        raise  # pragma: no cover - exit_with_error always raises
    try:
        configure_logging(level=config.log_level, log_dir=config.log_dir)
    except ValueError as exc:
        exit_with_error(f"Configuration error: {exc}", code=EXIT_CONFIG)
    logger = get_logger("docsync", command=command)
    return CLIContext(config=config, logger=logger, config_path=config_path)


def build_embedder(context: CLIContext) -> EmbeddingClient:
    """Create the embedding client, exiting with code 2 when unconfigured."""

    try:
        return build_embedding_client(
            context.config.embedding,
            logger=context.logger,
        )
    except EmbeddingProviderConfigurationError as exc:
        exit_with_error(f"Embedding provider error: {exc.message}", code=EXIT_CONFIG)
        raise  # pragma: no cover - exit_with_error always raises


def _no_query_embedding(text: str) -> Sequence[float] | None:
    return None


def build_query_service(
    context: CLIContext,
    *,
    with_embeddings: bool = True,
) -> QueryService:
    """Return a :class:`QueryService`; document fetches need no embedder."""

    if with_embeddings:
        client = build_embedder(context)

        def embed_query(text: str) -> Sequence[float] | None:
            vectors = client.embed([text])
            return vectors[0] if vectors else None

    else:
        embed_query = _no_query_embedding

    return QueryService(
        embed_query,
        settings=context.config.query,
        logger=context.logger.bind(component="query"),
    )
