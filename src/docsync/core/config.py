"""Configuration models and loaders for :mod:`docsync`."""

from __future__ import annotations

import codecs
from collections.abc import Mapping as MappingABC
from enum import StrEnum
import os
from pathlib import Path
import re
from typing import Any, Iterable, Literal, Mapping

import tomllib
import tomlkit
from pydantic import BaseModel, Field, ValidationError, field_validator, model_validator

from docsync.core.errors import ConfigurationError
from docsync.resources import get_resource

DEFAULTS_RESOURCE_NAME = "docsync.defaults.toml"
DEFAULT_QDRANT_URL = "http://localhost:6333"
DEFAULT_MAX_SIZE = 1_048_576


class DatabaseKind(StrEnum):
    """Index backends a source can write to."""

    SQLITE = "sqlite"
    QDRANT = "qdrant"


class SourceType(StrEnum):
    """Kinds of content sources."""

    WEBSITE = "website"
    GITHUB = "github"
    LOCAL_DIRECTORY = "local_directory"
    CODE = "code"
    ZENDESK = "zendesk"


def _normalize_extension(value: str) -> str:
    """Return ``value`` lowercased with a single leading dot.

    Example:
        >>> _normalize_extension("MD")
        '.md'
    """

    cleaned = value.strip().lower()
    if not cleaned:
        return cleaned
    return cleaned if cleaned.startswith(".") else f".{cleaned}"


def collection_name_for(product_name: str, version: str | None) -> str:
    """Return the default remote collection name for a product/version.

    Example:
        >>> collection_name_for("My Product", "v2")
        'my_product_v2'
    """

    base = re.sub(r"\s+", "_", product_name.strip().lower())
    if version:
        return f"{base}_{version}"
    return base


def db_filename_for(product_name: str, version: str | None) -> str:
    """Return the default embedded index filename for a product/version.

    Example:
        >>> db_filename_for("My Product", "latest")
        'My_Product-latest.db'
    """

    base = re.sub(r"\s+", "_", product_name.strip())
    if version:
        return f"{base}-{version}.db"
    return f"{base}.db"


class DatabaseParams(BaseModel):
    """Backend connection parameters."""

    db_path: Path | None = Field(
        default=None,
        description="Embedded index file; defaults to <product>-<version>.db.",
    )
    qdrant_url: str | None = Field(
        default=None,
        description="Remote vector database URL.",
    )
    qdrant_port: int | None = Field(
        default=None,
        ge=1,
        le=65535,
        description="Remote vector database port override.",
    )
    collection_name: str | None = Field(
        default=None,
        description="Remote collection; defaults to <product>_<version>.",
    )

    model_config = {"frozen": True, "str_strip_whitespace": True}


class DatabaseConfig(BaseModel):
    """Backend selection for a source."""

    type: DatabaseKind = Field(default=DatabaseKind.SQLITE)
    params: DatabaseParams = Field(default_factory=DatabaseParams)

    model_config = {"frozen": True}


class SourceConfig(BaseModel):
    """A single content source and the index it synchronizes into."""

    type: SourceType
    product_name: str = Field(min_length=1)
    version: str | None = None
    max_size: int = Field(default=DEFAULT_MAX_SIZE, ge=1)
    database_config: DatabaseConfig = Field(default_factory=DatabaseConfig)

    url: str | None = Field(default=None, description="Website base URL.")
    sitemap_url: str | None = None
    path: Path | None = Field(
        default=None,
        description="Filesystem root for local directory and code sources.",
    )
    include_extensions: tuple[str, ...] = ()
    exclude_extensions: tuple[str, ...] = ()
    recursive: bool = True
    encoding: str = "utf-8"
    url_rewrite_prefix: str | None = None
    repo: str | None = None
    branch: str | None = None
    start_date: str | None = None

    model_config = {"frozen": True, "str_strip_whitespace": True}

    @field_validator("include_extensions", "exclude_extensions")
    @classmethod
    def _normalize_extensions(cls, value: tuple[str, ...]) -> tuple[str, ...]:
        normalized = (_normalize_extension(item) for item in value)
        return tuple(dict.fromkeys(item for item in normalized if item))

    @field_validator("encoding")
    @classmethod
    def _check_encoding(cls, value: str) -> str:
        try:
            codecs.lookup(value)
        except LookupError as exc:
            raise ValueError(f"Unknown text encoding: {value!r}") from exc
        return value

    @model_validator(mode="after")
    def _check_required(self) -> "SourceConfig":
        if self.type is SourceType.WEBSITE and not self.url:
            raise ValueError("website sources require 'url'.")
        if self.type is SourceType.GITHUB and not self.repo:
            raise ValueError("github sources require 'repo'.")
        if (
            self.type in (SourceType.LOCAL_DIRECTORY, SourceType.CODE)
            and self.path is None
        ):
            raise ValueError(f"{self.type.value} sources require 'path'.")

        if not self.version:
            if self.type is SourceType.CODE:
                object.__setattr__(self, "version", self.branch or "local")
            else:
                raise ValueError(
                    f"{self.type.value} source {self.product_name!r} "
                    "requires 'version'."
                )
        return self

    @property
    def name(self) -> str:
        """Return a human readable label used in logs and reports."""

        return f"{self.type.value}:{self.product_name}@{self.version}"

    @property
    def watermark_repo(self) -> str:
        """Return the repository label used in bookkeeping keys."""

        return self.repo or self.url or self.product_name

    def resolved_db_path(self) -> Path:
        configured = self.database_config.params.db_path
        if configured is not None:
            return configured.expanduser()
        return Path(db_filename_for(self.product_name, self.version))

    def resolved_collection_name(self) -> str:
        configured = self.database_config.params.collection_name
        if configured:
            return configured
        return collection_name_for(self.product_name, self.version)


class EmbeddingSettings(BaseModel):
    """Embedding provider and ingestion reliability settings."""

    provider: Literal["openai", "custom"] = "openai"
    model: str = Field(default="text-embedding-3-large", min_length=1)
    endpoint: str | None = Field(
        default=None,
        description="OpenAI-compatible endpoint used by the custom provider.",
    )
    timeout: float = Field(default=30.0, gt=0.0)
    max_chars: int = Field(
        default=24_000,
        ge=1,
        description="Per-text character budget; longer texts are truncated.",
    )
    max_batch_size: int = Field(default=64, ge=1)
    max_request_tokens: int = Field(default=8_191, ge=1)
    max_attempts: int = Field(default=3, ge=1)
    base_delay: float = Field(default=1.0, ge=0.0)
    dimensions: int = Field(default=3_072, ge=1)

    model_config = {"frozen": True, "str_strip_whitespace": True}

    @model_validator(mode="after")
    def _check_endpoint(self) -> "EmbeddingSettings":
        if self.provider == "custom" and not self.endpoint:
            raise ValueError("custom embedding provider requires 'endpoint'.")
        return self


class QuerySettings(BaseModel):
    """Defaults applied by the query service and CLI."""

    backend: DatabaseKind = DatabaseKind.SQLITE
    db_dir: Path = Field(default=Path("."))
    qdrant_url: str = DEFAULT_QDRANT_URL
    qdrant_port: int | None = Field(default=None, ge=1, le=65535)
    default_limit: int = Field(default=4, ge=1)

    model_config = {"frozen": True, "str_strip_whitespace": True}


class AppConfig(BaseModel):
    """Root configuration for the :mod:`docsync` application."""

    log_level: str = Field(default="INFO")
    log_dir: Path | None = None
    embedding: EmbeddingSettings = Field(default_factory=EmbeddingSettings)
    query: QuerySettings = Field(default_factory=QuerySettings)
    sources: tuple[SourceConfig, ...] = ()

    model_config = {"str_strip_whitespace": True, "validate_assignment": True}

    @model_validator(mode="after")
    def _post_process(self) -> "AppConfig":
        object.__setattr__(self, "log_level", self.log_level.upper())
        return self

    def iter_sources(self) -> Iterable[SourceConfig]:
        return iter(self.sources)


# ---------------------------------------------------------------------------
# Loading
# ---------------------------------------------------------------------------


def read_packaged_defaults_text() -> str:
    """Return the raw packaged defaults TOML content."""

    resource = get_resource(DEFAULTS_RESOURCE_NAME)
    return resource.read_text(encoding="utf-8")


def load_packaged_defaults() -> dict[str, Any]:
    """Load the packaged defaults as a plain dictionary.

    Example:
        >>> load_packaged_defaults()["embedding"]["max_chars"]
        24000
    """

    return tomllib.loads(read_packaged_defaults_text())


def load_config_file(path: str | Path) -> dict[str, Any]:
    """Parse a user ``docsync.toml`` file.

    Raises:
        ConfigurationError: If the file is missing or not valid TOML.
    """

    config_path = Path(path).expanduser()
    try:
        text = config_path.read_text(encoding="utf-8")
    except FileNotFoundError as exc:
        raise ConfigurationError(
            f"Configuration file not found: {config_path}"
        ) from exc
    except OSError as exc:
        raise ConfigurationError(
            f"Unable to read configuration file {config_path}: {exc}"
        ) from exc
    try:
        return tomllib.loads(text)
    except tomllib.TOMLDecodeError as exc:
        raise ConfigurationError(
            f"Invalid TOML in {config_path}: {exc}"
        ) from exc


def env_overrides(environ: Mapping[str, str] | None = None) -> dict[str, Any]:
    """Translate supported environment variables into a config layer."""

    env = os.environ if environ is None else environ
    layer: dict[str, Any] = {}
    if env.get("DOCSYNC_LOG_LEVEL"):
        layer["log_level"] = env["DOCSYNC_LOG_LEVEL"]
    if env.get("DOCSYNC_LOG_DIR"):
        layer["log_dir"] = env["DOCSYNC_LOG_DIR"]
    if env.get("EMBEDDING_MODEL"):
        layer.setdefault("embedding", {})["model"] = env["EMBEDDING_MODEL"]

    query: dict[str, Any] = {}
    if env.get("DOCSYNC_QUERY_BACKEND"):
        query["backend"] = env["DOCSYNC_QUERY_BACKEND"].strip().lower()
    if env.get("DOCSYNC_DB_DIR"):
        query["db_dir"] = env["DOCSYNC_DB_DIR"]
    if env.get("QDRANT_URL"):
        query["qdrant_url"] = env["QDRANT_URL"]
    if env.get("QDRANT_PORT"):
        query["qdrant_port"] = env["QDRANT_PORT"]
    if query:
        layer["query"] = query
    return layer


def _deep_merge(
    base: Mapping[str, Any],
    overlay: Mapping[str, Any],
) -> dict[str, Any]:
    """Recursively merge ``overlay`` into ``base`` returning a new dict."""

    merged: dict[str, Any] = dict(base)
    for key, value in overlay.items():
        if (
            key in merged
            and isinstance(merged[key], MappingABC)
            and isinstance(value, MappingABC)
        ):
            merged[key] = _deep_merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def _format_validation_error(exc: ValidationError) -> str:
    parts = []
    for error in exc.errors():
        location = ".".join(str(item) for item in error.get("loc", ()))
        message = error.get("msg", "invalid value")
        parts.append(f"{location}: {message}" if location else message)
    return "; ".join(parts)


def load_config(
    *,
    defaults: Mapping[str, Any],
    user_config: Mapping[str, Any] | None = None,
    env_config: Mapping[str, Any] | None = None,
    cli_overrides: Mapping[str, Any] | None = None,
) -> AppConfig:
    """Load configuration according to the precedence stack.

    Args:
        defaults: Packaged defaults shipped with the application.
        user_config: Parsed user ``docsync.toml`` content.
        env_config: Settings derived from environment variables.
        cli_overrides: Settings supplied via CLI flags.

    Raises:
        ConfigurationError: If the merged payload fails validation.
    """

    stack = dict(defaults)
    for layer in (user_config, env_config, cli_overrides):
        if layer:
            stack = _deep_merge(stack, layer)

    try:
        return AppConfig(**stack)
    except ValidationError as exc:
        raise ConfigurationError(
            f"Invalid configuration: {_format_validation_error(exc)}"
        ) from exc


def load_app_config(
    path: str | Path | None = None,
    *,
    environ: Mapping[str, str] | None = None,
    cli_overrides: Mapping[str, Any] | None = None,
) -> AppConfig:
    """Load packaged defaults, the user file, env vars and CLI overrides."""

    user_config = load_config_file(path) if path is not None else None
    return load_config(
        defaults=load_packaged_defaults(),
        user_config=user_config,
        env_config=env_overrides(environ),
        cli_overrides=cli_overrides,
    )


# ---------------------------------------------------------------------------
# Rendering
# ---------------------------------------------------------------------------


def _render_source(source: SourceConfig) -> tomlkit.items.Table:
    entry = tomlkit.table()
    payload = source.model_dump(
        mode="json",
        exclude_none=True,
        exclude_defaults=True,
        exclude={"database_config"},
    )
    entry["type"] = source.type.value
    entry["product_name"] = source.product_name
    entry["version"] = source.version
    for key, value in payload.items():
        if key not in entry:
            entry[key] = value

    database = tomlkit.table()
    database["type"] = source.database_config.type.value
    params = source.database_config.params.model_dump(
        mode="json",
        exclude_none=True,
    )
    if params:
        params_table = tomlkit.table()
        for key, value in params.items():
            params_table[key] = value
        database["params"] = params_table
    entry["database_config"] = database
    return entry


def render_config_template(
    config: AppConfig,
    *,
    include_comments: bool = True,
) -> str:
    """Render a ``docsync.toml`` file for users to customize."""

    document = tomlkit.document()
    if include_comments:
        document.add(tomlkit.comment("Generated by docsync init"))
        document.add(
            tomlkit.comment(
                "Precedence: CLI flags > env vars > docsync.toml > defaults"
            )
        )
        document.add(tomlkit.comment("Environment overrides:"))
        document.add(tomlkit.comment("  DOCSYNC_LOG_LEVEL=info"))
        document.add(tomlkit.comment("  EMBEDDING_MODEL=text-embedding-3-large"))
        document.add(tomlkit.comment("  OPENAI_API_KEY / QDRANT_API_KEY"))
        document.add(tomlkit.nl())

    document["log_level"] = config.log_level
    if config.log_dir is not None:
        document["log_dir"] = str(config.log_dir)

    embedding = tomlkit.table()
    for key, value in config.embedding.model_dump(
        mode="json",
        exclude_none=True,
    ).items():
        embedding[key] = value
    document["embedding"] = embedding

    query = tomlkit.table()
    for key, value in config.query.model_dump(
        mode="json",
        exclude_none=True,
    ).items():
        query[key] = value
    document["query"] = query

    if config.sources:
        sources = tomlkit.aot()
        for source in config.sources:
            sources.append(_render_source(source))
        document["sources"] = sources

    return tomlkit.dumps(document)


def starter_config(root: Path) -> AppConfig:
    """Return a config with a single local directory source under ``root``."""

    source = SourceConfig(
        type=SourceType.LOCAL_DIRECTORY,
        product_name="docs",
        version="latest",
        path=root,
        include_extensions=(".md", ".txt"),
    )
    return load_config(
        defaults=load_packaged_defaults(),
        cli_overrides={"sources": [source]},
    )


__all__ = [
    "AppConfig",
    "DatabaseConfig",
    "DatabaseKind",
    "DatabaseParams",
    "DEFAULT_QDRANT_URL",
    "DEFAULTS_RESOURCE_NAME",
    "EmbeddingSettings",
    "QuerySettings",
    "SourceConfig",
    "SourceType",
    "collection_name_for",
    "db_filename_for",
    "env_overrides",
    "load_app_config",
    "load_config",
    "load_config_file",
    "load_packaged_defaults",
    "read_packaged_defaults_text",
    "render_config_template",
    "starter_config",
]
