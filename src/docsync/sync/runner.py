"""Sequential multi-source sync runs with per-source failure isolation."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Callable, Iterable, Mapping
from urllib.parse import urlsplit

from docsync.core.config import SourceConfig, SourceType
from docsync.core.logging import Logger
from docsync.hashing import last_run_key
from docsync.models import EMBEDDING_DIMENSIONS
from docsync.sources import (
    CodeSource,
    ContentProviderFactory,
    default_content_providers,
)
from docsync.store import IndexStore, PathScope, open_index_store

from .diff import DiffProvider
from .engine import Embedder, SyncEngine, SyncStats

__all__ = [
    "RunReport",
    "SourceFailure",
    "StoreOpener",
    "SyncRunner",
    "website_scope_prefix",
]

StoreOpener = Callable[..., IndexStore]


@dataclass(frozen=True, slots=True)
class SourceFailure:
    source: str
    error: str


@dataclass(slots=True)
class RunReport:
    """Outcome of one run across every selected source."""

    stats: dict[str, SyncStats] = field(default_factory=dict)
    failures: list[SourceFailure] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failures


def website_scope_prefix(url: str) -> str:
    """Return ``scheme://host/path`` of a site's base url.

    Example:
        >>> website_scope_prefix("https://docs.example.com/guide/?page=2#top")
        'https://docs.example.com/guide/'
    """

    parts = urlsplit(url)
    return f"{parts.scheme}://{parts.netloc}{parts.path}"


def _scope_prefix_for(source: SourceConfig) -> str | None:
    if source.type is SourceType.WEBSITE and source.url:
        return website_scope_prefix(source.url)
    if source.type is SourceType.GITHUB and source.repo:
        return f"https://github.com/{source.repo}/"
    return None


class SyncRunner:
    """Run configured sources one after another.

    A failing source is recorded in the :class:`RunReport` and the run moves
    on to the next source. Each store is closed on every exit path.
    """

    def __init__(
        self,
        embedder: Embedder,
        *,
        logger: Logger,
        content_providers: Mapping[SourceType, ContentProviderFactory] | None = None,
        store_opener: StoreOpener = open_index_store,
        diff_provider: DiffProvider | None = None,
        dimensions: int = EMBEDDING_DIMENSIONS,
    ) -> None:
        self.embedder = embedder
        self.logger = logger
        self._providers = dict(
            default_content_providers()
            if content_providers is None
            else content_providers
        )
        self._open_store = store_opener
        self._diff = diff_provider
        self._dimensions = dimensions

    def run(
        self,
        sources: Iterable[SourceConfig],
        *,
        only: str | None = None,
        force_full: bool = False,
    ) -> RunReport:
        report = RunReport()
        for source in sources:
            if only is not None and only not in (source.name, source.product_name):
                continue
            factory = self._providers.get(source.type)
            if factory is None:
                self.logger.warning(
                    "sync-source-unsupported",
                    source=source.name,
                    type=source.type.value,
                )
                report.skipped.append(source.name)
                continue
            try:
                report.stats[source.name] = self._run_source(
                    source,
                    factory,
                    force_full=force_full,
                )
            except Exception as exc:
                self.logger.error("sync-source-failed", source=source.name, error=str(exc))
                report.failures.append(SourceFailure(source.name, str(exc)))
        self.logger.info(
            "sync-run-complete",
            sources=len(report.stats),
            failures=len(report.failures),
            skipped=len(report.skipped),
        )
        return report

    def _run_source(
        self,
        source: SourceConfig,
        factory: ContentProviderFactory,
        *,
        force_full: bool,
    ) -> SyncStats:
        log = self.logger.bind(source=source.name)
        log.info("sync-source-start", backend=source.database_config.type.value)
        provider = factory(source, log)
        store = self._open_store(source, logger=log, dimensions=self._dimensions)
        try:
            store.init_schema()
            engine = SyncEngine(
                store,
                self.embedder,
                logger=log,
                diff_provider=self._diff,
            )
            if isinstance(provider, CodeSource):
                stats = engine.sync_code(provider, force_full=force_full)
            else:
                scope = getattr(provider, "scope", None)
                stats = engine.sync_documents(
                    provider.iter_documents(),
                    label=source.name,
                    scope_prefix=_scope_prefix_for(source),
                    path_scope=scope if isinstance(scope, PathScope) else None,
                    watermark_key=last_run_key(source.watermark_repo),
                )
        finally:
            store.close()
        log.info("sync-source-summary", **stats.as_dict())
        return stats
