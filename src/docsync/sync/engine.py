"""Hash-gated synchronization of content providers into an index store."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from enum import StrEnum
import os
import posixpath
from typing import Callable, Iterable, Protocol, Sequence

from docsync.core.errors import DiffError, SyncError
from docsync.core.logging import Logger
from docsync.embeddings import EmbeddingVector
from docsync.hashing import code_sha_key
from docsync.models import SourceDocument
from docsync.sources import CodeSource
from docsync.store import IndexStore, PathScope

from .diff import DiffChanges, DiffProvider, GitDiffProvider, parse_name_status

__all__ = [
    "Embedder",
    "SyncEngine",
    "SyncMode",
    "SyncStats",
]


class Embedder(Protocol):
    """Anything that turns ordered texts into ordered vectors."""

    def embed(self, texts: Sequence[str]) -> list[EmbeddingVector]:
        """Return one vector per text, or ``[]`` on failure."""


class SyncMode(StrEnum):
    """How a pass selected its documents."""

    FULL = "full"
    INCREMENTAL = "incremental"
    UP_TO_DATE = "up-to-date"


@dataclass(slots=True)
class SyncStats:
    """Counters collected over one pass of a source."""

    mode: SyncMode = SyncMode.FULL
    documents: int = 0
    skipped: int = 0
    embedded: int = 0
    unchanged_chunks: int = 0
    failed: int = 0
    deleted: int = 0

    def as_dict(self) -> dict[str, int | str]:
        return {
            "mode": str(self.mode),
            "documents": self.documents,
            "skipped": self.skipped,
            "embedded": self.embedded,
            "unchanged_chunks": self.unchanged_chunks,
            "failed": self.failed,
            "deleted": self.deleted,
        }


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class SyncEngine:
    """Drive documents into an :class:`IndexStore`, embedding only new content.

    Every chunk's dedup decision is made after the previous chunk's write
    has returned. Watermarks are written last, once deletions are done, so
    an interrupted pass is simply repeated from the old baseline.
    """

    def __init__(
        self,
        store: IndexStore,
        embedder: Embedder,
        *,
        logger: Logger,
        now: Callable[[], datetime] = _utcnow,
        diff_provider: DiffProvider | None = None,
    ) -> None:
        self.store = store
        self.embedder = embedder
        self.logger = logger
        self._now = now
        self._diff = diff_provider or GitDiffProvider()

    # ------------------------------------------------------------------#
    # Documents
    # ------------------------------------------------------------------#
    def process_document(self, document: SourceDocument, stats: SyncStats) -> bool:
        """Index one document; return ``False`` when it could not be written."""

        stats.documents += 1
        chunks = [chunk.hashed() for chunk in document.chunks]
        new_hashes = sorted(chunk.metadata.hash for chunk in chunks)
        stored_hashes = self.store.get_hashes_for_url(document.url)
        if new_hashes == stored_hashes:
            stats.skipped += 1
            stats.unchanged_chunks += len(chunks)
            self.logger.debug("sync-document-unchanged", url=document.url)
            return True

        pending = [
            chunk
            for chunk in chunks
            if self.store.get_chunk_hash(chunk.chunk_id) != chunk.metadata.hash
        ]
        stats.unchanged_chunks += len(chunks) - len(pending)

        if pending:
            vectors = self.embedder.embed([chunk.content for chunk in pending])
            if not vectors:
                stats.failed += 1
                self.logger.warning(
                    "sync-document-embedding-failed",
                    url=document.url,
                    chunks=len(pending),
                )
                return False
            for chunk, vector in zip(pending, vectors):
                if not self.store.upsert_chunk(chunk, vector, chunk.metadata.hash):
                    stats.failed += 1
                    return False
                stats.embedded += 1

        stats.deleted += self.store.prune_document(
            document.url,
            {chunk.chunk_id for chunk in chunks},
        )
        if stored_hashes and len(stored_hashes) != len(chunks):
            # Unchanged chunks still carry the previous document length.
            self.store.refresh_chunk_totals(document.url, len(chunks))
        self.logger.info(
            "sync-document-indexed",
            url=document.url,
            chunks=len(chunks),
            embedded=len(pending),
        )
        return True

    def _process_all(
        self,
        documents: Iterable[SourceDocument],
        stats: SyncStats,
        *,
        label: str,
    ) -> tuple[set[str], list[str]]:
        visited: set[str] = set()
        processed_paths: list[str] = []
        iterator = iter(documents)
        while True:
            try:
                document = next(iterator)
            except StopIteration:
                break
            except Exception as exc:
                self.logger.error("sync-provider-failed", source=label, error=str(exc))
                raise SyncError(f"{label}: content provider failed: {exc}") from exc

            visited.add(document.url)
            if document.path is not None:
                processed_paths.append(os.fspath(document.path))
            try:
                self.process_document(document, stats)
            except Exception as exc:
                stats.failed += 1
                self.logger.error(
                    "sync-document-failed",
                    url=document.url,
                    error=str(exc),
                )
        return visited, processed_paths

    # ------------------------------------------------------------------#
    # Full rescan
    # ------------------------------------------------------------------#
    def sync_documents(
        self,
        documents: Iterable[SourceDocument],
        *,
        label: str,
        scope_prefix: str | None = None,
        path_scope: PathScope | None = None,
        watermark_key: str | None = None,
    ) -> SyncStats:
        """Index every document and delete what this pass did not produce.

        ``path_scope`` selects file-keyed obsolescence; otherwise
        ``scope_prefix`` bounds the url-keyed deletion. With neither, no
        deletion happens.
        """

        stats = SyncStats(mode=SyncMode.FULL)
        self.logger.info("sync-pass-start", source=label, mode=stats.mode)
        visited, processed_paths = self._process_all(documents, stats, label=label)

        if path_scope is not None:
            stats.deleted += self.store.delete_obsolete_files(
                processed_paths,
                path_scope,
            )
        elif scope_prefix:
            stats.deleted += self.store.delete_obsolete(visited, scope_prefix)

        if watermark_key:
            self.store.set_metadata(watermark_key, self._now().isoformat())
        self.logger.info("sync-pass-complete", source=label, **stats.as_dict())
        return stats

    # ------------------------------------------------------------------#
    # Code sources
    # ------------------------------------------------------------------#
    def _changes_since(self, provider: CodeSource, since: str) -> DiffChanges | None:
        try:
            output = self._diff.name_status(provider.root, since)
        except DiffError as exc:
            self.logger.warning("sync-diff-failed", since=since, error=str(exc))
            return None
        changes = parse_name_status(output, provider.scope.normalized_root)
        if changes.is_empty:
            self.logger.info("sync-diff-empty", since=since)
            return None
        return changes

    def sync_code(self, provider: CodeSource, *, force_full: bool = False) -> SyncStats:
        """Index a code checkout, diffing against the last indexed commit."""

        label = provider.source.name
        key = code_sha_key(provider.repo, provider.branch)
        try:
            head = self._diff.head(provider.root)
        except DiffError as exc:
            self.logger.warning("sync-head-unavailable", source=label, error=str(exc))
            head = None

        last_sha = None if force_full else self.store.get_metadata(key)
        if head is not None and last_sha == head:
            self.logger.info("sync-code-up-to-date", source=label, sha=head)
            return SyncStats(mode=SyncMode.UP_TO_DATE)

        changes = None
        if last_sha and head is not None:
            changes = self._changes_since(provider, last_sha)

        if changes is None:
            self.logger.info(
                "sync-code-full-rescan",
                source=label,
                previous=last_sha,
                head=head,
            )
            stats = self.sync_documents(
                provider.iter_documents(),
                label=label,
                path_scope=provider.scope,
            )
        else:
            stats = self._sync_changes(provider, changes, label=label)

        if head is not None and stats.failed == 0:
            self.store.set_metadata(key, head)
        elif head is not None:
            self.logger.warning(
                "sync-code-watermark-held",
                source=label,
                failed=stats.failed,
                previous=last_sha,
            )
        return stats

    def _sync_changes(
        self,
        provider: CodeSource,
        changes: DiffChanges,
        *,
        label: str,
    ) -> SyncStats:
        stats = SyncStats(mode=SyncMode.INCREMENTAL)
        self.logger.info(
            "sync-pass-start",
            source=label,
            mode=stats.mode,
            changed=len(changes.changed_files),
            deleted=len(changes.deleted_paths),
        )
        self._process_all(
            provider.iter_documents(only=changes.changed_files),
            stats,
            label=label,
        )
        root = provider.scope.normalized_root
        for relative in changes.deleted_paths:
            url = provider.scope.url_for(posixpath.join(root, relative))
            stats.deleted += self.store.delete_by_url(url)
        self.logger.info("sync-pass-complete", source=label, **stats.as_dict())
        return stats

    # ------------------------------------------------------------------#
    # Maintenance
    # ------------------------------------------------------------------#
    def purge_url(self, url: str) -> int:
        """Remove every chunk indexed under ``url``."""

        deleted = self.store.delete_by_url(url)
        self.logger.info("sync-url-purged", url=url, chunks=deleted)
        return deleted
