"""Index store contract shared by the embedded and remote backends."""

from __future__ import annotations

from enum import StrEnum
import os
from typing import TYPE_CHECKING, AbstractSet, Iterable, Protocol, Sequence, runtime_checkable

from docsync.core.config import DatabaseKind, SourceConfig
from docsync.core.logging import Logger
from docsync.models import EMBEDDING_DIMENSIONS, Chunk

from .scope import PathScope

if TYPE_CHECKING:  # pragma: no cover - type checker imports only
    from qdrant_client import QdrantClient

__all__ = [
    "BackendKind",
    "IndexStore",
    "PathScope",
    "open_index_store",
]


class BackendKind(StrEnum):
    """Discriminator carried by every store implementation."""

    SQLITE = "sqlite"
    QDRANT = "qdrant"


@runtime_checkable
class IndexStore(Protocol):
    """Operations the sync engine and query layer rely on.

    Mutating operations never raise: backend failures are logged and the
    call returns a neutral default so one bad write cannot abort a run.
    """

    kind: BackendKind

    def init_schema(self) -> None:
        """Create tables or collections; safe to call repeatedly."""

    def upsert_chunk(
        self,
        chunk: Chunk,
        embedding: Sequence[float],
        content_hash: str,
    ) -> bool:
        """Insert or update the record keyed by ``chunk.chunk_id``."""

    def get_chunk_hash(self, chunk_id: str) -> str | None:
        """Return the stored content hash for ``chunk_id``."""

    def get_hashes_for_url(self, url: str) -> list[str]:
        """Return the sorted hashes of every chunk stored under ``url``."""

    def get_stored_urls_by_prefix(self, prefix: str) -> list[str]:
        """Return distinct content urls starting with ``prefix``."""

    def delete_by_url(self, url: str) -> int:
        """Delete every chunk stored under ``url``."""

    def prune_document(self, url: str, keep_chunk_ids: AbstractSet[str]) -> int:
        """Delete chunks of ``url`` whose ids are not in ``keep_chunk_ids``."""

    def refresh_chunk_totals(self, url: str, total_chunks: int) -> int:
        """Rewrite ``total_chunks`` on stored chunks of ``url`` that disagree."""

    def delete_obsolete(self, visited: AbstractSet[str], scope_prefix: str) -> int:
        """Delete unvisited urls starting with ``scope_prefix``."""

    def delete_obsolete_files(
        self,
        processed: Iterable[str | os.PathLike[str]],
        scope: PathScope,
    ) -> int:
        """Delete files in ``scope`` that were not processed this pass."""

    def get_metadata(self, key: str, default: str | None = None) -> str | None:
        """Return a bookkeeping value."""

    def set_metadata(self, key: str, value: str) -> None:
        """Insert or replace a bookkeeping value."""

    def close(self) -> None:
        """Release the backend connection."""


def _build_qdrant_client(source: SourceConfig) -> "QdrantClient":
    from qdrant_client import QdrantClient

    from docsync.core.config import DEFAULT_QDRANT_URL

    params = source.database_config.params
    return QdrantClient(
        url=params.qdrant_url or DEFAULT_QDRANT_URL,
        port=params.qdrant_port or 6333,
        api_key=os.environ.get("QDRANT_API_KEY") or None,
    )


def open_index_store(
    source: SourceConfig,
    *,
    logger: Logger,
    dimensions: int = EMBEDDING_DIMENSIONS,
    qdrant_client: "QdrantClient | None" = None,
) -> IndexStore:
    """Open the backend selected by ``source.database_config``.

    Raises:
        StoreError: If the embedded index file cannot be opened.
    """

    kind = source.database_config.type
    if kind is DatabaseKind.QDRANT:
        from .qdrant import QdrantStore

        client = qdrant_client or _build_qdrant_client(source)
        return QdrantStore(
            client,
            source.resolved_collection_name(),
            logger=logger.bind(backend=BackendKind.QDRANT.value),
            dimensions=dimensions,
        )

    from .sqlite import SqliteVecStore

    return SqliteVecStore.open(
        source.resolved_db_path(),
        logger=logger.bind(backend=BackendKind.SQLITE.value),
        dimensions=dimensions,
    )
