"""Remote index backend on a Qdrant collection."""

from __future__ import annotations

import os
from typing import AbstractSet, Any, Iterable, Iterator, Sequence

from qdrant_client import QdrantClient
from qdrant_client import models

from docsync.core.logging import Logger
from docsync.models import EMBEDDING_DIMENSIONS, Chunk

from . import BackendKind
from .ids import metadata_point_id, point_id_for
from .scope import PathScope, select_obsolete_files, select_obsolete_urls

__all__ = [
    "QdrantStore",
    "SCROLL_PAGE_SIZE",
    "content_filter",
]

SCROLL_PAGE_SIZE = 1000
_INDEXED_FIELDS = ("url", "chunk_id", "is_metadata")


def _match(key: str, value: Any) -> models.FieldCondition:
    return models.FieldCondition(key=key, match=models.MatchValue(value=value))


def content_filter(*conditions: models.Condition) -> models.Filter:
    """Return a filter over content points, excluding bookkeeping points."""

    return models.Filter(
        must=list(conditions) or None,
        must_not=[_match("is_metadata", True)],
    )


def _placeholder_vector(dimensions: int) -> list[float]:
    # Cosine collections normalize on write; a zero vector has no norm.
    return [1.0] + [0.0] * (dimensions - 1)


def _is_conflict(exc: Exception) -> bool:
    status = getattr(exc, "status_code", None)
    text = str(exc).lower()
    return status == 409 or "already exists" in text or "conflict" in text


class QdrantStore:
    """Index store backed by one named Qdrant collection.

    Bookkeeping entries live in the same collection as points flagged with
    ``is_metadata`` so a collection stays self-contained.
    """

    kind = BackendKind.QDRANT

    def __init__(
        self,
        client: QdrantClient,
        collection_name: str,
        *,
        logger: Logger,
        dimensions: int = EMBEDDING_DIMENSIONS,
        page_size: int = SCROLL_PAGE_SIZE,
    ) -> None:
        self._client = client
        self.collection_name = collection_name
        self._dimensions = dimensions
        self._page_size = page_size
        self.logger = logger.bind(collection=collection_name)

    @property
    def client(self) -> QdrantClient:
        return self._client

    # ------------------------------------------------------------------#
    # Schema
    # ------------------------------------------------------------------#
    def init_schema(self) -> None:
        name = self.collection_name
        try:
            if self._client.collection_exists(name):
                self.logger.debug("qdrant-collection-exists")
                return
            self._client.create_collection(
                collection_name=name,
                vectors_config=models.VectorParams(
                    size=self._dimensions,
                    distance=models.Distance.COSINE,
                ),
            )
            for field_name in _INDEXED_FIELDS:
                schema = (
                    models.PayloadSchemaType.BOOL
                    if field_name == "is_metadata"
                    else models.PayloadSchemaType.KEYWORD
                )
                self._client.create_payload_index(
                    collection_name=name,
                    field_name=field_name,
                    field_schema=schema,
                )
        except Exception as exc:
            if _is_conflict(exc):
                self.logger.info("qdrant-collection-exists", detail=str(exc))
                return
            self.logger.error("store-init-failed", error=str(exc))
            return
        self.logger.info(
            "qdrant-collection-created",
            dimensions=self._dimensions,
        )

    # ------------------------------------------------------------------#
    # Internal helpers
    # ------------------------------------------------------------------#
    def _scroll(
        self,
        scroll_filter: models.Filter,
        *,
        payload_fields: Sequence[str] | bool = True,
    ) -> Iterator[models.Record]:
        with_payload: bool | list[str]
        if isinstance(payload_fields, bool):
            with_payload = payload_fields
        else:
            with_payload = list(payload_fields)
        offset: Any = None
        while True:
            records, offset = self._client.scroll(
                collection_name=self.collection_name,
                scroll_filter=scroll_filter,
                limit=self._page_size,
                offset=offset,
                with_payload=with_payload,
                with_vectors=False,
            )
            yield from records
            if offset is None:
                break

    def _delete_ids(self, ids: Sequence[Any]) -> None:
        if not ids:
            return
        self._client.delete(
            collection_name=self.collection_name,
            points_selector=models.PointIdsList(points=list(ids)),
            wait=True,
        )

    # ------------------------------------------------------------------#
    # Writes
    # ------------------------------------------------------------------#
    def _payload(self, chunk: Chunk, content_hash: str) -> dict[str, Any]:
        meta = chunk.metadata
        return {
            "content": chunk.content,
            "product_name": meta.product_name,
            "version": meta.version,
            "branch": meta.branch or "",
            "repo": meta.repo or "",
            "heading_hierarchy": list(meta.heading_hierarchy),
            "section": meta.section or "",
            "chunk_id": meta.chunk_id,
            "url": meta.url,
            "hash": content_hash,
            "chunk_index": int(meta.chunk_index),
            "total_chunks": int(meta.total_chunks),
            "is_metadata": False,
        }

    def upsert_chunk(
        self,
        chunk: Chunk,
        embedding: Sequence[float],
        content_hash: str,
    ) -> bool:
        point_id = point_id_for(chunk.chunk_id)
        try:
            self._client.upsert(
                collection_name=self.collection_name,
                points=[
                    models.PointStruct(
                        id=point_id,
                        vector=[float(value) for value in embedding],
                        payload=self._payload(chunk, content_hash),
                    )
                ],
                wait=True,
            )
        except Exception as exc:
            self.logger.error(
                "store-upsert-failed",
                chunk_id=chunk.chunk_id,
                point_id=point_id,
                url=chunk.url,
                error=str(exc),
            )
            return False
        self.logger.debug(
            "store-chunk-upserted",
            chunk_id=chunk.chunk_id,
            point_id=point_id,
            url=chunk.url,
        )
        return True

    def delete_by_url(self, url: str) -> int:
        try:
            ids = [record.id for record in self._scroll(
                content_filter(_match("url", url)),
                payload_fields=False,
            )]
            self._delete_ids(ids)
        except Exception as exc:
            self.logger.error("store-delete-failed", url=url, error=str(exc))
            return 0
        if ids:
            self.logger.info("store-url-deleted", url=url, chunks=len(ids))
        return len(ids)

    def prune_document(self, url: str, keep_chunk_ids: AbstractSet[str]) -> int:
        try:
            ids = [
                record.id
                for record in self._scroll(
                    content_filter(_match("url", url)),
                    payload_fields=["chunk_id"],
                )
                if (record.payload or {}).get("chunk_id") not in keep_chunk_ids
            ]
            self._delete_ids(ids)
        except Exception as exc:
            self.logger.error("store-prune-failed", url=url, error=str(exc))
            return 0
        if ids:
            self.logger.debug("store-document-pruned", url=url, chunks=len(ids))
        return len(ids)

    def refresh_chunk_totals(self, url: str, total_chunks: int) -> int:
        try:
            ids = [
                record.id
                for record in self._scroll(
                    content_filter(_match("url", url)),
                    payload_fields=["total_chunks"],
                )
                if (record.payload or {}).get("total_chunks") != total_chunks
            ]
            if ids:
                self._client.set_payload(
                    collection_name=self.collection_name,
                    payload={"total_chunks": total_chunks},
                    points=models.PointIdsList(points=ids),
                    wait=True,
                )
        except Exception as exc:
            self.logger.warning("store-totals-refresh-failed", url=url, error=str(exc))
            return 0
        if ids:
            self.logger.debug(
                "store-totals-refreshed", url=url, chunks=len(ids), total=total_chunks
            )
        return len(ids)

    def delete_obsolete(self, visited: AbstractSet[str], scope_prefix: str) -> int:
        stored = self.get_stored_urls_by_prefix(scope_prefix)
        obsolete = select_obsolete_urls(stored, visited, scope_prefix)
        deleted = sum(self.delete_by_url(url) for url in obsolete)
        self.logger.info(
            "store-obsolete-deleted",
            scope=scope_prefix,
            stored_urls=len(stored),
            obsolete_urls=len(obsolete),
            chunks=deleted,
        )
        return deleted

    def delete_obsolete_files(
        self,
        processed: Iterable[str | os.PathLike[str]],
        scope: PathScope,
    ) -> int:
        stored = self.get_stored_urls_by_prefix(scope.url_prefix)
        obsolete = select_obsolete_files(stored, processed, scope)
        deleted = sum(self.delete_by_url(url) for url in obsolete)
        self.logger.info(
            "store-obsolete-files-deleted",
            scope=scope.url_prefix,
            stored_urls=len(stored),
            obsolete_urls=len(obsolete),
            chunks=deleted,
        )
        return deleted

    # ------------------------------------------------------------------#
    # Reads
    # ------------------------------------------------------------------#
    def get_chunk_hash(self, chunk_id: str) -> str | None:
        try:
            records, _ = self._client.scroll(
                collection_name=self.collection_name,
                scroll_filter=content_filter(_match("chunk_id", chunk_id)),
                limit=1,
                with_payload=["hash"],
                with_vectors=False,
            )
        except Exception as exc:
            self.logger.warning(
                "store-lookup-failed",
                chunk_id=chunk_id,
                error=str(exc),
            )
            return None
        if not records:
            return None
        return (records[0].payload or {}).get("hash")

    def get_hashes_for_url(self, url: str) -> list[str]:
        try:
            hashes = [
                (record.payload or {}).get("hash")
                for record in self._scroll(
                    content_filter(_match("url", url)),
                    payload_fields=["hash"],
                )
            ]
        except Exception as exc:
            self.logger.warning("store-lookup-failed", url=url, error=str(exc))
            return []
        return sorted(value for value in hashes if isinstance(value, str))

    def get_stored_urls_by_prefix(self, prefix: str) -> list[str]:
        # Qdrant has no native prefix match; filter client-side.
        try:
            urls = {
                (record.payload or {}).get("url")
                for record in self._scroll(content_filter(), payload_fields=["url"])
            }
        except Exception as exc:
            self.logger.warning(
                "store-lookup-failed",
                prefix=prefix,
                error=str(exc),
            )
            return []
        return sorted(
            url for url in urls if isinstance(url, str) and url.startswith(prefix)
        )

    # ------------------------------------------------------------------#
    # Bookkeeping
    # ------------------------------------------------------------------#
    def get_metadata(self, key: str, default: str | None = None) -> str | None:
        try:
            records = self._client.retrieve(
                collection_name=self.collection_name,
                ids=[metadata_point_id(key)],
                with_payload=True,
                with_vectors=False,
            )
        except Exception as exc:
            self.logger.warning("store-metadata-read-failed", key=key, error=str(exc))
            return default
        if not records:
            return default
        value = (records[0].payload or {}).get("metadata_value")
        return value if isinstance(value, str) else default

    def set_metadata(self, key: str, value: str) -> None:
        point = models.PointStruct(
            id=metadata_point_id(key),
            vector=_placeholder_vector(self._dimensions),
            payload={
                "metadata_key": key,
                "metadata_value": value,
                "is_metadata": True,
                "content": f"Metadata: {key}",
                "product_name": "system",
                "version": "metadata",
                "url": f"metadata://{key}",
            },
        )
        try:
            self._client.upsert(
                collection_name=self.collection_name,
                points=[point],
                wait=True,
            )
        except Exception as exc:
            self.logger.error("store-metadata-write-failed", key=key, error=str(exc))
            return
        self.logger.debug("store-metadata-set", key=key, value=value)

    def close(self) -> None:
        try:
            self._client.close()
        except Exception as exc:  # pragma: no cover - close is best effort
            self.logger.warning("store-close-failed", error=str(exc))
