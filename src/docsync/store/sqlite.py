"""Embedded index backend built on the sqlite-vec ``vec0`` virtual table."""

from __future__ import annotations

from dataclasses import dataclass
import json
import os
from pathlib import Path
import sqlite3
from typing import AbstractSet, Any, Iterable, Sequence

import numpy as np
import sqlite_vec

from docsync.core.errors import StoreError
from docsync.core.logging import Logger
from docsync.models import EMBEDDING_DIMENSIONS, Chunk

from . import BackendKind
from .scope import PathScope, select_obsolete_files, select_obsolete_urls

__all__ = [
    "METADATA_TABLE",
    "SchemaCache",
    "SqliteVecStore",
    "VEC_TABLE",
    "connect",
    "serialize_embedding",
]

VEC_TABLE = "vec_items"
METADATA_TABLE = "vec_metadata"

_CREATE_METADATA_SQL = f"""
CREATE TABLE IF NOT EXISTS {METADATA_TABLE} (
    key TEXT PRIMARY KEY,
    value TEXT
)
"""

_UPSERT_METADATA_SQL = f"""
INSERT INTO {METADATA_TABLE} (key, value) VALUES (?, ?)
ON CONFLICT(key) DO UPDATE SET value = excluded.value
"""


def _create_vec_table_sql(dimensions: int) -> str:
    # vec0 metadata columns take no constraints; chunk_id uniqueness is
    # enforced by SqliteVecStore.upsert_chunk.
    return f"""
CREATE VIRTUAL TABLE IF NOT EXISTS {VEC_TABLE} USING vec0(
    embedding FLOAT[{dimensions}],
    product_name TEXT,
    version TEXT,
    branch TEXT,
    repo TEXT,
    heading_hierarchy TEXT,
    section TEXT,
    chunk_id TEXT,
    content TEXT,
    url TEXT,
    hash TEXT,
    chunk_index INTEGER,
    total_chunks INTEGER
)
"""


def serialize_embedding(embedding: Sequence[float]) -> bytes:
    """Return ``embedding`` as the little-endian float32 blob vec0 expects."""

    return np.asarray(embedding, dtype="<f4").tobytes()


def connect(path: str | os.PathLike[str]) -> sqlite3.Connection:
    """Open ``path`` with the sqlite-vec extension loaded.

    Raises:
        StoreError: If the file cannot be opened or the extension loaded.
    """

    try:
        connection = sqlite3.connect(os.fspath(path))
    except sqlite3.Error as exc:
        raise StoreError(f"Unable to open index database {path}: {exc}") from exc
    try:
        connection.enable_load_extension(True)
        sqlite_vec.load(connection)
        connection.enable_load_extension(False)
    except (AttributeError, sqlite3.Error) as exc:
        connection.close()
        raise StoreError(
            f"Unable to load sqlite-vec for {path}: {exc}"
        ) from exc
    connection.row_factory = sqlite3.Row
    return connection


@dataclass(slots=True)
class SchemaCache:
    """Column introspection memoized per connection."""

    columns: frozenset[str] | None = None

    @property
    def has_branch(self) -> bool:
        return self.columns is not None and "branch" in self.columns

    @property
    def has_repo(self) -> bool:
        return self.columns is not None and "repo" in self.columns

    def reset(self) -> None:
        self.columns = None


class SqliteVecStore:
    """Index store persisted in a single sqlite file."""

    kind = BackendKind.SQLITE

    def __init__(
        self,
        connection: sqlite3.Connection,
        *,
        logger: Logger,
        dimensions: int = EMBEDDING_DIMENSIONS,
        path: Path | None = None,
    ) -> None:
        self._conn = connection
        self._dimensions = dimensions
        self._schema = SchemaCache()
        self.path = path
        self.logger = logger

    @classmethod
    def open(
        cls,
        path: str | os.PathLike[str],
        *,
        logger: Logger,
        dimensions: int = EMBEDDING_DIMENSIONS,
    ) -> "SqliteVecStore":
        db_path = Path(path).expanduser()
        if db_path.parent and not db_path.parent.exists():
            db_path.parent.mkdir(parents=True, exist_ok=True)
        connection = connect(db_path)
        logger.debug("sqlite-store-opened", path=str(db_path))
        return cls(
            connection,
            logger=logger,
            dimensions=dimensions,
            path=db_path,
        )

    @property
    def schema(self) -> SchemaCache:
        return self._schema

    # ------------------------------------------------------------------#
    # Schema
    # ------------------------------------------------------------------#
    def init_schema(self) -> None:
        try:
            with self._conn:
                self._conn.execute(_create_vec_table_sql(self._dimensions))
                self._conn.execute(_CREATE_METADATA_SQL)
        except sqlite3.Error as exc:
            self.logger.error("store-init-failed", error=str(exc))
            return
        self._schema.reset()

    def _columns(self) -> frozenset[str]:
        if self._schema.columns is None:
            rows = self._conn.execute(f"PRAGMA table_info({VEC_TABLE})").fetchall()
            columns = frozenset(row["name"] for row in rows)
            if not columns:
                return columns
            self._schema.columns = columns
        return self._schema.columns

    # ------------------------------------------------------------------#
    # Writes
    # ------------------------------------------------------------------#
    def _row_values(
        self,
        chunk: Chunk,
        content_hash: str,
        columns: AbstractSet[str],
    ) -> dict[str, Any]:
        meta = chunk.metadata
        values: dict[str, Any] = {
            "product_name": meta.product_name,
            "version": meta.version,
            "heading_hierarchy": json.dumps(list(meta.heading_hierarchy)),
            "section": meta.section or "",
            "chunk_id": meta.chunk_id,
            "content": chunk.content,
            "url": meta.url,
            "hash": content_hash,
            "chunk_index": int(meta.chunk_index),
            "total_chunks": int(meta.total_chunks),
        }
        # Older index files predate these columns.
        if "branch" in columns:
            values["branch"] = meta.branch or ""
        if "repo" in columns:
            values["repo"] = meta.repo or ""
        return values

    def upsert_chunk(
        self,
        chunk: Chunk,
        embedding: Sequence[float],
        content_hash: str,
    ) -> bool:
        chunk_id = chunk.chunk_id
        try:
            values = self._row_values(chunk, content_hash, self._columns())
            names = ["embedding", *values]
            placeholders = ", ".join("?" for _ in names)
            params = [serialize_embedding(embedding), *values.values()]
            with self._conn:
                # vec0 ignores duplicate keys on insert, so replace explicitly.
                existing = [
                    row[0]
                    for row in self._conn.execute(
                        f"SELECT rowid FROM {VEC_TABLE} WHERE chunk_id = ?",
                        (chunk_id,),
                    )
                ]
                for rowid in existing:
                    self._conn.execute(
                        f"DELETE FROM {VEC_TABLE} WHERE rowid = ?",
                        (rowid,),
                    )
                self._conn.execute(
                    f"INSERT INTO {VEC_TABLE} ({', '.join(names)}) "
                    f"VALUES ({placeholders})",
                    params,
                )
        except (sqlite3.Error, ValueError) as exc:
            self.logger.error(
                "store-upsert-failed",
                chunk_id=chunk_id,
                url=chunk.url,
                error=str(exc),
            )
            return False

        self.logger.debug(
            "store-chunk-updated" if existing else "store-chunk-inserted",
            chunk_id=chunk_id,
            url=chunk.url,
            chunk_index=chunk.metadata.chunk_index,
        )
        return True

    def _delete_rowids(self, rowids: Iterable[int]) -> int:
        deleted = 0
        with self._conn:
            for rowid in rowids:
                self._conn.execute(
                    f"DELETE FROM {VEC_TABLE} WHERE rowid = ?",
                    (rowid,),
                )
                deleted += 1
        return deleted

    def delete_by_url(self, url: str) -> int:
        try:
            rowids = [
                row[0]
                for row in self._conn.execute(
                    f"SELECT rowid FROM {VEC_TABLE} WHERE url = ?",
                    (url,),
                )
            ]
            deleted = self._delete_rowids(rowids)
        except sqlite3.Error as exc:
            self.logger.error("store-delete-failed", url=url, error=str(exc))
            return 0
        if deleted:
            self.logger.info("store-url-deleted", url=url, chunks=deleted)
        return deleted

    def prune_document(self, url: str, keep_chunk_ids: AbstractSet[str]) -> int:
        try:
            rowids = [
                row[0]
                for row in self._conn.execute(
                    f"SELECT rowid, chunk_id FROM {VEC_TABLE} WHERE url = ?",
                    (url,),
                )
                if row["chunk_id"] not in keep_chunk_ids
            ]
            deleted = self._delete_rowids(rowids)
        except sqlite3.Error as exc:
            self.logger.error("store-prune-failed", url=url, error=str(exc))
            return 0
        if deleted:
            self.logger.debug("store-document-pruned", url=url, chunks=deleted)
        return deleted

    def refresh_chunk_totals(self, url: str, total_chunks: int) -> int:
        try:
            rowids = [
                row[0]
                for row in self._conn.execute(
                    f"SELECT rowid, total_chunks FROM {VEC_TABLE} WHERE url = ?",
                    (url,),
                )
                if row["total_chunks"] != total_chunks
            ]
            with self._conn:
                for rowid in rowids:
                    self._conn.execute(
                        f"UPDATE {VEC_TABLE} SET total_chunks = ? WHERE rowid = ?",
                        (total_chunks, rowid),
                    )
        except sqlite3.Error as exc:
            self.logger.warning("store-totals-refresh-failed", url=url, error=str(exc))
            return 0
        if rowids:
            self.logger.debug(
                "store-totals-refreshed", url=url, chunks=len(rowids), total=total_chunks
            )
        return len(rowids)

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
            row = self._conn.execute(
                f"SELECT hash FROM {VEC_TABLE} WHERE chunk_id = ? LIMIT 1",
                (chunk_id,),
            ).fetchone()
        except sqlite3.Error as exc:
            self.logger.warning(
                "store-lookup-failed",
                chunk_id=chunk_id,
                error=str(exc),
            )
            return None
        return row["hash"] if row is not None else None

    def get_hashes_for_url(self, url: str) -> list[str]:
        try:
            rows = self._conn.execute(
                f"SELECT hash FROM {VEC_TABLE} WHERE url = ?",
                (url,),
            ).fetchall()
        except sqlite3.Error as exc:
            self.logger.warning("store-lookup-failed", url=url, error=str(exc))
            return []
        return sorted(row["hash"] for row in rows if row["hash"] is not None)

    def get_stored_urls_by_prefix(self, prefix: str) -> list[str]:
        try:
            rows = self._conn.execute(
                f"SELECT DISTINCT url FROM {VEC_TABLE}"
            ).fetchall()
        except sqlite3.Error as exc:
            self.logger.warning(
                "store-lookup-failed",
                prefix=prefix,
                error=str(exc),
            )
            return []
        return sorted(
            row["url"]
            for row in rows
            if row["url"] is not None and row["url"].startswith(prefix)
        )

    # ------------------------------------------------------------------#
    # Bookkeeping
    # ------------------------------------------------------------------#
    def get_metadata(self, key: str, default: str | None = None) -> str | None:
        try:
            row = self._conn.execute(
                f"SELECT value FROM {METADATA_TABLE} WHERE key = ?",
                (key,),
            ).fetchone()
        except sqlite3.Error as exc:
            self.logger.warning("store-metadata-read-failed", key=key, error=str(exc))
            return default
        if row is None or row["value"] is None:
            return default
        return row["value"]

    def set_metadata(self, key: str, value: str) -> None:
        try:
            with self._conn:
                self._conn.execute(_UPSERT_METADATA_SQL, (key, value))
        except sqlite3.Error as exc:
            self.logger.error("store-metadata-write-failed", key=key, error=str(exc))
            return
        self.logger.debug("store-metadata-set", key=key, value=value)

    def close(self) -> None:
        try:
            self._conn.close()
        except sqlite3.Error as exc:  # pragma: no cover - close is best effort
            self.logger.warning("store-close-failed", error=str(exc))
