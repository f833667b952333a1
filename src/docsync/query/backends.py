"""Read paths over the embedded and remote indexes."""

from __future__ import annotations

from dataclasses import dataclass
import json
import sqlite3
from typing import Any, Mapping, Protocol, Sequence

from qdrant_client import QdrantClient
from qdrant_client import models

from docsync.core.errors import SchemaCompatibilityError
from docsync.core.logging import Logger
from docsync.models import QueryResult
from docsync.store import BackendKind
from docsync.store.qdrant import SCROLL_PAGE_SIZE, content_filter
from docsync.store.sqlite import VEC_TABLE, serialize_embedding

__all__ = [
    "QdrantQueryBackend",
    "QueryBackend",
    "SearchFilters",
    "SqliteQueryBackend",
    "sort_by_chunk_index",
]

_FULL_COLUMNS = (
    "chunk_id",
    "content",
    "url",
    "section",
    "heading_hierarchy",
    "chunk_index",
    "total_chunks",
)
_REDUCED_COLUMNS = ("chunk_id", "content", "url", "section", "heading_hierarchy")


@dataclass(frozen=True, slots=True)
class SearchFilters:
    """Equality filters applied inside the nearest-neighbour search."""

    product_name: str | None = None
    version: str | None = None
    branch: str | None = None
    repo: str | None = None

    def items(self) -> list[tuple[str, str]]:
        pairs = (
            ("product_name", self.product_name),
            ("version", self.version),
            ("branch", self.branch),
            ("repo", self.repo),
        )
        return [(key, value) for key, value in pairs if value]


class QueryBackend(Protocol):
    kind: BackendKind

    def search(
        self,
        vector: Sequence[float],
        *,
        limit: int,
        filters: SearchFilters,
    ) -> list[QueryResult]:
        """Return the ``limit`` nearest chunks, closest first."""

    def document_chunks(
        self,
        url: str,
        *,
        filters: SearchFilters,
        start: int | None = None,
        end: int | None = None,
    ) -> list[QueryResult]:
        """Return every stored chunk of ``url`` in reading order."""

    def close(self) -> None:
        """Release the underlying connection."""


def sort_by_chunk_index(results: Sequence[QueryResult]) -> list[QueryResult]:
    """Order chunks by position; chunks without one keep their relative order."""

    return sorted(
        results,
        key=lambda result: (
            result.chunk_index is None,
            result.chunk_index if result.chunk_index is not None else 0,
        ),
    )


def _parse_hierarchy(raw: Any) -> tuple[str, ...]:
    if isinstance(raw, (list, tuple)):
        return tuple(str(item) for item in raw)
    if isinstance(raw, str) and raw:
        try:
            decoded = json.loads(raw)
        except json.JSONDecodeError:
            return (raw,)
        if isinstance(decoded, list):
            return tuple(str(item) for item in decoded)
    return ()


def _optional_int(value: Any) -> int | None:
    if value is None:
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def _result_from_mapping(
    data: Mapping[str, Any],
    *,
    distance: float | None = None,
) -> QueryResult:
    return QueryResult(
        content=data.get("content") or "",
        url=data.get("url") or "",
        section=data.get("section") or "",
        distance=distance,
        chunk_index=_optional_int(data.get("chunk_index")),
        total_chunks=_optional_int(data.get("total_chunks")),
        heading_hierarchy=_parse_hierarchy(data.get("heading_hierarchy")),
    )


def _missing_column(exc: sqlite3.Error) -> bool:
    return "no such column" in str(exc).lower()


# ---------------------------------------------------------------------------
# sqlite-vec
# ---------------------------------------------------------------------------


class SqliteQueryBackend:
    """Query a ``vec_items`` table through an open sqlite-vec connection."""

    kind = BackendKind.SQLITE

    def __init__(self, connection: sqlite3.Connection, *, logger: Logger) -> None:
        self._conn = connection
        self.logger = logger

    def search(
        self,
        vector: Sequence[float],
        *,
        limit: int,
        filters: SearchFilters,
    ) -> list[QueryResult]:
        blob = serialize_embedding(vector)

        def knn(columns: Sequence[str], pairs: list[tuple[str, str]]) -> list[sqlite3.Row]:
            clauses = ["embedding MATCH ?", "k = ?"]
            params: list[Any] = [blob, limit]
            for column, value in pairs:
                clauses.append(f"{column} = ?")
                params.append(value)
            return self._select(columns, " AND ".join(clauses), params, extra=", distance")

        try:
            rows = knn(_FULL_COLUMNS, filters.items())
        except sqlite3.OperationalError as exc:
            if not _missing_column(exc):
                raise
            self._log_compat(exc, operation="search")
            # Older files have no branch or repo columns to filter on.
            legacy = [
                (key, value)
                for key, value in filters.items()
                if key in ("product_name", "version")
            ]
            rows = knn(_REDUCED_COLUMNS, legacy)
        return [
            _result_from_mapping(dict(row), distance=float(row["distance"]))
            for row in rows
        ]

    def document_chunks(
        self,
        url: str,
        *,
        filters: SearchFilters,
        start: int | None = None,
        end: int | None = None,
    ) -> list[QueryResult]:
        clauses = ["url = ?"]
        params: list[Any] = [url]
        for column, value in filters.items():
            clauses.append(f"{column} = ?")
            params.append(value)
        range_clauses = list(clauses)
        range_params = list(params)
        if start is not None:
            range_clauses.append("chunk_index >= ?")
            range_params.append(start)
        if end is not None:
            range_clauses.append("chunk_index <= ?")
            range_params.append(end)
        try:
            rows = self._select(
                _FULL_COLUMNS,
                " AND ".join(range_clauses),
                range_params,
            )
        except sqlite3.OperationalError as exc:
            if not _missing_column(exc):
                raise
            # Chunk positions are unknown here, so the window cannot apply.
            self._log_compat(exc, operation="document_chunks")
            rows = self._select(_REDUCED_COLUMNS, " AND ".join(clauses), params)
        return sort_by_chunk_index([_result_from_mapping(dict(row)) for row in rows])

    def _select(
        self,
        columns: Sequence[str],
        where: str,
        params: Sequence[Any],
        *,
        extra: str = "",
    ) -> list[sqlite3.Row]:
        sql = f"SELECT {', '.join(columns)}{extra} FROM {VEC_TABLE} WHERE {where}"
        if extra:
            sql += " ORDER BY distance"
        return self._conn.execute(sql, list(params)).fetchall()

    def _log_compat(self, exc: sqlite3.Error, *, operation: str) -> None:
        error = SchemaCompatibilityError(
            f"{VEC_TABLE} predates a queried column; using reduced projection",
            column=str(exc),
        )
        self.logger.warning(
            "query-schema-fallback",
            operation=operation,
            error=str(error),
            column=error.column,
        )

    def close(self) -> None:
        self._conn.close()


# ---------------------------------------------------------------------------
# Qdrant
# ---------------------------------------------------------------------------


def _match(key: str, value: Any) -> models.FieldCondition:
    return models.FieldCondition(key=key, match=models.MatchValue(value=value))


class QdrantQueryBackend:
    """Query one Qdrant collection."""

    kind = BackendKind.QDRANT

    def __init__(
        self,
        client: QdrantClient,
        collection_name: str,
        *,
        logger: Logger,
        page_size: int = SCROLL_PAGE_SIZE,
    ) -> None:
        self._client = client
        self.collection_name = collection_name
        self._page_size = page_size
        self.logger = logger

    def search(
        self,
        vector: Sequence[float],
        *,
        limit: int,
        filters: SearchFilters,
    ) -> list[QueryResult]:
        conditions = [_match(key, value) for key, value in filters.items()]
        response = self._client.query_points(
            collection_name=self.collection_name,
            query=[float(value) for value in vector],
            query_filter=content_filter(*conditions),
            limit=limit,
            with_payload=True,
        )
        return [
            _result_from_mapping(point.payload or {}, distance=float(point.score))
            for point in response.points
        ]

    def document_chunks(
        self,
        url: str,
        *,
        filters: SearchFilters,
        start: int | None = None,
        end: int | None = None,
    ) -> list[QueryResult]:
        conditions: list[models.Condition] = [_match("url", url)]
        conditions.extend(_match(key, value) for key, value in filters.items())
        if start is not None or end is not None:
            conditions.append(
                models.FieldCondition(
                    key="chunk_index",
                    range=models.Range(gte=start, lte=end),
                )
            )
        scroll_filter = content_filter(*conditions)

        results: list[QueryResult] = []
        offset: Any = None
        while True:
            records, offset = self._client.scroll(
                collection_name=self.collection_name,
                scroll_filter=scroll_filter,
                limit=self._page_size,
                offset=offset,
                with_payload=True,
                with_vectors=False,
            )
            results.extend(_result_from_mapping(record.payload or {}) for record in records)
            if offset is None:
                break
        # Scroll order follows point ids, not document position.
        return sort_by_chunk_index(results)

    def close(self) -> None:
        self._client.close()
