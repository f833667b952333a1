"""Query layer: nearest-neighbour search and whole-document retrieval."""

from __future__ import annotations

from .backends import (
    QdrantQueryBackend,
    QueryBackend,
    SearchFilters,
    SqliteQueryBackend,
    sort_by_chunk_index,
)
from .filters import filter_results_by_url, filter_results_with_content
from .format import render_chunks, render_results
from .service import (
    QueryResponse,
    QueryService,
    QueryTarget,
    ResponseKind,
    open_query_backend,
    resolve_target,
)

__all__ = [
    "QdrantQueryBackend",
    "QueryBackend",
    "QueryResponse",
    "QueryService",
    "QueryTarget",
    "ResponseKind",
    "SearchFilters",
    "SqliteQueryBackend",
    "filter_results_by_url",
    "filter_results_with_content",
    "open_query_backend",
    "render_chunks",
    "render_results",
    "resolve_target",
    "sort_by_chunk_index",
]
