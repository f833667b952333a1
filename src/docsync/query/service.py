"""Search and document retrieval over indexed sources."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum
import os
from pathlib import Path
from typing import Callable, Sequence

from qdrant_client import QdrantClient

from docsync.core.config import (
    DatabaseKind,
    QuerySettings,
    collection_name_for,
    db_filename_for,
)
from docsync.core.errors import QueryValidationError, StoreError
from docsync.core.logging import Logger
from docsync.models import QueryResult
from docsync.store import BackendKind
from docsync.store.sqlite import connect

from .backends import (
    QdrantQueryBackend,
    QueryBackend,
    SearchFilters,
    SqliteQueryBackend,
    sort_by_chunk_index,
)
from .filters import filter_results_by_url, filter_results_with_content
from .format import render_chunks, render_results

__all__ = [
    "BackendFactory",
    "QueryEmbedder",
    "QueryResponse",
    "QueryService",
    "QueryTarget",
    "ResponseKind",
    "open_query_backend",
    "resolve_target",
]

QueryEmbedder = Callable[[str], Sequence[float] | None]

FETCH_MULTIPLIER = 3


class ResponseKind(StrEnum):
    RESULTS = "results"
    EMPTY = "empty"
    EMPTY_CONTENT = "empty-content"
    INVALID = "invalid"
    ERROR = "error"


@dataclass(frozen=True, slots=True)
class QueryResponse:
    """Results plus the plain-text message shown to the caller."""

    kind: ResponseKind
    message: str
    results: tuple[QueryResult, ...] = field(default_factory=tuple)

    @property
    def ok(self) -> bool:
        return self.kind is ResponseKind.RESULTS

    def render(self) -> str:
        return self.message


@dataclass(frozen=True, slots=True)
class QueryTarget:
    """A resolved index location.

    ``location`` is a database file path for sqlite and a collection name
    for Qdrant.
    """

    kind: BackendKind
    location: str
    label: str


BackendFactory = Callable[[QueryTarget], QueryBackend]


def _describe(
    *,
    product_name: str | None,
    version: str | None,
    db_name: str | None,
    repo: str | None = None,
) -> str:
    if repo:
        return f'repo "{repo}"'
    if product_name:
        if version:
            return f'product "{product_name}" (version {version})'
        return f'product "{product_name}"'
    return f'db "{db_name}"'


def resolve_target(
    settings: QuerySettings,
    *,
    product_name: str | None = None,
    version: str | None = None,
    db_name: str | None = None,
    repo: str | None = None,
) -> QueryTarget:
    """Pick the index a query runs against.

    Raises:
        QueryValidationError: If neither ``product_name`` nor ``db_name``
            was given.

    Example:
        >>> settings = QuerySettings(db_dir=Path("/srv/indexes"))
        >>> resolve_target(settings, db_name="acme").location
        '/srv/indexes/acme.db'
        >>> resolve_target(settings, product_name="Acme", version="2").location
        '/srv/indexes/Acme-2.db'
    """

    product_name = (product_name or "").strip() or None
    db_name = (db_name or "").strip() or None
    if not product_name and not db_name:
        raise QueryValidationError("product_name or db_name is required")

    label = _describe(
        product_name=product_name,
        version=version,
        db_name=db_name,
        repo=repo,
    )
    if settings.backend is DatabaseKind.QDRANT:
        if db_name:
            collection = db_name
        else:
            collection = collection_name_for(product_name or "", version)
        return QueryTarget(BackendKind.QDRANT, collection, label)

    if db_name:
        filename = db_name if db_name.endswith(".db") else f"{db_name}.db"
        path = Path(filename)
        if not path.is_absolute():
            path = settings.db_dir / path
    else:
        path = settings.db_dir / db_filename_for(product_name or "", version)
    return QueryTarget(BackendKind.SQLITE, str(path.expanduser()), label)


def open_query_backend(
    target: QueryTarget,
    *,
    settings: QuerySettings,
    logger: Logger,
) -> QueryBackend:
    """Open the backend for ``target``.

    Raises:
        StoreError: If the embedded database file does not exist.
    """

    if target.kind is BackendKind.QDRANT:
        client = QdrantClient(
            url=settings.qdrant_url,
            port=settings.qdrant_port or 6333,
            api_key=os.environ.get("QDRANT_API_KEY") or None,
        )
        return QdrantQueryBackend(client, target.location, logger=logger)

    if not Path(target.location).is_file():
        raise StoreError(f"Index database not found: {target.location}")
    return SqliteQueryBackend(connect(target.location), logger=logger)


class QueryService:
    """Answer search and document requests with plain-text responses.

    Every public method returns a :class:`QueryResponse`; validation and
    backend problems become diagnostic messages rather than exceptions.
    """

    def __init__(
        self,
        embed_query: QueryEmbedder,
        *,
        settings: QuerySettings,
        logger: Logger,
        backend_factory: BackendFactory | None = None,
    ) -> None:
        self._embed = embed_query
        self.settings = settings
        self.logger = logger
        self._backend_factory = backend_factory or (
            lambda target: open_query_backend(
                target,
                settings=self.settings,
                logger=self.logger,
            )
        )

    # ------------------------------------------------------------------#
    # Public operations
    # ------------------------------------------------------------------#
    def search_documents(
        self,
        query: str,
        *,
        product_name: str | None = None,
        version: str | None = None,
        db_name: str | None = None,
        url_prefix: str | None = None,
        limit: int | None = None,
    ) -> QueryResponse:
        return self._search(
            "search_documents",
            query,
            noun="documentation",
            product_name=product_name,
            version=version,
            db_name=db_name,
            url_prefix=url_prefix,
            limit=limit,
        )

    def search_code(
        self,
        query: str,
        *,
        product_name: str | None = None,
        version: str | None = None,
        db_name: str | None = None,
        repo: str | None = None,
        branch: str | None = None,
        url_prefix: str | None = None,
        extensions: Sequence[str] = (),
        limit: int | None = None,
    ) -> QueryResponse:
        return self._search(
            "search_code",
            query,
            noun="code",
            product_name=product_name,
            version=version,
            db_name=db_name,
            repo=repo,
            branch=branch,
            url_prefix=url_prefix,
            extensions=extensions,
            limit=limit,
        )

    def get_chunks(
        self,
        url: str,
        *,
        product_name: str | None = None,
        version: str | None = None,
        db_name: str | None = None,
        start: int | None = None,
        end: int | None = None,
    ) -> QueryResponse:
        """Return every chunk of ``url`` in reading order.

        ``start`` and ``end`` bound an inclusive window over 0-based chunk
        positions.
        """

        operation = "get_chunks"
        if not url.strip():
            return self._invalid(f"Provide a document url for {operation}.")
        if start is not None and end is not None and start > end:
            return self._invalid(
                f"Invalid chunk range for {operation}: start {start} > end {end}."
            )
        try:
            target = resolve_target(
                self.settings,
                product_name=product_name,
                version=version,
                db_name=db_name,
            )
        except QueryValidationError:
            return self._missing_identifier(operation)

        filters = SearchFilters(product_name=product_name, version=version)
        try:
            backend = self._backend_factory(target)
        except Exception as exc:
            return self._error(operation, target, exc)
        try:
            chunks = sort_by_chunk_index(
                backend.document_chunks(url, filters=filters, start=start, end=end)
            )
        except Exception as exc:
            return self._error(operation, target, exc)
        finally:
            backend.close()

        if not chunks:
            return QueryResponse(
                ResponseKind.EMPTY,
                f'No chunks found for "{url}" in {target.label}.',
            )
        header = f'Found {len(chunks)} chunks of "{url}" in {target.label}:'
        return QueryResponse(
            ResponseKind.RESULTS,
            f"{header}\n\n{render_chunks(chunks)}",
            tuple(chunks),
        )

    # ------------------------------------------------------------------#
    # Internal helpers
    # ------------------------------------------------------------------#
    def _search(
        self,
        operation: str,
        query: str,
        *,
        noun: str,
        product_name: str | None,
        version: str | None,
        db_name: str | None,
        repo: str | None = None,
        branch: str | None = None,
        url_prefix: str | None = None,
        extensions: Sequence[str] = (),
        limit: int | None,
    ) -> QueryResponse:
        if not query.strip():
            return self._invalid(f"Provide a non-empty query for {operation}.")
        limit = limit or self.settings.default_limit
        if limit < 1:
            return self._invalid(f"limit must be positive for {operation}.")
        try:
            target = resolve_target(
                self.settings,
                product_name=product_name,
                version=version,
                db_name=db_name,
                repo=repo,
            )
        except QueryValidationError:
            return self._missing_identifier(operation)

        vector = self._embed(query)
        if not vector:
            self.logger.warning("query-embedding-failed", operation=operation)
            return QueryResponse(
                ResponseKind.ERROR,
                f'Unable to embed the query "{query}"; try again later.',
            )

        has_post_filters = bool(url_prefix or extensions)
        fetch_limit = limit * FETCH_MULTIPLIER if has_post_filters else limit
        filters = SearchFilters(
            product_name=product_name,
            version=version,
            branch=branch,
            repo=repo,
        )
        try:
            backend = self._backend_factory(target)
        except Exception as exc:
            return self._error(operation, target, exc)
        try:
            candidates = backend.search(vector, limit=fetch_limit, filters=filters)
        except Exception as exc:
            return self._error(operation, target, exc)
        finally:
            backend.close()

        with_content = filter_results_with_content(candidates)
        if candidates and not with_content:
            self.logger.warning(
                "query-empty-content",
                operation=operation,
                target=target.location,
                matches=len(candidates),
            )
            return QueryResponse(
                ResponseKind.EMPTY_CONTENT,
                f"Found {len(candidates)} vector matches in {target.label}, but all "
                "matching chunks have empty content. Re-ingest this database to "
                "populate content fields.",
            )

        results = filter_results_by_url(with_content, url_prefix, extensions)[:limit]
        self.logger.info(
            "query-complete",
            operation=operation,
            target=target.location,
            candidates=len(candidates),
            results=len(results),
        )
        if not results:
            return QueryResponse(
                ResponseKind.EMPTY,
                f'No relevant {noun} found for "{query}" in {target.label}.',
            )
        header = (
            f"Found {len(results)} relevant {noun} snippets for "
            f'"{query}" in {target.label}:'
        )
        return QueryResponse(
            ResponseKind.RESULTS,
            f"{header}\n\n{render_results(results)}",
            tuple(results),
        )

    def _invalid(self, message: str) -> QueryResponse:
        return QueryResponse(ResponseKind.INVALID, message)

    def _missing_identifier(self, operation: str) -> QueryResponse:
        return self._invalid(f"Provide either product_name or db_name for {operation}.")

    def _error(
        self,
        operation: str,
        target: QueryTarget,
        exc: Exception,
    ) -> QueryResponse:
        self.logger.error(
            "query-failed",
            operation=operation,
            target=target.location,
            error=str(exc),
        )
        return QueryResponse(
            ResponseKind.ERROR,
            f"Error running {operation} against {target.label}: {exc}",
        )
