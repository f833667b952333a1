from __future__ import annotations

from pathlib import Path

import pytest

from docsync.core.config import DatabaseKind, QuerySettings
from docsync.core.errors import StoreError
from docsync.models import QueryResult
from docsync.query import (
    QueryService,
    ResponseKind,
    SearchFilters,
    open_query_backend,
    resolve_target,
)
from docsync.store import BackendKind


class _FakeBackend:
    kind = BackendKind.SQLITE

    def __init__(self, results=(), chunks=(), error: Exception | None = None):
        self.results = list(results)
        self.chunks = list(chunks)
        self.error = error
        self.searches: list[tuple[int, SearchFilters]] = []
        self.chunk_requests: list[tuple[str, int | None, int | None]] = []
        self.closed = False

    def search(self, vector, *, limit, filters):
        if self.error:
            raise self.error
        self.searches.append((limit, filters))
        return self.results[:limit]

    def document_chunks(self, url, *, filters, start=None, end=None):
        self.chunk_requests.append((url, start, end))
        return list(self.chunks)

    def close(self) -> None:
        self.closed = True


def _service(backend: _FakeBackend, *, embed=lambda text: [0.1, 0.2], **settings):
    targets = []

    def factory(target):
        targets.append(target)
        return backend

    service = QueryService(
        embed,
        settings=QuerySettings(db_dir=Path("/idx"), **settings),
        logger=_NullLogger(),
        backend_factory=factory,
    )
    return service, targets


class _NullLogger:
    def bind(self, **_):
        return self

    def debug(self, *_, **__):
        pass

    info = warning = error = debug


def _hit(content: str, url: str, index: int = 0, total: int = 1, distance: float = 0.5):
    return QueryResult(
        content,
        url,
        section="Intro",
        distance=distance,
        chunk_index=index,
        total_chunks=total,
    )


def test_search_documents_renders_results() -> None:
    backend = _FakeBackend([_hit("alpha", "https://site/a")])
    service, targets = _service(backend)

    response = service.search_documents("alpha?", product_name="acme", version="1.0")

    assert response.kind is ResponseKind.RESULTS
    assert response.message.startswith(
        'Found 1 relevant documentation snippets for "alpha?" in '
        'product "acme" (version 1.0):'
    )
    assert "  Content: alpha" in response.render()
    assert targets[0].location == "/idx/acme-1.0.db"
    assert backend.searches == [
        (4, SearchFilters(product_name="acme", version="1.0"))
    ]
    assert backend.closed


def test_missing_identifier_is_invalid() -> None:
    service, targets = _service(_FakeBackend())

    response = service.search_documents("query")

    assert response.kind is ResponseKind.INVALID
    assert response.message == (
        "Provide either product_name or db_name for search_documents."
    )
    assert targets == []


def test_blank_query_is_invalid() -> None:
    service, _ = _service(_FakeBackend())

    assert service.search_code("  ", db_name="x").kind is ResponseKind.INVALID


def test_embedding_failure_is_an_error() -> None:
    service, targets = _service(_FakeBackend(), embed=lambda text: None)

    response = service.search_documents("q", db_name="acme")

    assert response.kind is ResponseKind.ERROR
    assert "Unable to embed" in response.message
    assert targets == []


def test_no_results_message() -> None:
    service, _ = _service(_FakeBackend())

    response = service.search_documents("nothing", db_name="acme")

    assert response.kind is ResponseKind.EMPTY
    assert response.message == 'No relevant documentation found for "nothing" in db "acme".'


def test_all_empty_content_reports_reingest_hint() -> None:
    backend = _FakeBackend([_hit("", "u1"), _hit("  ", "u2")])
    service, _ = _service(backend)

    response = service.search_documents("q", db_name="acme")

    assert response.kind is ResponseKind.EMPTY_CONTENT
    assert response.message.startswith('Found 2 vector matches in db "acme"')
    assert "Re-ingest" in response.message


def test_code_search_overfetches_when_filtering_by_url() -> None:
    results = [
        _hit("a", "https://github.com/acme/api/blob/main/docs/a.md", distance=0.1),
        _hit("b", "https://github.com/acme/api/blob/main/src/b.py", distance=0.2),
        _hit("c", "https://github.com/acme/api/blob/main/src/c.py", distance=0.3),
        _hit("d", "https://github.com/acme/api/blob/main/src/d.py", distance=0.4),
    ]
    backend = _FakeBackend(results)
    service, targets = _service(backend)

    response = service.search_code(
        "handler",
        product_name="api",
        repo="acme/api",
        branch="main",
        extensions=["py"],
        limit=2,
    )

    assert [result.content for result in response.results] == ["b", "c"]
    assert backend.searches[0] == (
        6,
        SearchFilters(product_name="api", repo="acme/api", branch="main"),
    )
    assert 'in repo "acme/api"' in response.message
    assert "relevant code snippets" in response.message


def test_limit_without_post_filters_is_not_multiplied() -> None:
    backend = _FakeBackend([_hit("a", "u")])
    service, _ = _service(backend)

    service.search_documents("q", db_name="acme", limit=7)

    assert backend.searches[0][0] == 7


def test_backend_errors_become_error_responses() -> None:
    backend = _FakeBackend(error=RuntimeError("disk I/O error"))
    service, _ = _service(backend)

    response = service.search_documents("q", db_name="acme")

    assert response.kind is ResponseKind.ERROR
    assert "disk I/O error" in response.message
    assert backend.closed


def test_get_chunks_orders_by_position() -> None:
    chunks = [
        _hit("third", "https://site/a", index=2, total=3),
        _hit("first", "https://site/a", index=0, total=3),
        _hit("second", "https://site/a", index=1, total=3),
    ]
    backend = _FakeBackend(chunks=chunks)
    service, _ = _service(backend)

    response = service.get_chunks("https://site/a", product_name="acme", version="1.0")

    assert [chunk.content for chunk in response.results] == ["first", "second", "third"]
    assert response.message.startswith(
        'Found 3 chunks of "https://site/a" in product "acme" (version 1.0):'
    )
    assert "Chunk 1 of 3:" in response.message


def test_get_chunks_passes_window_and_validates_it() -> None:
    backend = _FakeBackend(chunks=[_hit("x", "u", index=1, total=3)])
    service, _ = _service(backend)

    service.get_chunks("u", db_name="acme", start=1, end=2)
    invalid = service.get_chunks("u", db_name="acme", start=3, end=1)

    assert backend.chunk_requests == [("u", 1, 2)]
    assert invalid.kind is ResponseKind.INVALID


def test_get_chunks_without_matches() -> None:
    service, _ = _service(_FakeBackend())

    response = service.get_chunks("https://site/none", db_name="acme")

    assert response.kind is ResponseKind.EMPTY
    assert response.message == 'No chunks found for "https://site/none" in db "acme".'


@pytest.mark.parametrize(
    ("kwargs", "expected"),
    [
        ({"db_name": "acme"}, "/idx/acme.db"),
        ({"db_name": "acme.db"}, "/idx/acme.db"),
        ({"db_name": "/abs/x.db"}, "/abs/x.db"),
        ({"product_name": "My Docs", "version": "2"}, "/idx/My_Docs-2.db"),
    ],
)
def test_resolve_sqlite_targets(kwargs, expected) -> None:
    target = resolve_target(QuerySettings(db_dir=Path("/idx")), **kwargs)

    assert target.kind is BackendKind.SQLITE
    assert target.location == expected


def test_resolve_qdrant_targets() -> None:
    settings = QuerySettings(backend=DatabaseKind.QDRANT)

    assert resolve_target(settings, product_name="My Docs", version="2").location == (
        "my_docs_2"
    )
    assert resolve_target(settings, db_name="custom").location == "custom"


def test_missing_database_file_is_reported(tmp_path: Path) -> None:
    settings = QuerySettings(db_dir=tmp_path)
    target = resolve_target(settings, db_name="absent")

    with pytest.raises(StoreError, match="Index database not found"):
        open_query_backend(target, settings=settings, logger=_NullLogger())
