from __future__ import annotations

from pathlib import Path

import pytest

pytest.importorskip("sqlite_vec")

from docsync.core.errors import StoreError  # noqa: E402
from docsync.models import build_document  # noqa: E402
from docsync.store import PathScope  # noqa: E402
from docsync.store.sqlite import VEC_TABLE, SqliteVecStore  # noqa: E402

DIMENSIONS = 8


@pytest.fixture
def store(tmp_path: Path, recording_logger):
    try:
        store = SqliteVecStore.open(
            tmp_path / "nested" / "index.db",
            logger=recording_logger,
            dimensions=DIMENSIONS,
        )
    except StoreError as exc:
        pytest.skip(f"sqlite extensions unavailable: {exc}")
    store.init_schema()
    yield store
    store.close()


def _document(url: str, *contents: str):
    return build_document(
        url=url,
        segments=[(text, ("Guide", f"Part {index}")) for index, text in enumerate(contents)],
        product_name="acme",
        version="1.0",
    )


def _index(store: SqliteVecStore, document, vector_for) -> None:
    for chunk in document.chunks:
        assert store.upsert_chunk(
            chunk, vector_for(chunk.content, DIMENSIONS), chunk.metadata.hash
        )


def test_open_creates_parent_directories(store: SqliteVecStore) -> None:
    assert store.path is not None
    assert store.path.exists()


def test_init_schema_is_idempotent(store: SqliteVecStore) -> None:
    store.init_schema()
    store.init_schema()

    assert store.get_stored_urls_by_prefix("") == []


def test_upsert_and_hash_lookups(store: SqliteVecStore, vector_for) -> None:
    document = _document("https://site/docs/a", "alpha", "beta")
    _index(store, document, vector_for)

    first = document.chunks[0]
    assert store.get_chunk_hash(first.chunk_id) == first.metadata.hash
    assert store.get_chunk_hash("missing") is None
    assert store.get_hashes_for_url(document.url) == sorted(
        chunk.metadata.hash for chunk in document.chunks
    )


def test_upsert_replaces_existing_chunk(store: SqliteVecStore, vector_for) -> None:
    original = _document("https://site/docs/a", "alpha")
    changed = _document("https://site/docs/a", "alpha v2")
    _index(store, original, vector_for)
    _index(store, changed, vector_for)

    chunk = changed.chunks[0]
    rows = store._conn.execute(
        f"SELECT content FROM {VEC_TABLE} WHERE chunk_id = ?",
        (chunk.chunk_id,),
    ).fetchall()
    assert [row["content"] for row in rows] == ["alpha v2"]
    assert store.get_chunk_hash(chunk.chunk_id) == chunk.metadata.hash
    assert "store-chunk-updated" in store.logger.names("debug")


def test_prune_document_keeps_listed_ids(store: SqliteVecStore, vector_for) -> None:
    document = _document("https://site/docs/a", "one", "two", "three")
    _index(store, document, vector_for)

    keep = {document.chunks[0].chunk_id}
    assert store.prune_document(document.url, keep) == 2
    assert store.get_hashes_for_url(document.url) == [document.chunks[0].metadata.hash]


def test_delete_obsolete_limits_to_scope(store: SqliteVecStore, vector_for) -> None:
    for url in ("https://site/docs/a", "https://site/docs/b", "https://site/blog/c"):
        _index(store, _document(url, f"text of {url}"), vector_for)

    deleted = store.delete_obsolete({"https://site/docs/a"}, "https://site/docs/")

    assert deleted == 1
    assert store.get_stored_urls_by_prefix("https://site/") == [
        "https://site/blog/c",
        "https://site/docs/a",
    ]


def test_delete_obsolete_files(store: SqliteVecStore, vector_for) -> None:
    scope = PathScope("repo", "https://github.com/acme/api/blob/main")
    for path in ("repo/keep.py", "repo/gone.py"):
        _index(store, _document(scope.url_for(path), path), vector_for)

    assert store.delete_obsolete_files(["repo/keep.py"], scope) == 1
    assert store.get_stored_urls_by_prefix(scope.url_prefix) == [
        "https://github.com/acme/api/blob/main/keep.py"
    ]


def test_delete_by_url_returns_count(store: SqliteVecStore, vector_for) -> None:
    document = _document("https://site/docs/a", "x", "y")
    _index(store, document, vector_for)

    assert store.delete_by_url(document.url) == 2
    assert store.delete_by_url(document.url) == 0


def test_metadata_round_trip(store: SqliteVecStore) -> None:
    assert store.get_metadata("last_run_repo") is None
    assert store.get_metadata("last_run_repo", "never") == "never"

    store.set_metadata("last_run_repo", "2026-01-01T00:00:00+00:00")
    store.set_metadata("last_run_repo", "2026-02-01T00:00:00+00:00")

    assert store.get_metadata("last_run_repo") == "2026-02-01T00:00:00+00:00"


def test_wrong_dimension_is_logged_not_raised(store: SqliteVecStore) -> None:
    chunk = _document("https://site/docs/a", "text").chunks[0]

    assert store.upsert_chunk(chunk, [0.1, 0.2], chunk.metadata.hash) is False
    assert "store-upsert-failed" in store.logger.names("error")


def test_reads_before_schema_return_defaults(tmp_path: Path, recording_logger) -> None:
    try:
        store = SqliteVecStore.open(
            tmp_path / "empty.db", logger=recording_logger, dimensions=DIMENSIONS
        )
    except StoreError as exc:
        pytest.skip(f"sqlite extensions unavailable: {exc}")
    try:
        assert store.get_hashes_for_url("https://site") == []
        assert store.get_metadata("key", "fallback") == "fallback"
        assert store.delete_by_url("https://site") == 0
    finally:
        store.close()


def test_hashes_for_url_keep_repeated_content(store: SqliteVecStore, vector_for) -> None:
    document = _document("https://site/docs/a", "b", "a", "b")
    _index(store, document, vector_for)

    hashes = store.get_hashes_for_url(document.url)

    assert len(hashes) == 3
    assert hashes == sorted(hashes)
    assert hashes.count(document.chunks[0].metadata.hash) == 2


@pytest.mark.parametrize(
    ("root", "prefix", "processed"),
    [
        ("project/src", None, ["project/src/keep.py"]),
        ("./project/src", None, ["./project/src/keep.py"]),
        (".", None, ["project/src/keep.py"]),
        ("./", None, ["./project/src/keep.py"]),
        ("project/src", "https://example.com/src", ["project/src/keep.py"]),
        ("./project/src/", "https://example.com/src/", ["project/src/keep.py"]),
    ],
)
def test_delete_obsolete_files_path_spellings(
    store: SqliteVecStore, vector_for, root, prefix, processed
) -> None:
    scope = PathScope(root, prefix)
    urls = [scope.url_for(path) for path in ("project/src/keep.py", "project/src/gone.py")]
    for url in urls:
        _index(store, _document(url, url), vector_for)

    assert store.delete_obsolete_files(processed, scope) == 1
    assert store.get_stored_urls_by_prefix("") == [urls[0]]


def test_refresh_chunk_totals_rewrites_only_stale_rows(
    store: SqliteVecStore, vector_for
) -> None:
    _index(store, _document("https://site/docs/a", "one", "two"), vector_for)
    grown = _document("https://site/docs/a", "one", "two", "three")
    added = grown.chunks[2]
    store.upsert_chunk(added, vector_for(added.content, DIMENSIONS), added.metadata.hash)

    assert store.refresh_chunk_totals(grown.url, 3) == 2
    rows = store._conn.execute(
        f"SELECT total_chunks FROM {VEC_TABLE} WHERE url = ?", (grown.url,)
    ).fetchall()
    assert [row["total_chunks"] for row in rows] == [3, 3, 3]
    assert store.refresh_chunk_totals(grown.url, 3) == 0
