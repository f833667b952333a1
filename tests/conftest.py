"""Shared pytest fixtures: in-memory index store, fake embedder, loggers."""

from __future__ import annotations

import hashlib
import os
from collections.abc import Callable
from dataclasses import replace
from pathlib import Path
from typing import AbstractSet, Any, Iterable, Sequence

import pytest
from structlog import get_logger

from docsync.models import Chunk
from docsync.store import BackendKind, PathScope
from docsync.store.scope import select_obsolete_files, select_obsolete_urls

TEST_DIMENSIONS = 8


def deterministic_vector(text: str, dimensions: int = TEST_DIMENSIONS) -> list[float]:
    """Return a stable pseudo-embedding derived from ``text``."""

    digest = hashlib.sha256(text.encode("utf-8")).digest()
    return [(digest[index] + 1) / 256.0 for index in range(dimensions)]


class RecordingLogger:
    """Logger double that records ``(level, event, fields)`` tuples."""

    def __init__(self, events: list[tuple[str, str, dict[str, Any]]] | None = None,
                 **context: Any) -> None:
        self.events = events if events is not None else []
        self.context = context

    def bind(self, **context: Any) -> "RecordingLogger":
        return RecordingLogger(self.events, **{**self.context, **context})

    def _record(self, level: str, event: str, **fields: Any) -> None:
        self.events.append((level, event, {**self.context, **fields}))

    def debug(self, event: str, **fields: Any) -> None:
        self._record("debug", event, **fields)

    def info(self, event: str, **fields: Any) -> None:
        self._record("info", event, **fields)

    def warning(self, event: str, **fields: Any) -> None:
        self._record("warning", event, **fields)

    def error(self, event: str, **fields: Any) -> None:
        self._record("error", event, **fields)

    def names(self, level: str | None = None) -> list[str]:
        return [
            event
            for event_level, event, _ in self.events
            if level is None or event_level == level
        ]


class FakeEmbedder:
    """Embedder double returning deterministic vectors."""

    def __init__(self, *, fail: bool = False, dimensions: int = TEST_DIMENSIONS):
        self.fail = fail
        self.dimensions = dimensions
        self.calls: list[tuple[str, ...]] = []

    def embed(self, texts: Sequence[str]) -> list[list[float]]:
        self.calls.append(tuple(texts))
        if self.fail:
            return []
        return [deterministic_vector(text, self.dimensions) for text in texts]

    @property
    def embedded_texts(self) -> list[str]:
        return [text for call in self.calls for text in call]


class InMemoryStore:
    """Dictionary-backed :class:`docsync.store.IndexStore` double."""

    kind = BackendKind.SQLITE

    def __init__(self) -> None:
        self.records: dict[str, dict[str, Any]] = {}
        self.metadata: dict[str, str] = {}
        self.upserts: list[str] = []
        self.closed = False
        self.schema_inits = 0
        self.fail_upserts: set[str] = set()

    def init_schema(self) -> None:
        self.schema_inits += 1

    def upsert_chunk(
        self,
        chunk: Chunk,
        embedding: Sequence[float],
        content_hash: str,
    ) -> bool:
        if chunk.chunk_id in self.fail_upserts:
            return False
        self.upserts.append(chunk.chunk_id)
        self.records[chunk.chunk_id] = {
            "chunk": chunk,
            "embedding": list(embedding),
            "hash": content_hash,
            "url": chunk.url,
        }
        return True

    def get_chunk_hash(self, chunk_id: str) -> str | None:
        record = self.records.get(chunk_id)
        return record["hash"] if record else None

    def get_hashes_for_url(self, url: str) -> list[str]:
        return sorted(
            record["hash"] for record in self.records.values() if record["url"] == url
        )

    def get_stored_urls_by_prefix(self, prefix: str) -> list[str]:
        return sorted(
            {
                record["url"]
                for record in self.records.values()
                if record["url"].startswith(prefix)
            }
        )

    def delete_by_url(self, url: str) -> int:
        doomed = [key for key, record in self.records.items() if record["url"] == url]
        for key in doomed:
            del self.records[key]
        return len(doomed)

    def prune_document(self, url: str, keep_chunk_ids: AbstractSet[str]) -> int:
        doomed = [
            key
            for key, record in self.records.items()
            if record["url"] == url and key not in keep_chunk_ids
        ]
        for key in doomed:
            del self.records[key]
        return len(doomed)

    def refresh_chunk_totals(self, url: str, total_chunks: int) -> int:
        refreshed = 0
        for record in self.records.values():
            chunk = record["chunk"]
            if record["url"] != url or chunk.metadata.total_chunks == total_chunks:
                continue
            record["chunk"] = replace(
                chunk, metadata=replace(chunk.metadata, total_chunks=total_chunks)
            )
            refreshed += 1
        return refreshed

    def delete_obsolete(self, visited: AbstractSet[str], scope_prefix: str) -> int:
        stored = self.get_stored_urls_by_prefix(scope_prefix)
        return sum(
            self.delete_by_url(url)
            for url in select_obsolete_urls(stored, visited, scope_prefix)
        )

    def delete_obsolete_files(
        self,
        processed: Iterable[str | os.PathLike[str]],
        scope: PathScope,
    ) -> int:
        stored = self.get_stored_urls_by_prefix(scope.url_prefix)
        return sum(
            self.delete_by_url(url)
            for url in select_obsolete_files(stored, processed, scope)
        )

    def get_metadata(self, key: str, default: str | None = None) -> str | None:
        return self.metadata.get(key, default)

    def set_metadata(self, key: str, value: str) -> None:
        self.metadata[key] = value

    def close(self) -> None:
        self.closed = True

    def urls(self) -> set[str]:
        return {record["url"] for record in self.records.values()}


@pytest.fixture
def recording_logger() -> RecordingLogger:
    return RecordingLogger()


@pytest.fixture
def logger():
    """Return a real structlog logger for code that only needs to log."""

    return get_logger("tests")


@pytest.fixture
def memory_store() -> InMemoryStore:
    return InMemoryStore()


@pytest.fixture
def fake_embedder() -> FakeEmbedder:
    return FakeEmbedder()


@pytest.fixture
def write_tree(tmp_path: Path) -> Callable[[dict[str, str]], Path]:
    """Write ``{relative path: text}`` under ``tmp_path / "tree"``."""

    def _write(files: dict[str, str]) -> Path:
        root = tmp_path / "tree"
        for relative, text in files.items():
            path = root / relative
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(text, encoding="utf-8")
        root.mkdir(parents=True, exist_ok=True)
        return root

    return _write


@pytest.fixture
def store_factory() -> type[InMemoryStore]:
    return InMemoryStore


@pytest.fixture
def embedder_factory() -> type[FakeEmbedder]:
    return FakeEmbedder


@pytest.fixture
def vector_for() -> Callable[..., list[float]]:
    return deterministic_vector
