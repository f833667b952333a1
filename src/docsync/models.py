"""Value types shared by the sync engine, index stores and query service."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Sequence

from docsync.hashing import hash_content, make_chunk_id

__all__ = [
    "Chunk",
    "ChunkMetadata",
    "EMBEDDING_DIMENSIONS",
    "QueryResult",
    "SourceDocument",
    "build_document",
]

EMBEDDING_DIMENSIONS = 3_072


@dataclass(frozen=True, slots=True)
class ChunkMetadata:
    """Provenance and position of a chunk, denormalized into every record."""

    product_name: str
    version: str
    url: str
    chunk_id: str
    hash: str = ""
    heading_hierarchy: tuple[str, ...] = ()
    section: str = ""
    branch: str = ""
    repo: str = ""
    chunk_index: int = 0
    total_chunks: int = 1


@dataclass(frozen=True, slots=True)
class Chunk:
    """A bounded unit of content embedded as one vector."""

    content: str
    metadata: ChunkMetadata

    @property
    def chunk_id(self) -> str:
        return self.metadata.chunk_id

    @property
    def url(self) -> str:
        return self.metadata.url

    def hashed(self) -> "Chunk":
        """Return a copy whose metadata carries the content digest."""

        digest = hash_content(self.content)
        if self.metadata.hash == digest:
            return self
        return replace(self, metadata=replace(self.metadata, hash=digest))


@dataclass(frozen=True, slots=True)
class SourceDocument:
    """All chunks produced for one url/file during a pass."""

    url: str
    chunks: tuple[Chunk, ...]
    path: Path | None = None


@dataclass(frozen=True, slots=True)
class QueryResult:
    """A retrieved chunk as returned by the query layer."""

    content: str
    url: str
    section: str = ""
    distance: float | None = None
    chunk_index: int | None = None
    total_chunks: int | None = None
    heading_hierarchy: tuple[str, ...] = field(default_factory=tuple)


def build_document(
    *,
    url: str,
    segments: Sequence[tuple[str, Sequence[str]]],
    product_name: str,
    version: str,
    branch: str = "",
    repo: str = "",
    path: Path | None = None,
) -> SourceDocument:
    """Assemble a :class:`SourceDocument` from ``(content, headings)`` pairs.

    Positions are assigned in order, so chunk ids stay stable for as long
    as the document keeps the same segment layout.
    """

    total = len(segments)
    chunks = []
    for position, (content, headings) in enumerate(segments):
        hierarchy = tuple(headings)
        metadata = ChunkMetadata(
            product_name=product_name,
            version=version,
            url=url,
            chunk_id=make_chunk_id(url, position),
            hash=hash_content(content),
            heading_hierarchy=hierarchy,
            section=hierarchy[-1] if hierarchy else "",
            branch=branch or "",
            repo=repo or "",
            chunk_index=position,
            total_chunks=total,
        )
        chunks.append(Chunk(content=content, metadata=metadata))
    return SourceDocument(url=url, chunks=tuple(chunks), path=path)
