"""Plain-text rendering of query results."""

from __future__ import annotations

from typing import Sequence

from docsync.models import QueryResult

__all__ = ["chunk_marker", "render_chunks", "render_results"]

SEPARATOR = "---"


def chunk_marker(result: QueryResult) -> str | None:
    """Return ``"Chunk i of N"`` with a 1-based position, when known."""

    if result.chunk_index is None or result.total_chunks is None:
        return None
    return f"Chunk {result.chunk_index + 1} of {result.total_chunks}"


def render_results(results: Sequence[QueryResult]) -> str:
    blocks = []
    for number, result in enumerate(results, start=1):
        lines = [f"Result {number}:", f"  Content: {result.content}"]
        if result.distance is not None:
            lines.append(f"  Distance: {result.distance:.4f}")
        lines.append(f"  URL: {result.url}")
        if result.section:
            lines.append(f"  Section: {result.section}")
        if result.chunk_index is not None and result.total_chunks is not None:
            lines.append(
                f"  Chunk: {result.chunk_index + 1} of {result.total_chunks}"
            )
        lines.append(SEPARATOR)
        blocks.append("\n".join(lines))
    return "\n".join(blocks)


def render_chunks(results: Sequence[QueryResult]) -> str:
    """Render a whole document, one block per chunk in reading order."""

    blocks = []
    for position, result in enumerate(results):
        header = chunk_marker(result) or f"Chunk {position + 1} of {len(results)}"
        lines = [f"{header}:"]
        if result.section:
            lines.append(f"Section: {result.section}")
        lines.append(result.content)
        lines.append(SEPARATOR)
        blocks.append("\n".join(lines))
    return "\n".join(blocks)
