"""Post-search result filters."""

from __future__ import annotations

from typing import Iterable, Sequence

from docsync.models import QueryResult

__all__ = ["filter_results_by_url", "filter_results_with_content"]


def filter_results_with_content(results: Iterable[QueryResult]) -> list[QueryResult]:
    """Drop results whose content is empty or whitespace only."""

    return [result for result in results if result.content and result.content.strip()]


def filter_results_by_url(
    results: Iterable[QueryResult],
    prefix: str | None = None,
    extensions: Sequence[str] = (),
) -> list[QueryResult]:
    """Keep results under ``prefix`` and, if given, ending in one of ``extensions``.

    Prefix matching is a plain string prefix test.

    Example:
        >>> hits = [QueryResult("a", "https://x.dev/api/a.py"),
        ...         QueryResult("b", "https://x.dev/blog/b.md")]
        >>> [r.url for r in filter_results_by_url(hits, "https://x.dev/api")]
        ['https://x.dev/api/a.py']
    """

    suffixes = tuple(
        ext.lower() if ext.startswith(".") else f".{ext.lower()}"
        for ext in extensions
        if ext
    )
    kept = []
    for result in results:
        if prefix and not result.url.startswith(prefix):
            continue
        if suffixes and not result.url.lower().endswith(suffixes):
            continue
        kept.append(result)
    return kept
