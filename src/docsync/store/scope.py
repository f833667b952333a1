"""Path and url scoping for obsolescence deletion."""

from __future__ import annotations

from dataclasses import dataclass
import os
import posixpath
import re
from typing import AbstractSet, Iterable

__all__ = [
    "FILE_URL_SCHEME",
    "PathScope",
    "select_obsolete_files",
    "select_obsolete_urls",
]

FILE_URL_SCHEME = "file://"
_LEADING_DOT_SLASH = re.compile(r"^(?:\./+)+")


def _normalize_path(value: str | os.PathLike[str]) -> str:
    text = os.fspath(value)
    if not text:
        return text
    return posixpath.normpath(text.replace(os.sep, "/"))


def _is_relative_inside(path: str) -> bool:
    normalized = _normalize_path(path)
    if not normalized or normalized.startswith("/"):
        return False
    return normalized != ".." and not normalized.startswith("../")


@dataclass(frozen=True, slots=True)
class PathScope:
    """Map files under ``root`` to the urls they are indexed under.

    Two addressing modes are supported. Without ``url_rewrite_prefix`` a
    file is addressed as ``file://<path>``. With it, files below the root
    are addressed as ``<prefix>/<relative path>``.

    Example:
        >>> scope = PathScope("./docs", "https://example.com/docs/")
        >>> scope.url_prefix
        'https://example.com/docs'
        >>> scope.url_for("docs/guide/intro.md")
        'https://example.com/docs/guide/intro.md'
        >>> scope.locate("https://example.com/docs/guide/intro.md")
        'docs/guide/intro.md'
    """

    root: str
    url_rewrite_prefix: str | None = None

    @property
    def normalized_root(self) -> str:
        stripped = _LEADING_DOT_SLASH.sub("", os.fspath(self.root))
        return _normalize_path(stripped or ".")

    @property
    def normalized_prefix(self) -> str | None:
        if not self.url_rewrite_prefix:
            return None
        return self.url_rewrite_prefix.rstrip("/")

    @property
    def url_prefix(self) -> str:
        prefix = self.normalized_prefix
        if prefix is not None:
            return prefix
        root = self.normalized_root
        if root == ".":
            return FILE_URL_SCHEME
        return f"{FILE_URL_SCHEME}{root}"

    def url_for(self, path: str | os.PathLike[str]) -> str:
        """Return the url a file is indexed under."""

        normalized = _normalize_path(path)
        prefix = self.normalized_prefix
        if prefix is None:
            return f"{FILE_URL_SCHEME}{normalized}"
        relative = posixpath.relpath(normalized, self.normalized_root)
        if relative.startswith(".."):
            return f"{FILE_URL_SCHEME}{normalized}"
        return f"{prefix}/{relative}"

    def contains(self, url: str) -> bool:
        """Return ``True`` when ``url`` lies at or below the scope prefix."""

        prefix = self.url_prefix
        if prefix == FILE_URL_SCHEME:
            # A current-directory root covers every relative file url.
            if not url.startswith(FILE_URL_SCHEME):
                return False
            return _is_relative_inside(url[len(FILE_URL_SCHEME):])
        return url == prefix or url.startswith(f"{prefix}/")

    def locate(self, url: str) -> str | None:
        """Map ``url`` back to its local path, or ``None`` if out of scope."""

        if not self.contains(url):
            return None
        prefix = self.url_prefix
        if self.normalized_prefix is None:
            return _normalize_path(url[len(FILE_URL_SCHEME):])
        relative = url[len(prefix) + 1:]
        return _normalize_path(posixpath.join(self.normalized_root, relative))


def select_obsolete_urls(
    stored_urls: Iterable[str],
    visited: AbstractSet[str],
    scope_prefix: str,
) -> list[str]:
    """Return stored urls under ``scope_prefix`` that were not visited."""

    return [
        url
        for url in dict.fromkeys(stored_urls)
        if url.startswith(scope_prefix) and url not in visited
    ]


def select_obsolete_files(
    stored_urls: Iterable[str],
    processed: Iterable[str | os.PathLike[str]],
    scope: PathScope,
) -> list[str]:
    """Return stored urls in ``scope`` whose file was not processed."""

    processed_paths = {_normalize_path(path) for path in processed}
    obsolete = []
    for url in dict.fromkeys(stored_urls):
        path = scope.locate(url)
        if path is None:
            continue
        if path not in processed_paths:
            obsolete.append(url)
    return obsolete
