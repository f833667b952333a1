"""Content providers for local directories and code checkouts."""

from __future__ import annotations

from abc import ABC, abstractmethod
import os
from pathlib import Path
import posixpath
from typing import Collection, Iterator

from docsync.core.config import SourceConfig
from docsync.core.logging import Logger
from docsync.models import SourceDocument, build_document
from docsync.store.scope import PathScope

from .chunking import MARKDOWN_SUFFIXES, CodeChunker, Segment, TextChunker
from .walker import FileWalker, WalkResult

__all__ = ["CodeSource", "DirectorySource", "LocalDirectorySource"]


def _normalize(path: str | os.PathLike[str]) -> str:
    return posixpath.normpath(os.fspath(path).replace(os.sep, "/"))


class DirectorySource(ABC):
    """Yield one :class:`SourceDocument` per readable file under a root."""

    def __init__(
        self,
        source: SourceConfig,
        *,
        logger: Logger,
        walker: FileWalker | None = None,
    ) -> None:
        if source.path is None:
            raise ValueError(f"{source.name} has no path configured")
        self.source = source
        self.logger = logger
        self.scope = PathScope(
            root=os.fspath(source.path),
            url_rewrite_prefix=source.url_rewrite_prefix,
        )
        self.root = Path(self.scope.normalized_root)
        self._walker = walker or FileWalker(
            root=self.root,
            recursive=source.recursive,
            include_extensions=source.include_extensions,
            exclude_extensions=source.exclude_extensions,
        )

    def iter_documents(
        self,
        only: Collection[str | os.PathLike[str]] | None = None,
    ) -> Iterator[SourceDocument]:
        """Yield documents, restricted to ``only`` when it is given."""

        wanted = {_normalize(path) for path in only} if only is not None else None
        for entry in self._walker.iter_files():
            path = _normalize(entry.path)
            if wanted is not None and path not in wanted:
                continue
            document = self._load(entry, path)
            if document is not None:
                yield document

    def _load(self, entry: WalkResult, path: str) -> SourceDocument | None:
        if entry.size > self.source.max_size:
            self.logger.info(
                "source-file-too-large",
                path=path,
                size=entry.size,
                max_size=self.source.max_size,
            )
            return None
        try:
            text = entry.path.read_bytes().decode(self.source.encoding)
        except UnicodeDecodeError:
            self.logger.warning(
                "source-file-undecodable",
                path=path,
                encoding=self.source.encoding,
            )
            return None
        except OSError as exc:
            self.logger.warning("source-file-unreadable", path=path, error=str(exc))
            return None

        segments = self.segment(text, entry)
        return build_document(
            url=self.scope.url_for(path),
            segments=[segment.as_pair() for segment in segments],
            product_name=self.source.product_name,
            version=self.source.version or "",
            branch=self.source.branch or "",
            repo=self.source.repo or "",
            path=Path(path),
        )

    @abstractmethod
    def segment(self, text: str, entry: WalkResult) -> list[Segment]:
        """Split one file's text into segments."""


class LocalDirectorySource(DirectorySource):
    """Documentation files: markdown is split along headings."""

    def __init__(
        self,
        source: SourceConfig,
        *,
        logger: Logger,
        chunker: TextChunker | None = None,
        walker: FileWalker | None = None,
    ) -> None:
        super().__init__(source, logger=logger, walker=walker)
        self._chunker = chunker or TextChunker()

    def segment(self, text: str, entry: WalkResult) -> list[Segment]:
        markdown = entry.path.suffix.lower() in MARKDOWN_SUFFIXES
        return self._chunker.split(text, markdown=markdown)


class CodeSource(DirectorySource):
    """Source files of a repository checkout, cut into line windows."""

    def __init__(
        self,
        source: SourceConfig,
        *,
        logger: Logger,
        chunker: CodeChunker | None = None,
        walker: FileWalker | None = None,
    ) -> None:
        super().__init__(source, logger=logger, walker=walker)
        self._chunker = chunker or CodeChunker()

    @property
    def repo(self) -> str:
        return self.source.repo or self.source.product_name

    @property
    def branch(self) -> str:
        return self.source.branch or ""

    def segment(self, text: str, entry: WalkResult) -> list[Segment]:
        return self._chunker.split(text, label=entry.relative_path.as_posix())
