"""Content providers that turn configured sources into documents."""

from __future__ import annotations

from typing import Callable, Iterator, Mapping, Protocol

from docsync.core.config import SourceConfig, SourceType
from docsync.core.logging import Logger
from docsync.models import SourceDocument

from .files import CodeSource, DirectorySource, LocalDirectorySource

__all__ = [
    "CodeSource",
    "ContentProvider",
    "ContentProviderFactory",
    "DirectorySource",
    "LocalDirectorySource",
    "default_content_providers",
]


class ContentProvider(Protocol):
    """Yields already-chunked documents for one source."""

    def iter_documents(self) -> Iterator[SourceDocument]:
        """Yield every document the source currently contains."""


ContentProviderFactory = Callable[[SourceConfig, Logger], ContentProvider]


def default_content_providers() -> Mapping[SourceType, ContentProviderFactory]:
    """Return factories for the source types handled in-process.

    Website, GitHub and Zendesk content is fetched by external crawlers
    and must be supplied by the caller.
    """

    return {
        SourceType.LOCAL_DIRECTORY: lambda source, logger: LocalDirectorySource(
            source,
            logger=logger,
        ),
        SourceType.CODE: lambda source, logger: CodeSource(source, logger=logger),
    }
