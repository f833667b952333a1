"""Shared exception types for :mod:`docsync`."""

from __future__ import annotations

__all__ = [
    "DocsyncError",
    "ConfigurationError",
    "StoreError",
    "SchemaCompatibilityError",
    "SyncError",
    "DiffError",
    "QueryValidationError",
]


class DocsyncError(RuntimeError):
    """Base class for errors raised by :mod:`docsync`."""


class ConfigurationError(DocsyncError):
    """Raised when configuration cannot be loaded or validated.

    Configuration errors are fatal: the CLI exits before any index backend
    is opened.
    """


class StoreError(DocsyncError):
    """Raised when an index backend cannot be opened or queried."""


class SchemaCompatibilityError(StoreError):
    """Raised when a stored index predates a column a query requires."""

    def __init__(self, message: str, *, column: str | None = None) -> None:
        super().__init__(message)
        self.column = column


class SyncError(DocsyncError):
    """Raised when a synchronization pass cannot complete."""


class DiffError(SyncError):
    """Raised when a repository diff cannot be computed."""


class QueryValidationError(DocsyncError):
    """Raised when a query lacks the identifiers needed to pick an index."""
