"""Synchronization of content sources into index stores."""

from __future__ import annotations

from .diff import DiffChanges, DiffProvider, GitDiffProvider, parse_name_status
from .engine import Embedder, SyncEngine, SyncMode, SyncStats
from .runner import RunReport, SourceFailure, SyncRunner, website_scope_prefix

__all__ = [
    "DiffChanges",
    "DiffProvider",
    "Embedder",
    "GitDiffProvider",
    "RunReport",
    "SourceFailure",
    "SyncEngine",
    "SyncMode",
    "SyncRunner",
    "SyncStats",
    "parse_name_status",
    "website_scope_prefix",
]
