"""Git diff reconciliation for incremental code passes."""

from __future__ import annotations

from dataclasses import dataclass, field
import os
from pathlib import Path
import subprocess
from typing import Protocol

from docsync.core.errors import DiffError

__all__ = [
    "DiffChanges",
    "DiffProvider",
    "GitDiffProvider",
    "parse_name_status",
]


@dataclass(slots=True)
class DiffChanges:
    """Paths touched between two revisions.

    ``changed_files`` holds root-joined paths to re-index and deduplicates.
    ``deleted_paths`` keeps repository-relative paths in diff order,
    duplicates included.
    """

    changed_files: set[str] = field(default_factory=set)
    deleted_paths: list[str] = field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not self.changed_files and not self.deleted_paths


def parse_name_status(output: str, root: str | os.PathLike[str]) -> DiffChanges:
    """Parse ``git diff --name-status`` output.

    Example:
        >>> changes = parse_name_status("A\\tnew.ts\\nD\\tgone.ts", "/repo")
        >>> sorted(changes.changed_files), changes.deleted_paths
        (['/repo/new.ts'], ['gone.ts'])
    """

    base = os.fspath(root)
    changes = DiffChanges()
    for raw_line in output.splitlines():
        line = raw_line.strip()
        if not line:
            continue
        parts = line.split("\t")
        status = parts[0]
        if status.startswith("R") and len(parts) >= 3:
            changes.deleted_paths.append(parts[1])
            changes.changed_files.add(os.path.join(base, parts[2]))
        elif status == "D" and len(parts) >= 2:
            changes.deleted_paths.append(parts[1])
        elif status in ("A", "M") and len(parts) >= 2:
            changes.changed_files.add(os.path.join(base, parts[1]))
    return changes


class DiffProvider(Protocol):
    """Source of revision information for a working tree."""

    def head(self, root: Path) -> str:
        """Return the current commit of ``root``."""

    def name_status(self, root: Path, since: str) -> str:
        """Return raw ``--name-status`` output between ``since`` and HEAD."""


class GitDiffProvider:
    """Run ``git`` in a working tree to report revisions and changes."""

    def __init__(self, *, executable: str = "git", timeout: float = 60.0) -> None:
        self._executable = executable
        self._timeout = timeout

    def _run(self, args: list[str], cwd: Path) -> str:
        try:
            result = subprocess.run(
                [self._executable, *args],
                cwd=cwd,
                capture_output=True,
                text=True,
                timeout=self._timeout,
            )
        except (OSError, subprocess.SubprocessError) as exc:
            raise DiffError(f"git {' '.join(args)} could not run: {exc}") from exc
        if result.returncode != 0:
            raise DiffError(
                f"git {' '.join(args)} failed (rc={result.returncode}): "
                f"{result.stderr.strip()}"
            )
        return result.stdout

    def head(self, root: Path) -> str:
        return self._run(["rev-parse", "HEAD"], cwd=root).strip()

    def name_status(self, root: Path, since: str) -> str:
        return self._run(
            ["diff", "--name-status", "--relative", since, "HEAD"],
            cwd=root,
        )
