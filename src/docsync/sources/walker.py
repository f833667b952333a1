"""Filesystem traversal for directory-backed sources."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path, PurePosixPath
from typing import Iterator, Sequence

from pathspec import PathSpec

__all__ = ["FileWalker", "WalkResult"]

_ALWAYS_SKIPPED = frozenset({".git", ".hg", ".svn"})


@dataclass(frozen=True, slots=True)
class WalkResult:
    """A file discovered during traversal."""

    path: Path
    relative_path: PurePosixPath
    size: int


@dataclass(frozen=True, slots=True)
class _IgnoreRules:
    base: Path
    spec: PathSpec


class FileWalker:
    """Enumerate files under ``root`` honoring filters and ``.gitignore``.

    Yielded paths are ``root`` joined with the relative path, never
    resolved, so urls built from them line up with the configured root.
    """

    def __init__(
        self,
        *,
        root: Path,
        recursive: bool = True,
        include_extensions: Sequence[str] = (),
        exclude_extensions: Sequence[str] = (),
        respect_gitignore: bool = True,
        follow_symlinks: bool = False,
    ) -> None:
        if not root.exists():
            raise FileNotFoundError(f"Source root not found: {root}")
        if not root.is_dir():
            raise NotADirectoryError(f"Source root must be a directory: {root}")
        self._root = root
        self._recursive = recursive
        self._include = tuple(include_extensions)
        self._exclude = tuple(exclude_extensions)
        self._respect_gitignore = respect_gitignore
        self._follow_symlinks = follow_symlinks

    def iter_files(self) -> Iterator[WalkResult]:
        yield from self._walk(self._root, [])

    def accepts_extension(self, path: Path) -> bool:
        suffix = path.suffix.lower()
        if self._include and suffix not in self._include:
            return False
        return suffix not in self._exclude

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------
    def _walk(
        self,
        directory: Path,
        rules: list[_IgnoreRules],
    ) -> Iterator[WalkResult]:
        local = self._load_gitignore(directory)
        if local is not None:
            rules = [*rules, local]

        try:
            entries = sorted(directory.iterdir(), key=lambda p: p.name)
        except PermissionError:
            return

        for entry in entries:
            if entry.is_symlink() and not self._follow_symlinks:
                continue
            try:
                is_dir = entry.is_dir()
            except OSError:
                continue

            if is_dir and entry.name in _ALWAYS_SKIPPED:
                continue
            if self._is_ignored(entry, rules, is_dir=is_dir):
                continue

            if is_dir:
                if self._recursive:
                    yield from self._walk(entry, rules)
                continue

            if not entry.is_file() or not self.accepts_extension(entry):
                continue

            try:
                size = entry.stat().st_size
            except OSError:
                continue
            yield WalkResult(
                path=entry,
                relative_path=PurePosixPath(entry.relative_to(self._root).as_posix()),
                size=size,
            )

    @staticmethod
    def _is_ignored(
        path: Path,
        rules: Sequence[_IgnoreRules],
        *,
        is_dir: bool,
    ) -> bool:
        for rule in rules:
            candidate = path.relative_to(rule.base).as_posix()
            if is_dir:
                candidate = f"{candidate}/"
            if rule.spec.match_file(candidate):
                return True
        return False

    def _load_gitignore(self, directory: Path) -> _IgnoreRules | None:
        if not self._respect_gitignore:
            return None
        gitignore = directory / ".gitignore"
        if not gitignore.is_file():
            return None
        try:
            lines = gitignore.read_text(encoding="utf-8").splitlines()
        except (OSError, UnicodeDecodeError):
            return None
        return _IgnoreRules(
            base=directory,
            spec=PathSpec.from_lines("gitwildmatch", lines),
        )
