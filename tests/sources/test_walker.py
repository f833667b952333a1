from __future__ import annotations

from pathlib import Path

import pytest

from docsync.sources.walker import FileWalker


def _relative(walker: FileWalker) -> list[str]:
    return [entry.relative_path.as_posix() for entry in walker.iter_files()]


def test_walk_is_sorted_and_recursive(write_tree) -> None:
    root = write_tree({"b.md": "b", "a.md": "a", "sub/c.md": "c"})

    assert _relative(FileWalker(root=root)) == ["a.md", "b.md", "sub/c.md"]


def test_non_recursive_walk_stays_at_top_level(write_tree) -> None:
    root = write_tree({"a.md": "a", "sub/c.md": "c"})

    assert _relative(FileWalker(root=root, recursive=False)) == ["a.md"]


def test_extension_filters(write_tree) -> None:
    root = write_tree({"a.md": "a", "b.txt": "b", "c.py": "c", "d.MD": "d"})

    included = FileWalker(root=root, include_extensions=(".md",))
    excluded = FileWalker(root=root, exclude_extensions=(".py", ".txt"))

    assert _relative(included) == ["a.md", "d.MD"]
    assert _relative(excluded) == ["a.md", "d.MD"]


def test_gitignore_rules_and_vcs_directories_are_skipped(write_tree) -> None:
    root = write_tree(
        {
            ".gitignore": "build/\n*.log\n",
            "keep.py": "x",
            "debug.log": "x",
            "build/out.py": "x",
            ".git/config": "x",
            "pkg/.gitignore": "generated.py\n",
            "pkg/generated.py": "x",
            "pkg/module.py": "x",
        }
    )

    assert _relative(FileWalker(root=root, include_extensions=(".py",))) == [
        "keep.py",
        "pkg/module.py",
    ]


def test_yielded_paths_are_joined_to_root(write_tree) -> None:
    root = write_tree({"docs/a.md": "a"})

    entry = next(FileWalker(root=root).iter_files())

    assert entry.path == root / "docs" / "a.md"
    assert entry.size == 1


def test_missing_root_is_rejected(tmp_path: Path) -> None:
    with pytest.raises(FileNotFoundError):
        FileWalker(root=tmp_path / "absent")
