"""Tests for :mod:`docsync.resources`."""

from __future__ import annotations

import tomllib

import pytest

from docsync.resources import get_resource


def test_get_resource_missing_file_raises() -> None:
    with pytest.raises(FileNotFoundError):
        get_resource("does-not-exist.toml")


def test_packaged_defaults_are_valid_toml() -> None:
    text = get_resource("docsync.defaults.toml").read_text(encoding="utf-8")

    data = tomllib.loads(text)

    assert data["query"]["backend"] == "sqlite"
    assert data["embedding"]["dimensions"] == 3072
