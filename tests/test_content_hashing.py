"""Tests for :mod:`docsync.hashing` and document assembly."""

from __future__ import annotations

import hashlib

from docsync.hashing import (
    code_sha_key,
    hash_content,
    last_run_key,
    make_chunk_id,
    normalize_key_component,
)
from docsync.models import build_document


def test_hash_content_is_sha256_of_utf8() -> None:
    text = "Grüße aus dem Index"

    assert hash_content(text) == hashlib.sha256(text.encode("utf-8")).hexdigest()
    assert hash_content(text) == hash_content(text)
    assert hash_content(text) != hash_content(text + " ")


def test_chunk_id_depends_on_url_and_position() -> None:
    first = make_chunk_id("https://docs.example.com/a", 0)

    assert first == make_chunk_id("https://docs.example.com/a", 0)
    assert first != make_chunk_id("https://docs.example.com/a", 1)
    assert first != make_chunk_id("https://docs.example.com/b", 0)


def test_metadata_keys_collapse_non_alphanumerics() -> None:
    assert normalize_key_component("git@github.com:org/repo.git") == (
        "git_github_com_org_repo_git"
    )
    assert last_run_key("org/repo") == "last_run_org_repo"
    assert code_sha_key("org/repo", "feature/new--ui") == (
        "code_last_sha_org_repo_feature_new_ui"
    )


def test_build_document_assigns_positions_and_hashes() -> None:
    document = build_document(
        url="https://docs.example.com/guide",
        segments=[
            ("Intro text", ("Guide",)),
            ("Setup steps", ("Guide", "Setup")),
            ("Appendix", ()),
        ],
        product_name="acme",
        version="1.0",
    )

    assert [chunk.metadata.chunk_index for chunk in document.chunks] == [0, 1, 2]
    assert {chunk.metadata.total_chunks for chunk in document.chunks} == {3}
    second = document.chunks[1]
    assert second.metadata.section == "Setup"
    assert second.metadata.heading_hierarchy == ("Guide", "Setup")
    assert second.metadata.hash == hash_content("Setup steps")
    assert second.chunk_id == make_chunk_id("https://docs.example.com/guide", 1)
    assert document.chunks[2].metadata.section == ""
    # Missing provenance is stored as empty strings, never None.
    assert second.metadata.branch == ""
    assert second.metadata.repo == ""


def test_hashed_returns_same_chunk_when_digest_matches() -> None:
    chunk = build_document(
        url="u",
        segments=[("body", ())],
        product_name="p",
        version="v",
    ).chunks[0]

    assert chunk.hashed() is chunk
