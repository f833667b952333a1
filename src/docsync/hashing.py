"""Content digests and bookkeeping key helpers."""

from __future__ import annotations

import hashlib
import re

__all__ = [
    "DEFAULT_HASH_ALGORITHM",
    "code_sha_key",
    "hash_content",
    "last_run_key",
    "make_chunk_id",
    "normalize_key_component",
]


DEFAULT_HASH_ALGORITHM = "sha256"
_NON_ALNUM = re.compile(r"[^a-zA-Z0-9]+")


def hash_content(text: str, *, algorithm: str = DEFAULT_HASH_ALGORITHM) -> str:
    """Return the hex digest of ``text`` encoded as UTF-8.

    The digest depends only on the content, never on where the chunk lives,
    so equal digests mean the stored embedding can be reused.

    Example:
        >>> hash_content("abc")[:12]
        'ba7816bf8f01'
    """

    digest = hashlib.new(algorithm)
    digest.update(text.encode("utf-8"))
    return digest.hexdigest()


def make_chunk_id(url: str, position: int) -> str:
    """Return the stable identifier for the chunk at ``position`` in ``url``."""

    return hash_content(f"{url}::{position}")


def normalize_key_component(value: str) -> str:
    """Collapse runs of non-alphanumeric characters to one underscore.

    Example:
        >>> normalize_key_component("org/repo-name")
        'org_repo_name'
        >>> normalize_key_component("feature//x")
        'feature_x'
    """

    return _NON_ALNUM.sub("_", value)


def last_run_key(repo: str) -> str:
    """Return the metadata key holding a repository's last run timestamp."""

    return f"last_run_{normalize_key_component(repo)}"


def code_sha_key(repo: str, branch: str) -> str:
    """Return the metadata key holding the last processed commit.

    Example:
        >>> code_sha_key("acme/api", "release/1.x")
        'code_last_sha_acme_api_release_1_x'
    """

    return (
        f"code_last_sha_{normalize_key_component(repo)}"
        f"_{normalize_key_component(branch)}"
    )
