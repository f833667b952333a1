"""Point identifier mapping for the remote backend."""

from __future__ import annotations

import hashlib
import re
import uuid

__all__ = [
    "hash_to_uuid",
    "is_valid_uuid",
    "metadata_point_id",
    "point_id_for",
]

_UUID_PATTERN = re.compile(
    r"^[0-9a-f]{8}-[0-9a-f]{4}-[1-5][0-9a-f]{3}-[89ab][0-9a-f]{3}-[0-9a-f]{12}$",
    re.IGNORECASE,
)
_HEX_PATTERN = re.compile(r"^[0-9a-f]{32,}$", re.IGNORECASE)


def is_valid_uuid(value: str) -> bool:
    """Return ``True`` when ``value`` is a canonical RFC 4122 UUID string.

    Example:
        >>> is_valid_uuid("123e4567-e89b-12d3-a456-426614174000")
        True
        >>> is_valid_uuid("not-a-uuid")
        False
    """

    return bool(_UUID_PATTERN.match(value))


def hash_to_uuid(digest: str) -> str:
    """Format the first 32 hex characters of ``digest`` as a UUID.

    The version nibble is forced to ``5`` and the variant nibble to ``8``
    so the result passes UUID validation on the server.

    Raises:
        ValueError: If ``digest`` is shorter than 32 hex characters.

    Example:
        >>> hash_to_uuid("0123456789abcdef0123456789abcdef")
        '01234567-89ab-5def-8123-456789abcdef'
    """

    if not _HEX_PATTERN.match(digest or ""):
        raise ValueError(f"Expected at least 32 hex characters, got {digest!r}")
    h = digest[:32].lower()
    return f"{h[0:8]}-{h[8:12]}-5{h[13:16]}-8{h[17:20]}-{h[20:32]}"


def point_id_for(chunk_id: str) -> str:
    """Return the deterministic point id for ``chunk_id``.

    UUID-shaped ids are used verbatim. Hex digests are formatted directly;
    any other string is hashed first. A random UUID is returned only when
    mapping fails so a write is never dropped for lack of an identifier.
    """

    try:
        if is_valid_uuid(chunk_id):
            return chunk_id.lower()
        if _HEX_PATTERN.match(chunk_id):
            return hash_to_uuid(chunk_id)
        digest = hashlib.sha256(chunk_id.encode("utf-8")).hexdigest()
        return hash_to_uuid(digest)
    except (TypeError, ValueError, AttributeError):
        return str(uuid.uuid4())


def metadata_point_id(key: str) -> str:
    """Return the point id that stores bookkeeping entry ``key``.

    Example:
        >>> metadata_point_id("last_run_repo") == metadata_point_id("last_run_repo")
        True
    """

    digest = hashlib.md5(f"metadata_{key}".encode("utf-8")).hexdigest()
    return str(uuid.UUID(hex=digest, version=4))
