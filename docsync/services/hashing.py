"""Content hashing used as the chunk dedup key."""

import hashlib


def compute_chunk_hash(text: str) -> str:
    """Return the SHA-256 hex digest of ``text`` (no whitespace normalization)."""
    return hashlib.sha256(text.encode("utf-8")).hexdigest()
