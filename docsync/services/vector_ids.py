"""Reversible mapping between (document id, chunk index) and a vector record id."""

from typing import Tuple

SEPARATOR = "_"


def encode_vector_id(document_id: str, chunk_index: int) -> str:
    if chunk_index < 0:
        raise ValueError(f"chunk_index must be non-negative: {chunk_index}")
    return f"{document_id}{SEPARATOR}{chunk_index}"


def decode_vector_id(vector_id: str) -> Tuple[str, int]:
    """Split on the last separator so document ids may themselves contain it."""
    document_id, sep, suffix = vector_id.rpartition(SEPARATOR)
    if not sep:
        raise ValueError(f"Invalid vector ID format: {vector_id}")
    if not suffix.isascii() or not suffix.isdigit():
        raise ValueError(f"Invalid chunk index in vector ID: {vector_id}")
    return document_id, int(suffix)
