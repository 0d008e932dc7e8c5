"""Token-bounded text chunking."""

from __future__ import annotations

from functools import lru_cache
from typing import List

import tiktoken

from docsync.models.vector import Chunk

DEFAULT_ENCODING = "cl100k_base"


@lru_cache(maxsize=4)
def get_encoding(name: str = DEFAULT_ENCODING) -> tiktoken.Encoding:
    return tiktoken.get_encoding(name)


def count_tokens(text: str) -> int:
    if not text:
        return 0
    return len(get_encoding().encode(text, disallowed_special=()))


def chunk_text(text: str, max_tokens: int = 2000, overlap_tokens: int = 0) -> List[Chunk]:
    """Split ``text`` into chunks of at most ``max_tokens`` tokens.

    Text that fits returns a single chunk, so an empty string yields one
    empty chunk. Longer text is cut at token boundaries with a stride of
    ``max_tokens - overlap_tokens``; ``overlap_tokens`` is capped at half of
    ``max_tokens``.
    """
    if max_tokens <= 0:
        raise ValueError("max_tokens must be positive")
    if overlap_tokens < 0:
        raise ValueError("overlap_tokens must not be negative")
    overlap_tokens = min(overlap_tokens, max_tokens // 2)

    encoding = get_encoding()
    tokens = encoding.encode(text, disallowed_special=())

    if len(tokens) <= max_tokens:
        return [Chunk(text=text, index=0, token_count=len(tokens))]

    step = max_tokens - overlap_tokens
    chunks: List[Chunk] = []
    for start in range(0, len(tokens), step):
        window = tokens[start : start + max_tokens]
        chunks.append(Chunk(text=encoding.decode(window), index=len(chunks), token_count=len(window)))
        if start + max_tokens >= len(tokens):
            break
    return chunks


def validate_chunk_size(chunks: List[Chunk], max_tokens: int) -> bool:
    return all(chunk.token_count <= max_tokens for chunk in chunks)
