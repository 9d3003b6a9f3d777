"""Fixed-size string chunking."""

from __future__ import annotations


def split(text: str, max_chunk_length: int) -> list[str]:
    """Split text into consecutive pieces of at most max_chunk_length.

    Every piece but the last has exactly max_chunk_length characters.
    Empty input yields an empty list, and "".join() of the result is text.
    """
    if max_chunk_length < 1:
        raise ValueError(f"max_chunk_length must be >= 1, got {max_chunk_length}")
    return [text[i:i + max_chunk_length] for i in range(0, len(text), max_chunk_length)]
