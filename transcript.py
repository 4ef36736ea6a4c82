"""Join per-chunk transcripts, dropping words repeated by chunk overlap."""

from __future__ import annotations

from typing import Sequence

MIN_OVERLAP_WORDS = 2
MAX_OVERLAP_WORDS = 5


def find_text_overlap(prev: str, nxt: str) -> int:
    """Number of words (2-5) shared by the tail of ``prev`` and head of ``nxt``."""
    prev_words = prev.split()
    next_words = nxt.split()
    max_check = min(len(prev_words), len(next_words), MAX_OVERLAP_WORDS)

    for n in range(max_check, MIN_OVERLAP_WORDS - 1, -1):
        tail = [w.lower() for w in prev_words[-n:]]
        head = [w.lower() for w in next_words[:n]]
        if tail == head:
            return n
    return 0


def assemble(texts: Sequence[str]) -> str:
    if not texts:
        return ""

    result = texts[0]
    for nxt in texts[1:]:
        overlap = find_text_overlap(result, nxt)
        if overlap:
            remaining = " ".join(nxt.split()[overlap:])
            if remaining:
                result = f"{result} {remaining}"
        else:
            result = f"{result} {nxt}"
    return result
