"""Split long recordings into overlapping chunks cut at quiet points."""

from __future__ import annotations

import logging
from typing import List, Optional

import numpy as np

from models import AudioChunk

logger = logging.getLogger(__name__)

DEFAULT_MAX_CHUNK_SEC = 30
CHUNK_OVERLAP_SEC = 1.5
MIN_CHUNK_SEC = 5.0

# The cut point is searched in the last 30% of each window
QUIET_SEARCH_START_PERCENT = 70
RMS_WINDOW_MS = 20


def find_quiet_split_point(segment: np.ndarray, sample_rate: int) -> Optional[int]:
    """Offset of the quietest 20 ms window (10 ms stride) inside ``segment``.

    Returns None when the segment is too short to analyse.
    """
    window = sample_rate * RMS_WINDOW_MS // 1000
    if window <= 0 or len(segment) < window * 2:
        return None

    step = max(window // 2, 1)
    starts = np.arange(0, len(segment) - window, step)
    if len(starts) == 0:
        return None

    squares = np.square(np.asarray(segment, dtype=np.float64))
    cumsum = np.concatenate(([0.0], np.cumsum(squares)))
    energies = (cumsum[starts + window] - cumsum[starts]) / window
    best = int(np.argmin(energies))
    return int(starts[best]) + window // 2


def chunk_audio(samples, sample_rate: int, max_chunk_sec: float = DEFAULT_MAX_CHUNK_SEC) -> List[AudioChunk]:
    data = np.asarray(samples, dtype=np.float32).reshape(-1)

    if sample_rate <= 0 or max_chunk_sec <= 0:
        logger.warning(
            "Invalid chunking params (sample_rate=%s, max_chunk_sec=%s), returning audio as single chunk",
            sample_rate,
            max_chunk_sec,
        )
        return [AudioChunk(samples=data.copy())]

    max_chunk_samples = int(max_chunk_sec * sample_rate)
    if max_chunk_samples <= 0 or len(data) <= max_chunk_samples:
        return [AudioChunk(samples=data.copy())]

    overlap_samples = int(CHUNK_OVERLAP_SEC * sample_rate)
    min_chunk_samples = int(MIN_CHUNK_SEC * sample_rate)
    total = len(data)
    chunks: List[AudioChunk] = []
    offset = 0

    while offset < total:
        if total - offset <= max_chunk_samples:
            chunks.append(AudioChunk(samples=data[offset:].copy()))
            break

        search_start = offset + max_chunk_samples * QUIET_SEARCH_START_PERCENT // 100
        search_end = offset + max_chunk_samples
        quiet = find_quiet_split_point(data[search_start:search_end], sample_rate)
        split_point = search_start + quiet if quiet is not None else search_end

        # Fold a too-short tail into this chunk
        end = total if total - split_point < min_chunk_samples else split_point

        chunks.append(AudioChunk(samples=data[offset:end].copy()))
        if end >= total:
            break

        next_offset = end - overlap_samples
        offset = next_offset if next_offset > offset else end

    logger.debug("Split %d samples into %d chunks", total, len(chunks))
    return chunks
