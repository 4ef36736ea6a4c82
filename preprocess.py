"""Pure audio helpers: downmix, resampling and silence trimming."""

from __future__ import annotations

import numpy as np

TARGET_SAMPLE_RATE = 16000

# Energy analysis window for trimming
ENERGY_FRAME_MS = 20

# RMS below this counts as silence (empirical)
SILENCE_RMS_THRESHOLD = 0.01

LEADING_MIN_SILENCE_MS = 200
TRAILING_MIN_SILENCE_MS = 500


def _as_float32(samples) -> np.ndarray:
    return np.asarray(samples, dtype=np.float32).reshape(-1)


def to_mono(samples, channels: int) -> np.ndarray:
    """Average interleaved frames down to one channel.

    A trailing partial frame is averaged over the samples it has.
    """
    data = _as_float32(samples)
    if channels <= 1:
        return data.copy()

    full = (len(data) // channels) * channels
    mono = data[:full].reshape(-1, channels).mean(axis=1, dtype=np.float64)
    if full < len(data):
        mono = np.append(mono, data[full:].mean(dtype=np.float64))
    return mono.astype(np.float32)


def resample(samples, from_rate: int, to_rate: int) -> np.ndarray:
    """Linear-interpolation resampler.

    Output length is ``ceil(len(samples) * to_rate / from_rate)``.
    """
    data = _as_float32(samples)
    if from_rate <= 0 or to_rate <= 0:
        raise ValueError(f"sample rates must be positive (got {from_rate} -> {to_rate})")
    if from_rate == to_rate or len(data) == 0:
        return data.copy()

    n = len(data)
    out_len = -(-n * to_rate // from_rate)
    ratio = from_rate / to_rate

    positions = np.arange(out_len, dtype=np.float64) * ratio
    idx = np.minimum(positions.astype(np.int64), n - 1)
    frac = (positions - idx).astype(np.float32)
    nxt = np.minimum(idx + 1, n - 1)

    out = data[idx] * (1.0 - frac) + data[nxt] * frac
    # Past the last source sample there is nothing to interpolate towards
    out[idx + 1 >= n] = data[n - 1]
    return out.astype(np.float32)


def preprocess(samples, channels: int, sample_rate: int) -> np.ndarray:
    """Mono, 16 kHz float32 samples ready for VAD and encoding."""
    return resample(to_mono(samples, channels), sample_rate, TARGET_SAMPLE_RATE)


def calculate_energy(frame) -> float:
    """RMS energy of one frame (0.0 for an empty frame)."""
    data = _as_float32(frame)
    if len(data) == 0:
        return 0.0
    return float(np.sqrt(np.mean(np.square(data, dtype=np.float64))))


def _window_energies(data: np.ndarray, frame_size: int) -> np.ndarray:
    return np.array(
        [calculate_energy(data[start:start + frame_size]) for start in range(0, len(data), frame_size)],
        dtype=np.float64,
    )


def trim_leading_silence(samples, sample_rate: int, min_silence_ms: int = LEADING_MIN_SILENCE_MS) -> np.ndarray:
    data = _as_float32(samples)
    frame_size = sample_rate * ENERGY_FRAME_MS // 1000
    if len(data) == 0 or frame_size <= 0:
        return data

    min_silent_frames = min_silence_ms // ENERGY_FRAME_MS
    loud = np.flatnonzero(_window_energies(data, frame_size) > SILENCE_RMS_THRESHOLD)
    if len(loud):
        silent_frames = int(loud[0])
    else:
        silent_frames = -(-len(data) // frame_size)

    if silent_frames < min_silent_frames:
        return data
    return data[silent_frames * frame_size:]


def trim_trailing_silence(samples, sample_rate: int, min_silence_ms: int = TRAILING_MIN_SILENCE_MS) -> np.ndarray:
    data = _as_float32(samples)
    frame_size = sample_rate * ENERGY_FRAME_MS // 1000
    if len(data) == 0 or frame_size <= 0:
        return data

    min_silent_frames = min_silence_ms // ENERGY_FRAME_MS
    energies = _window_energies(data, frame_size)
    loud = np.flatnonzero(energies > SILENCE_RMS_THRESHOLD)
    if len(loud):
        last_voice_end = (int(loud[-1]) + 1) * frame_size
        trailing_frames = len(energies) - 1 - int(loud[-1])
    else:
        last_voice_end = 0
        trailing_frames = len(energies)

    if trailing_frames < min_silent_frames:
        return data
    return data[:min(last_voice_end, len(data))]


def trim_silence(samples, sample_rate: int) -> np.ndarray:
    """Trim >=200 ms of leading and >=500 ms of trailing silence."""
    trimmed = trim_leading_silence(samples, sample_rate, LEADING_MIN_SILENCE_MS)
    return trim_trailing_silence(trimmed, sample_rate, TRAILING_MIN_SILENCE_MS)
