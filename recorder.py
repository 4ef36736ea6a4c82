"""Microphone capture session buffering float32 samples in memory."""

from __future__ import annotations

import bisect
import logging
import threading
from typing import Any, List, Optional, Tuple

import numpy as np

from errors import AlreadyRecording, CaptureFailed, NoInputConfig, NoInputDevice, NotRecording
from models import CaptureFormat

try:
    import sounddevice as sd
except Exception:  # pragma: no cover
    sd = None  # type: ignore

logger = logging.getLogger(__name__)

MAX_CAPTURE_CHANNELS = 2


def _empty() -> np.ndarray:
    return np.zeros(0, dtype=np.float32)


class SoundDeviceRecorder:
    """Records the default input device at its native rate.

    The PortAudio callback only copies the block and appends it to the
    arena under ``_buffer_lock``; draining happens in ``stop()``.
    """

    def __init__(self, blocksize: int = 0) -> None:
        self._blocksize = blocksize
        self._stream: Any = None
        self._format: Optional[CaptureFormat] = None
        self._running = False
        self._lock = threading.Lock()
        self._buffer_lock = threading.Lock()
        self._blocks: List[np.ndarray] = []
        # Sample offset at which each block starts.
        self._starts: List[int] = []
        self._total = 0
        self.overflow_count = 0

    @property
    def is_recording(self) -> bool:
        return self._running

    @property
    def capture_format(self) -> Optional[CaptureFormat]:
        return self._format

    def start(self) -> None:
        with self._lock:
            if self._running:
                raise AlreadyRecording()
            if sd is None:
                raise CaptureFailed("sounddevice is not installed")

            capture_format = self._negotiate_format()
            with self._buffer_lock:
                self._blocks = []
                self._starts = []
                self._total = 0
            self.overflow_count = 0

            try:
                self._stream = sd.InputStream(
                    samplerate=capture_format.sample_rate,
                    channels=capture_format.channels,
                    dtype="float32",
                    blocksize=self._blocksize,
                    callback=self._on_audio,
                )
                self._format = capture_format
                self._running = True
                self._stream.start()
            except Exception as exc:
                self._running = False
                self._format = None
                self._stream = None
                raise CaptureFailed(str(exc)) from exc

            logger.info(
                "Recording started (%d Hz, %d ch)",
                capture_format.sample_rate,
                capture_format.channels,
            )

    def stop(self) -> Tuple[np.ndarray, CaptureFormat]:
        """Stop the stream and hand the recorded samples to the caller."""
        with self._lock:
            if not self._running or self._format is None:
                raise NotRecording()
            self._running = False
            stream, self._stream = self._stream, None
            capture_format, self._format = self._format, None
            if stream is not None:
                try:
                    stream.stop()
                    stream.close()
                except Exception as exc:
                    logger.warning("Failed to close input stream: %s", exc)

            with self._buffer_lock:
                blocks, self._blocks = self._blocks, []
                self._starts = []
                self._total = 0

        samples = np.concatenate(blocks) if blocks else _empty()
        logger.info(
            "Recording stopped: %d samples (%.2fs), %d overflows",
            len(samples),
            len(samples) / max(capture_format.sample_rate * capture_format.channels, 1),
            self.overflow_count,
        )
        return samples, capture_format

    def samples_since(self, offset: int) -> Tuple[np.ndarray, Optional[CaptureFormat]]:
        """Copy of the interleaved samples captured after ``offset``."""
        offset = max(offset, 0)
        with self._buffer_lock:
            if offset >= self._total:
                return _empty(), self._format
            first = bisect.bisect_right(self._starts, offset) - 1
            skip = offset - self._starts[first]
            blocks = self._blocks[first:]
        capture_format = self._format
        blocks[0] = blocks[0][skip:]
        return np.concatenate(blocks), capture_format

    def _negotiate_format(self) -> CaptureFormat:
        try:
            device = sd.query_devices(kind="input")
        except Exception as exc:
            logger.error("No default input device: %s", exc)
            raise NoInputDevice() from exc
        if not device:
            raise NoInputDevice()

        try:
            sample_rate = int(device["default_samplerate"])
            channels = min(int(device["max_input_channels"]), MAX_CAPTURE_CHANNELS)
        except (KeyError, TypeError, ValueError) as exc:
            raise NoInputConfig(str(exc)) from exc
        if sample_rate <= 0 or channels <= 0:
            raise NoInputConfig(f"unusable device format ({sample_rate} Hz, {channels} ch)")

        logger.info("Audio input device selected: %s", device.get("name", "unknown"))
        return CaptureFormat(sample_rate=sample_rate, channels=channels)

    def _on_audio(self, indata: Any, frames: int, time_info: Any, status: Any) -> None:
        if not self._running:
            return
        if status:
            self.overflow_count += 1
        block = np.array(indata, dtype=np.float32).reshape(-1)
        with self._buffer_lock:
            self._blocks.append(block)
            self._starts.append(self._total)
            self._total += len(block)
