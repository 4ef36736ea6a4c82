"""Voice activity gate: Silero VAD detector and silence-duration tracking."""

from __future__ import annotations

import logging
import math
import time
from pathlib import Path
from typing import Any, Callable, Optional

import httpx
import numpy as np

from errors import VadError
from interfaces import VoiceDetector
from models import SilenceStatus

try:
    import onnxruntime as ort
except Exception:  # pragma: no cover
    ort = None  # type: ignore

logger = logging.getLogger(__name__)

# Silero v5 expects 512 samples (32 ms) at 16 kHz
VAD_FRAME_SIZE = 512
VAD_SAMPLE_RATE = 16000
STATE_DIM = 128
DEFAULT_SPEECH_THRESHOLD = 0.5
DEFAULT_SILENCE_THRESHOLD_SEC = 10.0

SILERO_MODEL_URL = "https://github.com/snakers4/silero-vad/raw/master/src/silero_vad/data/silero_vad.onnx"


def ensure_model(model_path: Path, url: str = SILERO_MODEL_URL, timeout_s: float = 30.0) -> Path:
    """Download the Silero model to ``model_path`` if it is not there yet."""
    if model_path.exists():
        return model_path

    logger.info("Downloading Silero VAD model to %s", model_path)
    model_path.parent.mkdir(parents=True, exist_ok=True)
    tmp_path = model_path.with_suffix(".part")
    try:
        with httpx.stream("GET", url, follow_redirects=True, timeout=timeout_s) as response:
            response.raise_for_status()
            with tmp_path.open("wb") as fh:
                for block in response.iter_bytes():
                    fh.write(block)
    except (httpx.HTTPError, OSError) as exc:
        tmp_path.unlink(missing_ok=True)
        raise VadError(f"failed to download VAD model: {exc}") from exc
    tmp_path.replace(model_path)
    return model_path


class SileroVoiceDetector:
    """Silero VAD v5 through ONNX Runtime.

    The model is recurrent: ``reset()`` must be called between recordings.
    """

    def __init__(self, model_path: Path, threshold: float = DEFAULT_SPEECH_THRESHOLD) -> None:
        if ort is None:
            raise VadError("onnxruntime is not installed")
        try:
            options = ort.SessionOptions()
            options.intra_op_num_threads = 1
            self._session: Any = ort.InferenceSession(
                str(model_path),
                sess_options=options,
                providers=["CPUExecutionProvider"],
            )
        except Exception as exc:
            raise VadError(f"failed to load VAD model: {exc}") from exc
        self._threshold = threshold
        self._sr = np.array([VAD_SAMPLE_RATE], dtype=np.int64)
        self._state = np.zeros((2, 1, STATE_DIM), dtype=np.float32)

    def speech_probability(self, frame: np.ndarray) -> float:
        frame = np.asarray(frame, dtype=np.float32).reshape(-1)
        if len(frame) != VAD_FRAME_SIZE:
            raise VadError(f"invalid frame size: expected {VAD_FRAME_SIZE}, got {len(frame)}")
        try:
            out, self._state = self._session.run(
                ["output", "stateN"],
                {"input": frame[np.newaxis, :], "sr": self._sr, "state": self._state},
            )
        except Exception as exc:
            raise VadError(f"VAD inference failed: {exc}") from exc
        return float(np.asarray(out).reshape(-1)[0])

    def is_speech(self, frame: np.ndarray) -> bool:
        return self.speech_probability(frame) >= self._threshold

    def reset(self) -> None:
        self._state = np.zeros((2, 1, STATE_DIM), dtype=np.float32)


def _sanitize_threshold(threshold_s: float) -> float:
    try:
        value = float(threshold_s)
    except (TypeError, ValueError):
        return DEFAULT_SILENCE_THRESHOLD_SEC
    if not math.isfinite(value) or value < 0:
        return DEFAULT_SILENCE_THRESHOLD_SEC
    return value


class SilenceDetector:
    """Tracks how long the detector has reported no speech."""

    def __init__(
        self,
        detector: VoiceDetector,
        threshold_s: float,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._detector = detector
        self._threshold_s = _sanitize_threshold(threshold_s)
        self._clock = clock
        self._silence_start: Optional[float] = None

    @property
    def threshold_s(self) -> float:
        return self._threshold_s

    def process_frame(self, frame: np.ndarray) -> SilenceStatus:
        if self._detector.is_speech(frame):
            self._silence_start = None
            return SilenceStatus.speech()

        now = self._clock()
        if self._silence_start is None:
            self._silence_start = now
        duration = now - self._silence_start

        if duration >= self._threshold_s:
            return SilenceStatus.timeout()
        return SilenceStatus.silence(duration)

    def reset(self) -> None:
        self._silence_start = None
        self._detector.reset()
