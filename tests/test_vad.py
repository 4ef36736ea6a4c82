"""Tests for SilenceDetector and SileroVoiceDetector."""

from __future__ import annotations

from pathlib import Path
from unittest.mock import MagicMock

import numpy as np
import pytest

import vad
from errors import VadError
from models import SilenceKind
from vad import STATE_DIM, VAD_FRAME_SIZE, SileroVoiceDetector, SilenceDetector, ensure_model


# ---------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------

class ScriptedDetector:
    def __init__(self, answers: list[bool]) -> None:
        self.answers = list(answers)
        self.resets = 0

    def is_speech(self, frame: np.ndarray) -> bool:
        return self.answers.pop(0)

    def reset(self) -> None:
        self.resets += 1


class FakeClock:
    def __init__(self) -> None:
        self.now = 0.0

    def __call__(self) -> float:
        return self.now


FRAME = np.zeros(VAD_FRAME_SIZE, dtype=np.float32)


# ---------------------------------------------------------------
# SilenceDetector
# ---------------------------------------------------------------

def test_silence_accumulates_until_timeout() -> None:
    clock = FakeClock()
    detector = SilenceDetector(ScriptedDetector([True, False, False, False]), 5.0, clock=clock)

    assert detector.process_frame(FRAME).kind == SilenceKind.SPEECH

    status = detector.process_frame(FRAME)
    assert status.kind == SilenceKind.SILENCE
    assert status.duration_s == 0.0

    clock.now = 3.0
    status = detector.process_frame(FRAME)
    assert status.kind == SilenceKind.SILENCE
    assert status.duration_s == pytest.approx(3.0)

    clock.now = 5.0
    assert detector.process_frame(FRAME).kind == SilenceKind.SILENCE_TIMEOUT


def test_speech_resets_silence_timer() -> None:
    clock = FakeClock()
    detector = SilenceDetector(ScriptedDetector([False, True, False]), 2.0, clock=clock)

    detector.process_frame(FRAME)
    clock.now = 1.5
    detector.process_frame(FRAME)
    clock.now = 3.0
    status = detector.process_frame(FRAME)
    assert status.kind == SilenceKind.SILENCE
    assert status.duration_s == 0.0


def test_reset_clears_timer_and_detector_state() -> None:
    clock = FakeClock()
    inner = ScriptedDetector([False, False])
    detector = SilenceDetector(inner, 1.0, clock=clock)

    detector.process_frame(FRAME)
    clock.now = 0.9
    detector.reset()
    assert inner.resets == 1

    clock.now = 1.5
    assert detector.process_frame(FRAME).kind == SilenceKind.SILENCE


def test_zero_threshold_times_out_on_first_silent_frame() -> None:
    detector = SilenceDetector(ScriptedDetector([False]), 0.0, clock=FakeClock())
    assert detector.process_frame(FRAME).kind == SilenceKind.SILENCE_TIMEOUT


@pytest.mark.parametrize("bad", [float("nan"), float("inf"), -1.0, "abc"])
def test_invalid_threshold_falls_back_to_default(bad) -> None:  # noqa: ANN001
    detector = SilenceDetector(ScriptedDetector([]), bad)
    assert detector.threshold_s == vad.DEFAULT_SILENCE_THRESHOLD_SEC


# ---------------------------------------------------------------
# SileroVoiceDetector
# ---------------------------------------------------------------

def _fake_ort(probability: float) -> MagicMock:
    fake = MagicMock()
    session = fake.InferenceSession.return_value
    session.run.return_value = (
        np.array([[probability]], dtype=np.float32),
        np.ones((2, 1, STATE_DIM), dtype=np.float32),
    )
    return fake


def test_silero_missing_runtime_raises(monkeypatch) -> None:  # noqa: ANN001
    monkeypatch.setattr(vad, "ort", None)
    with pytest.raises(VadError):
        SileroVoiceDetector(Path("model.onnx"))


def test_silero_speech_probability_and_threshold(monkeypatch) -> None:  # noqa: ANN001
    fake = _fake_ort(0.8)
    monkeypatch.setattr(vad, "ort", fake)

    detector = SileroVoiceDetector(Path("model.onnx"), threshold=0.5)
    assert detector.speech_probability(FRAME) == pytest.approx(0.8)
    assert detector.is_speech(FRAME) is True

    session = fake.InferenceSession.return_value
    names, feeds = session.run.call_args[0]
    assert names == ["output", "stateN"]
    assert feeds["input"].shape == (1, VAD_FRAME_SIZE)
    assert feeds["sr"].tolist() == [16000]


def test_silero_below_threshold_is_not_speech(monkeypatch) -> None:  # noqa: ANN001
    monkeypatch.setattr(vad, "ort", _fake_ort(0.2))
    assert SileroVoiceDetector(Path("model.onnx")).is_speech(FRAME) is False


def test_silero_state_carries_over_and_resets(monkeypatch) -> None:  # noqa: ANN001
    fake = _fake_ort(0.1)
    monkeypatch.setattr(vad, "ort", fake)
    detector = SileroVoiceDetector(Path("model.onnx"))
    session = fake.InferenceSession.return_value

    detector.speech_probability(FRAME)
    detector.speech_probability(FRAME)
    assert session.run.call_args[0][1]["state"].sum() > 0

    detector.reset()
    detector.speech_probability(FRAME)
    assert session.run.call_args[0][1]["state"].sum() == 0


def test_silero_rejects_wrong_frame_size(monkeypatch) -> None:  # noqa: ANN001
    monkeypatch.setattr(vad, "ort", _fake_ort(0.5))
    detector = SileroVoiceDetector(Path("model.onnx"))
    with pytest.raises(VadError):
        detector.speech_probability(np.zeros(100, dtype=np.float32))


def test_silero_inference_error_becomes_vad_error(monkeypatch) -> None:  # noqa: ANN001
    fake = _fake_ort(0.5)
    fake.InferenceSession.return_value.run.side_effect = RuntimeError("bad tensor")
    monkeypatch.setattr(vad, "ort", fake)
    with pytest.raises(VadError):
        SileroVoiceDetector(Path("model.onnx")).is_speech(FRAME)


def test_ensure_model_skips_download_when_present(tmp_path: Path, monkeypatch) -> None:  # noqa: ANN001
    model = tmp_path / "silero.onnx"
    model.write_bytes(b"onnx")
    stream = MagicMock()
    monkeypatch.setattr(vad.httpx, "stream", stream)

    assert ensure_model(model) == model
    stream.assert_not_called()
