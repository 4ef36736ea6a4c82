"""Core data models for the dictation pipeline."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum

import numpy as np


class AppState(str, Enum):
    IDLE = "IDLE"
    RECORDING = "RECORDING"
    TRANSCRIBING = "TRANSCRIBING"
    ENHANCING = "ENHANCING"
    PASTING = "PASTING"
    ERROR = "ERROR"


class RecordingMode(str, Enum):
    TOGGLE = "toggle"
    PUSH_TO_TALK = "push_to_talk"


class EventKind(str, Enum):
    HOTKEY_PRESSED = "hotkey_pressed"
    HOTKEY_DOWN = "hotkey_down"
    HOTKEY_UP = "hotkey_up"
    SILENCE_TIMEOUT = "silence_timeout"
    MAX_DURATION_TIMEOUT = "max_duration_timeout"
    TRANSCRIPTION_DONE = "transcription_done"
    ENHANCEMENT_DONE = "enhancement_done"
    PASTE_DONE = "paste_done"
    CANCEL = "cancel"
    FAILED = "failed"
    ERROR_ACKNOWLEDGED = "error_acknowledged"


@dataclass(frozen=True)
class AppEvent:
    kind: EventKind
    reason: str = ""

    @classmethod
    def failed(cls, reason: str) -> "AppEvent":
        return cls(kind=EventKind.FAILED, reason=reason)

    def __str__(self) -> str:
        if self.kind == EventKind.FAILED:
            return f"failed({self.reason})"
        return self.kind.value


@dataclass(frozen=True)
class CaptureFormat:
    sample_rate: int
    channels: int


@dataclass
class AudioChunk:
    """Mono samples of one self-contained transcription segment."""

    samples: np.ndarray = field(default_factory=lambda: np.zeros(0, dtype=np.float32))

    def __len__(self) -> int:
        return len(self.samples)


class SilenceKind(str, Enum):
    SPEECH = "speech"
    SILENCE = "silence"
    SILENCE_TIMEOUT = "silence_timeout"


@dataclass(frozen=True)
class SilenceStatus:
    kind: SilenceKind
    duration_s: float = 0.0

    @classmethod
    def speech(cls) -> "SilenceStatus":
        return cls(SilenceKind.SPEECH)

    @classmethod
    def silence(cls, duration_s: float) -> "SilenceStatus":
        return cls(SilenceKind.SILENCE, duration_s)

    @classmethod
    def timeout(cls) -> "SilenceStatus":
        return cls(SilenceKind.SILENCE_TIMEOUT)


class ValidationKind(str, Enum):
    ACCEPTED = "accepted"
    FALLBACK = "fallback"


@dataclass(frozen=True)
class ValidationResult:
    kind: ValidationKind
    text: str

    @property
    def accepted(self) -> bool:
        return self.kind == ValidationKind.ACCEPTED


class PasteStatus(str, Enum):
    PASTED = "pasted"
    CLIPBOARD_ONLY = "clipboard_only"
    RESULT_WINDOW = "result_window"


@dataclass
class PasteResult:
    status: PasteStatus
    reason: str
    clipboard_restored: bool

    @property
    def success(self) -> bool:
        return self.status == PasteStatus.PASTED
