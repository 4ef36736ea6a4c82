"""Protocol interfaces used by SessionController."""

from __future__ import annotations

from typing import Optional, Protocol, Tuple

import numpy as np

from config import AppConfig
from models import CaptureFormat, PasteResult


class Recorder(Protocol):
    @property
    def is_recording(self) -> bool: ...

    def start(self) -> None: ...

    def stop(self) -> Tuple[np.ndarray, CaptureFormat]: ...

    def samples_since(self, offset: int) -> Tuple[np.ndarray, Optional[CaptureFormat]]: ...


class VoiceDetector(Protocol):
    def is_speech(self, frame: np.ndarray) -> bool: ...

    def reset(self) -> None: ...


class SttProvider(Protocol):
    async def transcribe(self, audio: bytes, language: Optional[str]) -> str: ...


class EnhanceProvider(Protocol):
    async def enhance(self, raw_text: str, language: Optional[str]) -> str: ...


class PasteService(Protocol):
    def paste_text(self, text: str) -> PasteResult: ...


class ConfigStore(Protocol):
    def load(self) -> AppConfig: ...

    def has_api_key(self) -> bool: ...

    def get_api_key(self) -> str: ...

    def set_api_key(self, key: str) -> None: ...

    def get_hotkey(self) -> str: ...

    def set_hotkey(self, hotkey: str) -> None: ...
