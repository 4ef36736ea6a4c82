"""Global hotkey adapter based on pynput."""

from __future__ import annotations

import logging
import threading
from typing import Callable, Optional

from models import AppEvent, EventKind, RecordingMode

logger = logging.getLogger(__name__)

try:
    from pynput import keyboard
except Exception:  # pragma: no cover
    keyboard = None  # type: ignore


def edge_event(mode: RecordingMode, pressed: bool) -> Optional[AppEvent]:
    """Map a key edge to the event for ``mode``.

    Toggle mode only reacts to the press edge. On a platform that only
    delivers release edges toggle mode never starts; not verified there.
    """
    if mode == RecordingMode.TOGGLE:
        return AppEvent(EventKind.HOTKEY_PRESSED) if pressed else None
    return AppEvent(EventKind.HOTKEY_DOWN if pressed else EventKind.HOTKEY_UP)


class GlobalHotkeyAdapter:
    def __init__(self, hotkey_name: str = "Key.f9") -> None:
        self._hotkey_name = hotkey_name
        self._listener: Optional[object] = None
        self._pressed = False
        self._lock = threading.Lock()

    @property
    def hotkey_name(self) -> str:
        return self._hotkey_name

    def handle_press(self, key: object, callback: Callable[[], None]) -> None:
        if str(key) != self._hotkey_name:
            return
        # Key repeat delivers extra presses while held.
        with self._lock:
            if self._pressed:
                return
            self._pressed = True
        callback()

    def handle_release(self, key: object, callback: Callable[[], None]) -> None:
        if str(key) != self._hotkey_name:
            return
        with self._lock:
            if not self._pressed:
                return
            self._pressed = False
        callback()

    def start(self, on_press: Callable[[], None], on_release: Callable[[], None]) -> None:
        if keyboard is None:
            raise RuntimeError("pynput is not installed")

        self._listener = keyboard.Listener(
            on_press=lambda key: self.handle_press(key, on_press),
            on_release=lambda key: self.handle_release(key, on_release),
        )
        self._listener.start()
        logger.info("Listening for hotkey %s", self._hotkey_name)

    def stop(self) -> None:
        listener = self._listener
        if listener is not None:
            listener.stop()
            self._listener = None
