"""Dictation state machine: pure transition table plus a locked holder."""

from __future__ import annotations

import logging
import threading
from typing import Callable, List, Tuple

from models import AppEvent, AppState, EventKind, RecordingMode

logger = logging.getLogger(__name__)

StateListener = Callable[[AppState, AppState, AppEvent], None]

PROCESSING_STATES = (AppState.TRANSCRIBING, AppState.ENHANCING, AppState.PASTING)


def start_event(mode: RecordingMode) -> EventKind:
    return EventKind.HOTKEY_PRESSED if mode == RecordingMode.TOGGLE else EventKind.HOTKEY_DOWN


def stop_event(mode: RecordingMode) -> EventKind:
    return EventKind.HOTKEY_PRESSED if mode == RecordingMode.TOGGLE else EventKind.HOTKEY_UP


def transition(state: AppState, event: AppEvent, mode: RecordingMode) -> AppState:
    """Next state for ``event``; unknown pairs leave ``state`` unchanged."""
    kind = event.kind
    if kind == EventKind.FAILED:
        return AppState.ERROR

    new_state = None
    if state == AppState.IDLE:
        if kind == start_event(mode):
            new_state = AppState.RECORDING
    elif state == AppState.RECORDING:
        if kind == stop_event(mode):
            new_state = AppState.TRANSCRIBING
        elif kind == EventKind.SILENCE_TIMEOUT and mode == RecordingMode.TOGGLE:
            new_state = AppState.TRANSCRIBING
        elif kind == EventKind.MAX_DURATION_TIMEOUT:
            new_state = AppState.TRANSCRIBING
    elif state in PROCESSING_STATES:
        if kind == EventKind.CANCEL or kind == stop_event(mode):
            new_state = AppState.IDLE
        elif state == AppState.TRANSCRIBING and kind == EventKind.TRANSCRIPTION_DONE:
            new_state = AppState.ENHANCING
        elif state == AppState.ENHANCING and kind == EventKind.ENHANCEMENT_DONE:
            new_state = AppState.PASTING
        elif state == AppState.PASTING and kind == EventKind.PASTE_DONE:
            new_state = AppState.IDLE
    elif state == AppState.ERROR:
        if kind == EventKind.ERROR_ACKNOWLEDGED:
            new_state = AppState.IDLE

    return state if new_state is None else new_state


class SharedAppState:
    """Thread-safe holder of the current state and recording mode.

    Each dispatch reads, transitions and commits under one lock. Logging
    and listeners run after the lock is released.
    """

    def __init__(self, mode: RecordingMode = RecordingMode.TOGGLE) -> None:
        self._lock = threading.Lock()
        self._state = AppState.IDLE
        self._mode = mode
        self._listeners: List[StateListener] = []

    @property
    def state(self) -> AppState:
        with self._lock:
            return self._state

    @property
    def recording_mode(self) -> RecordingMode:
        with self._lock:
            return self._mode

    def set_recording_mode(self, mode: RecordingMode) -> None:
        with self._lock:
            self._mode = mode

    def add_listener(self, listener: StateListener) -> None:
        self._listeners.append(listener)

    def dispatch(self, event: AppEvent) -> AppState:
        return self.dispatch_with_old(event)[1]

    def dispatch_with_old(self, event: AppEvent) -> Tuple[AppState, AppState]:
        with self._lock:
            old = self._state
            mode = self._mode
            new = transition(old, event, mode)
            self._state = new

        if event.kind == EventKind.FAILED:
            logger.warning("Transition %s -> ERROR: %s", old.value, event.reason)
        elif old == new:
            logger.debug("Ignored transition: state=%s event=%s mode=%s", old.value, event, mode.value)

        if old != new:
            logger.info("State transition %s -> %s (%s)", old.value, new.value, event)
            for listener in list(self._listeners):
                listener(old, new, event)
        return old, new
