"""Drives capture and the transcription pipeline from state transitions."""

from __future__ import annotations

import asyncio
import concurrent.futures
import logging
import threading
from typing import Callable, Optional, Union

import numpy as np

from config import AppConfig
from errors import ASR_PROTOCOL_ERROR, NO_ACTIVE_TARGET, AudioError, DictationError, NotRecording, VadError
from interfaces import EnhanceProvider, PasteService, Recorder, SttProvider
from models import AppEvent, AppState, CaptureFormat, EventKind, PasteResult, PasteStatus, RecordingMode, SilenceKind
from preprocess import TARGET_SAMPLE_RATE, preprocess, trim_silence
from recognizer import transcribe_audio
from state_machine import PROCESSING_STATES, SharedAppState, start_event, stop_event
from vad import VAD_FRAME_SIZE, SilenceDetector

logger = logging.getLogger(__name__)

ErrorCallback = Callable[[str, str], None]
ResultCallback = Callable[[str, PasteResult], None]


class SessionController:
    """Reacts to state changes on ``shared``.

    Entering RECORDING opens the microphone, leaving it drains the capture
    buffer, and RECORDING -> TRANSCRIBING schedules ``run_pipeline``. The
    pipeline re-checks the state after every await and drops its result
    when the user cancelled or a newer session started.
    """

    def __init__(
        self,
        shared: SharedAppState,
        recorder: Recorder,
        stt: SttProvider,
        paste_service: PasteService,
        config: Optional[AppConfig] = None,
        enhancer: Optional[EnhanceProvider] = None,
        silence_detector: Optional[SilenceDetector] = None,
        loop: Optional[asyncio.AbstractEventLoop] = None,
        monitor_interval_s: float = 0.1,
        on_error: Optional[ErrorCallback] = None,
        on_result: Optional[ResultCallback] = None,
    ) -> None:
        self._shared = shared
        self._recorder = recorder
        self._stt = stt
        self._paste_service = paste_service
        self._config = config or AppConfig()
        self._enhancer = enhancer
        self._silence_detector = silence_detector
        self._loop = loop
        self._monitor_interval_s = monitor_interval_s
        self._on_error = on_error
        self._on_result = on_result

        self._lock = threading.Lock()
        self._session_id = 0
        self._max_timer: Optional[threading.Timer] = None
        self._monitor_thread: Optional[threading.Thread] = None
        self._monitor_stop = threading.Event()
        self._pipeline: Optional[Union[concurrent.futures.Future, threading.Thread]] = None

        shared.add_listener(self._on_transition)

    @property
    def state(self) -> AppState:
        return self._shared.state

    @property
    def session_id(self) -> int:
        return self._session_id

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------

    def start_session(self) -> AppState:
        return self._shared.dispatch(AppEvent(start_event(self._shared.recording_mode)))

    def stop_session(self) -> AppState:
        return self._shared.dispatch(AppEvent(stop_event(self._shared.recording_mode)))

    def cancel_session(self) -> AppState:
        return self._shared.dispatch(AppEvent(EventKind.CANCEL))

    def acknowledge_error(self) -> AppState:
        return self._shared.dispatch(AppEvent(EventKind.ERROR_ACKNOWLEDGED))

    def wait_for_pipeline(self, timeout: Optional[float] = None) -> None:
        pipeline = self._pipeline
        if isinstance(pipeline, threading.Thread):
            pipeline.join(timeout)
        elif pipeline is not None:
            try:
                pipeline.result(timeout)
            except concurrent.futures.TimeoutError:
                logger.warning("Pipeline still running after %.1fs", timeout or 0.0)

    # ------------------------------------------------------------------
    # Transition handling
    # ------------------------------------------------------------------

    def _on_transition(self, old: AppState, new: AppState, event: AppEvent) -> None:
        if new == AppState.RECORDING:
            self._begin_recording()
            return

        if old == AppState.RECORDING:
            captured = self._end_recording()
            if new == AppState.TRANSCRIBING and captured is not None:
                self._schedule_pipeline(*captured)
            return

        if new == AppState.IDLE and event.kind != EventKind.PASTE_DONE and old != AppState.ERROR:
            logger.info("Pipeline cancelled in %s", old.value)

    def _begin_recording(self) -> None:
        with self._lock:
            self._session_id += 1
            session = self._session_id
        try:
            self._recorder.start()
        except AudioError as exc:
            logger.error("Failed to start recording: %s", exc)
            self._fail(exc.code, str(exc))
            return

        max_duration = self._config.max_recording_duration_sec
        timer = threading.Timer(max_duration, self._on_max_duration, args=(session,))
        timer.daemon = True
        self._max_timer = timer
        timer.start()

        if self._should_monitor_silence():
            self._monitor_stop = threading.Event()
            self._monitor_thread = threading.Thread(
                target=self._monitor_silence,
                args=(session, self._monitor_stop),
                name="silence-monitor",
                daemon=True,
            )
            self._monitor_thread.start()

    def _end_recording(self) -> Optional[tuple]:
        if self._max_timer is not None:
            self._max_timer.cancel()
            self._max_timer = None

        self._monitor_stop.set()
        monitor = self._monitor_thread
        self._monitor_thread = None
        if monitor is not None and monitor is not threading.current_thread():
            monitor.join(timeout=1.0)

        try:
            samples, capture_format = self._recorder.stop()
        except NotRecording:
            return None
        except AudioError as exc:
            logger.error("Failed to stop recording: %s", exc)
            self._fail(exc.code, str(exc))
            return None
        return samples, capture_format, self._session_id

    def _on_max_duration(self, session: int) -> None:
        if session != self._session_id:
            return
        logger.info("Max recording duration reached (%ss)", self._config.max_recording_duration_sec)
        self._shared.dispatch(AppEvent(EventKind.MAX_DURATION_TIMEOUT))

    def _should_monitor_silence(self) -> bool:
        return (
            self._silence_detector is not None
            and self._config.vad_auto_stop
            and self._shared.recording_mode == RecordingMode.TOGGLE
        )

    def _monitor_silence(self, session: int, stop: threading.Event) -> None:
        detector = self._silence_detector
        if detector is None:
            return
        detector.reset()
        offset = 0
        pending = np.zeros(0, dtype=np.float32)

        while not stop.wait(self._monitor_interval_s):
            block, capture_format = self._recorder.samples_since(offset)
            if capture_format is None or len(block) == 0:
                continue
            usable = len(block) - len(block) % capture_format.channels
            offset += usable
            mono = preprocess(block[:usable], capture_format.channels, capture_format.sample_rate)
            pending = np.concatenate((pending, mono))

            while len(pending) >= VAD_FRAME_SIZE:
                frame, pending = pending[:VAD_FRAME_SIZE], pending[VAD_FRAME_SIZE:]
                try:
                    status = detector.process_frame(frame)
                except VadError as exc:
                    logger.warning("Silence monitor disabled for this recording: %s", exc)
                    return
                if status.kind == SilenceKind.SILENCE_TIMEOUT:
                    if stop.is_set() or session != self._session_id:
                        return
                    logger.info("Silence timeout after %.1fs", detector.threshold_s)
                    self._shared.dispatch(AppEvent(EventKind.SILENCE_TIMEOUT))
                    return

    # ------------------------------------------------------------------
    # Pipeline
    # ------------------------------------------------------------------

    def _schedule_pipeline(self, samples: np.ndarray, capture_format: CaptureFormat, session: int) -> None:
        coro = self.run_pipeline(samples, capture_format, session)
        if self._loop is not None:
            self._pipeline = asyncio.run_coroutine_threadsafe(coro, self._loop)
            return
        thread = threading.Thread(target=asyncio.run, args=(coro,), name="pipeline", daemon=True)
        self._pipeline = thread
        thread.start()

    def _still(self, expected: AppState, session: int) -> bool:
        if session != self._session_id or self._shared.state != expected:
            logger.info("Discarding pipeline result: state left %s", expected.value)
            return False
        return True

    def _owns_failure(self, session: int) -> bool:
        if session != self._session_id or self._shared.state not in PROCESSING_STATES:
            logger.info("Discarding pipeline failure: run is no longer active")
            return False
        return True

    async def run_pipeline(
        self,
        samples: np.ndarray,
        capture_format: CaptureFormat,
        session: Optional[int] = None,
    ) -> Optional[str]:
        """Preprocess, transcribe, enhance and paste one recording.

        Returns the pasted text, or None when the run was dropped.
        """
        session = self._session_id if session is None else session
        config = self._config
        try:
            audio = preprocess(samples, capture_format.channels, capture_format.sample_rate)
            if config.vad_trim_silence:
                audio = trim_silence(audio, TARGET_SAMPLE_RATE)

            min_samples = TARGET_SAMPLE_RATE * config.min_recording_duration_ms // 1000
            if len(audio) == 0 or len(audio) < min_samples:
                logger.info("Recording too short (%d samples), skipping transcription", len(audio))
                self._shared.dispatch(AppEvent(EventKind.CANCEL))
                return None

            raw_text = await transcribe_audio(
                self._stt,
                audio,
                TARGET_SAMPLE_RATE,
                language=config.language,
                max_chunk_sec=config.max_chunk_sec,
            )
            if not self._still(AppState.TRANSCRIBING, session):
                return None
            raw_text = raw_text.strip()
            self._shared.dispatch(AppEvent(EventKind.TRANSCRIPTION_DONE))

            text = raw_text
            if self._enhancer is not None and config.enhance_enabled:
                text = await self._enhancer.enhance(raw_text, config.language)
            if not self._still(AppState.ENHANCING, session):
                return None
            self._shared.dispatch(AppEvent(EventKind.ENHANCEMENT_DONE))

            result = await asyncio.get_running_loop().run_in_executor(None, self._run_paste, text)
            if not self._still(AppState.PASTING, session):
                return None
            if result.status != PasteStatus.PASTED:
                self._emit_error(NO_ACTIVE_TARGET, result.reason)
            self._shared.dispatch(AppEvent(EventKind.PASTE_DONE))
            if self._on_result:
                self._on_result(text, result)
            return text
        except DictationError as exc:
            if self._owns_failure(session):
                logger.error("Pipeline failed: %s", exc)
                self._fail(exc.code, str(exc))
            return None
        except Exception as exc:
            if self._owns_failure(session):
                logger.exception("Pipeline crashed")
                self._fail(ASR_PROTOCOL_ERROR, str(exc))
            return None

    def _run_paste(self, text: str) -> PasteResult:
        try:
            return self._paste_service.paste_text(text)
        except Exception as exc:
            logger.warning("Paste failed: %s", exc)
            return PasteResult(status=PasteStatus.RESULT_WINDOW, reason=str(exc), clipboard_restored=False)

    def _fail(self, code: str, message: str) -> None:
        self._emit_error(code, message)
        self._shared.dispatch(AppEvent.failed(message))

    def _emit_error(self, code: str, message: str) -> None:
        if self._on_error:
            self._on_error(code, message)
