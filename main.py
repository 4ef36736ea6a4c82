"""Application entrypoint."""

from __future__ import annotations

import asyncio
import logging
import threading
from pathlib import Path
from typing import Optional

from auto_paste import ClipboardPasteService
from config import AppConfig, JsonConfigStore
from enhancer import OpenAiEnhancer
from errors import VadError
from hotkey import GlobalHotkeyAdapter, edge_event
from interfaces import ConfigStore
from logging_setup import setup_logging
from models import AppEvent, AppState, PasteResult, PasteStatus
from recognizer import OpenAiSttClient
from recorder import SoundDeviceRecorder
from session_controller import SessionController
from state_machine import SharedAppState
from vad import SileroVoiceDetector, SilenceDetector, ensure_model

logger = logging.getLogger(__name__)

ERROR_ACK_DELAY_S = 2.0


def build_silence_detector(config: AppConfig) -> Optional[SilenceDetector]:
    if not config.vad_auto_stop:
        return None
    try:
        model_path = ensure_model(Path(config.vad_model_path))
        detector = SileroVoiceDetector(model_path, threshold=config.vad_speech_threshold)
    except VadError as exc:
        logger.warning("VAD unavailable, silence auto-stop disabled: %s", exc)
        return None
    return SilenceDetector(detector, config.vad_silence_threshold_sec)


class App:
    def __init__(self, config_store: Optional[ConfigStore] = None) -> None:
        self.config_store = config_store or JsonConfigStore()
        self.config = self.config_store.load()
        setup_logging(self.config.log_level)

        if not self.config_store.has_api_key():
            logger.warning("No API key configured; set api_key in the config file or OPENAI_API_KEY")
        api_key = self.config_store.get_api_key()

        self.shared = SharedAppState(self.config.recording_mode)
        self.loop = asyncio.new_event_loop()
        self._loop_thread = threading.Thread(target=self.loop.run_forever, name="pipeline-loop", daemon=True)
        self._stopped = threading.Event()

        enhancer = OpenAiEnhancer.from_config(self.config, api_key) if self.config.enhance_enabled else None
        self.controller = SessionController(
            shared=self.shared,
            recorder=SoundDeviceRecorder(),
            stt=OpenAiSttClient.from_config(self.config, api_key),
            paste_service=ClipboardPasteService(),
            config=self.config,
            enhancer=enhancer,
            silence_detector=build_silence_detector(self.config),
            loop=self.loop,
            on_error=self._on_error,
            on_result=self._on_result,
        )
        self.shared.add_listener(self._on_state_change)
        self.hotkey = GlobalHotkeyAdapter(hotkey_name=self.config.hotkey)

    # ------------------------------------------------------------------
    # Callbacks
    # ------------------------------------------------------------------

    def _on_state_change(self, old: AppState, new: AppState, event: AppEvent) -> None:
        if new == AppState.ERROR:
            timer = threading.Timer(ERROR_ACK_DELAY_S, self.controller.acknowledge_error)
            timer.daemon = True
            timer.start()

    def _on_error(self, code: str, message: str) -> None:
        logger.error("%s: %s", code, message)

    def _on_result(self, text: str, result: PasteResult) -> None:
        if result.status == PasteStatus.RESULT_WINDOW:
            # No clipboard: the text is only available here.
            print(text, flush=True)
        elif result.status == PasteStatus.CLIPBOARD_ONLY:
            logger.info("Text copied to clipboard, paste it manually")

    # ------------------------------------------------------------------
    # Hotkey handlers
    # ------------------------------------------------------------------

    def _on_hotkey_edge(self, pressed: bool) -> None:
        event = edge_event(self.shared.recording_mode, pressed)
        if event is not None:
            self.shared.dispatch(event)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def run(self) -> int:
        self._loop_thread.start()
        try:
            self.hotkey.start(
                on_press=lambda: self._on_hotkey_edge(True),
                on_release=lambda: self._on_hotkey_edge(False),
            )
        except RuntimeError as exc:
            logger.error("Hotkey disabled: %s", exc)
            return 1

        logger.info("Ready (%s mode), press %s to dictate", self.config.recording_mode.value, self.config.hotkey)
        try:
            self._stopped.wait()
        except KeyboardInterrupt:
            logger.info("Interrupted")
        finally:
            self.quit()
        return 0

    def quit(self) -> None:
        self.hotkey.stop()
        self.controller.cancel_session()
        self.loop.call_soon_threadsafe(self.loop.stop)
        self._stopped.set()


def main() -> int:
    app = App()
    return app.run()


if __name__ == "__main__":
    raise SystemExit(main())
