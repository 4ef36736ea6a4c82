"""Auto paste service for text insertion."""

from __future__ import annotations

import logging
import sys
import time

from models import PasteResult, PasteStatus

logger = logging.getLogger(__name__)

try:
    import pyperclip
except Exception:  # pragma: no cover
    pyperclip = None  # type: ignore

try:
    from pynput.keyboard import Controller, Key
except Exception:  # pragma: no cover
    Controller = None  # type: ignore
    Key = None  # type: ignore


def paste_modifier():
    if Key is None:
        return None
    return Key.cmd if sys.platform == "darwin" else Key.ctrl


class ClipboardPasteService:
    """Copies text to the clipboard and simulates the paste shortcut.

    The previous clipboard contents are put back once the target app has
    had ``restore_delay_s`` to read the pasted text.
    """

    def __init__(self, restore_delay_s: float = 0.3) -> None:
        self._restore_delay_s = restore_delay_s

    def paste_text(self, text: str) -> PasteResult:
        if not text.strip():
            return PasteResult(PasteStatus.RESULT_WINDOW, reason="empty text", clipboard_restored=True)
        if pyperclip is None:
            return PasteResult(
                PasteStatus.RESULT_WINDOW,
                reason="clipboard dependency missing",
                clipboard_restored=False,
            )

        old_clip: str | None = None
        try:
            old_clip = pyperclip.paste()
        except Exception as exc:
            logger.warning("Could not read clipboard, it will not be restored: %s", exc)

        try:
            pyperclip.copy(text)
        except Exception as exc:
            logger.warning("Clipboard write failed: %s", exc)
            return PasteResult(PasteStatus.RESULT_WINDOW, reason=f"clipboard write failed: {exc}", clipboard_restored=False)

        try:
            self._send_paste_keys()
        except Exception as exc:
            logger.warning("Paste simulation failed, text left on clipboard: %s", exc)
            return PasteResult(PasteStatus.CLIPBOARD_ONLY, reason=f"paste simulation failed: {exc}", clipboard_restored=False)

        restored = False
        if old_clip is not None:
            time.sleep(self._restore_delay_s)
            try:
                pyperclip.copy(old_clip)
                restored = True
            except Exception as exc:
                logger.warning("Clipboard restore failed: %s", exc)
        return PasteResult(PasteStatus.PASTED, reason="ok", clipboard_restored=restored)

    def _send_paste_keys(self) -> None:
        modifier = paste_modifier()
        if Controller is None or modifier is None:
            raise RuntimeError("keyboard dependency missing")
        keyboard = Controller()
        keyboard.press(modifier)
        try:
            keyboard.press("v")
            keyboard.release("v")
        finally:
            keyboard.release(modifier)
