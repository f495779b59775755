"""Clipboard-based text delivery into the focused application."""

from __future__ import annotations

import logging
import sys
import time

from errors import OutputError

try:
    import pyperclip
except Exception:  # pragma: no cover
    pyperclip = None  # type: ignore

try:
    from pynput.keyboard import Controller, Key
except Exception:  # pragma: no cover
    Controller = None  # type: ignore
    Key = None  # type: ignore

logger = logging.getLogger(__name__)


def _paste_chord() -> list:
    # Ctrl+Shift+V pastes in terminals as well as regular text fields.
    if sys.platform == "darwin":
        return [Key.cmd, "v"]
    return [Key.ctrl_l, Key.shift_l, "v"]


class ClipboardPasteService:
    def __init__(self, key_delay_s: float = 0.002, restore_delay_s: float = 0.1) -> None:
        self._key_delay_s = key_delay_s
        self._restore_delay_s = restore_delay_s

    def deliver(self, text: str, autosend: bool = False) -> None:
        """Paste ``text`` and optionally press Return.

        On failure the text stays on the clipboard so it can be pasted by hand.
        """
        if not text.strip():
            raise OutputError("empty text")
        if pyperclip is None or Controller is None or Key is None:
            raise OutputError("clipboard/keyboard dependency missing")

        try:
            old_clip = pyperclip.paste()
            pyperclip.copy(text)
            keyboard = Controller()
            chord = _paste_chord()
            for key in chord:
                keyboard.press(key)
            for key in reversed(chord):
                keyboard.release(key)
            if autosend:
                time.sleep(self._key_delay_s)
                keyboard.press(Key.enter)
                keyboard.release(Key.enter)
        except Exception as exc:
            raise OutputError(f"paste failed: {exc}") from exc

        time.sleep(self._restore_delay_s)
        try:
            pyperclip.copy(old_clip)
        except Exception as exc:
            logger.warning("Could not restore clipboard: %s", exc)
