"""Global keyboard listener based on pynput.

Key presses are translated into ``TriggerEvent``s named like ``ControlLeft``,
``Space``, ``KeyA`` or ``F5`` and pushed onto the pipeline's trigger queue.
Combination and repeat handling live in the state machine.
"""

from __future__ import annotations

import time
from queue import Queue
from typing import Any, Optional

from models import KeyEdge, TriggerEvent

try:
    from pynput import keyboard
except Exception:  # pragma: no cover
    keyboard = None  # type: ignore

SPECIAL_KEYS = {
    "alt": "Alt",
    "alt_l": "Alt",
    "alt_r": "AltGr",
    "alt_gr": "AltGr",
    "backspace": "Backspace",
    "caps_lock": "CapsLock",
    "cmd": "MetaLeft",
    "cmd_l": "MetaLeft",
    "cmd_r": "MetaRight",
    "ctrl": "ControlLeft",
    "ctrl_l": "ControlLeft",
    "ctrl_r": "ControlRight",
    "delete": "Delete",
    "down": "DownArrow",
    "end": "End",
    "enter": "Return",
    "esc": "Escape",
    "home": "Home",
    "insert": "Insert",
    "left": "LeftArrow",
    "num_lock": "NumLock",
    "page_down": "PageDown",
    "page_up": "PageUp",
    "pause": "Pause",
    "print_screen": "PrintScreen",
    "right": "RightArrow",
    "scroll_lock": "ScrollLock",
    "shift": "ShiftLeft",
    "shift_l": "ShiftLeft",
    "shift_r": "ShiftRight",
    "space": "Space",
    "tab": "Tab",
    "up": "UpArrow",
}

PUNCTUATION_KEYS = {
    " ": "Space",
    "-": "Minus",
    "=": "Equal",
    "[": "LeftBracket",
    "]": "RightBracket",
    ";": "SemiColon",
    "'": "Quote",
    "`": "BackQuote",
    "\\": "BackSlash",
    ",": "Comma",
    ".": "Dot",
    "/": "Slash",
}


def key_id(key: Any) -> Optional[str]:
    """Name a pynput key, or None when it has no stable name."""
    name = getattr(key, "name", None)
    if name:
        if name in SPECIAL_KEYS:
            return SPECIAL_KEYS[name]
        if name[0] == "f" and name[1:].isdigit():
            return name.upper()
        return None

    char = getattr(key, "char", None)
    if char and len(char) == 1 and char.isprintable():
        if char.isascii() and char.isalpha():
            return f"Key{char.upper()}"
        if char.isdigit():
            return f"Num{char}"
        return PUNCTUATION_KEYS.get(char)

    # With modifiers held some platforms report control characters; fall
    # back to the virtual key code for letters and digits.
    vk = getattr(key, "vk", None)
    if isinstance(vk, int):
        if 0x41 <= vk <= 0x5A or 0x61 <= vk <= 0x7A:
            return f"Key{chr(vk).upper()}"
        if 0x30 <= vk <= 0x39:
            return f"Num{chr(vk)}"
    return None


class GlobalHotkeyAdapter:
    def __init__(self) -> None:
        self._listener: Optional[object] = None
        self._event_queue: Optional[Queue] = None

    def start(self, event_queue: Queue) -> None:
        if keyboard is None:
            raise RuntimeError("pynput is not installed")
        self._event_queue = event_queue
        self._listener = keyboard.Listener(on_press=self._on_press, on_release=self._on_release)
        self._listener.start()

    def stop(self) -> None:
        listener = self._listener
        if listener is not None:
            listener.stop()
            self._listener = None

    def _on_press(self, key: object) -> None:
        self._emit(key, KeyEdge.DOWN)

    def _on_release(self, key: object) -> None:
        self._emit(key, KeyEdge.UP)

    def _emit(self, key: object, edge: KeyEdge) -> None:
        name = key_id(key)
        if name is None or self._event_queue is None:
            return
        self._event_queue.put(TriggerEvent(key_id=name, edge=edge, timestamp=time.monotonic()))
