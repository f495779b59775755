"""Shared error codes, user-facing messages and exception types."""

from __future__ import annotations

DEVICE_LOST = "DEVICE_LOST"
VAD_UNAVAILABLE = "VAD_UNAVAILABLE"
MODEL_UNAVAILABLE = "MODEL_UNAVAILABLE"
TRANSCRIPTION_FAILED = "TRANSCRIPTION_FAILED"
UTTERANCE_TOO_SHORT = "UTTERANCE_TOO_SHORT"
NO_ACTIVE_TARGET = "NO_ACTIVE_TARGET"
CONFIG_INVALID = "CONFIG_INVALID"

ERROR_MESSAGES = {
    DEVICE_LOST: "Audio input device was lost.",
    VAD_UNAVAILABLE: "Voice activity model is unavailable.",
    MODEL_UNAVAILABLE: "Transcription model is unavailable.",
    TRANSCRIPTION_FAILED: "Transcription failed.",
    UTTERANCE_TOO_SHORT: "Recording was too short to transcribe.",
    NO_ACTIVE_TARGET: "No active input target, text kept in clipboard.",
    CONFIG_INVALID: "Configuration file is invalid.",
}


class DictationError(Exception):
    code = TRANSCRIPTION_FAILED

    def __init__(self, message: str = "", code: str | None = None) -> None:
        if code is not None:
            self.code = code
        super().__init__(message or ERROR_MESSAGES.get(self.code, self.code))

    @property
    def message(self) -> str:
        return str(self)


class DeviceError(DictationError):
    code = DEVICE_LOST


class VADModelError(DictationError):
    code = VAD_UNAVAILABLE


class TranscriptionError(DictationError):
    code = TRANSCRIPTION_FAILED


class OutputError(DictationError):
    code = NO_ACTIVE_TARGET


class ConfigError(DictationError):
    code = CONFIG_INVALID
