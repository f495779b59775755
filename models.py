"""Core data models for the app."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum

import numpy as np


class SessionState(str, Enum):
    IDLE = "IDLE"
    ARMED = "ARMED"
    RECORDING = "RECORDING"
    FINALIZING = "FINALIZING"


class KeyEdge(str, Enum):
    DOWN = "down"
    UP = "up"


class SampleFormat(str, Enum):
    F32 = "f32"
    I16 = "i16"


@dataclass(frozen=True)
class TriggerEvent:
    key_id: str
    edge: KeyEdge
    timestamp: float = 0.0


@dataclass
class AudioFrame:
    """A block of interleaved samples as delivered by the capture device."""

    samples: np.ndarray
    channels: int = 1
    sample_rate: int = 16000
    sample_format: SampleFormat = SampleFormat.F32
    timestamp: float = 0.0

    @property
    def frame_count(self) -> int:
        return len(self.samples) // self.channels

    @property
    def duration(self) -> float:
        return self.frame_count / self.sample_rate


@dataclass(frozen=True)
class DeviceLost:
    reason: str
    timestamp: float = 0.0


@dataclass(frozen=True)
class Utterance:
    samples: np.ndarray = field(repr=False)
    source_rate: int
    channels: int
    session_id: int
    start_time: float = 0.0
    end_time: float = 0.0

    @property
    def frame_count(self) -> int:
        return len(self.samples) // self.channels

    @property
    def duration(self) -> float:
        return self.frame_count / self.source_rate


# ----------------------------------------------------------------------
# Session events
# ----------------------------------------------------------------------


@dataclass(frozen=True)
class SessionStarted:
    session_id: int
    timestamp: float = 0.0


@dataclass(frozen=True)
class SessionEnded:
    session_id: int
    utterance: Utterance


@dataclass(frozen=True)
class SessionCancelled:
    session_id: int
    reason: str = ""


@dataclass(frozen=True)
class StateChanged:
    from_state: SessionState
    to_state: SessionState
    session_id: int = 0


@dataclass
class TranscriptionResult:
    session_id: int
    text: str = ""
    code: str = ""
    message: str = ""

    @property
    def ok(self) -> bool:
        return not self.code
