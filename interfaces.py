"""Protocol interfaces for the adapters around the capture pipeline."""

from __future__ import annotations

from queue import Queue
from typing import Optional, Protocol, Union

import numpy as np

from models import AudioFrame, DeviceLost, TriggerEvent

AudioItem = Union[AudioFrame, DeviceLost]


class AudioSource(Protocol):
    def start(self, audio_queue: Queue[AudioItem]) -> None: ...

    def stop(self) -> None: ...


class InputSource(Protocol):
    def start(self, event_queue: Queue[TriggerEvent]) -> None: ...

    def stop(self) -> None: ...


class VoiceClassifier(Protocol):
    def load(self) -> None: ...

    def reset(self) -> None: ...

    def classify(self, window: np.ndarray, sample_rate: int) -> float: ...


class InferenceEngine(Protocol):
    def load(self) -> None: ...

    def transcribe(self, samples: np.ndarray, initial_prompt: Optional[str] = None) -> str: ...


class OutputSink(Protocol):
    def deliver(self, text: str, autosend: bool = False) -> None: ...


class NotificationSink(Protocol):
    def notify(self, status_label: str) -> None: ...
