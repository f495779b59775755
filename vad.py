"""Voice activity detection with duration hysteresis.

The detector consumes mono audio in fixed analysis windows, asks a classifier
for a speech probability per window and keeps two duration accumulators (in
samples, so results never depend on float rounding). It reports
``START_READY`` once ``speech_duration`` of continuous speech has been seen and
``STOP_READY`` once ``silence_duration`` of continuous silence follows.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Callable, Optional

import numpy as np

from errors import VADModelError
from interfaces import VoiceClassifier
from resample import resample

try:
    import onnxruntime as ort
except Exception:  # pragma: no cover
    ort = None  # type: ignore

logger = logging.getLogger(__name__)

WINDOW_SECONDS = 0.032
SILERO_RATE = 16000
SILERO_WINDOW = 512


class VadSignal(str, Enum):
    START_READY = "start_ready"
    STOP_READY = "stop_ready"


@dataclass
class VADState:
    probability: float = 0.0
    speech_samples: int = 0
    silence_samples: int = 0


# ----------------------------------------------------------------------
# Classifiers
# ----------------------------------------------------------------------


class EnergyClassifier:
    """Maps the RMS level of a window linearly from ``floor_db`` to ``ceiling_db``."""

    def __init__(self, floor_db: float = -60.0, ceiling_db: float = -20.0) -> None:
        if ceiling_db <= floor_db:
            raise ValueError("ceiling_db must be above floor_db")
        self.floor_db = floor_db
        self.ceiling_db = ceiling_db

    def load(self) -> None:
        pass

    def reset(self) -> None:
        pass

    def classify(self, window: np.ndarray, sample_rate: int) -> float:
        if window.size == 0:
            return 0.0
        rms = float(np.sqrt(np.mean(np.square(window, dtype=np.float64))))
        level_db = 20.0 * np.log10(rms + 1e-12)
        scaled = (level_db - self.floor_db) / (self.ceiling_db - self.floor_db)
        return float(min(1.0, max(0.0, scaled)))


class SileroClassifier:
    """Silero VAD ONNX model evaluated with onnxruntime.

    The model keeps a recurrent state across windows; ``reset`` clears it so
    each armed session starts fresh.
    """

    def __init__(
        self,
        model_path: Optional[Path] = None,
        fetch_model: Optional[Callable[[], Path]] = None,
    ) -> None:
        self._model_path = model_path
        self._fetch_model = fetch_model
        self._session = None
        self._state = np.zeros((2, 1, 128), dtype=np.float32)
        self._sr = np.array([SILERO_RATE], dtype=np.int64)

    @property
    def loaded(self) -> bool:
        return self._session is not None

    def load(self) -> None:
        if self._session is not None:
            return
        if ort is None:
            raise VADModelError("onnxruntime is not installed")
        try:
            path = self._model_path
            if path is None:
                if self._fetch_model is None:
                    raise VADModelError("no Silero model path configured")
                path = self._fetch_model()
            self._session = ort.InferenceSession(str(path), providers=["CPUExecutionProvider"])
        except VADModelError:
            raise
        except Exception as exc:
            raise VADModelError(f"cannot load Silero VAD model: {exc}") from exc
        logger.info("Loaded Silero VAD model from %s", path)

    def reset(self) -> None:
        self._state = np.zeros((2, 1, 128), dtype=np.float32)

    def classify(self, window: np.ndarray, sample_rate: int) -> float:
        if self._session is None:
            raise VADModelError("Silero VAD model is not loaded")
        data = window if sample_rate == SILERO_RATE else resample(window, sample_rate, 1, SILERO_RATE)
        if len(data) < SILERO_WINDOW:
            data = np.pad(data, (0, SILERO_WINDOW - len(data)))
        data = np.asarray(data[:SILERO_WINDOW], dtype=np.float32)[np.newaxis, :]
        output, state = self._session.run(
            ["output", "stateN"],
            {"input": data, "state": self._state, "sr": self._sr},
        )
        self._state = state
        return float(np.ravel(output)[0])


# ----------------------------------------------------------------------
# Detector
# ----------------------------------------------------------------------


class VoiceActivityDetector:
    def __init__(
        self,
        classifier: VoiceClassifier,
        threshold: float,
        speech_duration: float,
        silence_duration: float,
        sample_rate: int,
        window_seconds: float = WINDOW_SECONDS,
    ) -> None:
        self.classifier = classifier
        self.threshold = threshold
        self.sample_rate = sample_rate
        self.window_size = max(1, int(round(window_seconds * sample_rate)))
        self.speech_threshold = int(round(speech_duration * sample_rate))
        self.silence_threshold = int(round(silence_duration * sample_rate))
        self.state = VADState()
        self._speaking = False
        self._pending: list[np.ndarray] = []
        self._pending_len = 0
        self.last_signal_time: Optional[float] = None

    @property
    def remaining(self) -> int:
        """Samples still needed to complete the current analysis window."""
        return self.window_size - self._pending_len

    @property
    def speech_seconds(self) -> float:
        return self.state.speech_samples / self.sample_rate

    @property
    def silence_seconds(self) -> float:
        return self.state.silence_samples / self.sample_rate

    def load(self) -> None:
        self.classifier.load()

    def reset(self) -> None:
        self.state = VADState()
        self._speaking = False
        self._pending = []
        self._pending_len = 0
        self.last_signal_time = None
        self.classifier.reset()

    def push(self, mono: np.ndarray, end_time: float) -> Optional[VadSignal]:
        """Feed up to ``remaining`` mono samples ending at ``end_time``.

        Returns a signal when the samples complete a window that crosses one of
        the hysteresis thresholds.
        """
        if len(mono) > self.remaining:
            raise ValueError(f"got {len(mono)} samples, window only needs {self.remaining}")
        if len(mono):
            self._pending.append(mono)
            self._pending_len += len(mono)
        if self._pending_len < self.window_size:
            return None
        window = np.concatenate(self._pending)
        self._pending = []
        self._pending_len = 0
        return self._update(self.classifier.classify(window, self.sample_rate), end_time)

    def _update(self, probability: float, timestamp: float) -> Optional[VadSignal]:
        state = self.state
        state.probability = probability
        if probability > self.threshold:
            state.speech_samples += self.window_size
            state.silence_samples = 0
        else:
            state.silence_samples += self.window_size
            state.speech_samples = 0

        if not self._speaking and state.speech_samples and state.speech_samples >= self.speech_threshold:
            self._speaking = True
            self.last_signal_time = timestamp
            logger.debug("Speech start-ready at %.3f", timestamp)
            return VadSignal.START_READY
        if self._speaking and state.silence_samples and state.silence_samples >= self.silence_threshold:
            self._speaking = False
            self.last_signal_time = timestamp
            logger.debug("Speech stop-ready at %.3f", timestamp)
            return VadSignal.STOP_READY
        return None
