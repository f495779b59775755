"""Local speech recognition with faster-whisper.

The model is loaded lazily, either when the dispatcher warms it at the start
of a session or on the first transcription, and then kept in memory.
"""

from __future__ import annotations

import logging
import threading
from pathlib import Path
from typing import Callable, Optional, Union

import numpy as np

from errors import MODEL_UNAVAILABLE, TranscriptionError

try:
    from faster_whisper import WhisperModel
except Exception:  # pragma: no cover
    WhisperModel = None  # type: ignore

logger = logging.getLogger(__name__)

ModelSource = Union[str, Path, Callable[[], Union[str, Path]]]


class FasterWhisperRecognizer:
    def __init__(
        self,
        model: ModelSource,
        device: str = "auto",
        compute_type: str = "int8",
        language: Optional[str] = None,
        beam_size: int = 1,
    ) -> None:
        self._source = model
        self._device = device
        self._compute_type = compute_type
        self._language = language
        self._beam_size = beam_size
        self._model = None
        self._lock = threading.Lock()

    @property
    def loaded(self) -> bool:
        return self._model is not None

    def load(self) -> None:
        with self._lock:
            if self._model is not None:
                return
            if WhisperModel is None:
                raise TranscriptionError("faster-whisper is not installed", code=MODEL_UNAVAILABLE)
            try:
                source = self._source() if callable(self._source) else self._source
                logger.info("Loading whisper model %s (%s, %s)", source, self._device, self._compute_type)
                self._model = WhisperModel(
                    str(source),
                    device=self._device,
                    compute_type=self._compute_type,
                )
            except TranscriptionError:
                raise
            except Exception as exc:
                raise TranscriptionError(f"cannot load whisper model: {exc}", code=MODEL_UNAVAILABLE) from exc

    def transcribe(self, samples: np.ndarray, initial_prompt: Optional[str] = None) -> str:
        """Transcribe mono 16 kHz float32 samples."""
        self.load()
        segments, _info = self._model.transcribe(
            np.asarray(samples, dtype=np.float32),
            language=self._language,
            initial_prompt=initial_prompt,
            beam_size=self._beam_size,
            condition_on_previous_text=False,
        )
        parts = [segment.text.strip() for segment in segments]
        return " ".join(part for part in parts if part)
