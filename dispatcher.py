"""Background transcription worker.

One utterance is transcribed at a time. An utterance that arrives while the
worker is busy waits in a single pending slot; a newer one replaces it.
"""

from __future__ import annotations

import logging
import threading
from typing import Callable, Iterable, Optional

from config import NoPrompt, PromptConfig
from errors import UTTERANCE_TOO_SHORT, DictationError, TranscriptionError
from interfaces import InferenceEngine
from models import TranscriptionResult, Utterance
from postprocess import TextPostProcessor, initial_prompt
from resample import TARGET_RATE, resample

logger = logging.getLogger(__name__)

ResultCallback = Callable[[TranscriptionResult], None]


class TranscriptionDispatcher:
    def __init__(
        self,
        engine: InferenceEngine,
        prompt: PromptConfig = NoPrompt(),
        replacements: Iterable[tuple[str, str]] = (),
        min_duration: float = 0.3,
        on_result: Optional[ResultCallback] = None,
    ) -> None:
        self._engine = engine
        self._initial_prompt = initial_prompt(prompt)
        self._postprocess = TextPostProcessor(replacements)
        self._min_duration = min_duration
        self._on_result = on_result

        self._cond = threading.Condition()
        self._pending: Optional[Utterance] = None
        self._in_flight: Optional[int] = None
        self._discard_in_flight = False
        self._warm_requested = False
        self._stopping = False
        self._thread: Optional[threading.Thread] = None
        self.replaced = 0

    @property
    def busy(self) -> bool:
        with self._cond:
            return self._in_flight is not None or self._pending is not None

    def start(self) -> None:
        if self._thread and self._thread.is_alive():
            return
        self._stopping = False
        self._thread = threading.Thread(target=self._worker, name="transcription", daemon=True)
        self._thread.start()

    def stop(self, timeout: Optional[float] = None) -> None:
        with self._cond:
            self._stopping = True
            self._pending = None
            self._cond.notify_all()
        if self._thread and self._thread.is_alive():
            self._thread.join(timeout=timeout)

    def submit(self, utterance: Utterance) -> None:
        with self._cond:
            if self._pending is not None:
                self.replaced += 1
                logger.warning(
                    "Utterance %d superseded by %d before transcription started",
                    self._pending.session_id,
                    utterance.session_id,
                )
            self._pending = utterance
            self._cond.notify_all()

    def warm(self) -> None:
        """Ask the worker to load the model while it has nothing to do."""
        with self._cond:
            self._warm_requested = True
            self._cond.notify_all()

    def discard(self) -> None:
        """Drop the pending utterance and ignore the result of the running one."""
        with self._cond:
            self._pending = None
            if self._in_flight is not None:
                self._discard_in_flight = True

    # ------------------------------------------------------------------
    # Synchronous path
    # ------------------------------------------------------------------

    def transcribe(self, utterance: Utterance) -> str:
        if utterance.duration < self._min_duration:
            raise TranscriptionError(
                f"utterance of {utterance.duration:.2f}s is shorter than {self._min_duration:.2f}s",
                code=UTTERANCE_TOO_SHORT,
            )
        samples = resample(utterance.samples, utterance.source_rate, utterance.channels, TARGET_RATE, 1)
        try:
            raw = self._engine.transcribe(samples, self._initial_prompt)
        except DictationError:
            raise
        except Exception as exc:
            raise TranscriptionError(f"inference failed: {exc}") from exc
        return self._postprocess(raw)

    def process(self, utterance: Utterance) -> TranscriptionResult:
        try:
            text = self.transcribe(utterance)
        except DictationError as exc:
            logger.error("Transcription of session %d failed: %s", utterance.session_id, exc)
            return TranscriptionResult(utterance.session_id, code=exc.code, message=exc.message)
        logger.info("Transcribed session %d: %r", utterance.session_id, text)
        return TranscriptionResult(utterance.session_id, text=text)

    # ------------------------------------------------------------------
    # Worker
    # ------------------------------------------------------------------

    def _worker(self) -> None:
        while True:
            with self._cond:
                while self._pending is None and not self._warm_requested and not self._stopping:
                    self._cond.wait()
                if self._stopping:
                    return
                utterance = self._pending
                self._pending = None
                self._warm_requested = False
                if utterance is not None:
                    self._in_flight = utterance.session_id
                    self._discard_in_flight = False

            if utterance is None:
                self._warm_up()
                continue

            result = self.process(utterance)
            with self._cond:
                discarded = self._discard_in_flight
                self._in_flight = None
                self._discard_in_flight = False
            if discarded:
                logger.info("Discarding transcription of cancelled session %d", utterance.session_id)
                continue
            if self._on_result:
                self._on_result(result)

    def _warm_up(self) -> None:
        try:
            self._engine.load()
        except DictationError as exc:
            logger.error("Model warm-up failed: %s", exc)
