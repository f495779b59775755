"""Wires the capture pipeline to transcription, delivery and notifications."""

from __future__ import annotations

import logging
from typing import Callable, Optional

from config import AppConfig
from dispatcher import TranscriptionDispatcher
from errors import OutputError, VADModelError
from interfaces import AudioSource, InferenceEngine, InputSource, NotificationSink, OutputSink, VoiceClassifier
from models import (
    SessionCancelled,
    SessionEnded,
    SessionStarted,
    SessionState,
    StateChanged,
    TranscriptionResult,
)
from pipeline import CapturePipeline
from session_controller import CANCEL_DEVICE_LOST, CANCEL_REQUESTED, SessionEvent, TriggerStateMachine

logger = logging.getLogger(__name__)

StateCallback = Callable[[SessionState, SessionState], None]
ErrorCallback = Callable[[str, str], None]

SUMMARY_LENGTH = 20

STATUS_LABELS = {
    SessionState.ARMED: "Listening...",
    SessionState.RECORDING: "Recording...",
    SessionState.FINALIZING: "Transcribing...",
}
NO_VOICE_LABEL = "No voice detected"


def summarize(text: str, limit: int = SUMMARY_LENGTH) -> str:
    return text if len(text) <= limit else text[:limit] + "…"


class DictationService:
    def __init__(
        self,
        config: AppConfig,
        recorder: AudioSource,
        hotkeys: InputSource,
        engine: InferenceEngine,
        output: OutputSink,
        classifier: Optional[VoiceClassifier] = None,
        notifier: Optional[NotificationSink] = None,
        on_state_change: Optional[StateCallback] = None,
        on_error: Optional[ErrorCallback] = None,
    ) -> None:
        self._config = config
        self._recorder = recorder
        self._hotkeys = hotkeys
        self._output = output
        self._classifier = classifier
        self._notifier = notifier
        self._on_state_change = on_state_change
        self._on_error = on_error

        self._machine = TriggerStateMachine(
            config.activation.trigger,
            sample_rate=config.audio.sample_rate,
            channels=config.audio.channels,
            classifier=classifier,
            on_event=self._handle_session_event,
            on_error=self._emit_error,
        )
        self._pipeline = CapturePipeline(self._machine, queue_maxsize=config.audio.queue_size)
        self._dispatcher = TranscriptionDispatcher(
            engine,
            prompt=config.model.prompt,
            replacements=config.model.replacements,
            min_duration=config.model.min_duration,
            on_result=self._handle_result,
        )

    @property
    def pipeline(self) -> CapturePipeline:
        return self._pipeline

    @property
    def dispatcher(self) -> TranscriptionDispatcher:
        return self._dispatcher

    @property
    def state(self) -> SessionState:
        return self._machine.state

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self) -> None:
        self._dispatcher.start()
        self._load_classifier()
        self._pipeline.start()
        self._recorder.start(self._pipeline.audio_queue)
        self._hotkeys.start(self._pipeline.trigger_queue)
        keys = " + ".join(self._config.activation.keys)
        logger.info("Ready: %s with %s", type(self._config.activation.trigger).__name__, keys)

    def stop(self) -> None:
        self._hotkeys.stop()
        self._recorder.stop()
        self._pipeline.cancel(CANCEL_REQUESTED)
        self._pipeline.stop()
        self._dispatcher.stop(timeout=1.0)

    def cancel(self) -> None:
        self._pipeline.cancel(CANCEL_REQUESTED)

    def _load_classifier(self) -> None:
        # Model download and session setup must not run on the pipeline thread.
        if self._classifier is None:
            return
        try:
            self._classifier.load()
        except VADModelError as exc:
            logger.error("Cannot load voice activity model: %s", exc)
            self._emit_error(exc.code, exc.message)

    # ------------------------------------------------------------------
    # Callbacks
    # ------------------------------------------------------------------

    def _handle_session_event(self, event: SessionEvent) -> None:
        """Runs on the pipeline thread; must not block."""
        if isinstance(event, StateChanged):
            if self._on_state_change:
                self._on_state_change(event.from_state, event.to_state)
            label = STATUS_LABELS.get(event.to_state)
            if label:
                self._notify(label)
        elif isinstance(event, SessionStarted):
            self._dispatcher.warm()
        elif isinstance(event, SessionEnded):
            self._dispatcher.submit(event.utterance)
        elif isinstance(event, SessionCancelled):
            if event.reason in (CANCEL_REQUESTED, CANCEL_DEVICE_LOST):
                self._dispatcher.discard()

    def _handle_result(self, result: TranscriptionResult) -> None:
        """Runs on the transcription worker."""
        if not result.ok:
            self._emit_error(result.code, result.message)
            return
        if not result.text:
            self._notify(NO_VOICE_LABEL)
            return
        self._notify(summarize(result.text))
        try:
            self._output.deliver(result.text, autosend=self._config.activation.autosend)
        except OutputError as exc:
            logger.error("Delivering session %d failed: %s", result.session_id, exc)
            self._emit_error(exc.code, exc.message)

    def _emit_error(self, code: str, message: str) -> None:
        """Errors go to on_error only; status labels never carry them."""
        if self._on_error:
            self._on_error(code, message)
        else:
            logger.warning("Unhandled error %s: %s", code, message)

    def _notify(self, label: str) -> None:
        if self._notifier is None or not self._config.activation.notify:
            return
        try:
            self._notifier.notify(label)
        except Exception as exc:
            logger.warning("Cannot show notification %r: %s", label, exc)
