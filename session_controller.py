"""State-machine based session orchestration.

``TriggerStateMachine`` owns every piece of mutable session state: pressed
keys, the current ``RecordingSession``, the look-back ring and the voice
activity detector. It is not thread-safe on purpose; a single processing task
feeds it (see ``pipeline.CapturePipeline``).
"""

from __future__ import annotations

import logging
from typing import Callable, Optional, Union

import numpy as np

from capture import LookbackBuffer, RecordingSession
from config import ActivationConfig, PushToTalk, Toggle, ToggleVad
from errors import DEVICE_LOST, VAD_UNAVAILABLE, VADModelError
from interfaces import VoiceClassifier
from models import (
    AudioFrame,
    DeviceLost,
    KeyEdge,
    SessionCancelled,
    SessionEnded,
    SessionStarted,
    SessionState,
    StateChanged,
    TriggerEvent,
)
from resample import downmix, to_float32
from vad import WINDOW_SECONDS, VadSignal, VoiceActivityDetector

logger = logging.getLogger(__name__)

CANCEL_REQUESTED = "cancelled"
CANCEL_DISARMED = "disarmed"
CANCEL_DEVICE_LOST = "device_lost"

SessionEvent = Union[SessionStarted, SessionEnded, SessionCancelled, StateChanged]
EventCallback = Callable[[SessionEvent], None]
ErrorCallback = Callable[[str, str], None]


class TriggerStateMachine:
    def __init__(
        self,
        activation: ActivationConfig,
        sample_rate: int = 16000,
        channels: int = 1,
        classifier: Optional[VoiceClassifier] = None,
        on_event: Optional[EventCallback] = None,
        on_error: Optional[ErrorCallback] = None,
        window_seconds: float = WINDOW_SECONDS,
    ) -> None:
        self._activation = activation
        self._keys = frozenset(activation.keys)
        self.sample_rate = sample_rate
        self.channels = channels
        self._on_event = on_event
        self._on_error = on_error

        self._pressed: set[str] = set()
        self._state = SessionState.IDLE
        self._session: Optional[RecordingSession] = None
        self._last_session_id = 0
        self.rejected_frames = 0

        self._vad: Optional[VoiceActivityDetector] = None
        pre_buffer = 0.0
        if isinstance(activation, ToggleVad):
            pre_buffer = activation.pre_buffer_duration
            if classifier is not None:
                self._vad = VoiceActivityDetector(
                    classifier,
                    threshold=activation.threshold,
                    speech_duration=activation.speech_duration,
                    silence_duration=activation.silence_duration,
                    sample_rate=sample_rate,
                    window_seconds=window_seconds,
                )
        self._lookback = LookbackBuffer(pre_buffer, sample_rate, channels)

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def session(self) -> Optional[RecordingSession]:
        return self._session

    @property
    def lookback(self) -> LookbackBuffer:
        return self._lookback

    @property
    def vad(self) -> Optional[VoiceActivityDetector]:
        return self._vad

    # ------------------------------------------------------------------
    # Inputs
    # ------------------------------------------------------------------

    def feed_trigger(self, event: TriggerEvent) -> None:
        key = event.key_id
        if key not in self._keys:
            return
        was_complete = self._pressed == self._keys
        if event.edge is KeyEdge.DOWN:
            self._pressed.add(key)
        else:
            if key not in self._pressed:
                return
            self._pressed.discard(key)
        complete = self._pressed == self._keys
        pressed = complete and not was_complete
        released = was_complete and not complete

        trigger = self._activation
        if isinstance(trigger, PushToTalk):
            if pressed and self._state is SessionState.IDLE:
                self._start_recording(event.timestamp)
            elif released and self._state is SessionState.RECORDING:
                self._finalize()
        elif isinstance(trigger, Toggle):
            fired = pressed if trigger.edge is KeyEdge.DOWN else released
            if not fired:
                return
            if self._state is SessionState.IDLE:
                self._start_recording(event.timestamp)
            elif self._state is SessionState.RECORDING:
                self._finalize()
        elif isinstance(trigger, ToggleVad):
            if not pressed:
                return
            if self._state is SessionState.IDLE:
                self._arm(event.timestamp)
            elif self._state is SessionState.ARMED:
                self._discard(CANCEL_DISARMED)
            elif self._state is SessionState.RECORDING:
                self._finalize(rearm=False)
        else:
            raise TypeError(f"unsupported activation config: {trigger!r}")

    def feed_audio(self, frame: AudioFrame) -> None:
        if frame.channels != self.channels or frame.sample_rate != self.sample_rate:
            self.rejected_frames += 1
            logger.warning(
                "Dropping frame with format %d ch @ %d Hz, expected %d ch @ %d Hz",
                frame.channels,
                frame.sample_rate,
                self.channels,
                self.sample_rate,
            )
            return

        data = to_float32(frame.samples).reshape(-1, self.channels)
        total = len(data)
        offset = 0
        while offset < total:
            take = total - offset
            if self._vad_active():
                take = min(take, self._vad.remaining)
            start = frame.timestamp + offset / self.sample_rate
            self._consume(data[offset: offset + take], start, start + take / self.sample_rate)
            offset += take

    def device_lost(self, event: DeviceLost) -> None:
        """Cancel whatever is in progress and surface the loss once."""
        logger.error("Audio device lost: %s", event.reason)
        self._discard(CANCEL_DEVICE_LOST)
        self._lookback.clear()
        self._emit_error(DEVICE_LOST, event.reason)

    def cancel(self, reason: str = CANCEL_REQUESTED) -> None:
        """Drop the current session without emitting ``SessionEnded``."""
        self._discard(reason)

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _vad_active(self) -> bool:
        return self._vad is not None and self._state in (SessionState.ARMED, SessionState.RECORDING)

    def _consume(self, segment: np.ndarray, start: float, end: float) -> None:
        self._lookback.push(segment, end)
        session = self._session
        if self._state is SessionState.RECORDING and session is not None:
            session.append(segment, start)
        if not self._vad_active():
            return

        signal = self._vad.push(downmix(segment.reshape(-1), self.channels), end)
        if signal is VadSignal.START_READY and self._state is SessionState.ARMED and session is not None:
            session.begin(self._lookback, end)
            logger.info(
                "Speech detected, session %d starts with %.2fs of pre-buffer",
                session.session_id,
                session.duration,
            )
            self._transition(SessionState.RECORDING)
            self._emit(SessionStarted(session.session_id, end))
        elif signal is VadSignal.STOP_READY and self._state is SessionState.RECORDING:
            self._finalize(rearm=True)

    def _new_session(self, state: SessionState, timestamp: float) -> RecordingSession:
        assert self._session is None, "a session is already active"
        self._last_session_id += 1
        self._session = RecordingSession(
            self._last_session_id,
            self.sample_rate,
            self.channels,
            state=state,
            start_time=timestamp,
        )
        return self._session

    def _start_recording(self, timestamp: float) -> None:
        session = self._new_session(SessionState.RECORDING, timestamp)
        session.begin(None, timestamp)
        logger.info("Recording session %d", session.session_id)
        self._transition(SessionState.RECORDING)
        self._emit(SessionStarted(session.session_id, timestamp))

    def _arm(self, timestamp: float) -> None:
        if self._vad is None:
            self._emit_error(VAD_UNAVAILABLE, "no voice activity classifier configured")
            return
        try:
            self._vad.load()
        except VADModelError as exc:
            logger.error("Cannot arm voice activation: %s", exc)
            self._emit_error(exc.code, exc.message)
            return
        self._vad.reset()
        session = self._new_session(SessionState.ARMED, timestamp)
        logger.info("Armed session %d, waiting for speech", session.session_id)
        self._transition(SessionState.ARMED)

    def _finalize(self, rearm: bool = False) -> None:
        session = self._session
        if session is None:
            return
        utterance = session.finalize()
        self._transition(SessionState.FINALIZING)
        logger.info("Session %d captured %.2fs of audio", session.session_id, utterance.duration)
        self._emit(SessionEnded(session.session_id, utterance))
        self._session = None
        self._transition(SessionState.IDLE)

        trigger = self._activation
        if rearm and isinstance(trigger, ToggleVad) and trigger.continuous:
            self._arm(utterance.end_time)

    def _discard(self, reason: str) -> None:
        session = self._session
        if self._state is SessionState.IDLE or session is None:
            return
        session.release()
        self._session = None
        logger.info("Session %d dropped (%s)", session.session_id, reason)
        self._transition(SessionState.IDLE)
        self._emit(SessionCancelled(session.session_id, reason))

    def _transition(self, to_state: SessionState) -> None:
        from_state = self._state
        if from_state == to_state:
            return
        self._state = to_state
        session_id = self._session.session_id if self._session is not None else self._last_session_id
        self._emit(StateChanged(from_state, to_state, session_id))

    def _emit(self, event: SessionEvent) -> None:
        if self._on_event:
            self._on_event(event)

    def _emit_error(self, code: str, message: str) -> None:
        if self._on_error:
            self._on_error(code, message)
