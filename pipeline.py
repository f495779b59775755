"""Processing task that serialises every mutation of session state.

Audio frames and trigger events arrive on separate queues from their own
producer threads. One thread drains both and feeds a ``TriggerStateMachine``;
trigger events are applied before any frame that was captured after them.

The driver delivers audio in blocks, so a key event can reach the pipeline
before the block that was being captured when it happened. A trigger is held
until audio up to its timestamp has been processed, or until ``hold_s`` has
passed without that audio arriving.
"""

from __future__ import annotations

import logging
import threading
import time
from collections import deque
from dataclasses import dataclass
from queue import Empty, Queue
from typing import Optional, Union

from interfaces import AudioItem
from models import DeviceLost, TriggerEvent
from session_controller import CANCEL_REQUESTED, TriggerStateMachine

logger = logging.getLogger(__name__)

# about two 32 ms blocks
DEFAULT_HOLD_S = 0.08


@dataclass(frozen=True)
class CancelRequest:
    reason: str = CANCEL_REQUESTED


ControlItem = Union[TriggerEvent, CancelRequest]


class CapturePipeline:
    def __init__(
        self,
        machine: TriggerStateMachine,
        queue_maxsize: int = 64,
        poll_interval_s: float = 0.05,
        hold_s: float = DEFAULT_HOLD_S,
    ) -> None:
        self._machine = machine
        self._audio_queue: Queue[AudioItem] = Queue(maxsize=queue_maxsize)
        self._control_queue: Queue[ControlItem] = Queue()
        # (arrival time, item)
        self._pending: deque[tuple[float, ControlItem]] = deque()
        self._audio_end: Optional[float] = None
        self._poll_interval_s = poll_interval_s
        self._hold_s = hold_s
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None

    @property
    def machine(self) -> TriggerStateMachine:
        return self._machine

    @property
    def audio_queue(self) -> Queue[AudioItem]:
        return self._audio_queue

    @property
    def trigger_queue(self) -> Queue[ControlItem]:
        return self._control_queue

    def start(self) -> None:
        if self._thread and self._thread.is_alive():
            return
        self._stop_event.clear()
        self._thread = threading.Thread(target=self._run, name="capture-pipeline", daemon=True)
        self._thread.start()

    def stop(self, timeout: Optional[float] = 1.0) -> None:
        self._stop_event.set()
        if self._thread and self._thread.is_alive():
            self._thread.join(timeout=timeout)

    def cancel(self, reason: str = CANCEL_REQUESTED) -> None:
        self._control_queue.put(CancelRequest(reason))

    def run_once(self, timeout: Optional[float] = None) -> bool:
        """Process at most one audio item. Returns False when none was waiting."""
        self._collect_controls()
        try:
            if timeout is None:
                item = self._audio_queue.get_nowait()
            else:
                item = self._audio_queue.get(timeout=timeout)
        except Empty:
            self._collect_controls()
            self._apply_controls(None)
            return False

        self._collect_controls()
        self._apply_controls(item.timestamp)
        if isinstance(item, DeviceLost):
            self._machine.device_lost(item)
            self._audio_end = item.timestamp
        else:
            self._machine.feed_audio(item)
            self._audio_end = item.timestamp + item.duration
        return True

    def drain(self) -> None:
        """Process everything currently queued."""
        while self.run_once():
            pass

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _run(self) -> None:
        while not self._stop_event.is_set():
            try:
                self.run_once(timeout=self._poll_interval_s)
            except Exception:
                logger.exception("Capture pipeline step failed, dropping current session")
                self._machine.cancel("error")

    def _collect_controls(self) -> None:
        while True:
            try:
                item = self._control_queue.get_nowait()
            except Empty:
                return
            self._pending.append((time.monotonic(), item))

    def _apply_controls(self, before: Optional[float]) -> None:
        """Apply pending controls in arrival order.

        ``before`` is the capture time of the frame about to be processed.
        ``None`` means no audio is waiting, in which case a trigger is only
        applied once the audio it belongs to has been seen or its hold expired.
        """
        now = time.monotonic()
        while self._pending:
            arrived, item = self._pending[0]
            if isinstance(item, TriggerEvent):
                if before is not None:
                    if item.timestamp > before:
                        return
                elif not self._audio_caught_up(item.timestamp) and now - arrived < self._hold_s:
                    return
            self._pending.popleft()
            if isinstance(item, CancelRequest):
                self._machine.cancel(item.reason)
            else:
                self._machine.feed_trigger(item)

    def _audio_caught_up(self, timestamp: float) -> bool:
        return self._audio_end is not None and timestamp <= self._audio_end
