"""Look-back ring buffer and per-session capture buffer.

Both are owned by the processing task and store float32 sample frames shaped
``(n, channels)`` at the device rate. Times are in the same clock as
``AudioFrame.timestamp``.
"""

from __future__ import annotations

from typing import Optional

import numpy as np

from models import SessionState, Utterance


class LookbackBuffer:
    """Fixed-capacity ring holding the most recent ``duration`` seconds."""

    def __init__(self, duration: float, sample_rate: int, channels: int = 1) -> None:
        self.sample_rate = sample_rate
        self.channels = channels
        self.capacity = max(0, int(round(duration * sample_rate)))
        self._data = np.zeros((self.capacity, channels), dtype=np.float32)
        self._head = 0
        self._count = 0
        self._end_time: Optional[float] = None

    def __len__(self) -> int:
        return self._count

    @property
    def end_time(self) -> Optional[float]:
        return self._end_time

    @property
    def start_time(self) -> Optional[float]:
        if self._end_time is None:
            return None
        return self._end_time - self._count / self.sample_rate

    def push(self, frames: np.ndarray, end_time: float) -> None:
        """Append frames, dropping the oldest ones once full."""
        self._end_time = end_time
        n = len(frames)
        cap = self.capacity
        if cap == 0 or n == 0:
            return
        if n >= cap:
            self._data[:] = frames[n - cap:]
            self._head = 0
            self._count = cap
            return
        end = self._head + n
        if end <= cap:
            self._data[self._head:end] = frames
        else:
            first = cap - self._head
            self._data[self._head:] = frames[:first]
            self._data[: n - first] = frames[first:]
        self._head = end % cap
        self._count = min(cap, self._count + n)

    def snapshot(self) -> np.ndarray:
        """Copy of the contents, oldest first."""
        if self._count < self.capacity:
            return self._data[: self._count].copy()
        return np.concatenate((self._data[self._head:], self._data[: self._head]))

    def clear(self) -> None:
        self._head = 0
        self._count = 0


class RecordingSession:
    """Audio accumulated for one activation, plus its lifecycle state."""

    def __init__(
        self,
        session_id: int,
        sample_rate: int,
        channels: int = 1,
        state: SessionState = SessionState.ARMED,
        start_time: float = 0.0,
    ) -> None:
        self.session_id = session_id
        self.sample_rate = sample_rate
        self.channels = channels
        self.state = state
        self.start_time = start_time
        self.end_time: Optional[float] = None
        self._chunks: list[np.ndarray] = []
        self._frames = 0

    @property
    def frame_count(self) -> int:
        return self._frames

    @property
    def duration(self) -> float:
        return self._frames / self.sample_rate

    def begin(self, lookback: Optional[LookbackBuffer], start_time: float) -> None:
        """Enter Recording, seeding the buffer from the look-back ring."""
        self._chunks.clear()
        self._frames = 0
        self.start_time = start_time
        if lookback is not None and len(lookback):
            self.append(lookback.snapshot())
            if lookback.start_time is not None:
                self.start_time = lookback.start_time
        self.state = SessionState.RECORDING

    def append(self, frames: np.ndarray, start_time: Optional[float] = None) -> None:
        if not len(frames):
            return
        if self._frames == 0 and start_time is not None:
            self.start_time = start_time
        self._chunks.append(frames)
        self._frames += len(frames)

    def finalize(self) -> Utterance:
        self.state = SessionState.FINALIZING
        end_time = self.start_time + self.duration
        self.end_time = end_time
        if self._chunks:
            samples = np.concatenate(self._chunks).reshape(-1)
        else:
            samples = np.zeros(0, dtype=np.float32)
        self.release()
        return Utterance(
            samples=samples,
            source_rate=self.sample_rate,
            channels=self.channels,
            session_id=self.session_id,
            start_time=self.start_time,
            end_time=end_time,
        )

    def release(self) -> None:
        self._chunks = []
        self._frames = 0
