"""Microphone recorder adapter.

The stream runs for the whole lifetime of the app so the look-back buffer
always has recent audio. The PortAudio callback only copies the block and
hands it to the pipeline queue; it never blocks.
"""

from __future__ import annotations

import logging
import threading
import time
from queue import Empty, Full, Queue
from typing import Any, Optional

import numpy as np

from errors import DeviceError
from interfaces import AudioItem
from models import AudioFrame, DeviceLost, SampleFormat

try:
    import sounddevice as sd
except Exception:  # pragma: no cover
    sd = None  # type: ignore

logger = logging.getLogger(__name__)

DTYPES = {
    SampleFormat.F32: "float32",
    SampleFormat.I16: "int16",
}


class SoundDeviceRecorder:
    def __init__(
        self,
        sample_rate: int = 16000,
        channels: int = 1,
        sample_format: SampleFormat = SampleFormat.F32,
        device: Optional[str] = None,
        chunk_ms: int = 32,
    ) -> None:
        self.sample_rate = sample_rate
        self.channels = channels
        self.sample_format = sample_format
        self.device = device
        self.chunk_ms = chunk_ms
        self._stream: Any = None
        self._running = False
        self._lock = threading.Lock()
        self.dropped_frames = 0
        self._audio_queue: Optional[Queue[AudioItem]] = None

    def start(self, audio_queue: Queue[AudioItem]) -> None:
        with self._lock:
            if self._running:
                return
            # a stream left behind by a lost device
            self._close_stream()
            if sd is None:
                raise RuntimeError("sounddevice is not installed")
            self._audio_queue = audio_queue
            blocksize = int(self.sample_rate * (self.chunk_ms / 1000.0))
            try:
                self._stream = sd.InputStream(
                    samplerate=self.sample_rate,
                    channels=self.channels,
                    dtype=DTYPES[self.sample_format],
                    blocksize=blocksize,
                    device=self.device,
                    callback=self._on_audio,
                    finished_callback=self._on_finished,
                )
                self._running = True
                self._stream.start()
            except Exception as exc:
                self._running = False
                self._stream = None
                raise DeviceError(f"cannot open input device {self.device or 'default'}: {exc}") from exc
            logger.info(
                "Capturing %d ch @ %d Hz (%s) from %s",
                self.channels,
                self.sample_rate,
                self.sample_format.value,
                self.device or "default device",
            )

    def stop(self) -> None:
        with self._lock:
            self._running = False
            self._close_stream()

    def _close_stream(self) -> None:
        if self._stream is None:
            return
        stream, self._stream = self._stream, None
        stream.stop()
        stream.close()

    def _on_audio(self, indata: Any, frames: int, time_info: Any, status: Any) -> None:
        if not self._running or self._audio_queue is None:
            return
        if status:
            logger.debug("Input stream status: %s", status)
        samples = np.array(indata, dtype=DTYPES[self.sample_format]).reshape(-1)
        frame = AudioFrame(
            samples=samples,
            channels=self.channels,
            sample_rate=self.sample_rate,
            sample_format=self.sample_format,
            timestamp=time.monotonic() - frames / self.sample_rate,
        )
        try:
            self._audio_queue.put_nowait(frame)
        except Full:
            self.dropped_frames += 1
            if self.dropped_frames % 100 == 1:
                logger.warning("Audio queue full, %d frame(s) dropped so far", self.dropped_frames)

    def _on_finished(self) -> None:
        """PortAudio ended the stream; unexpected unless ``stop`` was called."""
        if not self._running:
            return
        self._running = False
        self._push_terminal(DeviceLost("input stream ended unexpectedly", time.monotonic()))

    def _push_terminal(self, event: DeviceLost) -> None:
        if self._audio_queue is None:
            return
        while True:
            try:
                self._audio_queue.put_nowait(event)
                return
            except Full:
                try:
                    self._audio_queue.get_nowait()
                except Empty:
                    pass
