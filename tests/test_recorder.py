"""Tests for SoundDeviceRecorder."""

from __future__ import annotations

from queue import Queue
from unittest.mock import MagicMock, patch

import numpy as np
import pytest

from errors import DeviceError
from models import AudioFrame, DeviceLost, SampleFormat
from recorder import SoundDeviceRecorder


def _block(n_samples: int = 512, channels: int = 1, dtype: str = "float32") -> np.ndarray:
    """Shaped like the ``indata`` array sounddevice hands to the callback."""
    return np.full((n_samples, channels), 0.25 if dtype == "float32" else 8192, dtype=dtype)


# ---------------------------------------------------------------
# Basic start / stop
# ---------------------------------------------------------------

@patch("recorder.sd")
def test_start_opens_continuous_stream(mock_sd: MagicMock) -> None:
    mock_stream = MagicMock()
    mock_sd.InputStream.return_value = mock_stream

    recorder = SoundDeviceRecorder(sample_rate=48000, channels=2, device="USB Mic")
    recorder.start(Queue())

    kwargs = mock_sd.InputStream.call_args.kwargs
    assert kwargs["samplerate"] == 48000
    assert kwargs["channels"] == 2
    assert kwargs["dtype"] == "float32"
    assert kwargs["device"] == "USB Mic"
    mock_stream.start.assert_called_once()

    recorder.stop()
    mock_stream.stop.assert_called_once()
    mock_stream.close.assert_called_once()


@patch("recorder.sd")
def test_int16_format_requests_int16_stream(mock_sd: MagicMock) -> None:
    mock_sd.InputStream.return_value = MagicMock()

    recorder = SoundDeviceRecorder(sample_format=SampleFormat.I16)
    recorder.start(Queue())

    assert mock_sd.InputStream.call_args.kwargs["dtype"] == "int16"
    recorder.stop()


@patch("recorder.sd")
def test_start_is_idempotent(mock_sd: MagicMock) -> None:
    mock_sd.InputStream.return_value = MagicMock()

    recorder = SoundDeviceRecorder()
    q: Queue = Queue()
    recorder.start(q)
    recorder.start(q)

    assert mock_sd.InputStream.call_count == 1
    recorder.stop()


@patch("recorder.sd")
def test_stop_is_idempotent(mock_sd: MagicMock) -> None:
    mock_stream = MagicMock()
    mock_sd.InputStream.return_value = mock_stream

    recorder = SoundDeviceRecorder()
    recorder.start(Queue())
    recorder.stop()
    recorder.stop()

    mock_stream.close.assert_called_once()


@patch("recorder.sd")
def test_open_failure_raises_device_error(mock_sd: MagicMock) -> None:
    mock_sd.InputStream.side_effect = Exception("Invalid device")

    recorder = SoundDeviceRecorder(device="missing")
    with pytest.raises(DeviceError, match="Invalid device"):
        recorder.start(Queue())


def test_start_raises_without_sounddevice(monkeypatch) -> None:  # noqa: ANN001
    import recorder as rec_mod
    monkeypatch.setattr(rec_mod, "sd", None)

    recorder = SoundDeviceRecorder()
    with pytest.raises(RuntimeError, match="sounddevice is not installed"):
        recorder.start(Queue())


# ---------------------------------------------------------------
# Audio callback
# ---------------------------------------------------------------

@patch("recorder.sd")
def test_callback_pushes_interleaved_frames(mock_sd: MagicMock) -> None:
    mock_sd.InputStream.return_value = MagicMock()

    recorder = SoundDeviceRecorder(sample_rate=16000, channels=2)
    q: Queue = Queue()
    recorder.start(q)

    recorder._on_audio(_block(512, channels=2), frames=512, time_info=None, status=None)

    frame = q.get_nowait()
    assert isinstance(frame, AudioFrame)
    assert frame.channels == 2
    assert frame.sample_rate == 16000
    assert frame.samples.shape == (1024,)
    assert frame.frame_count == 512
    recorder.stop()


@patch("recorder.sd")
def test_callback_copies_the_device_buffer(mock_sd: MagicMock) -> None:
    mock_sd.InputStream.return_value = MagicMock()

    recorder = SoundDeviceRecorder()
    q: Queue = Queue()
    recorder.start(q)

    indata = _block(512)
    recorder._on_audio(indata, frames=512, time_info=None, status=None)
    indata[:] = 0.0

    frame = q.get_nowait()
    assert np.all(frame.samples == np.float32(0.25))
    recorder.stop()


@patch("recorder.sd")
def test_queue_full_increments_dropped_frames(mock_sd: MagicMock) -> None:
    mock_sd.InputStream.return_value = MagicMock()

    recorder = SoundDeviceRecorder()
    q: Queue = Queue(maxsize=1)
    recorder.start(q)

    recorder._on_audio(_block(), frames=512, time_info=None, status=None)
    assert recorder.dropped_frames == 0

    recorder._on_audio(_block(), frames=512, time_info=None, status=None)
    assert recorder.dropped_frames == 1
    recorder.stop()


@patch("recorder.sd")
def test_callback_after_stop_is_noop(mock_sd: MagicMock) -> None:
    mock_sd.InputStream.return_value = MagicMock()

    recorder = SoundDeviceRecorder()
    q: Queue = Queue()
    recorder.start(q)
    recorder.stop()

    recorder._on_audio(_block(), frames=512, time_info=None, status=None)
    assert q.empty()


# ---------------------------------------------------------------
# Device loss
# ---------------------------------------------------------------

@patch("recorder.sd")
def test_unexpected_stream_end_reports_device_lost(mock_sd: MagicMock) -> None:
    mock_sd.InputStream.return_value = MagicMock()

    recorder = SoundDeviceRecorder()
    q: Queue = Queue()
    recorder.start(q)

    recorder._on_finished()

    item = q.get_nowait()
    assert isinstance(item, DeviceLost)
    assert q.empty()


@patch("recorder.sd")
def test_device_lost_evicts_oldest_frame_when_queue_full(mock_sd: MagicMock) -> None:
    mock_sd.InputStream.return_value = MagicMock()

    recorder = SoundDeviceRecorder()
    q: Queue = Queue(maxsize=1)
    recorder.start(q)
    recorder._on_audio(_block(), frames=512, time_info=None, status=None)

    recorder._on_finished()

    assert isinstance(q.get_nowait(), DeviceLost)


@patch("recorder.sd")
def test_finished_after_stop_is_silent(mock_sd: MagicMock) -> None:
    mock_sd.InputStream.return_value = MagicMock()

    recorder = SoundDeviceRecorder()
    q: Queue = Queue()
    recorder.start(q)
    recorder.stop()

    recorder._on_finished()
    assert q.empty()


@patch("recorder.sd")
def test_stop_closes_stream_after_device_lost(mock_sd: MagicMock) -> None:
    mock_stream = MagicMock()
    mock_sd.InputStream.return_value = mock_stream

    recorder = SoundDeviceRecorder()
    recorder.start(Queue())
    recorder._on_finished()
    recorder.stop()

    mock_stream.close.assert_called_once()


@patch("recorder.sd")
def test_restart_after_device_lost_closes_old_stream(mock_sd: MagicMock) -> None:
    old_stream, new_stream = MagicMock(), MagicMock()
    mock_sd.InputStream.side_effect = [old_stream, new_stream]

    recorder = SoundDeviceRecorder()
    recorder.start(Queue())
    recorder._on_finished()
    recorder.start(Queue())

    old_stream.close.assert_called_once()
    new_stream.start.assert_called_once()
    new_stream.close.assert_not_called()
