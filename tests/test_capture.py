from __future__ import annotations

import numpy as np
import pytest

from capture import LookbackBuffer, RecordingSession
from models import SessionState


def ramp(start: int, n: int, channels: int = 1) -> np.ndarray:
    return np.arange(start, start + n, dtype=np.float32).reshape(-1, 1).repeat(channels, axis=1)


# ---------------------------------------------------------------
# LookbackBuffer
# ---------------------------------------------------------------

def test_lookback_keeps_most_recent_samples() -> None:
    buf = LookbackBuffer(duration=0.001, sample_rate=10000)  # 10 samples
    buf.push(ramp(0, 6), end_time=0.0006)
    buf.push(ramp(6, 8), end_time=0.0014)

    snap = buf.snapshot()

    assert len(buf) == 10
    np.testing.assert_array_equal(snap[:, 0], np.arange(4, 14))
    assert buf.end_time == pytest.approx(0.0014)
    assert buf.start_time == pytest.approx(0.0004)


def test_lookback_never_exceeds_capacity() -> None:
    buf = LookbackBuffer(duration=0.5, sample_rate=16000)
    for i in range(40):
        buf.push(ramp(i * 512, 512), end_time=(i + 1) * 0.032)
        assert len(buf) <= 8000

    assert len(buf) == 8000
    assert buf.snapshot()[-1, 0] == 40 * 512 - 1


def test_oversized_push_keeps_tail() -> None:
    buf = LookbackBuffer(duration=0.001, sample_rate=4000)  # 4 samples
    buf.push(ramp(0, 10), end_time=1.0)

    np.testing.assert_array_equal(buf.snapshot()[:, 0], [6, 7, 8, 9])


def test_zero_duration_holds_nothing() -> None:
    buf = LookbackBuffer(duration=0.0, sample_rate=16000)
    buf.push(ramp(0, 512), end_time=0.032)

    assert len(buf) == 0
    assert buf.snapshot().shape == (0, 1)


def test_snapshot_is_a_copy() -> None:
    buf = LookbackBuffer(duration=0.001, sample_rate=4000)
    buf.push(ramp(0, 2), end_time=1.0)

    snap = buf.snapshot()
    buf.push(ramp(100, 4), end_time=2.0)

    np.testing.assert_array_equal(snap[:, 0], [0, 1])


def test_clear_empties_buffer() -> None:
    buf = LookbackBuffer(duration=0.01, sample_rate=1000, channels=2)
    buf.push(ramp(0, 5, channels=2), end_time=1.0)
    buf.clear()

    assert len(buf) == 0


# ---------------------------------------------------------------
# RecordingSession
# ---------------------------------------------------------------

def test_begin_seeds_from_lookback() -> None:
    buf = LookbackBuffer(duration=0.5, sample_rate=1000)
    buf.push(ramp(0, 300), end_time=2.0)
    session = RecordingSession(1, sample_rate=1000)

    session.begin(buf, start_time=2.0)
    session.append(ramp(300, 100), start_time=2.0)
    utterance = session.finalize()

    assert session.state is SessionState.FINALIZING
    np.testing.assert_array_equal(utterance.samples, np.arange(400))
    assert utterance.start_time == pytest.approx(1.7)
    assert utterance.end_time == pytest.approx(2.1)
    assert utterance.duration == pytest.approx(0.4)


def test_begin_without_lookback_starts_at_first_frame() -> None:
    session = RecordingSession(3, sample_rate=1000)
    session.begin(None, start_time=5.0)
    session.append(ramp(0, 500), start_time=5.01)

    utterance = session.finalize()

    assert session.state is SessionState.FINALIZING
    assert utterance.session_id == 3
    assert utterance.start_time == pytest.approx(5.01)
    assert utterance.end_time == pytest.approx(5.51)


def test_stereo_utterance_is_interleaved() -> None:
    session = RecordingSession(1, sample_rate=1000, channels=2)
    session.begin(None, 0.0)
    session.append(ramp(0, 4, channels=2), 0.0)

    utterance = session.finalize()

    assert utterance.channels == 2
    np.testing.assert_array_equal(utterance.samples, [0, 0, 1, 1, 2, 2, 3, 3])
    assert utterance.frame_count == 4


def test_finalize_releases_buffer() -> None:
    session = RecordingSession(1, sample_rate=1000)
    session.begin(None, 0.0)
    session.append(ramp(0, 100), 0.0)

    session.finalize()

    assert session.frame_count == 0


def test_empty_session_gives_empty_utterance() -> None:
    session = RecordingSession(1, sample_rate=16000)
    session.begin(None, 1.0)

    utterance = session.finalize()

    assert utterance.samples.size == 0
    assert utterance.start_time == utterance.end_time == 1.0
