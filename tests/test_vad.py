"""Tests for the voice activity detector and its classifiers."""

from __future__ import annotations

from unittest.mock import MagicMock, patch

import numpy as np
import pytest

from errors import VAD_UNAVAILABLE, VADModelError
from vad import EnergyClassifier, SileroClassifier, VadSignal, VoiceActivityDetector


class ScriptedClassifier:
    """Returns queued probabilities, one per window."""

    def __init__(self, probabilities: list[float]) -> None:
        self.probabilities = list(probabilities)
        self.windows: list[np.ndarray] = []
        self.resets = 0

    def load(self) -> None:
        pass

    def reset(self) -> None:
        self.resets += 1

    def classify(self, window: np.ndarray, sample_rate: int) -> float:
        self.windows.append(window)
        return self.probabilities.pop(0)


def detector(probabilities: list[float], speech: float = 0.3, silence: float = 0.5) -> VoiceActivityDetector:
    # 100 samples per window at 1 kHz
    return VoiceActivityDetector(
        ScriptedClassifier(probabilities),
        threshold=0.5,
        speech_duration=speech,
        silence_duration=silence,
        sample_rate=1000,
        window_seconds=0.1,
    )


def run(vad: VoiceActivityDetector, windows: int) -> list[tuple[int, VadSignal]]:
    signals = []
    for i in range(windows):
        signal = vad.push(np.zeros(vad.window_size, dtype=np.float32), end_time=(i + 1) * 0.1)
        if signal is not None:
            signals.append((i, signal))
    return signals


# ---------------------------------------------------------------
# Hysteresis
# ---------------------------------------------------------------

def test_start_after_speech_duration() -> None:
    vad = detector([0.9] * 3)

    assert run(vad, 3) == [(2, VadSignal.START_READY)]
    assert vad.speech_seconds == pytest.approx(0.3)


def test_interrupted_speech_resets_accumulator() -> None:
    vad = detector([0.9, 0.9, 0.1, 0.9, 0.9, 0.9])

    assert run(vad, 6) == [(5, VadSignal.START_READY)]


def test_stop_after_silence_duration() -> None:
    vad = detector([0.9] * 3 + [0.1] * 5)

    assert run(vad, 8) == [(2, VadSignal.START_READY), (7, VadSignal.STOP_READY)]
    assert vad.last_signal_time == pytest.approx(0.8)


def test_short_pause_does_not_stop() -> None:
    vad = detector([0.9] * 3 + [0.1] * 4 + [0.9] + [0.1] * 4)

    assert run(vad, 12) == [(2, VadSignal.START_READY)]


def test_probability_equal_to_threshold_counts_as_silence() -> None:
    vad = detector([0.5] * 5)

    assert run(vad, 5) == []
    assert vad.silence_seconds == pytest.approx(0.5)


def test_zero_durations_still_need_one_window() -> None:
    vad = detector([0.1, 0.9, 0.1], speech=0.0, silence=0.0)

    assert run(vad, 3) == [(1, VadSignal.START_READY), (2, VadSignal.STOP_READY)]


# ---------------------------------------------------------------
# Windowing
# ---------------------------------------------------------------

def test_partial_windows_are_buffered() -> None:
    vad = detector([0.9])

    assert vad.push(np.ones(60, dtype=np.float32), end_time=0.06) is None
    assert vad.remaining == 40
    vad.push(np.ones(40, dtype=np.float32), end_time=0.1)

    assert len(vad.classifier.windows) == 1
    assert len(vad.classifier.windows[0]) == 100
    assert vad.remaining == 100


def test_push_rejects_more_than_one_window() -> None:
    vad = detector([])

    with pytest.raises(ValueError):
        vad.push(np.zeros(101, dtype=np.float32), end_time=0.0)


def test_reset_clears_state_and_classifier() -> None:
    vad = detector([0.9, 0.9])
    run(vad, 2)
    vad.push(np.zeros(30, dtype=np.float32), end_time=0.23)

    vad.reset()

    assert vad.speech_seconds == 0.0
    assert vad.remaining == vad.window_size
    assert vad.classifier.resets == 1


def test_default_window_is_512_samples_at_16k() -> None:
    vad = VoiceActivityDetector(
        ScriptedClassifier([]), threshold=0.5, speech_duration=1.0, silence_duration=2.0, sample_rate=16000
    )

    assert vad.window_size == 512


# ---------------------------------------------------------------
# Classifiers
# ---------------------------------------------------------------

def test_energy_classifier_maps_level_to_probability() -> None:
    classifier = EnergyClassifier()

    assert classifier.classify(np.zeros(512, dtype=np.float32), 16000) == 0.0
    assert classifier.classify(np.full(512, 0.5, dtype=np.float32), 16000) == 1.0
    # -40 dB sits halfway between the -60 dB floor and the -20 dB ceiling.
    assert classifier.classify(np.full(512, 0.01, dtype=np.float32), 16000) == pytest.approx(0.5, abs=1e-3)


@patch("vad.ort")
def test_silero_runs_model_and_carries_state(mock_ort: MagicMock) -> None:
    session = MagicMock()
    next_state = np.ones((2, 1, 128), dtype=np.float32)
    session.run.return_value = (np.array([[0.87]], dtype=np.float32), next_state)
    mock_ort.InferenceSession.return_value = session

    classifier = SileroClassifier(model_path="silero_vad.onnx")
    classifier.load()
    prob = classifier.classify(np.zeros(512, dtype=np.float32), 16000)

    assert prob == pytest.approx(0.87)
    inputs = session.run.call_args.args[1]
    assert inputs["input"].shape == (1, 512)
    assert inputs["sr"][0] == 16000

    classifier.classify(np.zeros(512, dtype=np.float32), 16000)
    assert session.run.call_args.args[1]["state"] is next_state

    classifier.reset()
    classifier.classify(np.zeros(512, dtype=np.float32), 16000)
    assert not session.run.call_args.args[1]["state"].any()


@patch("vad.ort")
def test_silero_resamples_other_rates(mock_ort: MagicMock) -> None:
    session = MagicMock()
    session.run.return_value = (np.array([[0.1]]), np.zeros((2, 1, 128), dtype=np.float32))
    mock_ort.InferenceSession.return_value = session

    classifier = SileroClassifier(model_path="silero_vad.onnx")
    classifier.load()
    classifier.classify(np.zeros(1536, dtype=np.float32), 48000)

    assert session.run.call_args.args[1]["input"].shape == (1, 512)


@patch("vad.ort")
def test_silero_fetches_model_when_no_path(mock_ort: MagicMock) -> None:
    fetch = MagicMock(return_value="/cache/silero_vad.onnx")

    classifier = SileroClassifier(fetch_model=fetch)
    classifier.load()
    classifier.load()

    fetch.assert_called_once()
    assert classifier.loaded
    mock_ort.InferenceSession.assert_called_once()


@patch("vad.ort")
def test_silero_load_failure_raises_vad_error(mock_ort: MagicMock) -> None:
    mock_ort.InferenceSession.side_effect = Exception("bad onnx file")

    with pytest.raises(VADModelError) as info:
        SileroClassifier(model_path="broken.onnx").load()
    assert info.value.code == VAD_UNAVAILABLE


def test_silero_without_onnxruntime(monkeypatch) -> None:  # noqa: ANN001
    import vad as vad_mod
    monkeypatch.setattr(vad_mod, "ort", None)

    with pytest.raises(VADModelError, match="onnxruntime"):
        SileroClassifier(model_path="silero_vad.onnx").load()


def test_silero_classify_before_load() -> None:
    with pytest.raises(VADModelError):
        SileroClassifier().classify(np.zeros(512, dtype=np.float32), 16000)
