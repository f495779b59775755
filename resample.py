"""Sample-rate and channel-layout conversion for captured audio."""

from __future__ import annotations

from math import gcd

import numpy as np
from scipy.signal import resample_poly

TARGET_RATE = 16000

# Polyphase filtering is exact arithmetic on a fixed filter, so repeated calls
# on the same input are bit-identical. Round trips are only approximate.
ROUND_TRIP_TOLERANCE = 1e-2


def to_float32(samples: np.ndarray) -> np.ndarray:
    """Return samples as float32 in [-1, 1), scaling int16 input."""
    data = np.asarray(samples)
    if data.dtype == np.int16:
        return data.astype(np.float32) / 32768.0
    return data.astype(np.float32, copy=False)


def downmix(samples: np.ndarray, channels: int) -> np.ndarray:
    """Average interleaved channels into a mono signal."""
    data = to_float32(samples)
    if channels == 1:
        return data
    return data.reshape(-1, channels).mean(axis=1, dtype=np.float32)


def resample(
    samples: np.ndarray,
    in_rate: int,
    in_channels: int,
    out_rate: int = TARGET_RATE,
    out_channels: int = 1,
) -> np.ndarray:
    """Convert interleaved samples to ``out_rate`` / ``out_channels``.

    Multi-channel input is reduced to mono by averaging each sample frame.
    Rate conversion uses a polyphase filter with the ratio reduced by gcd, so
    any integer rate pair is supported. The result is interleaved float32.
    """
    if in_rate <= 0 or out_rate <= 0:
        raise ValueError(f"sample rates must be positive, got {in_rate} -> {out_rate}")
    if in_channels < 1:
        raise ValueError(f"in_channels must be at least 1, got {in_channels}")
    if out_channels not in (1, in_channels):
        raise ValueError(f"cannot map {in_channels} channel(s) to {out_channels}")

    data = to_float32(samples)
    if data.size % in_channels:
        raise ValueError(f"{data.size} samples do not divide into {in_channels} channels")

    frames = data.reshape(-1, in_channels)
    if out_channels == 1 and in_channels > 1:
        frames = frames.mean(axis=1, keepdims=True, dtype=np.float32)

    if in_rate != out_rate and len(frames):
        factor = gcd(in_rate, out_rate)
        frames = resample_poly(frames, out_rate // factor, in_rate // factor, axis=0)

    return np.ascontiguousarray(frames, dtype=np.float32).reshape(-1)
