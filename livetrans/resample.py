"""
Conversion of native device audio into canonical 16 kHz mono float32.

Channel mixing is either an average of all channels or the first channel.
Rate conversion is linear interpolation that carries its phase and the
last input sample across calls, so consecutive frames of one stream join
without clicks.
"""

from __future__ import annotations

import logging
from typing import Optional

import numpy as np

from .core.errors import ResampleError
from .core.types import CanonicalFrame, SampleFrame, SAMPLE_RATE

logger = logging.getLogger(__name__)


def to_float32(samples: np.ndarray) -> np.ndarray:
    """Scale integer PCM to [-1, 1]; pass float data through as float32."""
    arr = np.asarray(samples)
    if arr.dtype == np.int16:
        return arr.astype(np.float32) / 32768.0
    if arr.dtype == np.int32:
        return (arr.astype(np.float64) / 2147483648.0).astype(np.float32)
    if np.issubdtype(arr.dtype, np.floating):
        return arr.astype(np.float32, copy=False)
    raise ResampleError(f"unsupported sample dtype: {arr.dtype}")


def mix_to_mono(samples: np.ndarray, channels: int, mode: str = "average") -> np.ndarray:
    """Downmix interleaved samples to mono."""
    if channels == 1:
        return samples
    frames = samples.reshape(-1, channels)
    if mode == "first":
        return np.ascontiguousarray(frames[:, 0])
    return frames.mean(axis=1, dtype=np.float32)


class Resampler:
    """
    Stateful converter for a single stream.

    Frames must be supplied in arrival order. A change of native sample
    rate resets the carried state.
    """

    def __init__(self, target_sr: int = SAMPLE_RATE, mix: str = "average"):
        if target_sr <= 0:
            raise ValueError("target_sr must be > 0")
        if mix not in ("average", "first"):
            raise ValueError(f"Unknown mix mode: {mix}")
        self.target_sr = target_sr
        self.mix = mix

        self._src_sr: Optional[int] = None
        self._tail: Optional[float] = None  # last input sample of the previous frame
        self._phase = 0.0  # next output position, relative to the tail sample

    def resample(self, frame: SampleFrame) -> CanonicalFrame:
        """Convert one native frame. Raises ResampleError on malformed input."""
        if frame.channels <= 0:
            raise ResampleError(f"invalid channel count: {frame.channels}")
        if frame.sample_rate <= 0:
            raise ResampleError(f"invalid sample rate: {frame.sample_rate}")

        samples = np.asarray(frame.samples).reshape(-1)
        if len(samples) % frame.channels != 0:
            raise ResampleError(
                f"{len(samples)} samples is not a multiple of {frame.channels} channels"
            )

        mono = mix_to_mono(to_float32(samples), frame.channels, self.mix)

        if self._src_sr != frame.sample_rate:
            if self._src_sr is not None:
                logger.warning(
                    "Native sample rate changed %s -> %s, resetting resampler",
                    self._src_sr,
                    frame.sample_rate,
                )
            self.reset()
            self._src_sr = frame.sample_rate

        if frame.sample_rate == self.target_sr:
            return CanonicalFrame(samples=mono)

        return CanonicalFrame(samples=self._interpolate(mono, frame.sample_rate))

    def _interpolate(self, mono: np.ndarray, src_sr: int) -> np.ndarray:
        if len(mono) == 0:
            return np.zeros(0, dtype=np.float32)

        step = src_sr / self.target_sr

        if self._tail is None:
            buf = mono.astype(np.float64)
            t = 0.0
        else:
            buf = np.concatenate(([self._tail], mono.astype(np.float64)))
            t = self._phase

        last = len(buf) - 1
        if t > last:
            count = 0
        else:
            count = int(np.floor((last - t) / step)) + 1

        positions = t + step * np.arange(count)
        out = np.interp(positions, np.arange(len(buf)), buf).astype(np.float32)

        self._tail = float(buf[-1])
        self._phase = t + step * count - last
        return out

    def reset(self) -> None:
        self._src_sr = None
        self._tail = None
        self._phase = 0.0
