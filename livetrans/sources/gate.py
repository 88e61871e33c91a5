"""
Speech gates: short-time energy decisions for the segmenter.
"""

from abc import ABC, abstractmethod
import numpy as np


def rms(audio: np.ndarray) -> float:
    if len(audio) == 0:
        return 0.0
    x = audio.astype(np.float64, copy=False)
    return float(np.sqrt(np.mean(x * x)))


class SpeechGate(ABC):
    """Classifies one analysis window as high or low energy."""

    @abstractmethod
    def is_speech(self, window: np.ndarray) -> bool:
        raise NotImplementedError()

    def reset(self) -> None:
        """Forget any adaptive state."""


class RMSGate(SpeechGate):
    """Fixed RMS threshold on float PCM."""

    def __init__(self, threshold: float = 0.01):
        if threshold < 0:
            raise ValueError("threshold must be >= 0")
        self.threshold = threshold

    def is_speech(self, window: np.ndarray) -> bool:
        return rms(window) >= self.threshold


class AdaptiveGate(SpeechGate):
    """
    RMS gate whose threshold follows the background level.

    The noise floor is an exponential average over low-energy windows; a
    window is speech when it exceeds both `min_threshold` and
    `ratio * noise_floor`. The floor starts at `min_threshold / ratio`, so
    before any background is measured the threshold is `min_threshold`.
    """

    def __init__(
        self,
        min_threshold: float = 0.005,
        ratio: float = 3.0,
        alpha: float = 0.1,
    ):
        if ratio <= 0:
            raise ValueError("ratio must be > 0")
        self.min_threshold = min_threshold
        self.ratio = ratio
        self.alpha = alpha
        self.noise_floor = min_threshold / ratio

    def is_speech(self, window: np.ndarray) -> bool:
        level = rms(window)
        speech = level >= self.threshold

        if not speech:
            self.noise_floor = (1 - self.alpha) * self.noise_floor + self.alpha * level

        return speech

    @property
    def threshold(self) -> float:
        return max(self.min_threshold, self.noise_floor * self.ratio)

    def reset(self) -> None:
        self.noise_floor = self.min_threshold / self.ratio


def create_gate(kind: str = "rms", threshold: float = 0.01) -> SpeechGate:
    """Factory function to create a gate from config."""
    if kind == "rms":
        return RMSGate(threshold=threshold)
    if kind == "adaptive":
        return AdaptiveGate(min_threshold=threshold)
    raise ValueError(f"Unknown gate: {kind}")
