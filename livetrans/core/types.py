"""
Core data types for the live transcription/translation pipeline.

Canonical audio is mono float32 in [-1, 1] at 16 kHz. Positions in the
canonical stream are absolute sample indices counted from stream start.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Optional, Dict, Any
import numpy as np


# Canonical stream format
SAMPLE_RATE = 16000
CHANNELS = 1


class ErrorKind(str, Enum):
    """Error categories attached to pipeline records."""
    DEVICE = "device"
    RESAMPLE = "resample"
    RECOGNITION = "recognition"
    TRANSLATION = "translation"
    BACKPRESSURE_STALL = "backpressure_stall"


@dataclass(frozen=True)
class SampleFrame:
    """Raw interleaved samples from a device, in its native format."""
    samples: np.ndarray  # int16, int32 or float, shape (n_frames * channels,)
    sample_rate: int
    channels: int

    @property
    def num_frames(self) -> int:
        if self.channels <= 0:
            return 0
        return len(self.samples) // self.channels


@dataclass(frozen=True)
class CanonicalFrame:
    """Mono 16 kHz float32 samples."""
    samples: np.ndarray  # float32, shape (n,)
    start_sample: int = 0  # absolute index of samples[0] in the canonical stream

    @property
    def end_sample(self) -> int:
        return self.start_sample + len(self.samples)

    def __len__(self) -> int:
        return len(self.samples)


@dataclass(frozen=True)
class Utterance:
    """A closed window of canonical audio, ready for recognition."""
    sequence: int
    pcm: np.ndarray  # float32 mono
    start_sample: int
    end_sample: int
    reason: str  # "silence_end", "max_duration", "overrun", "flush"

    @property
    def start_time(self) -> float:
        return self.start_sample / SAMPLE_RATE

    @property
    def end_time(self) -> float:
        return self.end_sample / SAMPLE_RATE

    @property
    def duration_s(self) -> float:
        return (self.end_sample - self.start_sample) / SAMPLE_RATE


@dataclass(frozen=True)
class RecognizedUtterance:
    """
    Recognition outcome for one utterance.

    text=None with error=None means no speech was detected.
    """
    sequence: int
    start_time: float
    end_time: float
    text: Optional[str] = None
    error: Optional[ErrorKind] = None
    detail: Optional[str] = None

    @property
    def is_silence(self) -> bool:
        return self.text is None and self.error is None


@dataclass(frozen=True)
class TranslatedUtterance:
    """Terminal record for one utterance; this is what sinks receive."""
    sequence: int
    start_time: float
    end_time: float
    source_text: Optional[str] = None
    translated_text: Optional[str] = None
    error: Optional[ErrorKind] = None
    detail: Optional[str] = None

    @property
    def is_silence(self) -> bool:
        return self.source_text is None and self.error is None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "sequence": self.sequence,
            "start_time": self.start_time,
            "end_time": self.end_time,
            "source_text": self.source_text,
            "translated_text": self.translated_text,
            "error": self.error.value if self.error is not None else None,
            "detail": self.detail,
        }


# Default constants
DEFAULT_WINDOW_MS = 100
DEFAULT_SILENCE_MS = 500
DEFAULT_MIN_MS = 200
DEFAULT_MAX_MS = 20000
DEFAULT_CAPTURE_S = 30.0
DEFAULT_SPEECH_THRESHOLD = 0.01
