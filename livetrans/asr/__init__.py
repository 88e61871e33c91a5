"""ASR models."""

from .asr import (
    ASRModel,
    WhisperASR,
    DummyASR,
    create_asr_model,
    normalize_transcript,
)

__all__ = [
    "ASRModel",
    "WhisperASR",
    "DummyASR",
    "create_asr_model",
    "normalize_transcript",
]
