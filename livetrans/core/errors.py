"""
Error taxonomy for the pipeline.

Utterance-scoped errors are turned into records and never stop the
stream. DeviceError is stream-scoped and shuts the pipeline down.
"""

from typing import Optional

from .types import ErrorKind


class PipelineError(Exception):
    """Base class for pipeline failures."""

    kind: Optional[ErrorKind] = None


class DeviceError(PipelineError):
    """The audio source failed; no further samples are possible."""

    kind = ErrorKind.DEVICE


class ResampleError(PipelineError):
    """A malformed input frame; the frame is dropped."""

    kind = ErrorKind.RESAMPLE


class RecognitionError(PipelineError):
    """The recognition backend failed for one utterance."""

    kind = ErrorKind.RECOGNITION


class TranslationError(PipelineError):
    """The translation backend failed for one utterance."""

    kind = ErrorKind.TRANSLATION


class BackpressureStall(PipelineError):
    """The emitter is holding too many records behind a missing sequence."""

    kind = ErrorKind.BACKPRESSURE_STALL

    def __init__(self, sequence: int, pending: int, waited_s: float):
        super().__init__(
            f"sequence {sequence} stalled: {pending} records held, waited {waited_s:.1f}s"
        )
        self.sequence = sequence
        self.pending = pending
        self.waited_s = waited_s


class ConfigError(ValueError):
    """Inconsistent configuration values."""
