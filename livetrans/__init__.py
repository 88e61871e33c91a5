"""Live speech transcription and translation pipeline."""

from . import core
from . import buffers
from . import sinks
from .core.config import PipelineConfig, load_config
from .core.types import (
    SampleFrame,
    CanonicalFrame,
    Utterance,
    RecognizedUtterance,
    TranslatedUtterance,
    ErrorKind,
)
from .emitter import OrderedEmitter, StallPolicy
from .realtime import RealtimeTranslationPipeline, build_pipeline

__version__ = "0.1.0"

__all__ = [
    "core",
    "buffers",
    "sinks",
    "PipelineConfig",
    "load_config",
    "SampleFrame",
    "CanonicalFrame",
    "Utterance",
    "RecognizedUtterance",
    "TranslatedUtterance",
    "ErrorKind",
    "OrderedEmitter",
    "StallPolicy",
    "RealtimeTranslationPipeline",
    "build_pipeline",
]
