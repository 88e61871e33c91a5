"""MT models."""

from .mt import (
    MTModel,
    PipelineMT,
    DummyMT,
    create_mt_model,
    is_english,
)

__all__ = [
    "MTModel",
    "PipelineMT",
    "DummyMT",
    "create_mt_model",
    "is_english",
]
