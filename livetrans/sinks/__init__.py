"""Output sinks for pipeline records."""

from .sink import (
    RecordSink,
    ConsoleSink,
    JsonlSink,
    FanoutSink,
    NullSink,
    create_sink,
    is_special_mark,
)

__all__ = [
    "RecordSink",
    "ConsoleSink",
    "JsonlSink",
    "FanoutSink",
    "NullSink",
    "create_sink",
    "is_special_mark",
]
