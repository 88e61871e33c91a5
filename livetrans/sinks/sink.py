"""
Output sinks for the live pipeline.

Sinks receive TranslatedUtterance records in sequence order from the
emitter's thread.
"""

from abc import ABC, abstractmethod
from pathlib import Path
from typing import List, Optional, TextIO
import datetime
import json
import sys

from ..core.types import TranslatedUtterance

YELLOW = "\033[33m"
GREEN = "\033[32m"
RED = "\033[31m"
RESET = "\033[0m"


def is_special_mark(text: Optional[str]) -> bool:
    """Bracketed decoder marks such as "[Music]"."""
    if not text:
        return False
    text = text.strip()
    return text.startswith("[") and text.endswith("]")


class RecordSink(ABC):
    """Abstract interface for record sinks."""

    @abstractmethod
    def on_record(self, record: TranslatedUtterance) -> None:
        """Handle one emitted record."""
        raise NotImplementedError()

    @abstractmethod
    def close(self) -> None:
        """Finalize and release resources."""
        raise NotImplementedError()

    def __enter__(self):
        return self

    def __exit__(self, *args):
        self.close()


class ConsoleSink(RecordSink):
    """Print source text in yellow and the translation in green."""

    def __init__(
        self,
        color: bool = True,
        show_errors: bool = True,
        show_timing: bool = True,
        stream: Optional[TextIO] = None,
    ):
        self.color = color
        self.show_errors = show_errors
        self.show_timing = show_timing
        self.stream = stream or sys.stdout
        self.event_count = 0
        self.hidden_count = 0

    def _paint(self, text: str, color: str) -> str:
        return f"{color}{text}{RESET}" if self.color else text

    def on_record(self, record: TranslatedUtterance) -> None:
        self.event_count += 1

        if record.error is not None:
            if self.show_errors:
                self._header(record)
                msg = f"  ! {record.error.value}: {record.detail or ''}"
                print(self._paint(msg, RED), file=self.stream)
                self.stream.flush()
            return

        if (
            record.is_silence
            or is_special_mark(record.source_text)
            or is_special_mark(record.translated_text)
        ):
            self.hidden_count += 1
            return

        self._header(record)
        print(self._paint(record.source_text or "", YELLOW), file=self.stream)
        print(self._paint(record.translated_text or "", GREEN), file=self.stream)
        self.stream.flush()

    def _header(self, record: TranslatedUtterance) -> None:
        if self.show_timing:
            print(
                f"\n[{record.sequence}] {record.start_time:.2f}s - {record.end_time:.2f}s",
                file=self.stream,
            )

    def close(self) -> None:
        print(f"\n--- Processed {self.event_count} utterances ---", file=self.stream)
        self.stream.flush()


class JsonlSink(RecordSink):
    """Write records to a JSONL file."""

    def __init__(self, path: Path, pretty: bool = False):
        self.path = Path(path)
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.fh = open(self.path, "w", encoding="utf-8")
        self.pretty = pretty
        self.event_count = 0

    def on_record(self, record: TranslatedUtterance) -> None:
        self.event_count += 1

        data = record.to_dict()
        data["timestamp"] = datetime.datetime.now().isoformat()

        if self.pretty:
            line = json.dumps(data, indent=2, ensure_ascii=False)
        else:
            line = json.dumps(data, ensure_ascii=False)

        self.fh.write(line + "\n")
        self.fh.flush()

    def close(self) -> None:
        if not self.fh.closed:
            self.fh.close()


class FanoutSink(RecordSink):
    """Deliver each record to several sinks."""

    def __init__(self, sinks: List[RecordSink]):
        self.sinks = sinks

    def on_record(self, record: TranslatedUtterance) -> None:
        for sink in self.sinks:
            sink.on_record(record)

    def close(self) -> None:
        for sink in self.sinks:
            sink.close()


class NullSink(RecordSink):
    """Discard all records."""

    def on_record(self, record: TranslatedUtterance) -> None:
        pass

    def close(self) -> None:
        pass


def create_sink(output) -> RecordSink:
    """Build the sink described by an OutputConfig."""
    sinks: List[RecordSink] = []
    if output.console:
        sinks.append(ConsoleSink(color=output.color, show_errors=output.show_errors))
    if output.jsonl:
        sinks.append(JsonlSink(Path(output.jsonl_path)))

    if not sinks:
        return NullSink()
    if len(sinks) == 1:
        return sinks[0]
    return FanoutSink(sinks)
