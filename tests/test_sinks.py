import io
import json

from livetrans.core.config import OutputConfig
from livetrans.core.types import ErrorKind, TranslatedUtterance
from livetrans.sinks import (
    ConsoleSink,
    FanoutSink,
    JsonlSink,
    NullSink,
    create_sink,
    is_special_mark,
)


def _ok(seq: int = 0, text: str = "Hello there", zh: str = "你好") -> TranslatedUtterance:
    return TranslatedUtterance(
        sequence=seq,
        start_time=1.0,
        end_time=2.5,
        source_text=text,
        translated_text=zh,
    )


def test_console_prints_source_and_translation() -> None:
    out = io.StringIO()
    sink = ConsoleSink(color=False, stream=out)
    sink.on_record(_ok())

    text = out.getvalue()
    assert "[0] 1.00s - 2.50s" in text
    assert "Hello there\n你好\n" in text


def test_console_colors_source_yellow_and_translation_green() -> None:
    out = io.StringIO()
    ConsoleSink(stream=out).on_record(_ok())
    assert "\033[33mHello there\033[0m" in out.getvalue()
    assert "\033[32m你好\033[0m" in out.getvalue()


def test_console_hides_silence_and_special_marks() -> None:
    out = io.StringIO()
    sink = ConsoleSink(color=False, stream=out)
    sink.on_record(TranslatedUtterance(sequence=0, start_time=0.0, end_time=1.0))
    sink.on_record(_ok(1, text="[Music]", zh="[音乐]"))

    assert out.getvalue() == ""
    assert sink.hidden_count == 2


def test_console_shows_errors_unless_disabled() -> None:
    record = TranslatedUtterance(
        sequence=3,
        start_time=0.0,
        end_time=1.0,
        error=ErrorKind.RECOGNITION,
        detail="decoder crashed",
    )
    out = io.StringIO()
    ConsoleSink(color=False, stream=out).on_record(record)
    assert "recognition: decoder crashed" in out.getvalue()

    quiet = io.StringIO()
    ConsoleSink(color=False, show_errors=False, stream=quiet).on_record(record)
    assert quiet.getvalue() == ""


def test_jsonl_writes_one_object_per_record(tmp_path) -> None:
    path = tmp_path / "out" / "records.jsonl"
    with JsonlSink(path) as sink:
        sink.on_record(_ok(0))
        sink.on_record(TranslatedUtterance(
            sequence=1,
            start_time=2.5,
            end_time=2.5,
            error=ErrorKind.BACKPRESSURE_STALL,
        ))

    lines = path.read_text(encoding="utf-8").splitlines()
    first, second = (json.loads(line) for line in lines)
    assert first["translated_text"] == "你好"
    assert first["error"] is None
    assert second["error"] == "backpressure_stall"


def test_fanout_delivers_to_every_sink() -> None:
    a, b = io.StringIO(), io.StringIO()
    sink = FanoutSink([ConsoleSink(color=False, stream=a), ConsoleSink(color=False, stream=b)])
    sink.on_record(_ok())
    sink.close()
    assert "Hello there" in a.getvalue()
    assert "Hello there" in b.getvalue()


def test_create_sink_from_output_config(tmp_path) -> None:
    assert isinstance(create_sink(OutputConfig(console=False)), NullSink)
    assert isinstance(create_sink(OutputConfig()), ConsoleSink)

    both = create_sink(OutputConfig(jsonl=True, jsonl_path=str(tmp_path / "r.jsonl")))
    assert isinstance(both, FanoutSink)
    both.close()


def test_special_mark_detection() -> None:
    assert is_special_mark("[Music]")
    assert is_special_mark(" [BLANK_AUDIO] ")
    assert not is_special_mark("[laughs] that was funny")
    assert not is_special_mark(None)
