from typing import List, Sequence, Tuple

import numpy as np
import pytest

from livetrans.buffers.segmenter import UtteranceSegmenter
from livetrans.core.types import CanonicalFrame, Utterance

SR = 16000


def _signal(parts: Sequence[Tuple[float, float]]) -> np.ndarray:
    """Concatenate (seconds, level) pieces; level 0 is silence."""
    return np.concatenate(
        [np.full(int(round(sec * SR)), level, dtype=np.float32) for sec, level in parts]
    )


def _run(segmenter: UtteranceSegmenter, audio: np.ndarray, chunk: int = 1000) -> List[Utterance]:
    out: List[Utterance] = []
    for i in range(0, len(audio), chunk):
        out.extend(segmenter.push(CanonicalFrame(audio[i:i + chunk], start_sample=i)))
    out.extend(segmenter.flush())
    return out


def test_long_utterance_is_cut_at_max_and_short_one_discarded() -> None:
    audio = _signal([
        (0.5, 0.0),
        (1.0, 0.1),   # 1 s utterance
        (1.0, 0.0),
        (25.0, 0.1),  # forced cut at 20 s, 5 s remainder
        (1.0, 0.0),
        (0.1, 0.1),   # below minimum
        (1.0, 0.0),
    ])
    seg = UtteranceSegmenter()
    utts = _run(seg, audio)

    assert [u.sequence for u in utts] == [0, 1, 2]
    assert [(u.start_time, u.end_time) for u in utts] == [
        pytest.approx((0.5, 1.5)),
        pytest.approx((2.5, 22.5)),
        pytest.approx((22.5, 27.5)),
    ]
    assert [u.reason for u in utts] == ["silence_end", "max_duration", "silence_end"]
    assert seg.discarded == 1
    for u in utts:
        assert len(u.pcm) == u.end_sample - u.start_sample
        assert u.pcm.dtype == np.float32


def test_silence_only_produces_nothing() -> None:
    seg = UtteranceSegmenter()
    assert _run(seg, _signal([(3.0, 0.0)])) == []
    assert seg.next_sequence == 0


def test_discarded_utterance_does_not_consume_a_sequence() -> None:
    audio = _signal([(0.1, 0.2), (0.6, 0.0), (0.5, 0.2), (0.6, 0.0)])
    utts = _run(UtteranceSegmenter(), audio)

    assert len(utts) == 1
    assert utts[0].sequence == 0
    assert utts[0].start_time == pytest.approx(0.7)


def test_sequences_continue_from_start_sequence() -> None:
    audio = _signal([(0.5, 0.2), (0.6, 0.0), (0.5, 0.2), (0.6, 0.0)])
    utts = _run(UtteranceSegmenter(start_sequence=10), audio)
    assert [u.sequence for u in utts] == [10, 11]


def test_cut_lands_exactly_on_max_inside_a_window() -> None:
    # 150 ms windows do not divide the 1000 ms maximum
    seg = UtteranceSegmenter(window_ms=150, max_ms=1000, min_ms=100)
    audio = _signal([(2.4, 0.2), (1.0, 0.0)])
    utts = _run(seg, audio)

    assert [len(u.pcm) for u in utts] == [SR, SR, int(0.4 * SR)]
    assert utts[1].start_sample == utts[0].end_sample
    assert [u.reason for u in utts] == ["max_duration", "max_duration", "silence_end"]


def test_flush_emits_open_utterance() -> None:
    seg = UtteranceSegmenter()
    audio = _signal([(0.2, 0.0), (0.45, 0.2)])
    utts = _run(seg, audio)

    assert len(utts) == 1
    assert utts[0].reason == "flush"
    assert utts[0].start_time == pytest.approx(0.2)
    assert utts[0].end_time == pytest.approx(0.65)


def test_chunk_size_does_not_change_boundaries() -> None:
    audio = _signal([(0.3, 0.0), (0.8, 0.2), (0.7, 0.0), (1.2, 0.2), (0.9, 0.0)])
    small = _run(UtteranceSegmenter(), audio, chunk=317)
    large = _run(UtteranceSegmenter(), audio, chunk=SR)

    assert [(u.start_sample, u.end_sample) for u in small] == [
        (u.start_sample, u.end_sample) for u in large
    ]
    assert len(small) == 2


def test_capture_gap_closes_utterance_as_overrun() -> None:
    seg = UtteranceSegmenter()
    speech = np.full(int(0.5 * SR), 0.2, dtype=np.float32)

    assert seg.push(CanonicalFrame(speech, start_sample=0)) == []
    utts = seg.push(CanonicalFrame(speech, start_sample=10 * SR))

    assert len(utts) == 1
    assert utts[0].reason == "overrun"
    assert utts[0].end_time == pytest.approx(0.5)

    rest = seg.flush()
    assert len(rest) == 1
    assert rest[0].start_time == pytest.approx(10.0)
    assert rest[0].sequence == 1


def test_invalid_limits_rejected() -> None:
    with pytest.raises(ValueError):
        UtteranceSegmenter(min_ms=500, max_ms=100)
