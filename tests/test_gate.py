import numpy as np
import pytest

from livetrans.buffers.segmenter import UtteranceSegmenter
from livetrans.core.types import CanonicalFrame
from livetrans.sources.gate import AdaptiveGate, RMSGate, create_gate, rms


def _window(level: float) -> np.ndarray:
    return np.full(1600, level, dtype=np.float32)


def test_rms_gate_threshold_is_inclusive() -> None:
    gate = RMSGate(threshold=0.01)
    assert gate.is_speech(_window(0.01))
    assert not gate.is_speech(_window(0.009))
    assert rms(np.zeros(0, dtype=np.float32)) == 0.0


def test_adaptive_gate_starts_at_configured_threshold() -> None:
    gate = create_gate("adaptive", threshold=0.01)
    assert isinstance(gate, AdaptiveGate)
    assert gate.threshold == pytest.approx(0.01)
    assert gate.is_speech(_window(0.02))
    assert not gate.is_speech(_window(0.009))


def test_adaptive_gate_follows_background_level() -> None:
    gate = AdaptiveGate(min_threshold=0.01, ratio=3.0, alpha=0.1)
    for _ in range(60):
        assert not gate.is_speech(_window(0.005))

    # Floor is now close to 0.005, so the threshold rose to about 0.015
    assert gate.noise_floor == pytest.approx(0.005, rel=0.01)
    assert not gate.is_speech(_window(0.012))
    assert gate.is_speech(_window(0.02))

    gate.reset()
    assert gate.threshold == pytest.approx(0.01)
    assert gate.is_speech(_window(0.012))


def test_speech_windows_do_not_raise_the_floor() -> None:
    gate = AdaptiveGate(min_threshold=0.01)
    before = gate.noise_floor
    for _ in range(10):
        assert gate.is_speech(_window(0.3))
    assert gate.noise_floor == before


def test_segmenter_with_adaptive_gate() -> None:
    seg = UtteranceSegmenter(gate=create_gate("adaptive", threshold=0.01))
    audio = np.concatenate([_window(0.0), _window(0.0), np.full(8000, 0.02, np.float32), np.zeros(16000, np.float32)])
    utts = seg.push(CanonicalFrame(audio, start_sample=0)) + seg.flush()

    assert len(utts) == 1
    assert utts[0].start_time == pytest.approx(0.2)
    assert utts[0].end_time == pytest.approx(0.7)


def test_unknown_gate_rejected() -> None:
    with pytest.raises(ValueError):
        create_gate("webrtc")
    with pytest.raises(ValueError):
        AdaptiveGate(ratio=0)
