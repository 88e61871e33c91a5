import numpy as np
import pytest

from livetrans.core.errors import ResampleError
from livetrans.core.types import SampleFrame
from livetrans.resample import Resampler, mix_to_mono, to_float32


def test_int16_is_scaled_to_unit_range() -> None:
    out = to_float32(np.array([-32768, 0, 16384], dtype=np.int16))
    assert out.dtype == np.float32
    assert out.tolist() == [-1.0, 0.0, 0.5]


def test_unsupported_dtype_raises() -> None:
    with pytest.raises(ResampleError):
        to_float32(np.array([1, 2], dtype=np.uint8))


def test_mix_modes() -> None:
    stereo = np.array([0.2, 0.4, 0.6, 0.8], dtype=np.float32)
    assert np.allclose(mix_to_mono(stereo, 2, "average"), [0.3, 0.7])
    assert np.allclose(mix_to_mono(stereo, 2, "first"), [0.2, 0.6])


def test_identity_rate_passes_through() -> None:
    samples = np.linspace(-1, 1, 160, dtype=np.float32)
    out = Resampler().resample(SampleFrame(samples, 16000, 1))
    assert np.array_equal(out.samples, samples)


def test_48k_stereo_to_16k_mono() -> None:
    frame = SampleFrame(np.full(4800 * 2, 0.5, dtype=np.float32), 48000, 2)
    out = Resampler().resample(frame)

    assert out.samples.dtype == np.float32
    assert len(out.samples) == 1600
    assert np.allclose(out.samples, 0.5)


def test_chunked_conversion_matches_single_call() -> None:
    rng = np.random.default_rng(0)
    signal = rng.uniform(-1, 1, 44100).astype(np.float32)

    whole = Resampler().resample(SampleFrame(signal, 44100, 1)).samples

    resampler = Resampler()
    parts = [
        resampler.resample(SampleFrame(signal[i:i + 1000], 44100, 1)).samples
        for i in range(0, len(signal), 1000)
    ]
    chunked = np.concatenate(parts)

    assert len(chunked) == len(whole)
    assert np.allclose(chunked, whole, atol=1e-6)


def test_upsampling_length() -> None:
    out = Resampler().resample(SampleFrame(np.zeros(800, dtype=np.int16), 8000, 1))
    assert len(out.samples) == 1599


@pytest.mark.parametrize(
    "frame",
    [
        SampleFrame(np.zeros(5, dtype=np.float32), 48000, 2),
        SampleFrame(np.zeros(4, dtype=np.float32), 48000, 0),
        SampleFrame(np.zeros(4, dtype=np.float32), 0, 1),
    ],
)
def test_malformed_frames_raise(frame) -> None:
    with pytest.raises(ResampleError):
        Resampler().resample(frame)


def test_rate_change_resets_state() -> None:
    resampler = Resampler()
    resampler.resample(SampleFrame(np.zeros(480, dtype=np.float32), 48000, 1))
    out = resampler.resample(SampleFrame(np.ones(320, dtype=np.float32), 32000, 1))
    assert len(out.samples) == 160
    assert np.allclose(out.samples, 1.0)
