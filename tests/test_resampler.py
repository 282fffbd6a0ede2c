import numpy as np
import pytest

from audio_splitter.resampler import (
    INT16_MAX,
    INT16_MIN,
    InsufficientSamples,
    InterpolationType,
    SincParameters,
    SincResampler,
    WindowFunction,
    make_sinc_table,
    make_window,
    resample_interleaved,
    to_pcm16,
)


def _sine(freq: float, sample_rate: int, seconds: float, amplitude: float = 0.5) -> np.ndarray:
    t = np.arange(int(sample_rate * seconds)) / float(sample_rate)
    return amplitude * np.sin(2 * np.pi * freq * t)


def _middle(samples: np.ndarray, margin: int = 400) -> np.ndarray:
    return samples[margin:-margin]


def _rms(samples: np.ndarray) -> float:
    return float(np.sqrt(np.mean(np.square(samples))))


def test_output_length_is_floor_of_ratio():
    resampler = SincResampler(44100, 16000)
    assert resampler.output_frames(44100) == 16000
    assert resampler.output_frames(22050) == 8000
    assert resampler.output_frames(3) == 1
    assert SincResampler(8000, 16000).output_frames(100) == 200


def test_sine_frequency_is_preserved():
    resampler = SincResampler(44100, 16000)
    out = resampler.process(_sine(1000.0, 44100, 0.5))

    assert out.shape == (8000,)
    spectrum = np.abs(np.fft.rfft(out))
    freqs = np.fft.rfftfreq(out.size, d=1.0 / 16000)
    peak = freqs[int(np.argmax(spectrum))]
    assert abs(peak - 1000.0) <= 5.0
    assert _rms(_middle(out)) == pytest.approx(0.5 / np.sqrt(2), rel=0.01)


def test_content_above_target_nyquist_is_suppressed():
    resampler = SincResampler(44100, 16000)
    out = resampler.process(_sine(10000.0, 44100, 0.5))
    assert _rms(_middle(out)) < 0.01


def test_upsampling_keeps_tone():
    resampler = SincResampler(8000, 16000)
    out = resampler.process(_sine(440.0, 8000, 0.5))
    assert out.shape == (8000,)
    assert _rms(_middle(out)) == pytest.approx(0.5 / np.sqrt(2), rel=0.01)


@pytest.mark.parametrize("interpolation", list(InterpolationType))
def test_constant_input_stays_constant(interpolation):
    params = SincParameters(interpolation=interpolation)
    resampler = SincResampler(48000, 16000, params)
    out = resampler.process(np.full(4800, 0.25))
    assert out.shape == (1600,)
    np.testing.assert_allclose(out, 0.25, atol=1e-9)


def test_equal_rates_return_a_copy():
    data = np.linspace(-1.0, 1.0, 100)[None, :]
    resampler = SincResampler(16000, 16000)
    out = resampler.process(data)
    np.testing.assert_array_equal(out, data)
    assert out is not data
    out[0, 0] = 5.0
    assert data[0, 0] == -1.0


@pytest.mark.parametrize("frames", [0, 1, 2])
def test_too_short_input_raises(frames):
    resampler = SincResampler(44100, 16000)
    with pytest.raises(InsufficientSamples):
        resampler.process(np.zeros(frames))


def test_channels_are_resampled_independently():
    left = np.full(4410, 0.5)
    right = np.full(4410, -0.25)
    out = resample_interleaved(np.column_stack([left, right]), 44100, 16000)

    assert out.dtype == np.int16
    assert out.shape == (1600, 2)
    np.testing.assert_allclose(out[:, 0], 0.5 * INT16_MAX, atol=2)
    np.testing.assert_allclose(out[:, 1], -0.25 * INT16_MAX, atol=2)


def test_to_pcm16_clamps_overshoot():
    out = to_pcm16(np.array([1.2, -1.2, 1.0, -1.0, 0.5]))
    assert out.dtype == np.int16
    assert out.tolist() == [32767, -32768, 32767, -32767, 16383]


def test_full_scale_square_wave_does_not_wrap():
    period = 44
    square = np.where((np.arange(44100) // (period // 2)) % 2 == 0, 1.0, -1.0)
    resampler = SincResampler(44100, 16000)
    assert np.abs(resampler.process(square)).max() > 1.0

    out = resample_interleaved(square, 44100, 16000, resampler=resampler)
    assert out.shape == (16000, 1)
    # ringing past full scale is clamped rather than wrapped to the other sign
    assert out.max() == INT16_MAX
    assert out.min() == INT16_MIN


def test_window_shapes():
    pos = np.array([0.0, 0.25, 0.5, 1.0])
    bh = make_window(pos, WindowFunction.BLACKMAN_HARRIS)
    assert bh[2] == pytest.approx(1.0)
    assert bh[0] == pytest.approx(6e-5, abs=1e-6)
    np.testing.assert_allclose(
        make_window(pos, WindowFunction.BLACKMAN_HARRIS2), bh * bh
    )
    hann = make_window(pos, WindowFunction.HANN)
    np.testing.assert_allclose(hann, [0.0, 0.5, 1.0, 0.0], atol=1e-12)
    np.testing.assert_allclose(make_window(pos, WindowFunction.HANN2), hann * hann, atol=1e-12)
    assert make_window(np.array([0.5]), WindowFunction.BLACKMAN)[0] == pytest.approx(1.0)


def test_sinc_table_rows_have_unit_gain():
    params = SincParameters(sinc_len=32, oversampling_factor=16)
    table = make_sinc_table(0.5, params)
    assert table.shape == (16 + 3, 32)
    np.testing.assert_allclose(table.sum(axis=1), 1.0)


@pytest.mark.parametrize(
    "kwargs",
    [
        {"sinc_len": 255},
        {"sinc_len": 0},
        {"f_cutoff": 0.0},
        {"f_cutoff": 1.5},
        {"oversampling_factor": 0},
    ],
)
def test_invalid_parameters_rejected(kwargs):
    with pytest.raises(ValueError):
        SincResampler(44100, 16000, SincParameters(**kwargs))


def test_non_positive_rates_rejected():
    with pytest.raises(ValueError):
        SincResampler(0, 16000)
