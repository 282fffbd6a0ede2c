"""Band-limited sample-rate conversion with a windowed-sinc kernel.

The kernel is tabulated at ``oversampling_factor`` fractional offsets per input
sample. For every output frame the two (or four, for cubic) neighbouring
tables are blended for its fractional position and convolved with the
surrounding ``sinc_len`` input samples. When downsampling, the cutoff is scaled
by the conversion ratio so the result stays free of aliasing.

Every tabulated sub-filter is normalized to unit DC gain, so a constant input
reproduces the same constant on output.
"""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

import numpy as np

INT16_MAX = 2 ** 15 - 1
INT16_MIN = -2 ** 15

# Output frames computed per vectorized pass; bounds the tap matrix size.
_BATCH_FRAMES = 2048


class InsufficientSamples(Exception):
    """Raised when a segment is too short to produce any resampled output."""


class WindowFunction(Enum):
    BLACKMAN = "blackman"
    BLACKMAN2 = "blackman2"
    BLACKMAN_HARRIS = "blackman_harris"
    BLACKMAN_HARRIS2 = "blackman_harris2"
    HANN = "hann"
    HANN2 = "hann2"


class InterpolationType(Enum):
    NEAREST = "nearest"
    LINEAR = "linear"
    CUBIC = "cubic"


@dataclass(frozen=True)
class SincParameters:
    sinc_len: int = 256
    f_cutoff: float = 0.95
    oversampling_factor: int = 256
    interpolation: InterpolationType = InterpolationType.LINEAR
    window: WindowFunction = WindowFunction.BLACKMAN_HARRIS2

    def validate(self) -> None:
        if self.sinc_len <= 0 or self.sinc_len % 2:
            raise ValueError("sinc_len must be a positive even number")
        if not 0.0 < self.f_cutoff <= 1.0:
            raise ValueError("f_cutoff must be in (0, 1]")
        if self.oversampling_factor < 1:
            raise ValueError("oversampling_factor must be at least 1")
        if not isinstance(self.interpolation, InterpolationType):
            raise ValueError(f"unknown interpolation: {self.interpolation!r}")
        if not isinstance(self.window, WindowFunction):
            raise ValueError(f"unknown window: {self.window!r}")


def make_window(position: np.ndarray, window: WindowFunction) -> np.ndarray:
    """Evaluate ``window`` at relative positions in [0, 1]."""
    u = np.clip(np.asarray(position, dtype=np.float64), 0.0, 1.0)
    phase = 2.0 * np.pi * u
    if window in (WindowFunction.BLACKMAN, WindowFunction.BLACKMAN2):
        values = 0.42 - 0.5 * np.cos(phase) + 0.08 * np.cos(2.0 * phase)
    elif window in (WindowFunction.BLACKMAN_HARRIS, WindowFunction.BLACKMAN_HARRIS2):
        values = (
            0.35875
            - 0.48829 * np.cos(phase)
            + 0.14128 * np.cos(2.0 * phase)
            - 0.01168 * np.cos(3.0 * phase)
        )
    else:
        values = 0.5 - 0.5 * np.cos(phase)
    if window in (WindowFunction.BLACKMAN2, WindowFunction.BLACKMAN_HARRIS2, WindowFunction.HANN2):
        values = values * values
    return values


def make_sinc_table(cutoff: float, params: SincParameters) -> np.ndarray:
    """Return the oversampled kernel, one row per fractional offset.

    Row ``k + 1`` holds the taps for offset ``k / oversampling_factor`` with
    ``k`` running from -1 to ``oversampling_factor + 1``; the extra rows let
    linear and cubic blending address neighbours without bounds checks.
    """
    length = params.sinc_len
    factor = params.oversampling_factor
    half = length // 2
    taps = np.arange(-half + 1, half + 1, dtype=np.float64)
    offsets = np.arange(-1, factor + 2, dtype=np.float64) / factor

    distance = offsets[:, None] - taps[None, :]
    window = make_window((distance + half) / length, params.window)
    table = cutoff * np.sinc(cutoff * distance) * window
    sums = table.sum(axis=1, keepdims=True)
    sums[sums == 0.0] = 1.0
    return table / sums


class SincResampler:
    """Convert per-channel float sequences from ``source_rate`` to ``target_rate``."""

    def __init__(self, source_rate: int, target_rate: int, params: SincParameters | None = None):
        if source_rate <= 0 or target_rate <= 0:
            raise ValueError("sample rates must be positive")
        self.params = params or SincParameters()
        self.params.validate()
        self.source_rate = int(source_rate)
        self.target_rate = int(target_rate)
        self.ratio = self.target_rate / self.source_rate
        self.cutoff = self.params.f_cutoff * min(1.0, self.ratio)
        self._table = make_sinc_table(self.cutoff, self.params)

    def output_frames(self, input_frames: int) -> int:
        return (int(input_frames) * self.target_rate) // self.source_rate

    def _filters(self, fraction: np.ndarray) -> np.ndarray:
        factor = self.params.oversampling_factor
        scaled = fraction * factor
        table = self._table
        mode = self.params.interpolation
        if mode is InterpolationType.NEAREST:
            index = np.clip(np.rint(scaled).astype(np.int64), 0, factor)
            return table[index + 1]

        index = np.clip(np.floor(scaled).astype(np.int64), 0, factor - 1)
        a = (scaled - index)[:, None]
        if mode is InterpolationType.LINEAR:
            return table[index + 1] * (1.0 - a) + table[index + 2] * a

        # 4-point Lagrange through rows k-1, k, k+1, k+2
        w_m1 = -a * (a - 1.0) * (a - 2.0) / 6.0
        w_0 = (a + 1.0) * (a - 1.0) * (a - 2.0) / 2.0
        w_1 = -(a + 1.0) * a * (a - 2.0) / 2.0
        w_2 = (a + 1.0) * a * (a - 1.0) / 6.0
        return (
            table[index] * w_m1
            + table[index + 1] * w_0
            + table[index + 2] * w_1
            + table[index + 3] * w_2
        )

    def process(self, channels: np.ndarray) -> np.ndarray:
        """Resample ``(channels, frames)`` input; a 1-D input is treated as mono.

        The returned array's shape is authoritative for the output length.
        """
        data = np.asarray(channels, dtype=np.float64)
        squeeze = data.ndim == 1
        if squeeze:
            data = data[None, :]
        if data.ndim != 2:
            raise ValueError("expected a (channels, frames) array")

        frames = data.shape[1]
        out_frames = self.output_frames(frames)
        if frames == 0 or out_frames == 0:
            raise InsufficientSamples(
                f"{frames} frame(s) at {self.source_rate} Hz yield no output at {self.target_rate} Hz"
            )

        if self.source_rate == self.target_rate:
            result = data.copy()
            return result[0] if squeeze else result

        length = self.params.sinc_len
        half = length // 2
        padded = np.pad(data, ((0, 0), (half - 1, half)), mode="edge")
        tap_offsets = np.arange(length, dtype=np.int64)
        step = self.source_rate / self.target_rate

        result = np.empty((data.shape[0], out_frames), dtype=np.float64)
        for start in range(0, out_frames, _BATCH_FRAMES):
            stop = min(out_frames, start + _BATCH_FRAMES)
            position = np.arange(start, stop, dtype=np.float64) * step
            base = np.floor(position).astype(np.int64)
            filters = self._filters(position - base)
            windows = padded[:, base[:, None] + tap_offsets[None, :]]
            result[:, start:stop] = np.einsum("cbl,bl->cb", windows, filters)

        return result[0] if squeeze else result


def to_pcm16(samples: np.ndarray) -> np.ndarray:
    """Scale normalized samples to int16, clamping interpolation overshoot."""
    scaled = np.asarray(samples, dtype=np.float64) * float(INT16_MAX)
    return np.clip(scaled, INT16_MIN, INT16_MAX).astype(np.int16)


def resample_interleaved(
    frames: np.ndarray,
    source_rate: int,
    target_rate: int,
    params: SincParameters | None = None,
    *,
    resampler: SincResampler | None = None,
) -> np.ndarray:
    """Resample normalized ``(frames, channels)`` data and return int16 frames."""
    if resampler is None:
        resampler = SincResampler(source_rate, target_rate, params)
    data = np.asarray(frames, dtype=np.float64)
    if data.ndim == 1:
        data = data[:, None]
    converted = resampler.process(data.T)
    return to_pcm16(converted.T)


__all__ = [
    "INT16_MAX",
    "INT16_MIN",
    "InsufficientSamples",
    "InterpolationType",
    "SincParameters",
    "SincResampler",
    "WindowFunction",
    "make_sinc_table",
    "make_window",
    "resample_interleaved",
    "to_pcm16",
]
