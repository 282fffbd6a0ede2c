"""Sample decoding for PCM containers.

The supported numeric representations form a closed set (16-bit and 24-bit
signed integer PCM plus 32-bit float). The variant is resolved once when the
stream is opened; normalization is a pure function keyed by it.
"""
from __future__ import annotations

import contextlib
import logging
import os
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Iterator

import numpy as np
import soundfile as sf

_LOG = logging.getLogger("audio_splitter.decoder")


class UnsupportedFormat(Exception):
    """Raised when a stream uses a bit depth or sample format we cannot decode."""


class DecodeError(Exception):
    """Raised when a container cannot be opened or read."""


class SampleFormat(Enum):
    # value: (bit_depth, is_float, divisor, raw dtype, libsndfile subtype)
    PCM_16 = (16, False, 32767.0, "int16", "PCM_16")
    PCM_24 = (24, False, 8388607.0, "int32", "PCM_24")
    FLOAT_32 = (32, True, 1.0, "float32", "FLOAT")

    @property
    def bit_depth(self) -> int:
        return self.value[0]

    @property
    def is_float(self) -> bool:
        return self.value[1]

    @property
    def divisor(self) -> float:
        return self.value[2]

    @property
    def dtype(self) -> str:
        return self.value[3]

    @property
    def subtype(self) -> str:
        return self.value[4]

    @classmethod
    def from_subtype(cls, subtype: str) -> "SampleFormat":
        normalized = (subtype or "").strip().upper()
        for member in cls:
            if member.subtype == normalized:
                return member
        raise UnsupportedFormat(f"unsupported sample subtype: {subtype or '<unknown>'}")


def normalize(raw, fmt: SampleFormat):
    """Map raw samples (scalar or array) of ``fmt`` onto [-1.0, 1.0]."""
    if fmt is SampleFormat.FLOAT_32:
        if isinstance(raw, np.ndarray):
            return raw.astype(np.float64)
        return float(raw)
    if isinstance(raw, np.ndarray):
        return raw.astype(np.float64) / fmt.divisor
    return float(raw) / fmt.divisor


@dataclass(frozen=True)
class StreamSpec:
    channels: int
    sample_rate: int
    sample_format: SampleFormat
    frames: int = 0

    @property
    def bit_depth(self) -> int:
        return self.sample_format.bit_depth

    def frames_per_block(self, chunk_length_ms: int) -> int:
        # Integer kHz: 44.1 kHz yields 44 frames per ms.
        return (self.sample_rate // 1000) * int(chunk_length_ms)

    def describe(self) -> str:
        kind = "float" if self.sample_format.is_float else "int"
        return (
            f"channels={self.channels} sample_rate={self.sample_rate} "
            f"bits={self.bit_depth} format={kind} frames={self.frames}"
        )


class AudioStream:
    """Forward-only reader over an opened container."""

    def __init__(self, handle: sf.SoundFile, spec: StreamSpec, path: Path):
        self._handle = handle
        self.spec = spec
        self.path = path

    def blocks(self, frames_per_block: int) -> Iterator[np.ndarray]:
        """Yield raw ``(frames, channels)`` arrays; the last one may be short."""
        if frames_per_block <= 0:
            raise ValueError("frames_per_block must be positive")
        fmt = self.spec.sample_format
        while True:
            try:
                block = self._handle.read(
                    frames_per_block, dtype=fmt.dtype, always_2d=True
                )
            except (sf.SoundFileError, RuntimeError) as exc:
                raise DecodeError(f"failed reading {self.path}: {exc}") from exc
            if block.shape[0] == 0:
                break
            if fmt is SampleFormat.PCM_24:
                # libsndfile left-aligns 24-bit samples in int32
                block = block >> 8
            yield block
            if block.shape[0] < frames_per_block:
                break


@contextlib.contextmanager
def open_stream(path: str | os.PathLike[str]) -> Iterator[AudioStream]:
    """Open ``path`` and resolve its sample format before any data is read."""
    source = Path(path)
    try:
        handle = sf.SoundFile(str(source), mode="r")
    except (sf.SoundFileError, RuntimeError, OSError) as exc:
        raise DecodeError(f"unable to open {source}: {exc}") from exc

    try:
        fmt = SampleFormat.from_subtype(handle.subtype)
        if handle.channels <= 0 or handle.samplerate <= 0:
            raise DecodeError(
                f"invalid header in {source}: channels={handle.channels} "
                f"sample_rate={handle.samplerate}"
            )
        spec = StreamSpec(
            channels=int(handle.channels),
            sample_rate=int(handle.samplerate),
            sample_format=fmt,
            frames=max(0, int(handle.frames)),
        )
        _LOG.debug("opened %s (%s)", source, spec.describe())
        yield AudioStream(handle, spec, source)
    finally:
        handle.close()


__all__ = [
    "AudioStream",
    "DecodeError",
    "SampleFormat",
    "StreamSpec",
    "UnsupportedFormat",
    "normalize",
    "open_stream",
]
