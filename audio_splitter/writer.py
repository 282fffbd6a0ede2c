"""Serialize segment samples as standalone WAV files."""
from __future__ import annotations

import os
from pathlib import Path

import numpy as np
import soundfile as sf

from audio_splitter.decoder import SampleFormat

DEFAULT_EXTENSION = "wav"


class WriteFailure(Exception):
    """Raised when a segment file cannot be written."""


def segment_filename(index: int, ext: str = DEFAULT_EXTENSION) -> str:
    return f"output_{int(index)}.{ext.lstrip('.')}"


def _to_container(samples: np.ndarray, fmt: SampleFormat) -> np.ndarray:
    data = np.asarray(samples)
    if data.ndim == 1:
        data = data[:, None]
    if fmt is SampleFormat.PCM_24:
        # libsndfile expects 24-bit samples left-aligned in int32
        return data.astype(np.int32) << 8
    return data.astype(fmt.dtype, copy=False)


def write_segment(
    path: str | os.PathLike[str],
    samples: np.ndarray,
    sample_rate: int,
    fmt: SampleFormat,
) -> Path:
    """Write ``(frames, channels)`` raw samples of ``fmt`` to ``path``.

    The file is written beside its destination and moved into place once the
    header is final, so a reader never sees a half-written container.
    """
    destination = Path(path)
    tmp_path = destination.with_suffix(destination.suffix + ".tmp")
    try:
        destination.parent.mkdir(parents=True, exist_ok=True)
        data = _to_container(samples, fmt)
        sf.write(
            str(tmp_path),
            data,
            int(sample_rate),
            subtype=fmt.subtype,
            format="WAV",
        )
        os.replace(tmp_path, destination)
    except (OSError, sf.SoundFileError, RuntimeError, ValueError, TypeError) as exc:
        try:
            tmp_path.unlink(missing_ok=True)
        except OSError:
            pass
        raise WriteFailure(f"failed to write {destination}: {exc}") from exc
    return destination


__all__ = ["DEFAULT_EXTENSION", "WriteFailure", "segment_filename", "write_segment"]
