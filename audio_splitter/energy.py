"""Block energy helpers used for silence classification."""
from __future__ import annotations

import math

import numpy as np

DEFAULT_SILENCE_THRESHOLD_DB = -40.0


def rms_db(block: np.ndarray) -> float:
    """Return the RMS level of normalized samples in dBFS.

    All channels of the block contribute. A block with no energy (or no
    samples) is ``-inf`` dB rather than a log-of-zero warning or NaN.
    """
    samples = np.asarray(block, dtype=np.float64)
    if samples.size == 0:
        return -math.inf
    mean_square = float(np.mean(np.square(samples)))
    if mean_square <= 0.0:
        return -math.inf
    return 20.0 * math.log10(math.sqrt(mean_square))


def is_silent(level_db: float, threshold_db: float = DEFAULT_SILENCE_THRESHOLD_DB) -> bool:
    """Strictly-below comparison; ``-inf`` is always silent."""
    return level_db < threshold_db


__all__ = ["DEFAULT_SILENCE_THRESHOLD_DB", "is_silent", "rms_db"]
