"""Silence-based utterance splitter with band-limited 16 kHz resampling."""

__version__ = "0.1.0"
