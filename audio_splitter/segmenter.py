"""Chunk-wise silence/sound state machine that cuts a stream into segments.

Every decoded sample is appended to the open segment. Classification only
decides where a segment ends: once a silence run longer than the configured
minimum follows sound, the pending samples (including the silent boundary
chunks) are emitted as one segment and a new one is opened.
"""
from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from typing import Iterable, Iterator

import numpy as np

from audio_splitter.decoder import SampleFormat, StreamSpec, normalize
from audio_splitter.energy import is_silent, rms_db

_LOG = logging.getLogger("audio_splitter.segmenter")


@dataclass(frozen=True)
class Segment:
    index: int
    sample_rate: int
    channels: int
    sample_format: SampleFormat
    native_samples: np.ndarray

    @property
    def frame_count(self) -> int:
        return int(self.native_samples.shape[0])

    @property
    def duration_ms(self) -> float:
        if self.sample_rate <= 0:
            return 0.0
        return self.frame_count * 1000.0 / self.sample_rate

    def normalized(self) -> np.ndarray:
        return normalize(self.native_samples, self.sample_format)


@dataclass
class SegmentationState:
    pending: list[np.ndarray] = field(default_factory=list)
    pending_frames: int = 0
    pending_has_sound: bool = False
    silence_run_ms: int = 0
    sound_run_ms: int = 0
    keep_silence: bool = True

    def take_pending(self) -> np.ndarray | None:
        if not self.pending:
            return None
        samples = np.concatenate(self.pending, axis=0)
        self.pending = []
        self.pending_frames = 0
        self.pending_has_sound = False
        return samples


class SilenceSegmenter:
    """Feed raw blocks; collect the segments handed back."""

    def __init__(
        self,
        spec: StreamSpec,
        *,
        chunk_length_ms: int,
        min_silence_duration_ms: int,
        min_sound_duration_ms: int,
        silence_threshold_db: float,
    ):
        if chunk_length_ms <= 0:
            raise ValueError("chunk_length_ms must be positive")
        self.spec = spec
        self.chunk_length_ms = int(chunk_length_ms)
        self.min_silence_duration_ms = int(min_silence_duration_ms)
        self.min_sound_duration_ms = int(min_sound_duration_ms)
        self.silence_threshold_db = float(silence_threshold_db)
        self.frames_per_block = spec.frames_per_block(self.chunk_length_ms)
        if self.frames_per_block <= 0:
            raise ValueError(
                f"sample rate {spec.sample_rate} Hz is too low for {self.chunk_length_ms} ms chunks"
            )
        self.state = SegmentationState()
        self.frames_processed = 0
        self.blocks_classified = 0
        self.segments_emitted = 0
        self.last_level_db = -math.inf
        self._finished = False

    @classmethod
    def from_settings(cls, spec: StreamSpec, settings) -> "SilenceSegmenter":
        return cls(
            spec,
            chunk_length_ms=settings.chunk_length_ms,
            min_silence_duration_ms=settings.min_silence_duration_ms,
            min_sound_duration_ms=settings.min_sound_duration_ms,
            silence_threshold_db=settings.silence_threshold_db,
        )

    @property
    def in_sound(self) -> bool:
        return not self.state.keep_silence

    def _emit(self, samples: np.ndarray) -> Segment:
        segment = Segment(
            index=self.segments_emitted,
            sample_rate=self.spec.sample_rate,
            channels=self.spec.channels,
            sample_format=self.spec.sample_format,
            native_samples=samples,
        )
        self.segments_emitted += 1
        _LOG.info(
            "segment %d: %d frames (%.0f ms)",
            segment.index,
            segment.frame_count,
            segment.duration_ms,
        )
        return segment

    def feed(self, block: np.ndarray) -> Segment | None:
        """Append one raw ``(frames, channels)`` block and return any segment it closes."""
        if self._finished:
            raise RuntimeError("segmenter already finished")
        raw = np.array(block, copy=True)
        if raw.ndim == 1:
            raw = raw.reshape(-1, self.spec.channels)
        frames = int(raw.shape[0])
        if frames == 0:
            return None

        state = self.state
        state.pending.append(raw)
        state.pending_frames += frames
        self.frames_processed += frames

        level = rms_db(normalize(raw, self.spec.sample_format))

        # A short trailing block never moves the state machine; its level only
        # decides whether the final flush has sound to keep.
        if frames < self.frames_per_block:
            if not is_silent(level, self.silence_threshold_db):
                state.pending_has_sound = True
            return None

        self.last_level_db = level
        self.blocks_classified += 1
        _LOG.debug("chunk %d rms %.2f dB", self.blocks_classified - 1, level)

        if is_silent(level, self.silence_threshold_db):
            state.silence_run_ms += self.chunk_length_ms
            if state.silence_run_ms > self.min_silence_duration_ms:
                emitted = None
                if not state.keep_silence:
                    samples = state.take_pending()
                    if samples is not None:
                        emitted = self._emit(samples)
                state.keep_silence = True
                return emitted
            return None

        state.pending_has_sound = True
        state.sound_run_ms += self.chunk_length_ms
        if state.sound_run_ms > self.min_sound_duration_ms:
            state.keep_silence = False
            state.silence_run_ms = 0
        return None

    def finish(self) -> Segment | None:
        """Flush the open segment at end of stream."""
        if self._finished:
            return None
        self._finished = True
        state = self.state
        if not state.pending:
            return None
        if not state.pending_has_sound:
            _LOG.debug("dropping %d trailing silent frames", state.pending_frames)
            state.take_pending()
            return None
        samples = state.take_pending()
        if samples is None:
            return None
        return self._emit(samples)

    def split(self, blocks: Iterable[np.ndarray]) -> Iterator[Segment]:
        for block in blocks:
            segment = self.feed(block)
            if segment is not None:
                yield segment
        final = self.finish()
        if final is not None:
            yield final


__all__ = ["Segment", "SegmentationState", "SilenceSegmenter"]
