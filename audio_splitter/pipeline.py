"""Decode → segment → write/resample orchestration for one input file."""
from __future__ import annotations

import logging
import os
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable

from audio_splitter.config import SplitterSettings
from audio_splitter.decoder import SampleFormat, StreamSpec, UnsupportedFormat, open_stream
from audio_splitter.resampler import InsufficientSamples, SincResampler, resample_interleaved
from audio_splitter.segmenter import Segment, SilenceSegmenter
from audio_splitter.writer import WriteFailure, segment_filename, write_segment

_LOG = logging.getLogger("audio_splitter.pipeline")

ProgressCallback = Callable[[int, int, int], None]


@dataclass(frozen=True)
class SegmentFailure:
    index: int
    stage: str
    message: str


@dataclass
class SplitReport:
    input_path: Path
    spec: StreamSpec | None = None
    segments: int = 0
    native_written: list[Path] = field(default_factory=list)
    resampled_written: list[Path] = field(default_factory=list)
    failures: list[SegmentFailure] = field(default_factory=list)
    frames_processed: int = 0
    cancelled: bool = False

    @property
    def ok(self) -> bool:
        return not self.failures and not self.cancelled


def resample_segment(
    segment: Segment,
    resampler: SincResampler,
    destination: Path,
) -> Path:
    """Resample one segment to the resampler's target rate and write it as PCM16."""
    converted = resample_interleaved(
        segment.normalized(),
        segment.sample_rate,
        resampler.target_rate,
        resampler=resampler,
    )
    return write_segment(destination, converted, resampler.target_rate, SampleFormat.PCM_16)


class _SegmentSink:
    """Writes emitted segments; resampling optionally runs on a worker pool."""

    def __init__(
        self,
        report: SplitReport,
        native_dir: Path,
        resampled_dir: Path,
        resampler: SincResampler,
        workers: int,
    ):
        self.report = report
        self.native_dir = native_dir
        self.resampled_dir = resampled_dir
        self.resampler = resampler
        self._executor: ThreadPoolExecutor | None = None
        if workers > 1:
            self._executor = ThreadPoolExecutor(
                max_workers=workers, thread_name_prefix="resample"
            )
        self._pending: list[tuple[int, Future]] = []

    def _record_failure(self, index: int, stage: str, exc: Exception) -> None:
        _LOG.warning("segment %d: %s failed: %s", index, stage, exc)
        self.report.failures.append(SegmentFailure(index, stage, str(exc)))

    def _record_resampled(self, index: int, outcome: Callable[[], Path]) -> None:
        try:
            path = outcome()
        except InsufficientSamples as exc:
            self._record_failure(index, "resample", exc)
        except WriteFailure as exc:
            self._record_failure(index, "write-resampled", exc)
        else:
            self.report.resampled_written.append(path)

    def handle(self, segment: Segment) -> None:
        self.report.segments += 1
        name = segment_filename(segment.index)
        try:
            native_path = write_segment(
                self.native_dir / name,
                segment.native_samples,
                segment.sample_rate,
                segment.sample_format,
            )
        except WriteFailure as exc:
            self._record_failure(segment.index, "write-native", exc)
        else:
            self.report.native_written.append(native_path)

        destination = self.resampled_dir / name
        if self._executor is None:
            self._record_resampled(
                segment.index,
                lambda: resample_segment(segment, self.resampler, destination),
            )
            return
        future = self._executor.submit(resample_segment, segment, self.resampler, destination)
        self._pending.append((segment.index, future))

    def close(self) -> None:
        if self._executor is None:
            return
        self._executor.shutdown(wait=True)
        for index, future in self._pending:
            self._record_resampled(index, future.result)
        self._pending = []


def _log_run_parameters(settings: SplitterSettings, spec: StreamSpec, source: Path) -> None:
    _LOG.info("input: %s", source)
    _LOG.info(
        "min_silence_duration: %d ms, min_sound_duration: %d ms",
        settings.min_silence_duration_ms,
        settings.min_sound_duration_ms,
    )
    _LOG.info(
        "chunk_length: %d ms, threshold: %.1f dB",
        settings.chunk_length_ms,
        settings.silence_threshold_db,
    )
    _LOG.info("stream: %s", spec.describe())
    _LOG.info(
        "chunk size: %d frames, target rate: %d Hz",
        spec.frames_per_block(settings.chunk_length_ms),
        settings.target_sample_rate,
    )


def split_file(
    input_path: str | os.PathLike[str],
    output_dir: str | os.PathLike[str],
    settings: SplitterSettings | None = None,
    *,
    progress: ProgressCallback | None = None,
    cancel_event: threading.Event | None = None,
) -> SplitReport:
    """Split ``input_path`` into ``output_dir/<original>`` and ``output_dir/<resampled>``.

    Stream-level errors (``UnsupportedFormat``, ``DecodeError``) propagate
    once every segment emitted so far has been written. Segment-level
    failures are collected on the returned report.
    """
    if settings is None:
        settings = SplitterSettings.from_cfg()
    source = Path(input_path)
    out_root = Path(output_dir)
    native_dir = out_root / settings.original_subdir
    resampled_dir = out_root / settings.resampled_subdir
    report = SplitReport(input_path=source)

    with open_stream(source) as stream:
        spec = stream.spec
        report.spec = spec
        _log_run_parameters(settings, spec, source)

        try:
            segmenter = SilenceSegmenter.from_settings(spec, settings)
        except ValueError as exc:
            raise UnsupportedFormat(str(exc)) from exc

        for directory in (native_dir, resampled_dir):
            try:
                directory.mkdir(parents=True, exist_ok=True)
            except OSError as exc:
                # Surfaces again as a per-segment WriteFailure.
                _LOG.warning("cannot create %s: %s", directory, exc)

        resampler = SincResampler(spec.sample_rate, settings.target_sample_rate, settings.sinc)
        sink = _SegmentSink(
            report, native_dir, resampled_dir, resampler, settings.resample_workers
        )
        total = spec.frames
        try:
            for block in stream.blocks(segmenter.frames_per_block):
                segment = segmenter.feed(block)
                report.frames_processed = segmenter.frames_processed
                if progress is not None:
                    progress(segmenter.frames_processed, total, segmenter.segments_emitted)
                if segment is None:
                    continue
                sink.handle(segment)
                if cancel_event is not None and cancel_event.is_set():
                    _LOG.warning("cancelled after segment %d", segment.index)
                    report.cancelled = True
                    break
            else:
                final = segmenter.finish()
                if final is not None:
                    sink.handle(final)
                if progress is not None:
                    progress(segmenter.frames_processed, total, segmenter.segments_emitted)
        finally:
            sink.close()

    _LOG.info(
        "done: %d segment(s), %d original file(s), %d resampled file(s), %d failure(s)",
        report.segments,
        len(report.native_written),
        len(report.resampled_written),
        len(report.failures),
    )
    return report


__all__ = [
    "ProgressCallback",
    "SegmentFailure",
    "SplitReport",
    "resample_segment",
    "split_file",
]
