#!/usr/bin/env python3
"""
Split a PCM recording into utterance segments.

Usage:
  audio-splitter -i input.wav -o out/
  audio-splitter -i input.wav -o out/ --min-silence-duration 300 -t -45 --workers 4

Writes out/original/output_<n>.wav at the source rate and
out/16kHz/output_<n>.wav resampled to the target rate. Press Ctrl+C to stop
after the segment currently being written.
"""
from __future__ import annotations

import argparse
import logging
import signal
import sys
import threading
from pathlib import Path
from typing import Sequence

from audio_splitter.config import ConfigError, SplitterSettings, default_output_dir, get_cfg
from audio_splitter.decoder import DecodeError, UnsupportedFormat
from audio_splitter.display import ProgressPrinter
from audio_splitter.pipeline import split_file

LOG_FORMAT = "[%(name)s] %(message)s"
FILE_LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"

EXIT_OK = 0
EXIT_STREAM_ERROR = 1
EXIT_USAGE = 2
EXIT_CANCELLED = 130


def _build_parser(cfg: dict) -> argparse.ArgumentParser:
    seg = cfg.get("segmenter", {})
    res = cfg.get("resampler", {})
    parser = argparse.ArgumentParser(
        prog="audio-splitter",
        description="Split a recording at silences and write native and 16 kHz segments.",
    )
    parser.add_argument("-i", "--input", dest="input_filepath", default="input.wav", help="Input file path (WAV, 16/24-bit int or 32-bit float)")
    parser.add_argument("-o", "--output", dest="output_dirpath", default=None, help="Output directory (default: paths.output_dir)")
    parser.add_argument("--min-silence-duration", type=int, default=None, help=f"Minimum silence duration in ms (default: {seg.get('min_silence_duration_ms')})")
    parser.add_argument("--min-sound-duration", type=int, default=None, help=f"Minimum sound duration in ms (default: {seg.get('min_sound_duration_ms')})")
    parser.add_argument("-c", "--chunk-length", "--chunk_length", dest="chunk_length", type=int, default=None, help=f"Chunk size in ms (default: {seg.get('chunk_length_ms')})")
    parser.add_argument("-t", "--threshold", type=float, default=None, help=f"Silence threshold in dB (default: {seg.get('silence_threshold_db')})")
    parser.add_argument("--target-rate", type=int, default=None, help=f"Resampled output rate in Hz (default: {res.get('target_sample_rate')})")
    parser.add_argument("--workers", type=int, default=None, help=f"Resampling worker threads (default: {res.get('workers')})")
    parser.add_argument("--log-file", default=None, help="Also write the run log (parameters and per-chunk levels) to this file")
    parser.add_argument("--no-progress", action="store_true", help="Do not draw the progress bar")
    parser.add_argument("-v", "--verbose", action="store_true", help="Log per-chunk RMS levels")
    return parser


def configure_logging(*, verbose: bool, log_file: str = "") -> list[logging.Handler]:
    root = logging.getLogger("audio_splitter")
    root.setLevel(logging.DEBUG)
    handlers: list[logging.Handler] = []

    console = logging.StreamHandler(sys.stderr)
    console.setLevel(logging.DEBUG if verbose else logging.INFO)
    console.setFormatter(logging.Formatter(LOG_FORMAT))
    handlers.append(console)

    if log_file:
        path = Path(log_file).expanduser()
        path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(path, mode="w", encoding="utf-8")
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(logging.Formatter(FILE_LOG_FORMAT))
        handlers.append(file_handler)

    for handler in handlers:
        root.addHandler(handler)
    return handlers


def _release_logging(handlers: Sequence[logging.Handler]) -> None:
    root = logging.getLogger("audio_splitter")
    for handler in handlers:
        root.removeHandler(handler)
        handler.close()


def main(argv: Sequence[str] | None = None) -> int:
    cfg = get_cfg()
    parser = _build_parser(cfg)
    args = parser.parse_args(argv)

    try:
        settings = SplitterSettings.from_cfg(
            cfg,
            min_silence_duration_ms=args.min_silence_duration,
            min_sound_duration_ms=args.min_sound_duration,
            chunk_length_ms=args.chunk_length,
            silence_threshold_db=args.threshold,
            target_sample_rate=args.target_rate,
            resample_workers=args.workers,
            log_file=args.log_file,
        )
    except ConfigError as exc:
        print(f"[audio_splitter] ERROR: invalid configuration: {exc}", file=sys.stderr, flush=True)
        return EXIT_USAGE

    output_dir = Path(args.output_dirpath) if args.output_dirpath else default_output_dir(cfg)

    try:
        handlers = configure_logging(
            verbose=args.verbose or settings.dev_mode, log_file=settings.log_file
        )
    except OSError as exc:
        print(f"[audio_splitter] ERROR: cannot open log file: {exc}", file=sys.stderr, flush=True)
        return EXIT_USAGE

    cancel_event = threading.Event()
    previous_handler = None
    if threading.current_thread() is threading.main_thread():
        def _request_stop(_signum, _frame):
            print("\n[audio_splitter] stopping after the current segment ...", file=sys.stderr, flush=True)
            cancel_event.set()

        previous_handler = signal.signal(signal.SIGINT, _request_stop)

    printer = None if args.no_progress else ProgressPrinter()
    try:
        report = split_file(
            args.input_filepath,
            output_dir,
            settings,
            progress=printer,
            cancel_event=cancel_event,
        )
    except (UnsupportedFormat, DecodeError) as exc:
        if printer is not None:
            printer.close()
        print(f"[audio_splitter] ERROR: {exc}", file=sys.stderr, flush=True)
        return EXIT_STREAM_ERROR
    finally:
        if previous_handler is not None:
            signal.signal(signal.SIGINT, previous_handler)
        _release_logging(handlers)

    if printer is not None:
        printer.close()
    for failure in report.failures:
        print(
            f"[audio_splitter] WARNING: segment {failure.index} ({failure.stage}): {failure.message}",
            file=sys.stderr,
            flush=True,
        )
    if report.cancelled:
        return EXIT_CANCELLED
    return EXIT_OK


if __name__ == "__main__":
    sys.exit(main())
