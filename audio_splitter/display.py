"""Formatting helpers for the splitter CLI progress output."""

from __future__ import annotations

import os
import sys
import time
from typing import TextIO

ANSI_GREEN = "\033[32m"
ANSI_CYAN = "\033[36m"
ANSI_RESET = "\033[0m"
USE_COLOR_DEFAULT = os.getenv("NO_COLOR") is None

BAR_WIDTH = 40


def format_elapsed(seconds: float) -> str:
    total = max(0, int(seconds))
    hours, rem = divmod(total, 3600)
    minutes, secs = divmod(rem, 60)
    return f"{hours:02d}:{minutes:02d}:{secs:02d}"


def render_bar(done: int, total: int, width: int = BAR_WIDTH) -> str:
    """Return a fixed-width ``##--`` bar for ``done`` out of ``total``."""
    if width <= 0:
        return ""
    if total <= 0:
        return "-" * width
    filled = min(width, int(width * max(0, done) / float(total)))
    return "#" * filled + "-" * (width - filled)


def render_progress(
    done: int,
    total: int,
    elapsed: float,
    *,
    segments: int = 0,
    use_color: bool | None = None,
) -> str:
    enabled = USE_COLOR_DEFAULT if use_color is None else use_color
    bar = render_bar(done, total)
    if enabled:
        bar = f"{ANSI_CYAN}{bar}{ANSI_RESET}"
        clock = f"{ANSI_GREEN}{format_elapsed(elapsed)}{ANSI_RESET}"
    else:
        clock = format_elapsed(elapsed)
    width = max(7, len(str(total)))
    return f"{clock} {bar} {done:>{width}}/{total:<{width}} segments={segments}"


class ProgressPrinter:
    """Callable progress sink that redraws a single terminal line."""

    def __init__(self, stream: TextIO | None = None, *, min_interval: float = 0.1):
        self.stream = stream or sys.stderr
        self.min_interval = min_interval
        self._started = time.monotonic()
        self._last_draw = float("-inf")
        self._drawn = False
        self._use_color = USE_COLOR_DEFAULT and bool(getattr(self.stream, "isatty", lambda: False)())

    def __call__(self, done: int, total: int, segments: int) -> None:
        now = time.monotonic()
        if done < total and now - self._last_draw < self.min_interval:
            return
        self._last_draw = now
        line = render_progress(
            done, total, now - self._started, segments=segments, use_color=self._use_color
        )
        self.stream.write(f"\r{line}")
        self.stream.flush()
        self._drawn = True

    def close(self) -> None:
        if self._drawn:
            self.stream.write("\n")
            self.stream.flush()
            self._drawn = False


__all__ = [
    "ANSI_CYAN",
    "ANSI_GREEN",
    "ANSI_RESET",
    "BAR_WIDTH",
    "ProgressPrinter",
    "USE_COLOR_DEFAULT",
    "format_elapsed",
    "render_bar",
    "render_progress",
]
