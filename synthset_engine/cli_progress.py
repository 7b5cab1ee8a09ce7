"""CLI progress helpers."""

from __future__ import annotations

import os
import shutil
import sys
import threading
import time
from typing import TextIO

_BOLD = "\x1b[1m"
_GREY = "\x1b[38;2;150;157;165m"
_RESET = "\x1b[0m"
_BAR_WIDTH = 20


def progress_bar(percent: int, width: int = _BAR_WIDTH) -> str:
    clamped = max(0, min(int(percent), 100))
    filled = (clamped * width) // 100
    return f"[{'#' * filled}{'-' * (width - filled)}] {clamped:3d}%"


def progress_line(label: str, percent: int, start: float | None = None, done: bool = False) -> tuple[str, float]:
    now = time.monotonic()
    origin = now if start is None else start
    elapsed = max(0, int(now - origin))
    suffix = "done" if done else "ctrl-c to stop"
    return f"• {progress_bar(percent)} {label} ({_format_duration(elapsed)} • {suffix})", origin


class ProgressTicker:
    """Redraws one status line on a tty; prints plain lines otherwise.

    Non-tty streams only get a line when the label or percentage changes.
    """

    def __init__(
        self,
        label: str,
        stream: TextIO | None = None,
        interval_s: float = 1.0,
    ) -> None:
        self.label = label
        self.percent = 0
        self.start: float | None = None
        self.stream = stream or sys.stdout
        self.interval_s = max(0.05, interval_s)
        self._stop = threading.Event()
        self._lock = threading.Lock()
        self._thread = threading.Thread(target=self._run, daemon=True)
        self._enabled = bool(getattr(self.stream, "isatty", lambda: False)())
        self._started = False
        self._last_plain: tuple[str, int] | None = None

    def start_ticking(self) -> None:
        self.start = time.monotonic()
        self._draw()
        if self._enabled:
            self._started = True
            self._thread.start()

    def update(self, label: str, percent: int) -> None:
        with self._lock:
            self.label = label
            self.percent = percent
        if not self._stop.is_set():
            self._draw()

    def stop(self, summary: str | None = None) -> None:
        self._stop.set()
        if self._started:
            self._thread.join()
        if self._enabled:
            self.stream.write("\r\033[K")
        elapsed = max(0, int(time.monotonic() - (self.start or time.monotonic())))
        label = summary or "Finished"
        width = _resolve_terminal_width(self.stream, 100)
        line = _separator_line(f"{label} in {_format_duration(elapsed)}", width)
        self.stream.write(f"{_GREY}{line}{_RESET}\n")
        self.stream.flush()

    def _run(self) -> None:
        while not self._stop.wait(self.interval_s):
            self._draw()

    def _draw(self) -> None:
        with self._lock:
            label, percent = self.label, self.percent
            line, _ = progress_line(label, percent, self.start)
            if not self._enabled:
                if self._last_plain == (label, percent):
                    return
                self._last_plain = (label, percent)
                self.stream.write(f"{line}\n")
            else:
                self.stream.write(f"\r{_BOLD}{line}{_RESET}\033[K")
            self.stream.flush()


def _format_duration(seconds: int) -> str:
    minutes, secs = divmod(seconds, 60)
    hours, minutes = divmod(minutes, 60)
    if hours:
        return f"{hours}h {minutes}m {secs:02d}s"
    if minutes:
        return f"{minutes}m {secs:02d}s"
    return f"{secs}s"


def _separator_line(label: str, width: int) -> str:
    content = f" {label} "
    if width <= len(content) + 2:
        return content.strip()
    remaining = width - len(content)
    left = remaining // 2
    right = remaining - left
    return f"{'─' * left}{content}{'─' * right}"


def _resolve_terminal_width(stream: TextIO | None, fallback: int) -> int:
    if stream and hasattr(stream, "fileno"):
        try:
            return os.get_terminal_size(stream.fileno()).columns
        except (OSError, ValueError, AttributeError):
            pass
    try:
        return shutil.get_terminal_size(fallback=(fallback, 20)).columns
    except Exception:
        return fallback
