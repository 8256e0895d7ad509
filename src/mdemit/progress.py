"""Single-line terminal progress for batch builds."""

from __future__ import annotations

import sys
import time
from dataclasses import dataclass, field
from shutil import get_terminal_size
from typing import TextIO


@dataclass(slots=True)
class ProgressBar:
    label: str
    total: int
    enabled: bool = True
    stream: TextIO = field(default_factory=lambda: sys.stderr)
    width: int = 24
    min_interval_s: float = 0.1
    rendered: int = field(default=0, init=False)
    failed: int = field(default=0, init=False)
    _last_draw: float = field(default=0.0, init=False)
    _closed: bool = field(default=False, init=False)

    def __post_init__(self) -> None:
        self._draw("", force=True)

    @property
    def done(self) -> int:
        return self.rendered + self.failed

    def advance(self, page: str, *, ok: bool) -> None:
        if self._closed:
            return
        if ok:
            self.rendered += 1
        else:
            self.failed += 1
        self._draw(page)

    def finish(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._draw("", force=True)
        self._emit("\n")

    def _emit(self, s: str) -> None:
        if not self.enabled:
            return
        try:
            self.stream.write(s)
            self.stream.flush()
        except (OSError, ValueError):
            # Closed or broken stream: stop drawing, keep building.
            self.enabled = False

    def _draw(self, page: str, *, force: bool = False) -> None:
        if not self.enabled:
            return
        now = time.monotonic()
        if not force and (now - self._last_draw) < self.min_interval_s:
            return
        self._last_draw = now

        total = max(0, self.total)
        done = min(self.done, total) if total else self.done
        filled = self.width if not total else (self.width * done) // total
        bar = "=" * filled + " " * (self.width - filled)

        line = f"{self.label} [{bar}] {done}/{total} rendered={self.rendered} failed={self.failed}"
        if page:
            line += f"  {page}"
        cols = get_terminal_size(fallback=(80, 20)).columns
        self._emit("\r" + line[: max(0, cols - 1)])
