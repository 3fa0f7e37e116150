"""Console output for build invocations."""
from __future__ import annotations

from typing import TextIO
import sys


class Console:
    """Simple console output handler with configurable log level.

    Levels: none < error < info < debug
    Default: 'info'

    When ``stream`` is given every message, and the output of the commands run
    for the build, goes to it. Otherwise info and debug lines go to stdout and
    errors to stderr.
    """

    LEVELS = {
        "none": 0,
        "error": 1,
        "info": 2,
        "debug": 3,
    }

    def __init__(self, level: str = "info", stream: TextIO | None = None):
        if level not in self.LEVELS:
            raise ValueError(f"Unknown log level '{level}'. Expected one of: {', '.join(self.LEVELS)}")
        self.level_name = level
        self.level = self.LEVELS[level]
        self._stream = stream

    @property
    def stream(self) -> TextIO:
        return self._stream if self._stream is not None else sys.stdout

    def info(self, message: str) -> None:
        if self.level >= self.LEVELS["info"]:
            self._emit(f"[INFO] {message}", sys.stdout)

    def error(self, message: str) -> None:
        if self.level >= self.LEVELS["error"]:
            self._emit(f"[ERROR] {message}", sys.stderr)

    def debug(self, message: str) -> None:
        if self.level >= self.LEVELS["debug"]:
            self._emit(f"[DEBUG] {message}", sys.stdout)

    def _emit(self, line: str, default: TextIO) -> None:
        target = self._stream if self._stream is not None else default
        print(line, file=target, flush=True)
