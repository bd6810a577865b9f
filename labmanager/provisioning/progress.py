"""Numbered progress lines for a provisioning or teardown run."""
import itertools
import logging
from typing import TextIO

logger = logging.getLogger(__name__)

_COLOURS = {"info": "\033[32m", "skip": "\033[33m", "error": "\033[31m", "note": "\033[37m"}
_MARKERS = {"info": "+", "skip": "~", "error": "!", "note": " "}
_RESET = "\033[0m"


class Progress:
    """Step counter plus console echo, scoped to one orchestrator run.

    Steps are handed out from an itertools counter, whose next() is atomic,
    so lines from concurrent attendees interleave but keep unique numbers.
    Every line is also logged; when stream is None nothing is printed.
    """

    def __init__(self, stream: TextIO | None = None):
        self._steps = itertools.count(1)
        self._stream = stream
        self._colour = bool(stream is not None and getattr(stream, "isatty", lambda: False)())

    def next_step(self) -> int:
        return next(self._steps)

    def created(self, step: int, message: str, indent: int = 0) -> None:
        logger.info(message)
        self._echo("info", f"{step:3}. {message}", indent)

    def skipped(self, step: int, message: str, indent: int = 0) -> None:
        logger.info(message)
        self._echo("skip", f"{step:3}. {message}", indent)

    def failed(self, step: int, message: str, indent: int = 0) -> None:
        logger.error(message)
        self._echo("error", f"{step:3}. {message}", indent)

    def note(self, message: str) -> None:
        logger.info(message)
        self._echo("note", message, 0)

    def _echo(self, level: str, text: str, indent: int) -> None:
        if self._stream is None:
            return
        line = f"{_MARKERS[level]} {'    ' * indent}{text}"
        if self._colour:
            line = f"{_COLOURS[level]}{line}{_RESET}"
        print(line, file=self._stream)
