"""Logging helpers shared by runner components."""

from __future__ import annotations

import logging
from typing import Final

LOG_FORMAT: Final[str] = "%(asctime)s %(levelname)s %(name)s: %(message)s"


class BaseLogger:
    """Mixin that gives a component its own named logger."""

    def __init__(self, name: str | None = None):
        """Initialize logger instance with optional explicit name."""
        self.logger = logging.getLogger(name or self.__class__.__name__)


class CompactingHandler(logging.Handler):
    """Fold runs of identical records from one logger into a single counted line.

    Streaming turns log one line per partial event, so a plain stream handler
    floods the terminal. Records are identical when logger name, level and the
    rendered message all match. Warnings and above are never held back.
    """

    _SUMMARY_PREFIX: Final[str] = "+"

    def __init__(self, delegate: logging.Handler):
        """Wrap the handler that performs the final output."""
        super().__init__(level=delegate.level)
        self.delegate = delegate
        self._held: logging.LogRecord | None = None
        self._held_key: tuple[str, int, str] | None = None
        self._repeats = 0

    @staticmethod
    def _key(record: logging.LogRecord) -> tuple[str, int, str]:
        return record.name, record.levelno, record.getMessage()

    def emit(self, record: logging.LogRecord) -> None:
        """Hold the record until a different one arrives."""
        key = self._key(record)
        with self._guard():
            if record.levelno >= logging.WARNING:
                self._release_held()
                self.delegate.handle(record)
                return
            if key == self._held_key:
                self._repeats += 1
                return
            self._release_held()
            self._held = record
            self._held_key = key
            self._repeats = 1

    def flush(self) -> None:
        """Write out any held record and flush the delegate."""
        with self._guard():
            self._release_held()
            self.delegate.flush()

    def close(self) -> None:
        """Flush held output before closing the delegate."""
        try:
            self.flush()
        finally:
            self.delegate.close()
            super().close()

    def _guard(self):
        return _HandlerLock(self)

    def _release_held(self) -> None:
        if self._held is None:
            return
        record = self._held
        if self._repeats > 1:
            record = logging.makeLogRecord(record.__dict__)
            record.msg = f"{self._SUMMARY_PREFIX}{self._repeats} {self._held_key[2]}"
            record.args = ()
        self.delegate.handle(record)
        self._held = None
        self._held_key = None
        self._repeats = 0


class _HandlerLock:
    """Context manager over a handler's acquire/release pair."""

    def __init__(self, handler: logging.Handler):
        self.handler = handler

    def __enter__(self) -> None:
        self.handler.acquire()

    def __exit__(self, *exc_info) -> None:
        self.handler.release()


def configure_logging(level: str) -> None:
    """Configure root logging with compacted terminal output."""
    root = logging.getLogger()
    for handler in list(root.handlers):
        root.removeHandler(handler)
        handler.close()
    root.setLevel(getattr(logging, level.upper(), logging.INFO))
    stream = logging.StreamHandler()
    stream.setFormatter(logging.Formatter(LOG_FORMAT))
    root.addHandler(CompactingHandler(stream))
