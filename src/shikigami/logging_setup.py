# src/shikigami/logging_setup.py

from __future__ import annotations

import logging
import sys
from collections.abc import Iterable
from pathlib import Path

LOG_FILE_NAME = "shiki.log"

_FORMAT = "%(asctime)s.%(msecs)03d %(levelname)s %(name)s: %(message)s"
_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


class _ConsoleNoiseFilter(logging.Filter):
    """
    Console gate for processes that embed the engine.

    Engine records pass, except the "quiet" engine loggers (per-mutation
    audit lines by default), which need WARNING. Anything from outside the
    engine, captured warnings included, needs ERROR.
    """

    def __init__(self, quiet: Iterable[str] = ("shikigami.audit",)) -> None:
        super().__init__()
        self._quiet = tuple(quiet)

    def filter(self, record: logging.LogRecord) -> bool:
        name = record.name
        if not name.startswith("shikigami."):
            return record.levelno >= logging.ERROR
        if name.startswith(self._quiet):
            return record.levelno >= logging.WARNING
        return True


def _drop_handlers(logger: logging.Logger) -> None:
    for h in list(logger.handlers):
        logger.removeHandler(h)


def setup_logging(
    *,
    log_dir: str | Path = ".shiki/logs",
    console_level: int = logging.INFO,
    file_level: int = logging.DEBUG,
) -> Path:
    """
    Route all logging to stderr (filtered) and to <log_dir>/shiki.log (full).

    Replaces whatever handlers the root logger had, so call it once at
    process start. Returns the log file path.
    """
    log_file = Path(log_dir) / LOG_FILE_NAME
    log_file.parent.mkdir(parents=True, exist_ok=True)

    root = logging.getLogger()
    _drop_handlers(root)
    root.setLevel(min(console_level, file_level))

    fmt = logging.Formatter(fmt=_FORMAT, datefmt=_DATE_FORMAT)

    console = logging.StreamHandler(sys.stderr)
    console.setLevel(console_level)
    console.addFilter(_ConsoleNoiseFilter())

    file_handler = logging.FileHandler(log_file, encoding="utf-8")
    file_handler.setLevel(file_level)

    for handler in (console, file_handler):
        handler.setFormatter(fmt)
        root.addHandler(handler)

    logging.captureWarnings(True)
    logging.getLogger(__name__).debug("Logging to %s (console=%s)", log_file, logging.getLevelName(console_level))
    return log_file
