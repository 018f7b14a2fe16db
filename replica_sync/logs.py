"""Logging setup: a plain log file plus a coloured console stream."""

from __future__ import annotations

import logging
import sys
from pathlib import Path
from typing import Optional

from colorama import just_fix_windows_console

LOGGER_NAME = "replica_sync"

LOG_FORMAT = "%(asctime)s | %(levelname)s | %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


class Ansi:
    RESET = "\x1b[0m"
    RED = "\x1b[31m"
    GREEN = "\x1b[32m"
    YELLOW = "\x1b[33m"
    ORANGE = "\x1b[38;5;208m"
    CYAN = "\x1b[36m"
    WHITE = "\x1b[97m"
    LIGHT_BROWN = "\x1b[33m"


ACTION_COLORS = {
    "COPY": Ansi.GREEN,
    "MKDIR": Ansi.LIGHT_BROWN,
    "REPLACE": Ansi.ORANGE,
    "DELETE": Ansi.ORANGE,
    "RMDIR": Ansi.ORANGE,
    "DRY_RUN": Ansi.CYAN,
    "VERIFY": Ansi.YELLOW,
}


def _supports_color(stream) -> bool:
    try:
        return hasattr(stream, "isatty") and stream.isatty()
    except (AttributeError, ValueError):
        return False


class ColorizingFormatter(logging.Formatter):
    def __init__(self, use_color: bool, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.use_color = use_color

    def format(self, record: logging.LogRecord) -> str:
        text = super().format(record)
        if not self.use_color:
            return text
        if record.levelno >= logging.ERROR:
            return f"{Ansi.RED}{text}{Ansi.RESET}"
        for token, color in self._highlights(record):
            text = text.replace(token, f"{color}{token}{Ansi.RESET}", 1)
        return text

    @staticmethod
    def _highlights(record: logging.LogRecord):
        action = getattr(record, "action", None)
        if action in ACTION_COLORS:
            # the tag prefix only, never a path that happens to spell an action
            yield f"{action} |", ACTION_COLORS[action]
        path_text = getattr(record, "path_text", None)
        if path_text:
            yield path_text, Ansi.LIGHT_BROWN if getattr(record, "is_dir", False) else Ansi.WHITE


def setup_logger(log_file: Path, verbose: bool = False, stream=None) -> logging.Logger:
    """Attach a file handler for ``log_file`` and a console handler.

    Raises ``OSError`` when the log file cannot be created; callers treat that
    as a fatal setup failure. Any handlers left over from an earlier call are
    closed and replaced.
    """
    log_file = Path(log_file).expanduser()
    log_file.parent.mkdir(parents=True, exist_ok=True)
    fh = logging.FileHandler(log_file, mode="a", encoding="utf-8")

    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(logging.DEBUG if verbose else logging.INFO)
    logger.propagate = False

    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    just_fix_windows_console()

    fh.setFormatter(logging.Formatter(fmt=LOG_FORMAT, datefmt=DATE_FORMAT))
    fh.setLevel(logging.DEBUG if verbose else logging.INFO)

    stream = stream if stream is not None else sys.stdout
    ch = logging.StreamHandler(stream)
    ch.setLevel(logging.INFO if verbose else logging.WARNING)
    ch.setFormatter(ColorizingFormatter(use_color=_supports_color(stream), fmt=LOG_FORMAT, datefmt=DATE_FORMAT))

    logger.addHandler(fh)
    logger.addHandler(ch)

    logger.debug("Logging to: %s", log_file)
    return logger


def log_action(
    logger: logging.Logger,
    action: str,
    message: str,
    path: Optional[Path] = None,
    is_dir: Optional[bool] = None,
    level: int = logging.INFO,
) -> None:
    extra = {"action": action}
    if path is not None:
        extra["path_text"] = str(path)
        extra["is_dir"] = bool(is_dir)
    logger.log(level, f"{action} | {message}", extra=extra)
