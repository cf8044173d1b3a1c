from __future__ import annotations

from datetime import date
import logging
from pathlib import Path

from colorlog import ColoredFormatter

TRACE_LEVEL = 5

_FORMAT = "%(asctime)s %(levelname)s %(name)s %(message)s"


def _trace(self: logging.Logger, message: str, *args: object, **kwargs: object) -> None:
    if self.isEnabledFor(TRACE_LEVEL):
        self._log(TRACE_LEVEL, message, args, **kwargs)


def log_file_path(log_dir: str | Path, day: date | None = None) -> Path:
    day = day or date.today()
    return Path(log_dir) / f"hostwatch-{day.isoformat()}.log"


def configure_logging(level: int, log_dir: str | Path | None = None) -> None:
    logging.addLevelName(TRACE_LEVEL, "TRACE")
    setattr(logging.Logger, "trace", _trace)

    console = logging.StreamHandler()
    console.setFormatter(
        ColoredFormatter(
            "%(log_color)s" + _FORMAT,
            log_colors={
                "TRACE": "cyan",
                "DEBUG": "blue",
                "INFO": "green",
                "WARNING": "yellow",
                "ERROR": "red",
                "CRITICAL": "red,bg_white",
            },
        )
    )
    handlers: list[logging.Handler] = [console]

    # One file per day; the console handler keeps the colors.
    if log_dir:
        path = log_file_path(log_dir)
        path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(path, encoding="utf-8")
        file_handler.setFormatter(logging.Formatter(_FORMAT))
        handlers.append(file_handler)

    logging.basicConfig(level=level, handlers=handlers)


def resolve_log_level(verbosity: int, fallback: str) -> int:
    if verbosity >= 2:
        return TRACE_LEVEL
    if verbosity == 1:
        return logging.DEBUG
    return logging._nameToLevel.get(fallback.upper(), logging.INFO)
