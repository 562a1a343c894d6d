# logging_setup.py

from __future__ import annotations

import logging
import sys
from pathlib import Path

# Top-level modules and packages that belong to this app.
_APP_LOGGERS = (
    "catalog", "client", "config", "db", "errors", "logging_setup", "main", "models",
    "services", "ui", "utils", "__main__",
)


class _ConsoleNoiseFilter(logging.Filter):
    """
    Keep the console readable:
    - app loggers pass through at the handler level
    - 'py.warnings' and third-party loggers (sqlalchemy, streamlit, ...) only at ERROR+
    """

    def filter(self, record: logging.LogRecord) -> bool:
        name = record.name
        root = name.split(".", 1)[0]
        if root in _APP_LOGGERS:
            return True
        return record.levelno >= logging.ERROR


def setup_logging(
    *,
    log_dir: str | Path = ".local/tuntas",
    console_level: int | str = logging.INFO,
    file_level: int = logging.DEBUG,
) -> None:
    """
    Console handler (filtered) plus a file handler with everything.

    Call once, before the first log line. Calling it again replaces the handlers.
    """
    log_dir = Path(log_dir)
    log_dir.mkdir(parents=True, exist_ok=True)
    log_file = log_dir / "tuntas.log"

    root = logging.getLogger()
    root.setLevel(logging.DEBUG)

    for h in list(root.handlers):
        root.removeHandler(h)

    fmt = logging.Formatter(
        fmt="%(asctime)s.%(msecs)03d %(levelname)s %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    ch = logging.StreamHandler(sys.stderr)
    ch.setLevel(console_level)
    ch.setFormatter(fmt)
    ch.addFilter(_ConsoleNoiseFilter())
    root.addHandler(ch)

    fh = logging.FileHandler(str(log_file), encoding="utf-8")
    fh.setLevel(file_level)
    fh.setFormatter(fmt)
    root.addHandler(fh)

    logging.captureWarnings(True)
