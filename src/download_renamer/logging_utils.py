from __future__ import annotations

import json
import logging
import os
from pathlib import Path

STRUCTURED_LOGS_ENV = "DOWNLOAD_RENAMER_STRUCTURED_LOGS"
LOG_FORMAT = "%(asctime)s %(levelname)-7s %(name)s: %(message)s"
DEFAULT_LOG_FILE = "download-renamer.log"


class StructuredLogFormatter(logging.Formatter):
    """One JSON object per line: time, level, logger, source location, message."""

    def format(self, record: logging.LogRecord) -> str:
        try:
            message = record.getMessage()
        except (TypeError, ValueError) as exc:
            # Bad %-args in a log call; keep the raw template.
            message = f"{record.msg!s} <args unavailable: {exc!s}>"
        payload = {
            "timestamp": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "logger": record.name,
            "where": f"{record.module}:{record.lineno}",
            "message": message,
        }
        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=False, default=str)


def structured_logs_requested() -> bool:
    return os.environ.get(STRUCTURED_LOGS_ENV, "").strip().lower() in ("1", "true", "yes", "on")


def make_formatter() -> logging.Formatter:
    if structured_logs_requested():
        return StructuredLogFormatter()
    return logging.Formatter(LOG_FORMAT)


def _attach(root: logging.Logger, handler: logging.Handler, level: int, formatter: logging.Formatter) -> None:
    handler.setLevel(level)
    handler.setFormatter(formatter)
    root.addHandler(handler)


def setup_logging(*, log_file: str | Path | None = DEFAULT_LOG_FILE, level: int = logging.INFO) -> None:
    """
    Configure the root logger for the CLI: one console handler and, unless
    log_file is None, one file handler. Calling it again adds nothing new.
    A log file that cannot be opened leaves console logging in place.
    """
    root = logging.getLogger()
    root.setLevel(level)
    formatter = make_formatter()

    # FileHandler subclasses StreamHandler, so compare exact types for the console.
    if not any(type(h) is logging.StreamHandler for h in root.handlers):
        _attach(root, logging.StreamHandler(), level, formatter)

    if log_file is None or any(isinstance(h, logging.FileHandler) for h in root.handlers):
        return
    log_path = Path(log_file)
    try:
        log_path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_path, encoding="utf-8")
    except OSError as exc:
        logging.getLogger(__name__).warning("Logging to console only; cannot open %s: %s", log_path, exc)
        return
    _attach(root, file_handler, level, formatter)
