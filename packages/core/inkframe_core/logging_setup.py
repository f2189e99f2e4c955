"""JSON-lines render logs and crash hooks for long-running loops.

Every record under the ``inkframe`` logger lands in a daily-rotated
``inkframe.log``. Records logged with ``extra={"event": ...}`` keep the
event name and any render context (cycle, source, outcome) as top-level
keys so a log file can be filtered per cycle.
"""

from __future__ import annotations

import faulthandler
import json
import logging
import logging.handlers
import os
import sys
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import IO, Any

from .config import config_dir

ROOT_LOGGER = "inkframe"
LOG_FILE = "inkframe.log"
CONTEXT_FIELDS = ("event", "cycle", "source", "outcome", "crash_id")

_fault_file: IO[str] | None = None


def log_dir() -> Path:
    path = config_dir() / "logs"
    path.mkdir(parents=True, exist_ok=True)
    return path


class JsonFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "ts_utc": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
        }
        for key in CONTEXT_FIELDS:
            value = getattr(record, key, None)
            if value is not None:
                payload[key] = value
        if record.exc_info:
            payload["exc"] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=True, default=str)


def _level_from_env(default: int) -> int:
    name = os.environ.get("INKFRAME_LOG_LEVEL", "").strip().upper()
    level = logging.getLevelName(name) if name else default
    return level if isinstance(level, int) else default


def configure_logging(
    keep_files: int = 7,
    console: bool = True,
    level: int | None = None,
    directory: Path | None = None,
) -> logging.Logger:
    """Attach the rotating JSON file handler (and optionally stderr).

    Calling it again replaces handlers installed by an earlier call, so a
    changed log directory or retention takes effect.
    """
    logger = logging.getLogger(ROOT_LOGGER)
    for old in [h for h in logger.handlers if getattr(h, "_inkframe", False)]:
        logger.removeHandler(old)
        old.close()

    logger.setLevel(level if level is not None else _level_from_env(logging.INFO))
    path = (directory or log_dir()) / LOG_FILE
    path.parent.mkdir(parents=True, exist_ok=True)
    file_handler = logging.handlers.TimedRotatingFileHandler(
        filename=str(path),
        when="midnight",
        backupCount=max(2, keep_files),
        encoding="utf-8",
    )
    file_handler.setFormatter(JsonFormatter())
    file_handler._inkframe = True  # type: ignore[attr-defined]
    logger.addHandler(file_handler)

    if console:
        stream_handler = logging.StreamHandler()
        stream_handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s", "%H:%M:%S"))
        stream_handler._inkframe = True  # type: ignore[attr-defined]
        logger.addHandler(stream_handler)

    logger.debug("logging to %s", path, extra={"event": "logging_configured"})
    return logger


def get_logger(name: str | None = None) -> logging.Logger:
    return logging.getLogger(f"{ROOT_LOGGER}.{name}" if name else ROOT_LOGGER)


def install_crash_hooks(directory: Path | None = None) -> None:
    """Log uncaught exceptions with a crash id and dump native faults to ``fault.log``."""
    global _fault_file
    logger = get_logger("crash")

    def _log_uncaught(exc_type, exc_value, exc_tb) -> None:
        if issubclass(exc_type, KeyboardInterrupt):
            sys.__excepthook__(exc_type, exc_value, exc_tb)
            return
        crash_id = uuid.uuid4().hex[:12]
        logger.critical(
            "render loop crashed (crash_id=%s)",
            crash_id,
            exc_info=(exc_type, exc_value, exc_tb),
            extra={"event": "uncaught_exception", "crash_id": crash_id},
        )

    sys.excepthook = _log_uncaught

    if _fault_file is None:
        _fault_file = ((directory or log_dir()) / "fault.log").open("a", encoding="utf-8")
        faulthandler.enable(file=_fault_file, all_threads=True)
        logger.info("fault handler enabled", extra={"event": "fault_handler_enabled"})
