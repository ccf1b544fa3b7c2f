"""PollgramLogger — Singleton JSON logger with console and rotating file output.

Provides a single, project-wide logger instance that writes structured JSON to
stderr and to ``$LOG_DIR/pollgram.log`` (default ``logs/``, with automatic
rotation).  ``LOG_LEVEL`` sets the threshold.
"""

import json
import logging
import os
from datetime import datetime, timezone
from logging.handlers import RotatingFileHandler
from typing import Optional


class _JsonFormatter(logging.Formatter):
    """Format every log record as a single-line JSON object.

    Standard fields (timestamp, level, logger, message, module, func_name)
    are always present.  Any *extra* key-value pairs passed via the ``extra``
    parameter of a logging call are merged into the JSON object, so the
    update loop and dispatcher can attach ``offset``, ``update_id``,
    ``kind``, ``will_retry`` and similar context.

    Example::

        logger.info("Batch received", extra={"count": 3, "offset": 1042})

    Produces::

        {"timestamp": "…", "level": "INFO", …, "count": 3, "offset": 1042}
    """

    # Keys that belong to the standard LogRecord; everything else is extra.
    _BUILTIN_ATTRS: frozenset[str] = frozenset(vars(logging.LogRecord(
        name="", level=0, pathname="", lineno=0, msg="", args=(), exc_info=None,
    )))

    def format(self, record: logging.LogRecord) -> str:
        log_entry: dict = {
            "timestamp": datetime.fromtimestamp(
                record.created, tz=timezone.utc
            ).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "func_name": record.funcName,
        }

        for key, value in record.__dict__.items():
            if key not in self._BUILTIN_ATTRS and key not in log_entry:
                log_entry[key] = value

        if record.exc_info:
            log_entry["exc_info"] = self.formatException(record.exc_info)

        return json.dumps(log_entry, ensure_ascii=False, default=str)


def _level_from_env(default: int) -> int:
    """Resolve ``LOG_LEVEL`` (e.g. ``"DEBUG"``) to a numeric level."""
    name = os.environ.get("LOG_LEVEL", "").strip().upper()
    if not name:
        return default
    level = logging.getLevelName(name)
    return level if isinstance(level, int) else default


class PollgramLogger:
    """Singleton logger with dual handlers (console + rotating file).

    Usage::

        from core.logger import PollgramLogger

        logger = PollgramLogger.get_logger()
        logger.info("Update loop started")
    """

    _instance: Optional["PollgramLogger"] = None
    _logger: Optional[logging.Logger] = None

    # Rotation settings
    _LOG_FILE: str = "pollgram.log"
    _MAX_BYTES: int = 5 * 1024 * 1024  # 5 MB
    _BACKUP_COUNT: int = 5

    def __new__(cls, level: int = logging.INFO) -> "PollgramLogger":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
            cls._instance._init_logger(_level_from_env(level))
        return cls._instance

    # ------------------------------------------------------------------
    # Initialisation helpers
    # ------------------------------------------------------------------

    def _init_logger(self, level: int) -> None:
        """Create the underlying :class:`logging.Logger` and attach handlers."""
        self._logger = logging.getLogger("pollgram")
        self._logger.setLevel(level)

        # Avoid duplicate handlers if the module is reloaded.
        if self._logger.handlers:
            return

        formatter = _JsonFormatter()

        stream_handler = logging.StreamHandler()
        stream_handler.setLevel(level)
        stream_handler.setFormatter(formatter)
        self._logger.addHandler(stream_handler)

        # LOG_DIR="" keeps output on the console only.
        log_dir = os.environ.get("LOG_DIR", "logs").strip()
        if log_dir:
            self._logger.addHandler(self._file_handler(log_dir, level, formatter))

    def _file_handler(self, log_dir: str, level: int, formatter: logging.Formatter) -> RotatingFileHandler:
        os.makedirs(log_dir, exist_ok=True)
        handler = RotatingFileHandler(
            os.path.join(log_dir, self._LOG_FILE),
            maxBytes=self._MAX_BYTES,
            backupCount=self._BACKUP_COUNT,
            encoding="utf-8",
        )
        handler.setLevel(level)
        handler.setFormatter(formatter)
        return handler

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    @staticmethod
    def get_logger(level: int = logging.INFO) -> logging.Logger:
        """Return the shared :class:`logging.Logger` instance.

        Creates the singleton on first call; subsequent calls return the
        same logger regardless of the *level* argument.
        """
        instance = PollgramLogger(level)
        assert instance._logger is not None  # guaranteed by __new__
        return instance._logger

    def cleanup(self) -> None:
        """Flush and close all handlers attached to the logger."""
        if self._logger is None:
            return
        for handler in list(self._logger.handlers):
            handler.flush()
            handler.close()
            self._logger.removeHandler(handler)
