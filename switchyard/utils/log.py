"""Logging utilities for Switchyard."""

import json
import logging
import os
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional


# Attributes every LogRecord carries; anything else came in through ``extra=``.
_RECORD_ATTRIBUTES = frozenset(
    logging.LogRecord("", logging.INFO, "", 0, "", (), None).__dict__
) | {"message", "asctime"}


class StructuredFormatter(logging.Formatter):
    """Formatter with ISO timestamps and ``extra=`` context appended as JSON."""

    def formatTime(self, record: logging.LogRecord, datefmt: Optional[str] = None) -> str:
        timestamp = datetime.fromtimestamp(record.created, tz=timezone.utc)
        return timestamp.strftime("%Y-%m-%dT%H:%M:%S.%f")[:-3] + "Z"

    def format(self, record: logging.LogRecord) -> str:
        message = super().format(record)
        extras = {
            key: value
            for key, value in record.__dict__.items()
            if key not in _RECORD_ATTRIBUTES and not key.startswith("_")
        }
        if not extras:
            return message
        return f"{message} | {json.dumps(extras, sort_keys=True, ensure_ascii=True, default=str)}"


class SwitchyardLogger:
    """Console logger at ``SWITCHYARD_LOG_LEVEL`` plus an optional daily debug file."""

    def __init__(self, name: str = "switchyard"):
        self.logger = logging.getLogger(name)
        level_name = os.getenv("SWITCHYARD_LOG_LEVEL", "WARNING").upper()
        self.logger.setLevel(logging.DEBUG)
        self.logger.propagate = False

        if not self.logger.handlers:
            console_handler = logging.StreamHandler(sys.stderr)
            console_handler.setLevel(getattr(logging, level_name, logging.WARNING))
            console_handler.setFormatter(logging.Formatter("%(levelname)s: %(message)s"))
            self.logger.addHandler(console_handler)

        self._file_handler: Optional[logging.FileHandler] = None

    def set_log_dir(self, log_dir: Path) -> Path:
        """Send debug output to today's file under ``log_dir``, replacing any previous file."""
        log_file = Path(log_dir) / f"switchyard_{datetime.now().strftime('%Y%m%d')}.log"
        if self._file_handler is not None:
            if self._file_handler.baseFilename == os.path.abspath(log_file):
                return log_file
            self.logger.removeHandler(self._file_handler)
            self._file_handler.close()

        log_file.parent.mkdir(parents=True, exist_ok=True)
        handler = logging.FileHandler(log_file, encoding="utf-8")
        handler.setLevel(logging.DEBUG)
        handler.setFormatter(StructuredFormatter("%(asctime)s [%(levelname)s] %(message)s"))
        self.logger.addHandler(handler)
        self._file_handler = handler
        return log_file

    def debug(self, message: str, *args: Any, **kwargs: Any) -> None:
        self.logger.debug(message, *args, **kwargs)

    def info(self, message: str, *args: Any, **kwargs: Any) -> None:
        self.logger.info(message, *args, **kwargs)

    def warning(self, message: str, *args: Any, **kwargs: Any) -> None:
        self.logger.warning(message, *args, **kwargs)


_logger: Optional[SwitchyardLogger] = None


def get_logger() -> SwitchyardLogger:
    """Get the global logger instance."""
    global _logger
    if _logger is None:
        _logger = SwitchyardLogger()
    return _logger


def init_logger(log_dir: Optional[Path] = None) -> SwitchyardLogger:
    """Configure the global logger; repeated calls reuse it."""
    logger = get_logger()
    if log_dir is not None:
        logger.set_log_dir(log_dir)
    return logger


def mask_api_key(api_key: Optional[str], visible_chars: int = 4) -> str:
    """Mask an API key for safe display and logging.

    Example: ``"sk-abcdefghijk"`` -> ``"sk-*******hijk"``
    """
    if not api_key:
        return ""
    if len(api_key) <= visible_chars:
        return "*" * len(api_key)
    prefix = api_key[:3] if len(api_key) > 3 + visible_chars else ""
    suffix = api_key[-visible_chars:]
    hidden_len = len(api_key) - len(prefix) - visible_chars
    return f"{prefix}{'*' * max(hidden_len, 4)}{suffix}"
