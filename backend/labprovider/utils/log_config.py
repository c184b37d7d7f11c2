# backend/labprovider/utils/log_config.py
"""
Structured key=value logging for journald.

Each record is rendered as ``LEVEL=INFO MESSAGE=... KEY=value`` where the
trailing keys come from the ``extra`` mapping passed to the logger call:

    logger.info("Starting VM restore", extra={"action": "restore", "status": "starting"})
"""
import logging
import sys
from typing import Optional, TextIO

# Attributes present on every LogRecord; anything else was passed via ``extra``
_RESERVED_ATTRS = frozenset(vars(logging.LogRecord("", 0, "", 0, "", (), None))) | {
    "message",
    "asctime",
    "taskName",
}


class KeyValueFormatter(logging.Formatter):
    """Render log records as space separated KEY=value pairs."""

    def format(self, record: logging.LogRecord) -> str:
        level = "WARNING" if record.levelno == logging.WARNING else record.levelname
        parts = [f"LEVEL={level}", f"MESSAGE={record.getMessage()}"]
        for key, value in record.__dict__.items():
            if key in _RESERVED_ATTRS or key.startswith("_"):
                continue
            parts.append(f"{key.upper()}={value}")
        if record.exc_info:
            parts.append(f"EXCEPTION={self.formatException(record.exc_info)!r}")
        return " ".join(parts)


def configure_logging(level: str = "INFO", stream: Optional[TextIO] = None) -> None:
    """Install the key=value formatter on the root logger."""
    handler = logging.StreamHandler(stream or sys.stdout)
    handler.setFormatter(KeyValueFormatter())

    root = logging.getLogger()
    for existing in list(root.handlers):
        root.removeHandler(existing)
    root.addHandler(handler)
    root.setLevel(level.upper())

    # Third party clients are chatty at INFO
    for noisy in ("httpx", "googleapiclient.discovery_cache", "urllib3"):
        logging.getLogger(noisy).setLevel(logging.WARNING)


def mask_secret(value: str, visible: int = 2) -> str:
    """Mask all but the first few characters of a secret for log output."""
    if not value:
        return ""
    if len(value) <= visible:
        return "*" * len(value)
    return value[:visible] + "*" * (len(value) - visible)
