"""
Structured logging for the queue worker.

Each record is one JSON object per line, so job ids and outcomes can be
filtered by log tooling.
"""

import json
import logging
import sys

from chatvault.models.chat import utcnow


class StructuredLogger:
    """Logger that emits JSON lines with extra key/value fields."""

    def __init__(self, name: str, level: int = logging.INFO):
        self.logger = logging.getLogger(name)
        self.logger.setLevel(level)

        # Prevent adding handlers multiple times
        if not self.logger.handlers:
            handler = logging.StreamHandler(sys.stdout)
            handler.setFormatter(logging.Formatter("%(message)s"))
            self.logger.addHandler(handler)
            self.logger.propagate = False

    def _payload(self, level: int, message: str, **fields) -> str:
        data = {
            "timestamp": utcnow().isoformat(),
            "level": logging.getLevelName(level),
            "message": message,
            "service": self.logger.name,
        }
        data.update(fields)
        return json.dumps(data, default=str)

    def _log(self, level: int, message: str, **fields):
        if self.logger.isEnabledFor(level):
            self.logger.log(level, self._payload(level, message, **fields))

    def debug(self, message: str, **fields):
        self._log(logging.DEBUG, message, **fields)

    def info(self, message: str, **fields):
        self._log(logging.INFO, message, **fields)

    def warning(self, message: str, **fields):
        self._log(logging.WARNING, message, **fields)

    def error(self, message: str, **fields):
        self._log(logging.ERROR, message, **fields)

    def exception(self, message: str, **fields):
        """Log at ERROR with the current traceback attached."""
        if self.logger.isEnabledFor(logging.ERROR):
            self.logger.exception(self._payload(logging.ERROR, message, exception=True, **fields))


def get_logger(service_name: str) -> StructuredLogger:
    """Get a structured logger for the named service."""
    return StructuredLogger(service_name)
