from __future__ import annotations

from logging import Formatter, LogRecord
from logging.config import dictConfig
from typing import Iterable, Sequence

from settings import get_settings

# Context fields the poller, scheduler and controller pass through ``extra=``.
FLEET_CONTEXT_KEYS = (
    "machine",
    "zone",
    "iteration",
    "attempt",
    "reason",
    "temp",
    "sample_count",
    "status",
    "duration_ms",
)

_configured = False


class ContextualFormatter(Formatter):
    """Append ``key=value`` pairs for whichever fleet context fields a record carries."""

    def __init__(
        self,
        fmt: str | None = None,
        datefmt: str | None = None,
        style: str = "%",
        extra_keys: Iterable[str] | None = None,
    ) -> None:
        super().__init__(fmt=fmt, datefmt=datefmt, style=style)
        self._context_keys: Sequence[str] = tuple(extra_keys or FLEET_CONTEXT_KEYS)

    def _context(self, record: LogRecord) -> str:
        pairs = [
            f"{key}={getattr(record, key)}"
            for key in self._context_keys
            if getattr(record, key, None) is not None
        ]
        return " ".join(pairs)

    def format(self, record: LogRecord) -> str:
        line = super().format(record)
        context = self._context(record)
        return f"{line} | {context}" if context else line


def configure_logging(level: str | int | None = None) -> None:
    """Install the console handler once; later calls are no-ops.

    ``level`` overrides ``LOG_LEVEL`` for both the root logger and the handler.
    """
    global _configured
    if _configured:
        return

    log_level = level if level is not None else get_settings().log_level

    dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "formatters": {
                "fleet": {
                    "()": "logging_config.ContextualFormatter",
                    "fmt": "%(asctime)sZ | %(levelname)s | %(threadName)s | %(name)s | %(message)s",
                    "datefmt": "%Y-%m-%dT%H:%M:%S",
                    "style": "%",
                    "extra_keys": list(FLEET_CONTEXT_KEYS),
                }
            },
            "handlers": {
                "console": {
                    "class": "logging.StreamHandler",
                    "level": log_level,
                    "formatter": "fleet",
                }
            },
            "root": {"handlers": ["console"], "level": log_level},
        }
    )

    _configured = True
