from __future__ import annotations

import logging
import sys
import warnings
from collections import deque
from dataclasses import dataclass
from typing import TYPE_CHECKING, Deque, List, Optional

import structlog

if TYPE_CHECKING:
    from patchwise.settings import LoggingSettings

_LEVELS = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warning": logging.WARNING,
    "error": logging.ERROR,
    "critical": logging.CRITICAL,
}


@dataclass
class CapturedRecord:
    logger_name: str
    level: int
    level_name: str
    message: str
    created: float


class LogManager:
    """Bounded in-memory store of log records for hosts that show them later."""

    def __init__(self, max_entries: Optional[int] = None) -> None:
        self._records: Deque[CapturedRecord] = deque(maxlen=max_entries)

    def add_record(self, record: logging.LogRecord) -> None:
        self._records.append(
            CapturedRecord(
                logger_name=record.name,
                level=record.levelno,
                level_name=record.levelname,
                message=record.getMessage(),
                created=record.created,
            )
        )

    def get_records(self, min_level: int = logging.NOTSET) -> List[CapturedRecord]:
        return [r for r in self._records if r.level >= min_level]

    def clear(self) -> None:
        self._records.clear()


class _CaptureHandler(logging.Handler):
    def __init__(self, manager: LogManager) -> None:
        super().__init__()
        self.manager = manager

    def emit(self, record: logging.LogRecord) -> None:
        self.manager.add_record(record)


_manager: Optional[LogManager] = None
_handler: Optional[_CaptureHandler] = None


def _is_tty_handler(handler: logging.Handler) -> bool:
    return isinstance(handler, logging.StreamHandler) and getattr(
        handler, "stream", None
    ) in (sys.stdout, sys.stderr)


def _warnings_to_logging(
    message: warnings.WarningMessage | str,
    category: type[Warning],
    filename: str,
    lineno: int,
    file: object | None = None,
    line: str | None = None,
) -> None:
    text = warnings.formatwarning(message, category, filename, lineno, line)  # type: ignore[arg-type]
    logging.getLogger("py.warnings").warning(text.strip())


def init_log_manager(max_entries: Optional[int] = None) -> LogManager:
    """
    Capture stdlib log records (and warnings) in memory instead of writing them
    to the terminal. Safe to call more than once; the first call sizes the store.
    """
    global _manager, _handler
    if _manager is None:
        _manager = LogManager(max_entries=max_entries)
        _handler = _CaptureHandler(_manager)

    root_logger = logging.getLogger()
    if _handler not in root_logger.handlers:
        root_logger.addHandler(_handler)  # type: ignore[arg-type]
    for handler in [h for h in root_logger.handlers if _is_tty_handler(h)]:
        root_logger.removeHandler(handler)

    warnings.showwarning = _warnings_to_logging
    return _manager


def get_log_manager() -> Optional[LogManager]:
    return _manager


def configure_logging(settings: Optional["LoggingSettings"] = None) -> None:
    """Apply level overrides and the optional log file from LoggingSettings."""
    if settings is None:
        return
    logging.getLogger("patchwise").setLevel(_LEVELS[settings.default_level.value])
    for name, lvl in settings.enabled_loggers.items():
        logging.getLogger(name).setLevel(_LEVELS[lvl.value])
    if settings.log_file:
        handler = logging.FileHandler(settings.log_file, mode="a", encoding="utf-8")
        handler.setFormatter(logging.Formatter("%(message)s"))
        logging.getLogger().addHandler(handler)


logging.getLogger("patchwise").setLevel(logging.INFO)

structlog.configure(
    wrapper_class=structlog.make_filtering_bound_logger(logging.NOTSET),
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
    processors=[
        structlog.processors.add_log_level,
        structlog.processors.StackInfoRenderer(),
        structlog.dev.set_exc_info,
        structlog.processors.TimeStamper(fmt="%Y-%m-%d %H:%M:%S", utc=False),
        structlog.dev.ConsoleRenderer(colors=False),
    ],
)

logger: structlog.BoundLogger = structlog.get_logger("patchwise")
