"""Logging infrastructure for the ring dosimetry system."""

import itertools
import logging
import sys
from pathlib import Path
from typing import Optional


DEFAULT_LOGGER_NAME = 'mc_ring_dosimetry'
DIAGNOSTIC_LOGGER_NAME = 'mc_ring_dosimetry.diagnostics'

FILE_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
FILE_DATE_FORMAT = '%Y-%m-%d %H:%M:%S'

# Suffixes of the loggers owned by diagnostic sinks without an injected logger
_sink_ids = itertools.count()


def setup_logger(
    name: str = DEFAULT_LOGGER_NAME,
    level: int = logging.INFO,
    log_file: Optional[str] = None,
    console_level: int = logging.INFO,
    file_level: int = logging.DEBUG
) -> logging.Logger:
    """Set up logger with console and optional file output.

    Args:
        name: Logger name
        level: Overall logging level
        log_file: Optional path to log file
        console_level: Logging level for console output
        file_level: Logging level for file output

    Returns:
        Configured logger instance
    """
    logger = logging.getLogger(name)
    logger.setLevel(level)

    # Remove existing handlers
    for handler in list(logger.handlers):
        handler.close()
    logger.handlers.clear()

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(console_level)
    console_handler.setFormatter(logging.Formatter('%(levelname)s - %(message)s'))
    logger.addHandler(console_handler)

    if log_file:
        attach_file_handler(logger, log_file, level=file_level)

    return logger


def get_logger(name: str = DEFAULT_LOGGER_NAME) -> logging.Logger:
    """Get existing logger instance.

    Args:
        name: Logger name

    Returns:
        Logger instance
    """
    return logging.getLogger(name)


def attach_file_handler(
    logger: logging.Logger,
    log_file: str,
    level: int = logging.DEBUG,
    fmt: str = FILE_FORMAT,
    mode: str = 'a'
) -> logging.FileHandler:
    """Add a file handler to ``logger`` and return it for later removal.

    Args:
        logger: Logger receiving the handler
        log_file: Path of the log file (parent directories are created)
        level: Handler level
        fmt: Record format
        mode: File open mode ('a' appends, 'w' overwrites)

    Returns:
        The attached handler
    """
    Path(log_file).parent.mkdir(parents=True, exist_ok=True)
    handler = logging.FileHandler(log_file, mode=mode)
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter(fmt, datefmt=FILE_DATE_FORMAT))
    logger.addHandler(handler)
    return handler


def detach_handler(logger: logging.Logger, handler: Optional[logging.Handler]) -> None:
    """Remove and close a handler previously attached to ``logger``."""
    if handler is None:
        return
    logger.removeHandler(handler)
    handler.close()


class DiagnosticSink:
    """Structured, rate-limited diagnostic record emitter.

    Records are single lines of the form ``TAG | Event 3 | key=value | ...``
    written to an injected logger. Per-event records are only emitted for
    the first ``max_events`` events of a run; headers and run-level lines
    are always emitted while the sink is enabled.

    Without an injected logger every sink gets its own child of
    ``mc_ring_dosimetry.diagnostics``, so files opened by two sinks never
    receive each other's records.

    Attributes:
        logger: Destination logger
        max_events: Event ids below this value produce diagnostics
        enabled: Master switch
    """

    def __init__(
        self,
        logger: Optional[logging.Logger] = None,
        max_events: int = 10,
        enabled: bool = True
    ):
        if logger is None:
            logger = get_logger(f"{DIAGNOSTIC_LOGGER_NAME}.sink{next(_sink_ids)}")
        self.logger = logger
        self.max_events = max_events
        self.enabled = enabled
        self._file_handler: Optional[logging.FileHandler] = None

    def wants(self, event_id: int) -> bool:
        """Whether per-event records for ``event_id`` are emitted."""
        return self.enabled and 0 <= event_id < self.max_events

    def record(self, tag: str, event_id: int, **fields) -> bool:
        """Emit one structured record for an early event.

        Args:
            tag: Record type (e.g. 'WATER_DEPOSIT')
            event_id: Event the record belongs to
            **fields: Key/value payload, floats are formatted with 4 significant digits

        Returns:
            True if the record was emitted
        """
        if not self.wants(event_id):
            return False

        parts = [tag, f"Event {event_id}"]
        for key, value in fields.items():
            if isinstance(value, float):
                parts.append(f"{key}={value:.4g}")
            else:
                parts.append(f"{key}={value}")
        self.logger.info(" | ".join(parts))
        return True

    def line(self, message: str) -> None:
        if self.enabled:
            self.logger.info(message)

    def separator(self, char: str = '=', length: int = 60) -> None:
        self.line(char * length)

    def header(self, title: str) -> None:
        self.line("")
        self.separator()
        self.line(f"  {title}")
        self.separator()

    def open_file(self, log_file: str) -> None:
        """Attach a run-scoped file handler for diagnostic records.

        Args:
            log_file: Path of the diagnostic log (overwritten)
        """
        self.close_file()
        self._file_handler = attach_file_handler(self.logger, log_file, fmt='%(message)s', mode='w')
        if self.logger.level == logging.NOTSET or self.logger.level > logging.INFO:
            self.logger.setLevel(logging.INFO)

    def close_file(self) -> None:
        detach_handler(self.logger, self._file_handler)
        self._file_handler = None
