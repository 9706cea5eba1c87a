"""Logging configuration for RetryPubSub."""

import json
import logging
import os
import sys
import threading
from collections.abc import Generator
from contextlib import contextmanager
from typing import Any, cast

LOGGER_NAME = "retrypubsub"


class ContextStore:
    """A thread-safe store for logging context."""

    def __init__(self) -> None:
        """Initializes an empty per-thread store."""
        self._context = threading.local()

    def set(self, data: dict[str, Any]) -> None:
        """Replaces the context of the current thread.

        Args:
            data: The context to attach to the following log records.
        """
        self._context.data = data

    def get(self) -> dict[str, Any]:
        """Gets the context of the current thread.

        Returns:
            The context data, empty when nothing was set.
        """
        return getattr(self._context, "data", {})


_context_store = ContextStore()


@contextmanager
def contextualize(**kwargs: Any) -> Generator[None]:
    """Adds temporary context to every log record emitted by this thread.

    Nested calls extend the outer context, which is restored on exit.

    Example:
        with contextualize(message_id="12345"):
            logger.info("This log will have the message_id.")
    """
    previous = _context_store.get()
    _context_store.set({**previous, **kwargs})
    try:
        yield
    finally:
        _context_store.set(previous)


class ContextFilter(logging.Filter):
    """Injects the thread context and the 'extra' kwarg into each log record."""

    # These are the standard attributes of a LogRecord
    RESERVED_ATTRS = (
        "args",
        "asctime",
        "created",
        "exc_info",
        "exc_text",
        "filename",
        "funcName",
        "levelname",
        "levelno",
        "lineno",
        "module",
        "msecs",
        "message",
        "msg",
        "name",
        "pathname",
        "process",
        "processName",
        "relativeCreated",
        "stack_info",
        "thread",
        "threadName",
        "taskName",
    )

    def filter(self, record: logging.LogRecord) -> bool:
        """Attaches the merged context to a log record.

        Args:
            record: The log record to enrich.

        Returns:
            Always True, records are never filtered out.
        """
        thread_context = _context_store.get().copy()

        extra_context = {
            key: value
            for key, value in record.__dict__.items()
            if key not in self.RESERVED_ATTRS and key not in ("context",)
        }

        # The per-call 'extra' context takes precedence.
        thread_context.update(extra_context)
        record.context = thread_context

        return True


class RetryPubSubLogger(logging.Logger):
    """A logger class with a 'contextualize' method."""

    @contextmanager
    def contextualize(self, **kwargs: Any) -> Generator[None]:
        with contextualize(**kwargs):
            yield


class TextFormatter(logging.Formatter):
    """Formats logs as a human-readable string."""

    def format(self, record: logging.LogRecord) -> str:
        """Formats a log record, appending its non-empty context as key=value pairs.

        Args:
            record: The log record to format.

        Returns:
            The formatted log line.
        """
        log_message = super().format(record)

        if hasattr(record, "context") and record.context:
            context_text = " ".join(f"{k}={v}" for k, v in record.context.items() if v)
            if context_text:
                log_message += f" | {context_text}"

        return log_message


class JsonFormatter(logging.Formatter):
    """Formats logs as a JSON string."""

    def format(self, record: logging.LogRecord) -> str:
        """Formats a log record as a single JSON object.

        Args:
            record: The log record to format.

        Returns:
            The JSON line, with the context keys at the top level.
        """
        log_object = {
            "timestamp": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "name": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
            "process": record.process,
            "thread": record.thread,
            **getattr(record, "context", {}),
        }

        if record.exc_info:
            log_object["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_object, indent=None, separators=(",", ":"), default=str)


def configure_logger(
    logger: logging.Logger, level: int = logging.INFO, serialize: bool = False
) -> None:
    """(Re)applies the handler, formatter and level of a library logger."""
    if logger.hasHandlers():
        logger.handlers.clear()

    logger.setLevel(level)
    logger.propagate = False

    handler = logging.StreamHandler(sys.stdout)
    handler.addFilter(ContextFilter())

    formatter: logging.Formatter = JsonFormatter()
    if not serialize:
        fmt = (
            "%(asctime)s | %(levelname)-8s "
            "| %(process)d:%(thread)d "
            "| %(module)s:%(funcName)s:%(lineno)d "
            "| %(message)s"
        )
        formatter = TextFormatter(fmt)

    handler.setFormatter(formatter)
    logger.addHandler(handler)


def setup_logger() -> RetryPubSubLogger:
    """Enables and configures the RetryPubSub logger from the environment."""
    log_level = int(os.getenv("RETRYPUBSUB_LOG_LEVEL", logging.INFO))
    log_serialize = bool(int(os.getenv("RETRYPUBSUB_ENABLE_LOG_SERIALIZE", 0)))

    logging.setLoggerClass(RetryPubSubLogger)
    logger = logging.getLogger(LOGGER_NAME)
    logging.setLoggerClass(logging.Logger)

    configure_logger(logger, level=log_level, serialize=log_serialize)
    return cast(RetryPubSubLogger, logger)


logger: RetryPubSubLogger = setup_logger()
