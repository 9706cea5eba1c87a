import importlib
import logging
import os
import signal
import sys
from enum import StrEnum
from types import FrameType
from typing import Any

from retrypubsub.exceptions import RetryPubSubCLIException
from retrypubsub.pubsub.subscriber import Subscriber

HANDLED_SIGNALS: tuple[int, ...] = (
    signal.SIGINT,  # Unix signal 2. Sent by Ctrl+C.
    signal.SIGTERM,  # Unix signal 15. Sent by `kill <pid>`.
)


class LogLevels(StrEnum):
    """A class to represent log levels."""

    CRITICAL = "CRITICAL"
    FATAL = "FATAL"
    ERROR = "ERROR"
    WARNING = "WARNING"
    WARN = "WARN"
    INFO = "INFO"
    DEBUG = "DEBUG"


LOGGING_LEVEL_MAP: dict[str, int] = {
    LogLevels.CRITICAL: logging.CRITICAL,
    LogLevels.FATAL: logging.FATAL,
    LogLevels.ERROR: logging.ERROR,
    LogLevels.WARNING: logging.WARNING,
    LogLevels.WARN: logging.WARNING,
    LogLevels.INFO: logging.INFO,
    LogLevels.DEBUG: logging.DEBUG,
}


def get_log_level(level: LogLevels | str | int) -> int:
    """Get the log level.

    Args:
        level: The log level to get. Can be an integer, a LogLevels enum value, or a string.

    Returns:
        The log level as an integer.
    """
    if isinstance(level, int):
        return level

    if isinstance(level, LogLevels):
        return LOGGING_LEVEL_MAP[level.value]

    if isinstance(level, str) and level.upper() in LOGGING_LEVEL_MAP:
        return LOGGING_LEVEL_MAP[level.upper()]

    possible_values = [member.value for member in LogLevels]
    raise RetryPubSubCLIException(
        f"Invalid value for '--log-level', it should be one of {possible_values}"
    )


def ensure_pubsub_credentials() -> None:
    credentials = os.getenv("GOOGLE_APPLICATION_CREDENTIALS")
    emulator_host = os.getenv("PUBSUB_EMULATOR_HOST")
    if not credentials and not emulator_host:
        raise RetryPubSubCLIException(
            "You should set either of the environment variables for authentication:"
            " (GOOGLE_APPLICATION_CREDENTIALS, PUBSUB_EMULATOR_HOST)"
        )


def import_subscriber(path: str) -> Subscriber[Any]:
    """Imports a subscriber from a 'module:attribute' string."""
    module_path, _, attribute = path.partition(":")
    if not module_path or not attribute:
        raise RetryPubSubCLIException(
            f"The subscriber path '{path}' must be in the format 'module:attribute'."
        )

    if os.getcwd() not in sys.path:
        sys.path.insert(0, os.getcwd())

    try:
        module = importlib.import_module(module_path)
    except ModuleNotFoundError as e:
        raise RetryPubSubCLIException(f"Could not import the module '{module_path}': {e}") from e

    instance = module
    for name in attribute.split("."):
        try:
            instance = getattr(instance, name)
        except AttributeError as e:
            raise RetryPubSubCLIException(
                f"The attribute '{attribute}' was not found in module '{module_path}'."
            ) from e

    if not isinstance(instance, Subscriber):
        raise RetryPubSubCLIException(
            f"The object '{path}' must be a {Subscriber.__name__}, "
            f"but it is {type(instance).__name__}."
        )

    return instance


def parse_attributes(values: list[str]) -> dict[str, str]:
    """Parses 'key=value' pairs into a message attribute map."""
    attributes: dict[str, str] = {}
    for value in values:
        key, separator, attribute = value.partition("=")
        if not separator or not key.strip():
            raise RetryPubSubCLIException(
                f"The attribute '{value}' must be in the format 'key=value'."
            )
        attributes[key.strip()] = attribute

    return attributes


def install_signal_handlers(subscriber: Subscriber[Any]) -> None:
    def handle_exit(signum: int, frame: FrameType | None) -> None:
        subscriber.shutdown()

    for handled_signal in HANDLED_SIGNALS:
        signal.signal(handled_signal, handle_exit)
