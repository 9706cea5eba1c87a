from collections.abc import Awaitable, Callable
from typing import Any, TypeVar

T = TypeVar("T")

MessageHandler = Callable[[T], Awaitable[Any]]
DeliveryCallback = Callable[[Any], None]
