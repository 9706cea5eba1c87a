"""Concurrency utilities."""

import inspect
from collections.abc import Callable
from functools import partial
from types import FunctionType, MethodType
from typing import Any


def ensure_async_callable_function(callable_object: Callable[..., Any]) -> None:
    """Ensures that a callable is an async function.

    Args:
        callable_object: The callable to check.
    """
    target = callable_object
    while isinstance(target, partial):
        target = target.func

    if not isinstance(target, FunctionType | MethodType):
        raise TypeError(f"The object must be a function type but it is {callable_object}.")

    if not inspect.iscoroutinefunction(target):
        raise TypeError(f"The function {callable_object} must be async.")
