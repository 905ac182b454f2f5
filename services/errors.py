"""Failure classification shared by the persistence and upstream layers.

Persistence and upstream failures are recoverable: they are logged and the
caller carries on with an empty or fallback view. Anything else is treated as a
programming error and propagates.
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from enum import Enum
from typing import Any, Iterator

import httpx

_RECOVERABLE_TYPES: tuple[type[BaseException], ...] = (
    OSError,
    ValueError,
    httpx.HTTPError,
)


class ErrorSeverity(str, Enum):
    recoverable = "recoverable"
    fatal = "fatal"


def classify_error(exc: BaseException) -> ErrorSeverity:
    """Decide whether ``exc`` can be absorbed by falling back to degraded data."""
    if isinstance(exc, _RECOVERABLE_TYPES):
        return ErrorSeverity.recoverable
    return ErrorSeverity.fatal


def describe_error(exc: BaseException) -> str:
    message = str(exc).strip()
    return message or exc.__class__.__name__


@contextmanager
def suppress_recoverable(
    logger: logging.Logger,
    message: str,
    **context: Any,
) -> Iterator[None]:
    """Log and swallow recoverable failures raised inside the block."""
    try:
        yield
    except Exception as exc:
        if classify_error(exc) is ErrorSeverity.fatal:
            raise
        logger.warning(
            "%s: %s",
            message,
            describe_error(exc),
            exc_info=exc,
            extra={"reason": exc.__class__.__name__, **context},
        )
