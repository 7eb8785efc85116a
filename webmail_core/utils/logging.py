"""Logging utilities for consistent, context-rich logs across the system."""

import logging
import uuid
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from functools import wraps
from typing import Any, TypeVar, cast

# Type variable for decorator pattern
F = TypeVar("F", bound=Callable[..., Any])


class ContextLogger:
    """Enhanced logger that automatically includes context data in all log entries.

    Usage:
        logger = ContextLogger(__name__)
        logger.set_context(request_id='123', account_id='abc')
        logger.info("Sync started")  # Will include the context automatically

        # To add one-time context for a specific log:
        logger.info("Batch written", extra_context={'inserted': 3})

        # To scope context to a block:
        with logger.context(user_id='u1'):
            logger.info("Inside the block")
    """

    def __init__(self, name: str):
        """Initialize with a standard logger name."""
        self.logger = logging.getLogger(name)
        self._context: dict[str, Any] = {}

    def set_context(self, **kwargs) -> None:
        """Set persistent context data for all subsequent log calls."""
        self._context.update(kwargs)

    def clear_context(self, *keys) -> None:
        """Clear specific keys from context, or all if no keys specified."""
        if not keys:
            self._context.clear()
        else:
            for key in keys:
                self._context.pop(key, None)

    @contextmanager
    def context(self, **kwargs) -> Iterator["ContextLogger"]:
        """Temporarily add context for the duration of a ``with`` block."""
        previous = self._context.copy()
        self._context.update(kwargs)
        try:
            yield self
        finally:
            self._context = previous

    def get_context(self) -> dict[str, Any]:
        return self._context.copy()

    def _log(
        self,
        level: int,
        msg: str,
        *args,
        extra_context: dict[str, Any] | None = None,
        **kwargs,
    ) -> None:
        """Internal method to enrich logs with context."""
        log_context = self._context.copy()
        if extra_context:
            log_context.update(extra_context)

        # Plain ``extra`` keys are folded into the context so they are rendered
        # by ContextFormatter and cannot clash with LogRecord attributes.
        extra = kwargs.pop("extra", None) or {}
        log_context.update(extra)
        kwargs["extra"] = {"context": log_context}

        self.logger.log(level, msg, *args, **kwargs)

    def debug(
        self, msg: str, *args, extra_context: dict[str, Any] | None = None, **kwargs,
    ) -> None:
        """Log a debug message with context."""
        self._log(logging.DEBUG, msg, *args, extra_context=extra_context, **kwargs)

    def info(
        self, msg: str, *args, extra_context: dict[str, Any] | None = None, **kwargs,
    ) -> None:
        """Log an info message with context."""
        self._log(logging.INFO, msg, *args, extra_context=extra_context, **kwargs)

    def warning(
        self, msg: str, *args, extra_context: dict[str, Any] | None = None, **kwargs,
    ) -> None:
        """Log a warning message with context."""
        self._log(logging.WARNING, msg, *args, extra_context=extra_context, **kwargs)

    def error(
        self, msg: str, *args, extra_context: dict[str, Any] | None = None, **kwargs,
    ) -> None:
        """Log an error message with context."""
        self._log(logging.ERROR, msg, *args, extra_context=extra_context, **kwargs)

    def exception(
        self, msg: str, *args, extra_context: dict[str, Any] | None = None, **kwargs,
    ) -> None:
        """Log an exception message with context."""
        self._log(
            logging.ERROR,
            msg,
            *args,
            extra_context=extra_context,
            exc_info=True,
            **kwargs,
        )

    def critical(
        self, msg: str, *args, extra_context: dict[str, Any] | None = None, **kwargs,
    ) -> None:
        """Log a critical message with context."""
        self._log(logging.CRITICAL, msg, *args, extra_context=extra_context, **kwargs)


class ContextFormatter(logging.Formatter):
    """Formatter that appends the ``context`` dict attached by ContextLogger."""

    def format(self, record: logging.LogRecord) -> str:
        message = super().format(record)
        context = getattr(record, "context", None)
        if context:
            rendered = " ".join(
                f"{key}={value}" for key, value in sorted(context.items())
            )
            message = f"{message} [{rendered}]"
        return message


def with_request_id(func: F) -> F:
    """Decorator to add a unique request_id to the function's logger context.

    Usage:
        @with_request_id
        def my_task(account_id, _request_id=None):
            logger.set_context(request_id=_request_id)
    """

    @wraps(func)
    def wrapper(*args, **kwargs):
        # Generate a unique ID for this request/task execution
        kwargs["_request_id"] = str(uuid.uuid4())
        return func(*args, **kwargs)

    return cast(F, wrapper)
