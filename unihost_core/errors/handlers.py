# =============================================================================
# unihost_core/errors/handlers.py
# Error Handling Utilities for UniHost Messaging
# =============================================================================

from __future__ import annotations
import functools
import inspect
import traceback
from typing import Optional, Callable, TypeVar, Any
import streamlit as st

from unihost_core.logging import get_logger
from .exceptions import UniHostError

logger = get_logger(__name__)

T = TypeVar("T")


def handle_error(
    error: Exception,
    show_user_message: bool = False,
    log_error: bool = True,
    user_message: Optional[str] = None,
) -> None:
    """
    Centralized error handling function.

    Args:
        error: The exception to handle
        show_user_message: Whether to display error to user via st.error
        log_error: Whether to log the error
        user_message: Custom message to show user (uses error message if None)
    """
    if isinstance(error, UniHostError):
        message = user_message or error.message
        code = error.code
        details = error.details
        recoverable = error.recoverable
    else:
        message = user_message or str(error)
        code = "UNKNOWN"
        details = {"traceback": traceback.format_exc()}
        recoverable = True

    if log_error:
        logger.error(
            f"[{code}] {message}",
            extra={"details": details},
            exc_info=error,
        )

    if show_user_message:
        if recoverable:
            st.error(f"Error: {message}")
        else:
            st.error(f"Critical Error: {message}. The app cannot continue until this is fixed.")


def error_boundary(
    default_return: Any = None,
    error_message: Optional[str] = None,
    log: bool = True,
):
    """
    Decorator that logs a failure and returns a safe default instead.

    Works for both plain functions and coroutines. Callers only ever branch
    on "got data" vs "didn't", never on exception types.

    Usage:
        @error_boundary(default_return=[])
        async def list_by_conversation(self, conversation_id: str) -> List[Message]:
            ...
    """
    def _report(func: Callable, e: Exception) -> None:
        if log:
            logger.error(
                f"Error in {func.__qualname__}: {e}",
                exc_info=True,
            )
        if error_message:
            logger.error(error_message)

    def decorator(func: Callable[..., T]) -> Callable[..., Optional[T]]:
        if inspect.iscoroutinefunction(func):
            @functools.wraps(func)
            async def async_wrapper(*args, **kwargs):
                try:
                    return await func(*args, **kwargs)
                except Exception as e:
                    _report(func, e)
                    return default_return

            return async_wrapper

        @functools.wraps(func)
        def wrapper(*args, **kwargs) -> Optional[T]:
            try:
                return func(*args, **kwargs)
            except Exception as e:
                _report(func, e)
                return default_return

        return wrapper

    return decorator


class ErrorContext:
    """
    Context manager for error handling with automatic logging.

    Usage:
        with ErrorContext("Rendering suggestion panel", show_user_message=True):
            render_panel()
    """

    def __init__(
        self,
        operation: str,
        recoverable: bool = True,
        show_user_message: bool = False,
    ):
        self.operation = operation
        self.recoverable = recoverable
        self.show_user_message = show_user_message

    def __enter__(self) -> ErrorContext:
        logger.debug(f"Starting: {self.operation}")
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> bool:
        if exc_type is not None:
            if isinstance(exc_val, UniHostError):
                handle_error(exc_val, show_user_message=self.show_user_message)
            else:
                handle_error(
                    exc_val,
                    show_user_message=self.show_user_message,
                    user_message=f"Error during: {self.operation}",
                )
            # Suppress exception if recoverable
            return self.recoverable and isinstance(exc_val, Exception)

        logger.debug(f"Completed: {self.operation}")
        return False
