# ledger/errors.py
"""
Command results and the error taxonomy shared by every command module.
"""

import functools
import logging

from django.db import OperationalError


logger = logging.getLogger(__name__)


class ErrorCode:
    INSUFFICIENT_FUNDS = "INSUFFICIENT_FUNDS"
    INSUFFICIENT_PROJECT_BALANCE = "INSUFFICIENT_PROJECT_BALANCE"
    INVALID_AMOUNT = "INVALID_AMOUNT"
    DUPLICATE_NAME = "DUPLICATE_NAME"
    NOT_FOUND = "NOT_FOUND"
    ALREADY_TRANSFERRED = "ALREADY_TRANSFERRED"
    STORE_UNAVAILABLE = "STORE_UNAVAILABLE"
    VALIDATION_ERROR = "VALIDATION_ERROR"


class StoreUnavailable(Exception):
    """The backing store timed out or refused the operation."""

    code = ErrorCode.STORE_UNAVAILABLE


class CommandResult:
    """
    Wrapper for command results with success/failure info.

    Usage:
        result = apply_transaction(actor, ...)
        if result.success:
            txn = result.data
            event = result.event
        else:
            error_message = result.error
            error_code = result.code
    """

    def __init__(self, success: bool, data=None, error: str = None, event=None, code: str = None):
        self.success = success
        self.data = data
        self.error = error
        self.event = event  # The emitted event, if any
        self.code = code

    def __repr__(self):
        if self.success:
            return f"<CommandResult ok data={self.data!r}>"
        return f"<CommandResult fail code={self.code} error={self.error!r}>"

    @classmethod
    def ok(cls, data=None, event=None):
        return cls(success=True, data=data, event=event)

    @classmethod
    def fail(cls, error: str, code: str = ErrorCode.VALIDATION_ERROR):
        return cls(success=False, error=error, code=code)


def store_guard(func):
    """Translate database OperationalErrors raised by a command into StoreUnavailable."""

    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        try:
            return func(*args, **kwargs)
        except OperationalError as exc:
            logger.warning(
                "Store unavailable during command",
                extra={"command": func.__name__, "error": str(exc)},
            )
            raise StoreUnavailable(str(exc)) from exc

    return wrapper
