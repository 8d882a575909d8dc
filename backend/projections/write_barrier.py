# projections/write_barrier.py
"""
Thread-local write contexts.

Balance-bearing models (AdminBalance, Project, LedgerEntry, ...) refuse
direct saves unless a context is active:

- command:    ledger/accounts commands, inside their atomic block
- projection: the balance projection rebuilding cached balances

Tests run with settings.TESTING = True, which lifts the barrier.
"""

from contextlib import contextmanager
import threading

from django.conf import settings


_state = threading.local()

COMMAND_CONTEXTS = frozenset({"command", "projection"})


def _context_stack() -> list[str]:
    stack = getattr(_state, "write_context_stack", None)
    if stack is None:
        stack = []
        _state.write_context_stack = stack
    return stack


def current_write_context() -> str | None:
    stack = _context_stack()
    return stack[-1] if stack else None


def write_context_allowed(allowed_contexts: set[str] | frozenset[str]) -> bool:
    ctx = current_write_context()
    if ctx is None:
        return False
    return ctx in allowed_contexts


def guard_write(model_name: str, operation: str = "save", allowed=COMMAND_CONTEXTS) -> None:
    """Raise unless the current context may write to a command-owned model."""
    if write_context_allowed(allowed) or getattr(settings, "TESTING", False):
        return
    raise RuntimeError(
        f"{model_name} is a command-owned write model. "
        f"Direct {operation}s are only allowed within command_writes_allowed()."
    )


@contextmanager
def _push_write_context(name: str):
    stack = _context_stack()
    stack.append(name)
    try:
        yield
    finally:
        stack.pop()


@contextmanager
def command_writes_allowed():
    with _push_write_context("command"):
        yield


@contextmanager
def projection_writes_allowed():
    with _push_write_context("projection"):
        yield

