# ops/write_barrier.py
"""
Write barrier for command-owned models.

Ledger state (chart of accounts, fiscal years, vouchers, numbering
counters) may only be written from inside one of these contexts:

- command_writes_allowed(): accounting.commands and the numbering service
- bootstrap_writes_allowed(): seeding a company's default chart
- admin_emergency_writes_allowed(): manual repair, gated by
  settings.ALLOW_ADMIN_EMERGENCY_WRITES

Test fixtures bypass the barrier through settings.TESTING.
"""

from contextlib import contextmanager
import threading

from django.conf import settings


_state = threading.local()

LEDGER_WRITE_CONTEXTS = frozenset({"command", "bootstrap", "admin_emergency"})


def _context_stack() -> list[str]:
    stack = getattr(_state, "write_context_stack", None)
    if stack is None:
        stack = []
        _state.write_context_stack = stack
    return stack


def current_write_context() -> str | None:
    stack = _context_stack()
    return stack[-1] if stack else None


def write_context_allowed(allowed_contexts) -> bool:
    ctx = current_write_context()
    if ctx is None:
        return False
    if ctx == "admin_emergency":
        return ctx in allowed_contexts and getattr(settings, "ALLOW_ADMIN_EMERGENCY_WRITES", False)
    return ctx in allowed_contexts


def assert_write_allowed(model_name: str, action: str = "save", allowed_contexts=LEDGER_WRITE_CONTEXTS) -> None:
    """Raise RuntimeError unless the current context may write model_name."""
    if write_context_allowed(allowed_contexts) or getattr(settings, "TESTING", False):
        return
    raise RuntimeError(
        f"{model_name} is a command-owned write model. "
        f"Direct {action}s are only allowed within command_writes_allowed()."
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
def bootstrap_writes_allowed():
    with _push_write_context("bootstrap"):
        yield


@contextmanager
def admin_emergency_writes_allowed():
    if not getattr(settings, "ALLOW_ADMIN_EMERGENCY_WRITES", False):
        raise RuntimeError("admin_emergency writes are disabled.")
    with _push_write_context("admin_emergency"):
        yield
