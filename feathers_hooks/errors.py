"""
Exception types raised by feathers-hooks.

Errors coming back from a wrapped service are passed through untouched;
these classes only cover failures the hook machinery itself produces.
"""

from __future__ import annotations

from typing import Any


class FeathersHookError(Exception):
    """Base class for errors raised by the hook machinery."""


class HookError(FeathersHookError):
    """Raised when a chain fails with an error value that is not an exception."""

    def __init__(self, error: Any) -> None:
        super().__init__(f"Hook chain failed: {error!r}")
        self.error = error


class HookTimeoutError(FeathersHookError):
    """A hook did not call its continuation within the configured timeout."""

    def __init__(self, hook_name: str, timeout: float) -> None:
        super().__init__(f"Hook {hook_name!r} did not call next within {timeout}s")
        self.hook_name = hook_name
        self.timeout = timeout


class BadRequest(FeathersHookError):
    """A request was rejected by a hook before reaching the service."""
