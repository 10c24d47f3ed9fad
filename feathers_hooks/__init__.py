"""
feathers-hooks - before/after/error hooks for API-client service calls.

Wrap a service with :class:`HookedService` and attach hooks to validate,
normalize, authenticate, log or translate errors without touching the
service itself.
"""

from .errors import BadRequest, FeathersHookError, HookError, HookTimeoutError
from .hooks import HookObject, HookPhase, Method, as_hook
from .hooks.chain import HookChain
from .hooks.runner import ErrorPolicy, HookRunner
from .service import HookedService

__version__ = "0.1.0"

__all__ = [
    "BadRequest",
    "ErrorPolicy",
    "FeathersHookError",
    "HookChain",
    "HookError",
    "HookObject",
    "HookPhase",
    "HookRunner",
    "HookTimeoutError",
    "HookedService",
    "Method",
    "as_hook",
]
