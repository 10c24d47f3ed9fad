"""Hook system for feathers-hooks service calls.

A service call is wrapped in three ordered hook sequences: ``before`` hooks
run ahead of the service, ``after`` hooks run on its result, and ``error``
hooks run when anything along the way fails. Every hook receives a
:class:`HookObject` and hands a (possibly modified) copy to ``next``.
"""

from __future__ import annotations

import inspect
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, Protocol, Union, runtime_checkable


class HookPhase(Enum):
    """Which hook sequence a record is travelling through."""

    BEFORE = "before"  # Before the service is called
    AFTER = "after"  # After a successful service call
    ERROR = "error"  # After any failure


class Method(Enum):
    """Service methods that can be hooked."""

    FIND = "find"
    GET = "get"
    CREATE = "create"
    UPDATE = "update"
    PATCH = "patch"
    REMOVE = "remove"

    @property
    def requires_id(self) -> bool:
        return self in (Method.GET, Method.UPDATE, Method.PATCH, Method.REMOVE)

    @property
    def has_data(self) -> bool:
        return self in (Method.CREATE, Method.UPDATE, Method.PATCH)


_IDENTITY_FIELDS = frozenset({"phase", "app", "service", "method"})
_PAYLOAD_FIELDS = ("parameters", "data", "id", "error", "result")


@dataclass(frozen=True)
class HookObject:
    """Record passed through the hook chain.

    The record is frozen: hooks change it by building a copy with
    :meth:`with_result`, :meth:`with_error`, :meth:`with_phase` or
    :meth:`copy`. Every derived record gets its own ``parameters``/``data``
    dicts, so a hook may add or remove keys on the copy it made. Values are
    shared, not copied: they may be locks, open files or sessions.

    Attributes:
        phase: Hook sequence this record belongs to.
        app: Application object, used to look up other services.
        service: The service being called.
        method: The service method being called.
        parameters: Query/options for the call.
        data: Request body (create, update, patch).
        id: Resource id (get, update, patch, remove).
        error: Set to stop the current sequence and run the error hooks.
        result: Service response, only after the service has been called.
    """

    phase: HookPhase
    app: Any
    service: Any
    method: Method
    parameters: dict[str, Any] | None = None
    data: dict[str, Any] | None = None
    id: str | None = None
    error: Any | None = None
    result: Any | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "phase", HookPhase(self.phase))
        object.__setattr__(self, "method", Method(self.method))

        for name in ("parameters", "data"):
            mapping = getattr(self, name)
            if mapping is None:
                continue
            if not isinstance(mapping, dict):
                raise TypeError(f"{name} must be a dict, got {type(mapping).__name__}")
            bad_keys = [k for k in mapping if not isinstance(k, str)]
            if bad_keys:
                raise TypeError(f"{name} keys must be strings, got {bad_keys!r}")

        if self.id is not None and not isinstance(self.id, str):
            raise TypeError(f"id must be a string, got {type(self.id).__name__}")

        if self.phase is HookPhase.BEFORE and self.result is not None:
            raise ValueError("result must be absent in before hooks")

    def with_result(self, result: Any) -> HookObject:
        """Return a copy with ``result`` attached."""
        return self._derive(self.phase, result=result)

    def with_error(self, error: Any) -> HookObject:
        """Return a copy with ``error`` attached."""
        return self._derive(self.phase, error=error)

    def with_phase(self, phase: HookPhase | str) -> HookObject:
        """Return a copy moved to ``phase`` with every other field carried over."""
        return self._derive(HookPhase(phase))

    def copy(self, **changes: Any) -> HookObject:
        """Return a copy with the given payload fields replaced.

        Only ``parameters``, ``data``, ``id``, ``error`` and ``result`` can be
        changed; the phase and the app/service/method identity are fixed.
        """
        fixed = _IDENTITY_FIELDS.intersection(changes)
        if fixed:
            raise TypeError(f"Cannot change {', '.join(sorted(fixed))} on a hook object")
        unknown = set(changes) - set(_PAYLOAD_FIELDS)
        if unknown:
            raise TypeError(f"Unknown hook object fields: {', '.join(sorted(unknown))}")
        return self._derive(self.phase, **changes)

    def _derive(self, phase: HookPhase, **changes: Any) -> HookObject:
        values = {name: getattr(self, name) for name in _PAYLOAD_FIELDS}
        values.update(changes)
        for name in ("parameters", "data"):
            if values[name] is not None:
                values[name] = dict(values[name])
        return HookObject(
            phase=phase,
            app=self.app,
            service=self.service,
            method=self.method,
            **values,
        )


HookNext = Callable[[HookObject], None]


@runtime_checkable
class Hook(Protocol):
    """Anything the runner can drive.

    ``run`` must call ``next`` exactly once, either with the record it got or
    with a modified copy. It may do so synchronously or later on; if ``next``
    is never called the chain never finishes. ``run`` may be a coroutine.
    """

    def run(self, hook_object: HookObject, next: HookNext) -> Awaitable[None] | None:
        ...


# Function hooks: (HookObject) -> HookObject | None, sync or async
HookFn = Callable[[HookObject], Union[HookObject, None, Awaitable[Union[HookObject, None]]]]
# Continuation hooks: (HookObject, next) -> None, sync or async
ContinuationFn = Callable[[HookObject, HookNext], Union[None, Awaitable[None]]]


class FunctionHook:
    """Adapt a function that returns the record into a :class:`Hook`.

    Returning None means "unchanged". ``next`` is called for the author.
    """

    def __init__(self, fn: HookFn) -> None:
        self.fn = fn

    async def run(self, hook_object: HookObject, next: HookNext) -> None:
        result = self.fn(hook_object)
        if inspect.isawaitable(result):
            result = await result
        next(hook_object if result is None else result)

    def __repr__(self) -> str:
        return f"FunctionHook({getattr(self.fn, '__name__', self.fn)!r})"


class ContinuationHook:
    """Adapt a ``(hook_object, next)`` function into a :class:`Hook`."""

    def __init__(self, fn: ContinuationFn) -> None:
        self.fn = fn

    def run(self, hook_object: HookObject, next: HookNext) -> Awaitable[None] | None:
        return self.fn(hook_object, next)

    def __repr__(self) -> str:
        return f"ContinuationHook({getattr(self.fn, '__name__', self.fn)!r})"


def as_hook(obj: Hook | HookFn | ContinuationFn) -> Hook:
    """Turn a hook object or plain function into a :class:`Hook`.

    Functions taking two positional arguments are treated as continuation
    hooks, functions taking one as function hooks.
    """
    if isinstance(obj, type):
        raise TypeError(f"Hook {obj.__name__} is a class, register an instance")
    if isinstance(obj, Hook):
        return obj
    if not callable(obj):
        raise TypeError(f"Not a hook: {obj!r}")

    try:
        params = inspect.signature(obj).parameters.values()
    except (TypeError, ValueError) as e:
        raise TypeError(f"Cannot inspect hook {obj!r}: {e}") from e

    positional = [
        p for p in params
        if p.kind in (p.POSITIONAL_ONLY, p.POSITIONAL_OR_KEYWORD)
        and p.default is p.empty
    ]
    if len(positional) == 2:
        return ContinuationHook(obj)  # type: ignore[arg-type]
    if len(positional) == 1:
        return FunctionHook(obj)  # type: ignore[arg-type]
    raise TypeError(
        f"Hook function {obj!r} must take (hook_object) or (hook_object, next)"
    )


__all__ = [
    "ContinuationFn",
    "ContinuationHook",
    "FunctionHook",
    "Hook",
    "HookFn",
    "HookNext",
    "HookObject",
    "HookPhase",
    "Method",
    "as_hook",
]
