"""Hook chain executor.

Drives one service call through its hooks:

    before hooks -> service.invoke -> after hooks -> result
    (any failure along the way)    -> error hooks -> error

Every hook gets a one-shot ``next`` continuation. The chain waits on it, so
a hook can resume the chain immediately, from a timer or from another
thread. Whenever a record comes back with ``error`` set the remaining hooks
of that sequence are skipped and the error hooks run instead.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
import threading
from enum import Enum
from typing import Any

from ..errors import HookError, HookTimeoutError
from . import HookObject, HookPhase
from .chain import HookChain, HookEntry, get_hook_chain

logger = logging.getLogger("feathers-hooks.hooks")


class ErrorPolicy(Enum):
    """What happens when the error hooks clear the error."""

    FAIL = "fail"  # Still fail, with the error that started the error phase
    RECOVER = "recover"  # Succeed with the record's result


class _Next:
    """One-shot continuation handed to a hook.

    An invalid record raises straight back into the hook when the hook's own
    task calls ``next``. Called from a timer or another thread, it resolves the
    step with the validation error instead, so the chain cannot stall.
    """

    def __init__(
        self,
        loop: asyncio.AbstractEventLoop,
        future: asyncio.Future,
        received: HookObject,
        hook_name: str,
    ) -> None:
        self._loop = loop
        self._future = future
        self._received = received
        self._hook_name = hook_name
        self._owner = asyncio.current_task(loop)
        self._lock = threading.Lock()
        self.called = False

    def __call__(self, hook_object: HookObject) -> None:
        try:
            running = asyncio.get_running_loop()
        except RuntimeError:
            running = None

        try:
            self._check(hook_object)
        except (TypeError, ValueError) as e:
            if running is self._loop and asyncio.current_task() is self._owner:
                raise
            logger.error(
                "Hook %s passed an invalid record to next: %s", self._hook_name, e
            )
            hook_object = self._received.with_error(e)

        with self._lock:
            if self.called:
                logger.warning(
                    "Hook %s called next more than once, ignoring", self._hook_name
                )
                return
            self.called = True

        if running is self._loop:
            self._resolve(hook_object)
        else:
            self._loop.call_soon_threadsafe(self._resolve, hook_object)

    def _check(self, hook_object: Any) -> None:
        if not isinstance(hook_object, HookObject):
            raise TypeError(
                f"Hook {self._hook_name!r} passed {type(hook_object).__name__} "
                "to next, expected HookObject"
            )
        received = self._received
        if (
            hook_object.phase is not received.phase
            or hook_object.method is not received.method
            or hook_object.app is not received.app
            or hook_object.service is not received.service
        ):
            raise ValueError(
                f"Hook {self._hook_name!r} changed the phase, app, service "
                "or method of the hook object"
            )

    def _resolve(self, hook_object: HookObject) -> None:
        if self._future.done():
            logger.warning(
                "Hook %s called next after the chain moved on", self._hook_name
            )
            return
        self._future.set_result(hook_object)


def _as_exception(error: Any) -> BaseException:
    if isinstance(error, BaseException):
        return error
    return HookError(error)


class HookRunner:
    """Run service calls through the hooks registered on a :class:`HookChain`.

    Args:
        chain: Hook registrations to use (default: the global chain).
        timeout: Seconds to wait for each hook to call ``next``. None waits
            forever. A hook that times out fails the call with
            :class:`HookTimeoutError`.
        error_policy: Outcome when the error hooks clear the error.

    The runner keeps no per-call state, so one instance can serve any number
    of concurrent calls.
    """

    def __init__(
        self,
        chain: HookChain | None = None,
        timeout: float | None = None,
        error_policy: ErrorPolicy = ErrorPolicy.FAIL,
    ) -> None:
        if timeout is not None and timeout <= 0:
            raise ValueError(f"timeout must be positive, got {timeout}")
        self.chain = chain if chain is not None else get_hook_chain()
        self.timeout = timeout
        self.error_policy = ErrorPolicy(error_policy)

    async def run(self, hook_object: HookObject) -> Any:
        """Run a ``before`` record through the whole chain.

        Returns the final result, or raises the final error.
        """
        if hook_object.phase is not HookPhase.BEFORE:
            raise ValueError(
                f"Chains start in the before phase, got {hook_object.phase.value}"
            )

        if hook_object.error is None:
            hook_object = await self._run_phase(hook_object)
        if hook_object.error is None:
            hook_object = await self._invoke(hook_object)
        if hook_object.error is None:
            hook_object = await self._run_phase(hook_object)

        if hook_object.error is not None:
            return await self._fail(hook_object)
        return hook_object.result

    async def _run_phase(
        self, hook_object: HookObject, stop_on_error: bool = True
    ) -> HookObject:
        phase = hook_object.phase
        for entry in self.chain.hooks(phase, hook_object.method):
            hook_object = await self._step(entry, hook_object)
            if stop_on_error and hook_object.error is not None:
                logger.debug(
                    "Hook %s set an error, skipping remaining %s hooks",
                    entry.name,
                    phase.value,
                )
                break
        return hook_object

    async def _step(self, entry: HookEntry, hook_object: HookObject) -> HookObject:
        if self.timeout is None:
            return await self._drive(entry, hook_object)
        try:
            return await asyncio.wait_for(
                self._drive(entry, hook_object), self.timeout
            )
        except asyncio.TimeoutError:
            logger.error(
                "Hook %s did not call next within %ss", entry.name, self.timeout
            )
            return hook_object.with_error(HookTimeoutError(entry.name, self.timeout))

    async def _drive(self, entry: HookEntry, hook_object: HookObject) -> HookObject:
        loop = asyncio.get_running_loop()
        future = loop.create_future()
        next_ = _Next(loop, future, hook_object, entry.name)

        try:
            outcome = entry.hook.run(hook_object, next_)
            if inspect.isawaitable(outcome):
                await outcome
        except Exception as e:
            logger.error("Hook %s failed", entry.name, exc_info=True)
            passed = (await future) if next_.called else hook_object
            return passed if passed.error is not None else passed.with_error(e)

        return await future

    async def _invoke(self, hook_object: HookObject) -> HookObject:
        method = hook_object.method
        logger.debug("Invoking %s on %r", method.value, hook_object.service)
        try:
            response = hook_object.service.invoke(
                method,
                parameters=hook_object.parameters,
                data=hook_object.data,
                id=hook_object.id,
            )
            if inspect.isawaitable(response):
                response = await response
        except Exception as e:
            logger.debug("Service %s failed: %s", method.value, e)
            return hook_object.with_error(e)
        return hook_object.with_phase(HookPhase.AFTER).with_result(response)

    async def _fail(self, hook_object: HookObject) -> Any:
        original = hook_object.error
        hook_object = await self._run_phase(
            hook_object.with_phase(HookPhase.ERROR), stop_on_error=False
        )

        if hook_object.error is not None:
            raise _as_exception(hook_object.error)

        if self.error_policy is ErrorPolicy.RECOVER:
            logger.info("Error hooks cleared the error, returning result")
            return hook_object.result

        logger.debug("Error hooks cleared the error, failing with the original")
        raise _as_exception(original)
