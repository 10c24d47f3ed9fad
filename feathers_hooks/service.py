"""
Hooked service wrapper.

Wraps any object with an ``invoke(method, parameters=, data=, id=)``
method so that every call goes through the registered hooks.
"""

from __future__ import annotations

import logging
from typing import Any, Iterable, Protocol, Union

from .config import Settings
from .hooks import ContinuationFn, Hook, HookFn, HookObject, HookPhase, Method
from .hooks.chain import HookChain
from .hooks.runner import HookRunner

logger = logging.getLogger("feathers-hooks.service")

AnyHook = Union[Hook, HookFn, ContinuationFn]


class Service(Protocol):
    """What a wrapped service must provide.

    ``invoke`` returns the response or raises; it may also return an
    awaitable resolving to the response.
    """

    def invoke(
        self,
        method: Method,
        parameters: dict[str, Any] | None = None,
        data: dict[str, Any] | None = None,
        id: str | None = None,
    ) -> Any:
        ...


class HookedService:
    """A service whose calls run through before/after/error hooks.

    Each call gets its own hook objects; nothing is shared between calls
    apart from ``app`` and ``service``, which hooks only read.
    """

    def __init__(
        self,
        app: Any,
        service: Service,
        chain: HookChain | None = None,
        settings: Settings | None = None,
    ) -> None:
        self.app = app
        self.service = service
        self.chain = chain if chain is not None else HookChain()
        settings = settings or Settings()
        self.runner = HookRunner(
            self.chain,
            timeout=settings.hook_timeout,
            error_policy=settings.error_policy,
        )

    def hooks(
        self,
        before: Iterable[AnyHook] = (),
        after: Iterable[AnyHook] = (),
        error: Iterable[AnyHook] = (),
        methods: Iterable[Method | str] | None = None,
    ) -> HookedService:
        """Register hooks for this service. Returns self for chaining."""
        if methods is not None:
            methods = list(methods)
        for phase, hooks in (
            (HookPhase.BEFORE, before),
            (HookPhase.AFTER, after),
            (HookPhase.ERROR, error),
        ):
            for hook in hooks:
                name = getattr(hook, "__name__", None) or type(hook).__name__
                self.chain.register(phase, name, hook, methods=methods)
        return self

    async def request(
        self,
        method: Method | str,
        parameters: dict[str, Any] | None = None,
        data: dict[str, Any] | None = None,
        id: str | int | None = None,
    ) -> Any:
        """Call ``method`` through the hooks and return the response."""
        hook_object = HookObject(
            phase=HookPhase.BEFORE,
            app=self.app,
            service=self.service,
            method=Method(method),
            parameters=dict(parameters) if parameters is not None else None,
            data=dict(data) if data is not None else None,
            id=str(id) if id is not None else None,
        )
        return await self.runner.run(hook_object)

    async def find(self, parameters: dict[str, Any] | None = None) -> Any:
        return await self.request(Method.FIND, parameters=parameters)

    async def get(self, id: str | int, parameters: dict[str, Any] | None = None) -> Any:
        return await self.request(Method.GET, parameters=parameters, id=id)

    async def create(
        self, data: dict[str, Any], parameters: dict[str, Any] | None = None
    ) -> Any:
        return await self.request(Method.CREATE, parameters=parameters, data=data)

    async def update(
        self,
        id: str | int,
        data: dict[str, Any],
        parameters: dict[str, Any] | None = None,
    ) -> Any:
        return await self.request(Method.UPDATE, parameters=parameters, data=data, id=id)

    async def patch(
        self,
        id: str | int,
        data: dict[str, Any],
        parameters: dict[str, Any] | None = None,
    ) -> Any:
        return await self.request(Method.PATCH, parameters=parameters, data=data, id=id)

    async def remove(
        self, id: str | int, parameters: dict[str, Any] | None = None
    ) -> Any:
        return await self.request(Method.REMOVE, parameters=parameters, id=id)
