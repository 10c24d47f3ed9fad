"""Built-in hooks for logging and request checks."""

from __future__ import annotations

import logging
from typing import Any, Iterable

from ..errors import BadRequest
from . import HookFn, HookNext, HookObject

logger = logging.getLogger("feathers-hooks.builtin")


def _describe(obj: HookObject) -> str:
    target = getattr(obj.service, "name", None) or type(obj.service).__name__
    line = f"{target}.{obj.method.value}"
    if obj.id is not None:
        line += f" id={obj.id}"
    return line


async def log_before(obj: HookObject) -> HookObject:
    """Log an outgoing call."""
    params = len(obj.parameters) if obj.parameters else 0
    logger.info("[REQ] %s | %d params", _describe(obj), params)
    if obj.data:
        logger.debug("  data keys: %s", ", ".join(sorted(obj.data)))
    return obj


async def log_after(obj: HookObject) -> HookObject:
    """Log a successful response."""
    result = obj.result
    if isinstance(result, list):
        logger.info("[RESP] %s | %d items", _describe(obj), len(result))
    elif isinstance(result, dict) and isinstance(result.get("data"), list):
        # Paginated find
        logger.info(
            "[RESP] %s | %d of %s items",
            _describe(obj),
            len(result["data"]),
            result.get("total", "?"),
        )
    else:
        logger.info("[RESP] %s", _describe(obj))
    return obj


async def log_error(obj: HookObject) -> HookObject:
    """Log a failed call."""
    logger.warning("[ERR] %s | %s", _describe(obj), obj.error)
    return obj


def require_id(obj: HookObject, next: HookNext) -> None:
    """Reject get/update/patch/remove calls that have no id."""
    if obj.method.requires_id and not obj.id:
        next(obj.with_error(BadRequest(f"{obj.method.value} requires an id")))
        return
    next(obj)


def strip_data_fields(fields: Iterable[str]) -> HookFn:
    """Build a hook removing ``fields`` from the request data.

    Useful for read-only or server-generated fields that a service rejects
    when they are sent back on update/patch.
    """
    names = frozenset(fields)

    def strip(obj: HookObject) -> HookObject:
        if not obj.data:
            return obj
        cleaned: dict[str, Any] = {k: v for k, v in obj.data.items() if k not in names}
        return obj.copy(data=cleaned)

    strip.__name__ = "strip_data_fields"
    return strip
