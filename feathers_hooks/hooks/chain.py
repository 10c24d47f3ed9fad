"""Ordered hook registration per phase."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Iterable

from . import ContinuationFn, Hook, HookFn, HookPhase, Method, as_hook

logger = logging.getLogger("feathers-hooks.hooks")


@dataclass(frozen=True)
class HookEntry:
    """A registered hook and the methods it applies to (None = all)."""

    name: str
    hook: Hook
    methods: frozenset[Method] | None = None

    def applies_to(self, method: Method) -> bool:
        return self.methods is None or method in self.methods


class HookChain:
    """Hold the ``before``, ``after`` and ``error`` hook sequences.

    Hooks run in registration order. A hook can be limited to a subset of
    service methods; hooks registered without ``methods`` run for all of them.
    """

    def __init__(self) -> None:
        self._hooks: dict[HookPhase, list[HookEntry]] = {p: [] for p in HookPhase}

    def register(
        self,
        phase: HookPhase | str,
        name: str,
        hook: Hook | HookFn | ContinuationFn,
        methods: Iterable[Method | str] | None = None,
    ) -> None:
        """Register a hook for a phase."""
        phase = HookPhase(phase)
        only = frozenset(Method(m) for m in methods) if methods is not None else None
        self._hooks[phase].append(HookEntry(name, as_hook(hook), only))
        logger.debug(
            "Registered hook: %s for %s (%s)",
            name,
            phase.value,
            ", ".join(sorted(m.value for m in only)) if only is not None else "all",
        )

    def hooks(self, phase: HookPhase | str, method: Method | str) -> list[HookEntry]:
        """Return the hooks of ``phase`` that apply to ``method``, in order."""
        method = Method(method)
        return [e for e in self._hooks[HookPhase(phase)] if e.applies_to(method)]

    def list_hooks(self, phase: HookPhase | str | None = None) -> list[str]:
        """Return registered hook names, optionally filtered by phase."""
        if phase:
            return [e.name for e in self._hooks[HookPhase(phase)]]
        return [
            f"{p.value}:{e.name}"
            for p in HookPhase
            for e in self._hooks[p]
        ]

    def clear(self, phase: HookPhase | str | None = None) -> None:
        """Drop registered hooks, for one phase or all of them."""
        if phase:
            self._hooks[HookPhase(phase)] = []
        else:
            self._hooks = {p: [] for p in HookPhase}

    def __len__(self) -> int:
        return sum(len(entries) for entries in self._hooks.values())


# Module-level singleton
_chain = HookChain()


def get_hook_chain() -> HookChain:
    """Return the global hook chain singleton."""
    return _chain


def reset_hook_chain() -> HookChain:
    """Reset the global hook chain (for testing). Returns the new chain."""
    global _chain
    _chain = HookChain()
    return _chain
