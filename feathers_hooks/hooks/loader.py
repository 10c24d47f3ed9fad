"""Load hooks from YAML configuration."""

from __future__ import annotations

import importlib
import logging
import os
import sys
from pathlib import Path
from typing import Any

import yaml

from . import HookPhase, Method
from .chain import HookChain, get_hook_chain

logger = logging.getLogger("feathers-hooks.hooks")


def load_hooks_from_config(config_path: Path, chain: HookChain | None = None) -> int:
    """Load hooks from a YAML config file into ``chain`` (default: global chain).

    Returns the number of hooks successfully registered.
    """
    try:
        config = yaml.safe_load(Path(config_path).read_text()) or {}
    except (OSError, yaml.YAMLError):
        logger.error("Failed to parse hooks config: %s", config_path, exc_info=True)
        return 0

    if not isinstance(config, dict):
        logger.error("Hooks config must be a mapping: %s", config_path)
        return 0

    # Add custom python paths
    python_path = config.get("python_path") or []
    if isinstance(python_path, str):
        python_path = [python_path]
    if not isinstance(python_path, list):
        logger.warning("python_path must be a list, ignoring: %r", python_path)
        python_path = []
    for p in python_path:
        expanded = os.path.expandvars(str(p))
        if expanded not in sys.path:
            sys.path.insert(0, expanded)

    if chain is None:
        chain = get_hook_chain()
    count = 0

    hooks = config.get("hooks") or {}
    if not isinstance(hooks, dict):
        logger.error("hooks must be a mapping of phase to hook list: %s", config_path)
        return 0

    for phase_name, hook_list in hooks.items():
        try:
            phase = HookPhase(phase_name)
        except ValueError:
            logger.warning("Unknown hook phase: %s", phase_name)
            continue

        if not isinstance(hook_list, list):
            logger.warning("Hook list for %s is not a list", phase_name)
            continue

        for hook_def in hook_list:
            if not isinstance(hook_def, dict):
                logger.warning(
                    "Hook entry for %s is not a mapping: %r", phase_name, hook_def
                )
                continue
            if not hook_def.get("enabled", True):
                continue

            name = hook_def.get("name", "unnamed")
            try:
                hook = _load_hook(hook_def)
                methods = _parse_methods(hook_def.get("methods"))
                chain.register(phase, name, hook, methods=methods)
            except Exception:
                logger.error("Failed to load hook %s", name, exc_info=True)
                continue

            count += 1

    return count


def _load_hook(hook_def: dict[str, Any]) -> Any:
    """Import the hook named by a config entry.

    With a ``config`` mapping the imported object is a factory and is called
    with the mapping as keyword arguments to build the hook.
    """
    module = importlib.import_module(hook_def["module"])
    target = getattr(module, hook_def["function"])

    hook_config = hook_def.get("config")
    if hook_config:
        return target(**hook_config)
    return target


def _parse_methods(methods: Any) -> list[Method] | None:
    if methods is None:
        return None
    if isinstance(methods, str):
        methods = [methods]
    return [Method(m) for m in methods]
