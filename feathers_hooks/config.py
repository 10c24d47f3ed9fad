"""
Configuration management for feathers-hooks.

Loads runner settings and hook definitions from
~/.config/feathers-hooks/config.yaml. Environment variables override the
file's settings.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import yaml

from .hooks.runner import ErrorPolicy

logger = logging.getLogger("feathers-hooks.config")

CONFIG_FILE_NAME = "config.yaml"

ENV_HOME = "FEATHERS_HOOKS_HOME"
ENV_TIMEOUT = "FEATHERS_HOOKS_TIMEOUT"
ENV_ERROR_POLICY = "FEATHERS_HOOKS_ERROR_POLICY"


@dataclass
class Settings:
    """Runner settings.

    Attributes:
        hook_timeout: Seconds a hook may take to call next (None = no limit)
        error_policy: What to do when error hooks clear the error
    """
    hook_timeout: float | None = None
    error_policy: ErrorPolicy = ErrorPolicy.FAIL

    def to_dict(self) -> dict[str, Any]:
        return {
            "hook_timeout": self.hook_timeout,
            "error_policy": self.error_policy.value,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Settings:
        return cls(
            hook_timeout=_parse_timeout(data.get("hook_timeout")),
            error_policy=ErrorPolicy(data.get("error_policy") or ErrorPolicy.FAIL.value),
        )


def _parse_timeout(value: Any) -> float | None:
    if value is None or value == "":
        return None
    timeout = float(value)
    if timeout <= 0:
        raise ValueError(f"hook_timeout must be positive, got {value}")
    return timeout


def get_config_dir() -> Path:
    """Get the configuration directory.

    Priority order:
    1. $FEATHERS_HOOKS_HOME (if set)
    2. $XDG_CONFIG_HOME/feathers-hooks (if set)
    3. ~/.config/feathers-hooks (default)
    """
    home = os.environ.get(ENV_HOME)
    if home:
        return Path(home)

    xdg_config = os.environ.get("XDG_CONFIG_HOME")
    if xdg_config:
        base = Path(xdg_config)
    else:
        base = Path.home() / ".config"
    return base / "feathers-hooks"


def get_config_file() -> Path:
    """Get path to the configuration file."""
    return get_config_dir() / CONFIG_FILE_NAME


def read_config(config_path: Path | None = None) -> dict[str, Any]:
    """Read the raw configuration mapping, empty if the file does not exist."""
    path = config_path or get_config_file()
    if not path.exists():
        logger.debug("Config file not found: %s", path)
        return {}

    data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    if not isinstance(data, dict):
        raise ValueError(f"Config file must contain a YAML mapping, got {type(data).__name__}")
    return data


def load_settings(config_path: Path | None = None) -> Settings:
    """
    Load settings from the config file's ``settings`` section.

    Environment variables win over the file:
    - FEATHERS_HOOKS_TIMEOUT: hook timeout in seconds (empty = no limit)
    - FEATHERS_HOOKS_ERROR_POLICY: "fail" or "recover"
    """
    data = dict(read_config(config_path).get("settings") or {})

    if ENV_TIMEOUT in os.environ:
        data["hook_timeout"] = os.environ[ENV_TIMEOUT]
    if ENV_ERROR_POLICY in os.environ:
        data["error_policy"] = os.environ[ENV_ERROR_POLICY].strip().lower()

    settings = Settings.from_dict(data)
    logger.debug("Loaded settings: %s", settings.to_dict())
    return settings


def create_config_template() -> str:
    """Generate a template config file with documentation."""
    return """# feathers-hooks configuration
# Location: ~/.config/feathers-hooks/config.yaml
#           ($FEATHERS_HOOKS_HOME/config.yaml when set)

settings:
  # Seconds a hook may take before calling next. Leave empty for no limit.
  # Override with FEATHERS_HOOKS_TIMEOUT.
  hook_timeout:

  # What happens when error hooks clear the error:
  #   fail    - the call still fails with the original error
  #   recover - the call succeeds with the hook object's result
  # Override with FEATHERS_HOOKS_ERROR_POLICY.
  error_policy: fail

# Extra directories searched for hook modules
# python_path:
#   - "${HOME}/my-hooks"

hooks:
  before:
    - name: log_before
      module: feathers_hooks.hooks.builtin
      function: log_before
      enabled: true
    - name: require_id
      module: feathers_hooks.hooks.builtin
      function: require_id
      methods: [get, update, patch, remove]
      enabled: true
    # Factories take their arguments from `config`:
    # - name: strip_read_only
    #   module: feathers_hooks.hooks.builtin
    #   function: strip_data_fields
    #   methods: [update, patch]
    #   config:
    #     fields: [createdAt, updatedAt]
  after:
    - name: log_after
      module: feathers_hooks.hooks.builtin
      function: log_after
      enabled: true
  error:
    - name: log_error
      module: feathers_hooks.hooks.builtin
      function: log_error
      enabled: true
"""


def ensure_config_template(force: bool = False) -> Path:
    """
    Ensure the config file exists.

    Writes the template unless the file already exists (and force=False).
    Returns the path to the config file.
    """
    config_file = get_config_file()

    if config_file.exists() and not force:
        logger.debug("Config file already exists: %s", config_file)
        return config_file

    config_file.parent.mkdir(parents=True, exist_ok=True)
    config_file.write_text(create_config_template(), encoding="utf-8")
    logger.info("Created config template: %s", config_file)
    return config_file
