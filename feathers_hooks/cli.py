#!/usr/bin/env python3
"""
feathers-hooks - inspect and bootstrap hook configuration.
"""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path


def main() -> int:
    parser = argparse.ArgumentParser(
        prog="feathers-hooks",
        description="Manage before/after/error hooks for service calls",
    )
    parser.add_argument("--debug", "-d", action="store_true", help="Enable debug output")
    subparsers = parser.add_subparsers(dest="command", help="Commands")

    # init
    init_p = subparsers.add_parser("init", help="Write a template config file")
    init_p.add_argument("--force", "-f", action="store_true", help="Overwrite existing file")

    # config subcommands
    config_p = subparsers.add_parser("config", help="Configuration")
    config_sub = config_p.add_subparsers(dest="config_command")
    show_p = config_sub.add_parser("show", help="Show effective settings")
    show_p.add_argument("--config", help="Config file (default: user config)")
    config_sub.add_parser("path", help="Print config file path")

    # hooks subcommands
    hooks_p = subparsers.add_parser("hooks", help="Hook definitions")
    hooks_sub = hooks_p.add_subparsers(dest="hooks_command")
    list_p = hooks_sub.add_parser("list", help="List hooks defined in the config")
    list_p.add_argument("--config", help="Config file (default: user config)")
    list_p.add_argument(
        "--phase", choices=["before", "after", "error"], help="Only show one phase"
    )

    args = parser.parse_args()

    logging.basicConfig(
        level=logging.DEBUG if args.debug else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )

    if args.command is None:
        parser.print_help()
        return 0

    # Dispatch
    if args.command == "init":
        return cmd_init(args)
    elif args.command == "config":
        return cmd_config(args)
    elif args.command == "hooks":
        return cmd_hooks(args)
    else:
        parser.print_help()
        return 1


def _config_path(args: argparse.Namespace) -> Path:
    from . import config

    if getattr(args, "config", None):
        return Path(args.config)
    return config.get_config_file()


def cmd_init(args: argparse.Namespace) -> int:
    """Write the template config file."""
    from . import config

    path = config.get_config_file()
    existed = path.exists()
    config.ensure_config_template(force=args.force)

    if existed and not args.force:
        print(f"Config already exists: {path} (use --force to overwrite)", file=sys.stderr)
        return 0
    print(f"Created {path}")
    return 0


def cmd_config(args: argparse.Namespace) -> int:
    """Handle config subcommands."""
    from . import config

    if args.config_command == "path":
        print(config.get_config_file())
        return 0

    if args.config_command == "show":
        path = _config_path(args)
        try:
            settings = config.load_settings(path)
        except Exception as e:
            print(f"Error: invalid config {path}: {e}", file=sys.stderr)
            return 1

        print(f"Config file: {path}{'' if path.exists() else ' (not found)'}")
        for key, value in settings.to_dict().items():
            print(f"  {key}: {'none' if value is None else value}")
        return 0

    print("Usage: feathers-hooks config {show|path}", file=sys.stderr)
    return 1


def cmd_hooks(args: argparse.Namespace) -> int:
    """Handle hooks subcommands."""
    from .hooks.chain import HookChain
    from .hooks.loader import load_hooks_from_config

    if args.hooks_command != "list":
        print("Usage: feathers-hooks hooks list", file=sys.stderr)
        return 1

    path = _config_path(args)
    if not path.exists():
        print(f"Error: config file not found: {path}", file=sys.stderr)
        return 1

    chain = HookChain()
    count = load_hooks_from_config(path, chain)
    names = chain.list_hooks(args.phase)

    if not names:
        print("No hooks registered.")
        return 0

    for name in names:
        print(name)
    if args.debug:
        print(f"{count} hooks loaded from {path}", file=sys.stderr)
    return 0


if __name__ == "__main__":
    sys.exit(main())
