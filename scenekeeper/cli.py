"""Scenekeeper CLI dispatcher.

All subcommands live in ``scenekeeper/commands/*.py`` and expose a
``register(subparsers)`` function that adds themselves to argparse.
"""
from __future__ import annotations

import argparse
import sys

from scenekeeper.commands.registry import register_all


def main(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(
        prog="scenekeeper",
        description="Scenekeeper: scene and turn orchestration engine for narrated PbtA campaigns",
    )
    sub = parser.add_subparsers(dest="command")
    register_all(sub)

    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        sys.exit(0)

    # Each command stores a ``func`` on the namespace
    rc = args.func(args)
    sys.exit(rc or 0)
