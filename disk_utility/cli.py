"""
Command-line interface for the disk utility.
"""

import argparse
import logging
import os
from typing import Any

from .commands import COMMANDS, CommandContext, dispatch
from .errors import DiskUtilityError
from .storage import Storage

logger = logging.getLogger(__name__)

DEFAULT_DB_PATH = "disk_utility.duckdb"


class QueueCommand(argparse.Action):
    """Record ``--command args...`` in order, so several commands can be chained."""

    def __call__(
        self,
        parser: argparse.ArgumentParser,
        namespace: argparse.Namespace,
        values: Any,
        option_string: str | None = None,
    ) -> None:
        queued = list(getattr(namespace, "commands", None) or [])
        queued.append((self.dest, list(values or [])))
        namespace.commands = queued


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="disk-utility",
        description="Index disks, find duplicate files and report directory usage",
        add_help=False,
        allow_abbrev=False,
    )
    parser.add_argument(
        "--db",
        default=os.getenv("DISK_UTILITY_DB", DEFAULT_DB_PATH),
        help="Database file path (default: $DISK_UTILITY_DB or %(default)s)",
    )
    parser.add_argument(
        "--log-level",
        default=os.getenv("DISK_UTILITY_LOG_LEVEL", "INFO"),
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        type=str.upper,
        help="Logging verbosity (default: %(default)s)",
    )
    parser.add_argument(
        "--flush-every",
        type=int,
        default=200,
        help="Send buffered file inserts every N files (default: 200)",
    )
    parser.add_argument(
        "--commit-every",
        type=int,
        default=2000,
        help="Commit the index transaction every N files (default: 2000)",
    )

    for command in COMMANDS.values():
        option_strings = [f"--{command.name}"]
        if command.name == "help":
            option_strings.insert(0, "-h")
        parser.add_argument(
            *option_strings,
            dest=command.name,
            nargs="*",
            action=QueueCommand,
            metavar="ARG",
            help=f"{command.metavar + ': ' if command.metavar else ''}{command.help}",
        )
    parser.set_defaults(commands=[])
    return parser


def main(argv: list[str] | None = None) -> int:
    """Main CLI entry point. Returns the process exit status."""
    parser = build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=args.log_level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    commands = args.commands or [("help", [])]
    needs_storage = any(COMMANDS[name].needs_storage for name, _ in commands)

    storage = Storage(args.db) if needs_storage else None
    context = CommandContext(
        storage=storage,
        flush_every=args.flush_every,
        commit_every=args.commit_every,
    )

    exit_code = 0
    try:
        for name, values in commands:
            try:
                dispatch(context, name, values)
            except DiskUtilityError as e:
                logger.error(f"{name} failed: {e}")
                if storage is not None:
                    storage.rollback()
                exit_code = 1
    finally:
        if storage is not None:
            storage.close()

    return exit_code


if __name__ == "__main__":
    raise SystemExit(main())
