"""
Command table and handlers behind the command-line interface.
"""

import logging
from collections.abc import Callable
from typing import NamedTuple

from .duplicates import DuplicateFinder, extensions_to_suffixes
from .errors import UnknownCommand, UserInputError
from .indexer import Indexer
from .reports import build_usage_report, collect_stats, locate_files
from .resolution import ConsolePrompt, Prompt, ResolutionEngine
from .storage import Storage
from .utils import MEGABYTE, format_size, megabytes_to_bytes

logger = logging.getLogger(__name__)


class CommandContext:
    """Everything a command handler may use during one invocation."""

    def __init__(
        self,
        storage: Storage | None = None,
        prompt: Prompt | None = None,
        flush_every: int = 200,
        commit_every: int = 2000,
    ):
        self._storage = storage
        self.prompt = prompt or ConsolePrompt()
        self.flush_every = flush_every
        self.commit_every = commit_every

    @property
    def storage(self) -> Storage:
        if self._storage is None:
            raise RuntimeError("Database not connected")
        return self._storage


class Command(NamedTuple):
    name: str
    handler: Callable[[CommandContext, list[str]], None]
    help: str
    metavar: str = ""
    needs_storage: bool = True


def prepare_db(context: CommandContext, args: list[str]) -> None:
    print("Creating database ... ", end="")
    context.storage.prepare()
    print("OK")


def update_db(context: CommandContext, args: list[str]) -> None:
    if not args:
        raise UserInputError("updateDb needs at least one directory")

    indexer = Indexer(
        context.storage,
        flush_every=context.flush_every,
        commit_every=context.commit_every,
    )
    for directory in args:
        files = indexer.index_root(directory)
        print(f"Total files in {directory}: {files:,}. [OK]")


def locate(context: CommandContext, args: list[str]) -> None:
    for path in locate_files(context.storage, args):
        print(path)


def parse_duplicates_args(args: list[str]) -> tuple[int, list[str]]:
    """Split ``[minSizeMB] [ext ...]`` into a byte threshold and name suffixes."""
    min_size_bytes = 0
    extensions = list(args)
    if extensions:
        try:
            min_size_bytes = megabytes_to_bytes(float(extensions[0]))
            extensions = extensions[1:]
        except ValueError:
            pass
    return min_size_bytes, extensions_to_suffixes(extensions)


def duplicates(context: CommandContext, args: list[str]) -> None:
    min_size_bytes, suffixes = parse_duplicates_args(args)
    logger.info(
        f"Searching duplicates larger than {format_size(min_size_bytes)}"
        + (f" ending with {', '.join(suffixes)}" if suffixes else "")
    )

    finder = DuplicateFinder(context.storage)
    engine = ResolutionEngine(context.prompt)
    summary = engine.run(finder.find_duplicates(min_size_bytes, suffixes))

    print(
        f"Pairs: {summary.pairs_seen}, deleted files: {summary.files_deleted}, "
        f"removed directories: {summary.directories_removed}, skipped: {summary.skipped}"
    )


def usage(context: CommandContext, args: list[str]) -> None:
    min_dir_size_mb = 0.0
    if args:
        try:
            min_dir_size_mb = float(args[0])
        except ValueError as e:
            raise UserInputError(f"usage expects a size in MB, got {args[0]!r}") from e

    report = build_usage_report(context.storage, min_dir_size_mb)
    for row in report.rows:
        print(f"{row.directory}: {row.size_bytes / MEGABYTE:.1f}MB = {row.percentage:.1f}%")
    print(f"Query covered {report.covered_percentage:.1f}% out of all files.")


def stats(context: CommandContext, args: list[str]) -> None:
    result = collect_stats(context.storage)
    print("Database Statistics:")
    print(f"  Root directories: {result.root_directories:,}")
    print(f"  Total directories: {result.total_directories:,}")
    print(f"  Total files: {result.total_files:,}")
    print(f"  Total size: {format_size(result.total_size)}")


def show_help(context: CommandContext, args: list[str]) -> None:
    print("disk-utility commands:")
    for command in COMMANDS.values():
        print(f"  --{command.name} {command.metavar}".rstrip())
        print(f"      {command.help}")


COMMANDS: dict[str, Command] = {
    command.name: command
    for command in [
        Command(
            "prepareDb",
            prepare_db,
            "Drop and recreate the database tables (destroys the index)",
        ),
        Command(
            "updateDb",
            update_db,
            "Fully re-index each given directory",
            metavar="dir1 [dir2 ...]",
        ),
        Command(
            "locate",
            locate,
            "List files whose name contains all given fragments (case-insensitive)",
            metavar="name1 [name2 ...]",
        ),
        Command(
            "duplicates",
            duplicates,
            "Find duplicates by name and size and resolve them interactively, "
            "e.g. --duplicates 1 mp3 avi jpg",
            metavar="[minSizeMB] [ext ...]",
        ),
        Command(
            "usage",
            usage,
            "Show size of each directory and its share of all indexed files",
            metavar="[minDirSizeMB]",
        ),
        Command("stats", stats, "Show database statistics"),
        Command("help", show_help, "Show this help", needs_storage=False),
    ]
}


def dispatch(context: CommandContext, name: str, args: list[str]) -> None:
    """
    Run the command registered as ``name``.

    Raises:
        UnknownCommand: if no command has that name
    """
    command = COMMANDS.get(name)
    if command is None:
        raise UnknownCommand(name)
    logger.debug(f"Running {name} {args}")
    command.handler(context, list(args))
