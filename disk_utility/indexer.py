"""
Core directory indexing: walks a filesystem subtree into the mirror.
"""

import logging
import os
import time

from .eraser import SubtreeEraser
from .errors import FilesystemAccessError
from .models import IndexResult
from .storage import Storage
from .utils import name_hash

logger = logging.getLogger(__name__)


class Indexer:
    def __init__(
        self,
        storage: Storage,
        eraser: SubtreeEraser | None = None,
        flush_every: int = 200,
        commit_every: int = 2000,
    ):
        """
        Initialize the Indexer.

        Args:
            storage: Mirror the walk is written to
            eraser: Used to drop stale mirrors before (re)indexing a path
            flush_every: Send buffered file inserts every this many files
            commit_every: Commit the transaction every this many files
        """
        self.storage = storage
        self.eraser = eraser or SubtreeEraser(
            storage, progress_callback=self._report_erase_progress
        )
        self.flush_every = flush_every
        self.commit_every = commit_every

        self.last_result: IndexResult | None = None
        self._next_id = 0
        self._file_count = 0
        self._checkpoint_time = 0.0

    @staticmethod
    def _report_erase_progress(deleted: int) -> None:
        logger.debug(f"Erased {deleted:,} stale directories...")

    def index_root(self, root_path: str) -> int:
        """
        Re-index ``root_path`` from scratch.

        Any existing mirror of the path is erased first and the new root is
        linked under the parent the old one had.

        Returns:
            Number of files indexed
        """
        started = time.monotonic()
        root = os.path.realpath(root_path)
        self._check_encodable(root)
        logger.info(f"Indexing {root}")

        result = IndexResult(root=root)
        self.last_result = result
        self._file_count = 0
        self._checkpoint_time = started

        parent_id = self.eraser.erase_subtree(root)

        if not os.path.isdir(root):
            logger.warning(f"Not a directory, mirror dropped: {root}")
            return 0

        self.storage.begin_index_run()
        self._next_id = self.storage.next_directory_id()
        self._walk(root, parent_id, result)

        self.storage.flush_file_batch()
        self.storage.commit()

        result.files = self._file_count
        result.elapsed_seconds = time.monotonic() - started
        logger.info(
            f"Total files in {root}: {result.files:,} in {result.directories:,} "
            f"directories. Duration: {result.elapsed_seconds:.3f}s"
        )
        if result.skipped_entries:
            logger.info(f"Skipped {result.skipped_entries:,} unreadable or linked entries")
        return result.files

    def _walk(self, root: str, root_parent_id: int | None, result: IndexResult) -> None:
        # Depth-first pre-order with an explicit stack: a directory claims its
        # id when it is visited, before any of its children.
        stack: list[tuple[str, int | None, bool]] = [(root, root_parent_id, True)]
        while stack:
            path, parent_id, is_root = stack.pop()

            if not is_root:
                # the same path may still be mirrored from an earlier run
                self.eraser.erase_subtree(path)
                self._next_id += 1
            dir_id = self._next_id

            self.storage.insert_directory(dir_id, path, parent_id)
            result.directories += 1

            subdirectories = []
            for entry in self._list_entries(path):
                try:
                    self._check_encodable(entry.path)
                    if not self._accept_entry(entry):
                        result.skipped_entries += 1
                        continue

                    if entry.is_dir(follow_symlinks=False):
                        subdirectories.append(entry.path)
                    elif not entry.name.startswith("."):
                        size = self._entry_size(entry)
                        self._add_file(dir_id, entry.name, size)
                except FilesystemAccessError as e:
                    logger.warning(f"Skipping entry: {e}")
                    result.skipped_entries += 1

            for subdirectory in reversed(subdirectories):
                stack.append((subdirectory, dir_id, False))

    def _list_entries(self, path: str) -> list[os.DirEntry]:
        """List a directory, keeping whatever was read before an error."""
        entries: list[os.DirEntry] = []
        try:
            with os.scandir(path) as iterator:
                for entry in iterator:
                    entries.append(entry)
        except OSError as e:
            error = FilesystemAccessError(path, f"listing failed: {e}")
            logger.warning(f"{error} ({len(entries)} entries read)")
        return entries

    @staticmethod
    def _check_encodable(path: str) -> None:
        """Reject paths the mirror cannot store, such as names that are not UTF-8."""
        try:
            path.encode("utf-8")
        except UnicodeEncodeError as e:
            shown = os.fsencode(path).decode("utf-8", "backslashreplace")
            raise FilesystemAccessError(shown, "name is not valid UTF-8") from e

    @staticmethod
    def _accept_entry(entry: os.DirEntry) -> bool:
        """Reject entries that are links (canonical path differs) or unreadable."""
        try:
            absolute = os.path.abspath(entry.path)
            if os.path.realpath(absolute) != absolute:
                return False
            return os.access(absolute, os.R_OK)
        except OSError as e:
            raise FilesystemAccessError(entry.path, str(e)) from e

    @staticmethod
    def _entry_size(entry: os.DirEntry) -> int:
        try:
            return entry.stat(follow_symlinks=False).st_size
        except OSError as e:
            raise FilesystemAccessError(entry.path, f"stat failed: {e}") from e

    def _add_file(self, dir_id: int, name: str, size: int) -> None:
        self.storage.insert_file_batched(dir_id, name, size, name_hash(name))
        self._file_count += 1

        if self._file_count % self.flush_every == 0:
            self.storage.flush_file_batch()

        if self._file_count % self.commit_every == 0:
            self.storage.flush_file_batch()
            self.storage.commit()
            now = time.monotonic()
            logger.info(
                f"Processed {self._file_count:,} files "
                f"[{(now - self._checkpoint_time) * 1000:.0f}ms]"
            )
            self._checkpoint_time = now
