"""
Duplicate detection by file name and size.
"""

import logging
import os
from collections.abc import Generator, Iterable

from .models import DuplicatePair, FileLocation
from .storage import Storage

logger = logging.getLogger(__name__)


def extensions_to_suffixes(extensions: Iterable[str]) -> list[str]:
    """Turn ``mp3`` / ``.mp3`` style arguments into ``.mp3`` suffixes."""
    suffixes = []
    for extension in extensions:
        extension = extension.strip()
        if not extension:
            continue
        suffixes.append(extension if extension.startswith(".") else "." + extension)
    return suffixes


class DuplicateFinder:
    def __init__(self, storage: Storage, fetch_size: int = 1000):
        self.storage = storage
        self.fetch_size = fetch_size
        self.stale_pairs = 0

    def find_duplicates(
        self, min_size_bytes: int = 0, name_patterns: Iterable[str] = ()
    ) -> Generator[DuplicatePair, None, None]:
        """
        Yield pairs of files with the same name and size in the mirror.

        Pairs are produced lazily; both files are checked on disk at the
        moment a pair is pulled and the pair is dropped if either is gone.

        Args:
            min_size_bytes: Only files strictly larger than this participate
            name_patterns: File name suffixes; empty means every file
        """
        suffixes = list(name_patterns)
        self.stale_pairs = 0

        for row in self.storage.iter_duplicate_rows(
            min_size_bytes, suffixes, fetch_size=self.fetch_size
        ):
            left_dir, name, size, left_id, left_dir_id, right_dir, right_id, right_dir_id = row

            if not (_exists(left_dir, name) and _exists(right_dir, name)):
                self.stale_pairs += 1
                continue

            yield DuplicatePair(
                left=FileLocation(
                    file_id=left_id,
                    directory_id=left_dir_id,
                    directory=left_dir,
                    name=name,
                    size=size,
                ),
                right=FileLocation(
                    file_id=right_id,
                    directory_id=right_dir_id,
                    directory=right_dir,
                    name=name,
                    size=size,
                ),
            )

        if self.stale_pairs:
            logger.debug(f"Dropped {self.stale_pairs} pairs no longer present on disk")


def _exists(directory: str, name: str) -> bool:
    return os.path.exists(os.path.join(directory, name))
