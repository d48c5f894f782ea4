"""
Read-only views over the mirror: usage, locate and statistics.
"""

import os
from collections.abc import Sequence

from .models import IndexStats, UsageReport, UsageRow
from .storage import Storage
from .utils import megabytes_to_bytes


def build_usage_report(storage: Storage, min_dir_size_mb: float = 0) -> UsageReport:
    """
    Size of each directory's own files relative to the whole mirror.

    Args:
        storage: Mirror to report on
        min_dir_size_mb: Only directories at or above this size are listed

    Returns:
        Rows ordered by size (largest first) and the share of the total
        they cover together
    """
    total = storage.total_size()
    rows = []
    covered = 0
    for directory, size in storage.directory_sizes(megabytes_to_bytes(min_dir_size_mb)):
        rows.append(
            UsageRow(
                directory=directory,
                size_bytes=size,
                percentage=_percentage(size, total),
            )
        )
        covered += size

    return UsageReport(
        rows=rows,
        total_size=total,
        covered_percentage=_percentage(covered, total),
    )


def _percentage(part: int, whole: int) -> float:
    if whole <= 0:
        return 0.0
    return part * 100.0 / whole


def locate_files(storage: Storage, fragments: Sequence[str]) -> list[str]:
    """Full paths of files whose name contains every fragment, ignoring case."""
    return [os.path.join(directory, name) for directory, name in storage.locate(fragments)]


def collect_stats(storage: Storage) -> IndexStats:
    return IndexStats(
        total_directories=storage.count_directories(),
        total_files=storage.count_files(),
        total_size=storage.total_size(),
        root_directories=storage.count_directories(roots_only=True),
    )
