"""
Utility functions for the disk utility.
"""

import os

MEGABYTE = 1024 * 1024


def format_size(size_bytes: int) -> str:
    """Format file size in human readable format."""
    if size_bytes == 0:
        return "0 B"

    units = ["B", "KB", "MB", "GB", "TB"]
    size = float(size_bytes)
    unit_index = 0

    while size >= 1024 and unit_index < len(units) - 1:
        size /= 1024
        unit_index += 1

    return f"{size:.1f} {units[unit_index]}"


def megabytes_to_bytes(megabytes: float) -> int:
    """Convert a (possibly fractional) number of megabytes to bytes."""
    return int(megabytes * MEGABYTE)


def name_hash(name: str) -> int:
    """
    Stable 32-bit hash of a file name.

    Uses the classic ``31 * h + c`` polynomial so the value is identical
    across interpreter runs (unlike the salted builtin ``hash``) and fits a
    signed INTEGER column.
    """
    h = 0
    for ch in name:
        h = (31 * h + ord(ch)) & 0xFFFFFFFF
    return h - 0x100000000 if h >= 0x80000000 else h


def is_same_or_descendant(path: str, ancestor: str) -> bool:
    """Return True if ``path`` equals ``ancestor`` or lies below it."""
    if path == ancestor:
        return True
    prefix = ancestor if ancestor.endswith(os.sep) else ancestor + os.sep
    return path.startswith(prefix)
