"""
Disk Utility using DuckDB
Mirrors directory trees into a DuckDB database, finds duplicate files by
name and size with interactive cleanup, and reports per-directory usage.
"""

from .duplicates import DuplicateFinder
from .eraser import SubtreeEraser
from .indexer import Indexer
from .resolution import ResolutionEngine
from .storage import Storage

__version__ = "0.1.0"
__all__ = ["DuplicateFinder", "Indexer", "ResolutionEngine", "Storage", "SubtreeEraser"]
