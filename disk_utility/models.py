"""
Pydantic models for mirror records, reports and interactive decisions.
"""

import os
from enum import Enum, IntEnum

from pydantic import BaseModel, ConfigDict, Field


class DirectoryNode(BaseModel):
    """A mirrored directory."""

    model_config = ConfigDict(frozen=True)

    id: int
    path: str
    parent_id: int | None = None


class FileRecord(BaseModel):
    """A mirrored file, owned by exactly one directory."""

    model_config = ConfigDict(frozen=True)

    id: int
    directory_id: int
    name: str
    size: int
    name_hash: int


class FileLocation(BaseModel):
    """A file record joined with the path of its directory."""

    model_config = ConfigDict(frozen=True)

    file_id: int
    directory_id: int
    directory: str
    name: str
    size: int

    @property
    def path(self) -> str:
        return os.path.join(self.directory, self.name)


class DuplicatePair(BaseModel):
    """Two files with the same name and size in different directories.

    ``left.file_id`` is always smaller than ``right.file_id``.
    """

    model_config = ConfigDict(frozen=True)

    left: FileLocation
    right: FileLocation

    @property
    def name(self) -> str:
        return self.left.name

    @property
    def size(self) -> int:
        return self.left.size


class UsageRow(BaseModel):
    directory: str
    size_bytes: int
    percentage: float


class UsageReport(BaseModel):
    """Per-directory disk usage above a threshold."""

    rows: list[UsageRow] = Field(default_factory=list)
    total_size: int
    covered_percentage: float


class IndexStats(BaseModel):
    """Model for mirror statistics."""

    total_directories: int
    total_files: int
    total_size: int
    root_directories: int


class IndexResult(BaseModel):
    """Bookkeeping of a single ``index_root`` run."""

    root: str
    directories: int = 0
    files: int = 0
    skipped_entries: int = 0
    elapsed_seconds: float = 0.0


class FolderAction(str, Enum):
    """Cached per-directory decision of an interactive session."""

    DELETE_ALL = "delete_all"
    SKIP_ALL = "skip_all"
    DELETE_ALL_RECURSIVE = "delete_all_recursive"
    SKIP_ALL_RECURSIVE = "skip_all_recursive"


class MenuChoice(IntEnum):
    """Options offered for a duplicate pair, numbered as shown in the menu."""

    DO_NOTHING = 0
    DELETE_LEFT = 1
    DELETE_ALL_LEFT = 2
    SKIP_ALL_LEFT = 3
    DELETE_RIGHT = 4
    DELETE_ALL_RIGHT = 5
    SKIP_ALL_RIGHT = 6
    DELETE_FOLDER_RECURSIVE = 7
    IGNORE_FOLDER_RECURSIVE = 8


class FolderPolicy(BaseModel):
    """Cached decision for one folder of an interactive session."""

    path: str
    action: FolderAction


MENU_LABELS: dict[MenuChoice, str] = {
    MenuChoice.DELETE_LEFT: "Delete file from left",
    MenuChoice.DELETE_ALL_LEFT: "Delete all files from left directory",
    MenuChoice.SKIP_ALL_LEFT: "Ignore all comparisons with left directory",
    MenuChoice.DELETE_RIGHT: "Delete file from right",
    MenuChoice.DELETE_ALL_RIGHT: "Delete all files from right directory",
    MenuChoice.SKIP_ALL_RIGHT: "Ignore all comparisons with right directory",
    MenuChoice.DELETE_FOLDER_RECURSIVE: "Delete recursive folder...",
    MenuChoice.IGNORE_FOLDER_RECURSIVE: "Ignore folder...",
    MenuChoice.DO_NOTHING: "Move to next file (do nothing)",
}


class Decision(BaseModel):
    """Answer of the user for one duplicate pair."""

    choice: MenuChoice
    folder: str | None = None


class ResolutionSummary(BaseModel):
    """Counters of an interactive duplicate resolution session."""

    pairs_seen: int = 0
    prompted: int = 0
    files_deleted: int = 0
    directories_removed: int = 0
    skipped: int = 0
