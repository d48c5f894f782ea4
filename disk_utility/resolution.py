"""
Interactive resolution of duplicate pairs.

The engine walks duplicate pairs, applies cached per-folder decisions and
asks the user about everything else through a prompt object. Deletions act
on the real filesystem only; the mirror is refreshed by the next index run.
"""

import logging
import os
from collections.abc import Iterable
from pathlib import Path
from typing import Protocol

from .errors import UserInputError
from .models import (
    MENU_LABELS,
    Decision,
    DuplicatePair,
    FolderAction,
    FolderPolicy,
    MenuChoice,
    ResolutionSummary,
)
from .utils import format_size, is_same_or_descendant

logger = logging.getLogger(__name__)

# entries found past this index are moved to the front of the list
REORDER_AFTER_INDEX = 2

LEFT_CHOICES = [MenuChoice.DELETE_LEFT, MenuChoice.DELETE_ALL_LEFT, MenuChoice.SKIP_ALL_LEFT]
RIGHT_CHOICES = [
    MenuChoice.DELETE_RIGHT,
    MenuChoice.DELETE_ALL_RIGHT,
    MenuChoice.SKIP_ALL_RIGHT,
]
COMMON_CHOICES = [
    MenuChoice.DELETE_FOLDER_RECURSIVE,
    MenuChoice.IGNORE_FOLDER_RECURSIVE,
    MenuChoice.DO_NOTHING,
]


class FolderPolicies:
    """
    Recency-ordered list of per-folder decisions.

    Lookups scan the list linearly. A recursive entry covering the looked-up
    path wins over an exact match and resolves to its non-recursive action.
    An entry matched beyond the third slot is moved to the front; this is a
    cheap heuristic, not an LRU, and the list is never trimmed.
    """

    def __init__(self) -> None:
        self._entries: list[FolderPolicy] = []

    def __len__(self) -> int:
        return len(self._entries)

    @property
    def paths(self) -> list[str]:
        return [entry.path for entry in self._entries]

    @property
    def entries(self) -> list[FolderPolicy]:
        return list(self._entries)

    def get(self, path: str) -> FolderAction | None:
        found_index = None
        found_action = None
        for index, entry in enumerate(self._entries):
            folder, action = entry.path, entry.action
            if action is FolderAction.DELETE_ALL_RECURSIVE and is_same_or_descendant(
                path, folder
            ):
                found_index, found_action = index, FolderAction.DELETE_ALL
                break
            if action is FolderAction.SKIP_ALL_RECURSIVE and is_same_or_descendant(
                path, folder
            ):
                found_index, found_action = index, FolderAction.SKIP_ALL
                break
            if found_index is None and folder == path:
                found_index, found_action = index, action

        if found_index is not None and found_index > REORDER_AFTER_INDEX:
            self._entries.insert(0, self._entries.pop(found_index))
        return found_action

    def put(self, path: str, action: FolderAction) -> str | None:
        """
        Register ``action`` for the folder at ``path``.

        Returns:
            The normalized folder path, or None if it is not an existing directory
        """
        folder = normalize_folder(path)
        if folder is None or not os.path.isdir(folder):
            return None

        for entry in self._entries:
            if entry.path == folder:
                entry.action = action
                return folder

        self._entries.insert(0, FolderPolicy(path=folder, action=action))
        return folder


def normalize_folder(path: str) -> str | None:
    path = path.strip()
    if not path:
        return None
    return os.path.realpath(os.path.expanduser(path))


def delete_file_and_empty_dir(directory: str, name: str) -> tuple[bool, bool]:
    """
    Delete ``name`` inside ``directory`` and the directory once it is empty.

    Errors are logged, never raised.

    Returns:
        (file_deleted, directory_removed)
    """
    file_path = Path(directory) / name
    file_deleted = False
    directory_removed = False
    try:
        file_path.unlink()
        file_deleted = True
        logger.info(f"Deleted {file_path}")

        if not any(Path(directory).iterdir()):
            Path(directory).rmdir()
            directory_removed = True
            logger.info(f"Removed empty directory {directory}")
    except OSError as e:
        logger.error(f"Error deleting {file_path}: {e}")
    return file_deleted, directory_removed


class Prompt(Protocol):
    def show(self, pair: DuplicatePair) -> None:
        """Show ``pair`` without asking anything."""
        ...

    def present(self, pair: DuplicatePair, available: list[MenuChoice]) -> Decision:
        """Show ``pair`` with the ``available`` choices and return the user's decision."""
        ...


class ConsolePrompt:
    """Prompt reading decisions from standard input."""

    def show(self, pair: DuplicatePair) -> None:
        print(
            f"File: {pair.name} [{format_size(pair.size)}] "
            f"f1.ID={pair.left.file_id} f2.ID={pair.right.file_id}"
        )
        print(f" --> {pair.left.directory} --> d1.ID = {pair.left.directory_id}")
        print(f" --> {pair.right.directory} --> d2.ID = {pair.right.directory_id}")

    def present(self, pair: DuplicatePair, available: list[MenuChoice]) -> Decision:
        self.show(pair)
        for choice in available:
            print(f"{choice.value}. {MENU_LABELS[choice]}")

        answer = input("> ").strip()
        try:
            choice = MenuChoice(int(answer))
        except ValueError as e:
            raise UserInputError(f"Not a menu option: {answer!r}") from e
        if choice not in available:
            raise UserInputError(f"Option {choice.value} is not available")

        folder = None
        if choice in (MenuChoice.DELETE_FOLDER_RECURSIVE, MenuChoice.IGNORE_FOLDER_RECURSIVE):
            folder = input("Folder: ")
        return Decision(choice=choice, folder=folder)


def available_choices(
    left_action: FolderAction | None, right_action: FolderAction | None
) -> list[MenuChoice]:
    """Menu entries for a pair given the policies of its two directories."""
    choices: list[MenuChoice] = []
    if left_action is not FolderAction.SKIP_ALL:
        choices.extend(LEFT_CHOICES)
    if right_action is not FolderAction.SKIP_ALL:
        choices.extend(RIGHT_CHOICES)
    if choices:
        choices.extend(COMMON_CHOICES)
    return choices


class ResolutionEngine:
    """Drives the per-pair decision loop of a duplicates session.

    A pair whose two directories are both skipped is still shown, but no
    menu is offered and nothing is asked.
    """

    def __init__(self, prompt: Prompt, policies: FolderPolicies | None = None):
        self.prompt = prompt
        self.policies = policies if policies is not None else FolderPolicies()
        self.summary = ResolutionSummary()

    def run(self, pairs: Iterable[DuplicatePair]) -> ResolutionSummary:
        """Resolve every pair in turn. End of input stops the session early."""
        self.summary = ResolutionSummary()
        for pair in pairs:
            self.summary.pairs_seen += 1
            try:
                self.resolve(pair)
            except UserInputError as e:
                logger.warning(f"{e}; moving to next file")
                self.summary.skipped += 1
            except EOFError:
                logger.info("Input closed, ending duplicates session")
                break
        return self.summary

    def resolve(self, pair: DuplicatePair) -> None:
        left_dir = pair.left.directory
        right_dir = pair.right.directory
        left_action = self.policies.get(left_dir)
        right_action = self.policies.get(right_dir)

        if left_action is FolderAction.DELETE_ALL:
            self._delete(left_dir, pair.name)
            return
        if right_action is FolderAction.DELETE_ALL:
            self._delete(right_dir, pair.name)
            return

        available = available_choices(left_action, right_action)
        if not available:
            self.prompt.show(pair)
            self.summary.skipped += 1
            return

        self.summary.prompted += 1
        decision = self.prompt.present(pair, available)
        if decision.choice not in available:
            raise UserInputError(f"Option {decision.choice.value} is not available")
        self._apply(pair, decision)

    def _apply(self, pair: DuplicatePair, decision: Decision) -> None:
        left_dir = pair.left.directory
        right_dir = pair.right.directory
        choice = decision.choice

        if choice is MenuChoice.DO_NOTHING:
            self.summary.skipped += 1
        elif choice is MenuChoice.IGNORE_FOLDER_RECURSIVE:
            self._put_folder(decision.folder, FolderAction.SKIP_ALL_RECURSIVE)
        elif choice is MenuChoice.DELETE_FOLDER_RECURSIVE:
            folder = self._put_folder(decision.folder, FolderAction.DELETE_ALL_RECURSIVE)
            if folder is not None:
                if is_same_or_descendant(left_dir, folder):
                    self._delete(left_dir, pair.name)
                elif is_same_or_descendant(right_dir, folder):
                    self._delete(right_dir, pair.name)
        elif choice is MenuChoice.DELETE_ALL_LEFT:
            self.policies.put(left_dir, FolderAction.DELETE_ALL)
            self._delete(left_dir, pair.name)
        elif choice is MenuChoice.DELETE_LEFT:
            self._delete(left_dir, pair.name)
        elif choice is MenuChoice.DELETE_ALL_RIGHT:
            self.policies.put(right_dir, FolderAction.DELETE_ALL)
            self._delete(right_dir, pair.name)
        elif choice is MenuChoice.DELETE_RIGHT:
            self._delete(right_dir, pair.name)
        elif choice is MenuChoice.SKIP_ALL_LEFT:
            self.policies.put(left_dir, FolderAction.SKIP_ALL)
        elif choice is MenuChoice.SKIP_ALL_RIGHT:
            self.policies.put(right_dir, FolderAction.SKIP_ALL)

    def _put_folder(self, folder: str | None, action: FolderAction) -> str | None:
        if folder is None:
            raise UserInputError("No folder given")
        normalized = self.policies.put(folder, action)
        if normalized is None:
            raise UserInputError(f"Not an existing directory: {folder.strip()!r}")
        return normalized

    def _delete(self, directory: str, name: str) -> None:
        file_deleted, directory_removed = delete_file_and_empty_dir(directory, name)
        if file_deleted:
            self.summary.files_deleted += 1
        if directory_removed:
            self.summary.directories_removed += 1
