"""
Removal of a mirrored directory and everything below it.
"""

import logging
import os
from collections.abc import Callable

from .storage import Storage

logger = logging.getLogger(__name__)


class SubtreeEraser:
    """Deletes a mirrored directory subtree: files first, directories bottom-up."""

    def __init__(
        self,
        storage: Storage,
        progress_callback: Callable[[int], None] | None = None,
        progress_interval: int = 200,
    ):
        """
        Args:
            storage: Mirror to delete from
            progress_callback: Called with the running deletion count every
                ``progress_interval`` deleted directories
            progress_interval: How often ``progress_callback`` fires
        """
        self.storage = storage
        self.progress_callback = progress_callback
        self.progress_interval = progress_interval
        self.deleted_directories = 0

    def erase_subtree(self, path: str) -> int | None:
        """
        Erase the mirror of ``path`` and all its descendants.

        The transaction is committed before and after the erase. An
        interrupted erase leaves a partial subtree that a later erase of the
        same path completes.

        Returns:
            The parent id of the erased node, or None when the node was a
            root or was not mirrored at all

        Raises:
            IntegrityError: if a directory row vanished underneath us
        """
        canonical = os.path.realpath(path)
        self.storage.commit()

        node = self.storage.find_directory_by_path(canonical)
        if node is None:
            return None

        logger.debug(f"Erasing mirrored subtree {canonical} (id {node.id})")
        self._erase_from(node.id)
        self.storage.commit()
        return node.parent_id

    def _erase_from(self, root_id: int) -> None:
        # Post-order walk with an explicit stack; a node is deleted only on
        # its second visit, after all of its children are gone.
        stack: list[tuple[int, bool]] = [(root_id, False)]
        while stack:
            dir_id, children_done = stack.pop()
            if children_done:
                self.storage.delete_child_directories_of(dir_id)
                self.storage.delete_directory(dir_id)
                self._count_deletion()
                continue

            self.storage.delete_files_of_directory(dir_id)
            stack.append((dir_id, True))
            for child in self.storage.list_child_directories(dir_id):
                stack.append((child.id, False))

    def _count_deletion(self) -> None:
        self.deleted_directories += 1
        if (
            self.progress_callback is not None
            and self.deleted_directories % self.progress_interval == 0
        ):
            self.progress_callback(self.deleted_directories)
