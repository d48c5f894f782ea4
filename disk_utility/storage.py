"""
DuckDB-backed mirror of directory trees and their files.
"""

import logging
from collections.abc import Generator, Sequence
from typing import Any

import duckdb

from .errors import ConstraintViolation, IntegrityError
from .models import DirectoryNode, FileRecord

logger = logging.getLogger(__name__)

SCHEMA_STATEMENTS = [
    """
    CREATE TABLE IF NOT EXISTS Directories (
        ID INTEGER PRIMARY KEY,
        DirPath VARCHAR NOT NULL UNIQUE,
        ParentID INTEGER  -- NULL for roots
    )
    """,
    "CREATE SEQUENCE IF NOT EXISTS files_id_seq START 1",
    """
    CREATE TABLE IF NOT EXISTS Files (
        ID BIGINT PRIMARY KEY DEFAULT nextval('files_id_seq'),
        DirectoryRef INTEGER NOT NULL,
        FileName VARCHAR NOT NULL,
        NameHash INTEGER,
        Size BIGINT NOT NULL
    )
    """,
    "CREATE INDEX IF NOT EXISTS FileNameHashIDX ON Files(NameHash)",
    "CREATE INDEX IF NOT EXISTS FileSizeIDX ON Files(Size)",
    "CREATE INDEX IF NOT EXISTS FileDirectoryIDX ON Files(DirectoryRef)",
    "CREATE INDEX IF NOT EXISTS DirParentIDX ON Directories(ParentID)",
]

DROP_STATEMENTS = [
    "DROP TABLE IF EXISTS Files",
    "DROP TABLE IF EXISTS Directories",
    "DROP SEQUENCE IF EXISTS files_id_seq",
]


class Storage:
    """
    Single-writer access to the mirror database.

    One instance owns one DuckDB connection for the lifetime of a command
    invocation. Writes open a transaction lazily; the caller decides when
    to commit. File inserts are buffered and sent with ``flush_file_batch``.
    """

    def __init__(self, db_path: str = "disk_utility.duckdb"):
        """
        Open (and create if needed) the mirror database.

        Args:
            db_path: Path to the DuckDB database file, or ``:memory:``
        """
        self.db_path = db_path
        self.conn = duckdb.connect(db_path)
        self._in_transaction = False
        self._pending_files: list[tuple[int, str, int, int]] = []
        self._create_tables()
        logger.debug(f"Connected to database: {db_path}")

    def __enter__(self) -> "Storage":
        return self

    def __exit__(self, exc_type: Any, exc: Any, tb: Any) -> None:
        self.close()

    def _create_tables(self) -> None:
        """Create the mirror tables if they don't exist."""
        for statement in SCHEMA_STATEMENTS:
            self.conn.execute(statement)

    def prepare(self) -> None:
        """Drop and recreate both tables. Everything indexed so far is lost."""
        self.rollback()
        for statement in DROP_STATEMENTS:
            self.conn.execute(statement)
        self._create_tables()
        logger.info(f"Recreated mirror tables in {self.db_path}")

    def close(self) -> None:
        """Commit whatever is open and release the connection."""
        if self.conn is None:
            return
        try:
            self.commit()
        except duckdb.Error as e:
            # the transaction was already aborted by an earlier failure
            logger.error(f"Commit on close failed, changes rolled back: {e}")
        finally:
            self.conn.close()
            self.conn = None
            logger.debug("Disconnected from database")

    # -- transactions -----------------------------------------------------

    def _ensure_transaction(self) -> None:
        if not self._in_transaction:
            self.conn.execute("BEGIN TRANSACTION")
            self._in_transaction = True

    def begin_index_run(self) -> None:
        """Start the first transaction of an index run."""
        self._pending_files = []
        self._ensure_transaction()

    def commit(self) -> None:
        """Commit the open transaction, if any. Buffered files are not flushed."""
        if self._in_transaction:
            self.conn.execute("COMMIT")
            self._in_transaction = False

    def rollback(self) -> None:
        """Roll back the open transaction and drop buffered file inserts."""
        self._pending_files = []
        if self._in_transaction:
            self._in_transaction = False
            self.conn.execute("ROLLBACK")

    def _execute_count(self, sql: str, params: Sequence[Any]) -> int:
        """Run a DML statement and return the number of affected rows."""
        self._ensure_transaction()
        row = self.conn.execute(sql, list(params)).fetchone()
        return int(row[0]) if row else 0

    # -- directories ------------------------------------------------------

    def next_directory_id(self) -> int:
        """Return ``max(ID) + 1`` or 0 for an empty mirror. Single writer only."""
        row = self.conn.execute("SELECT MAX(ID) FROM Directories").fetchone()
        if not row or row[0] is None:
            return 0
        return int(row[0]) + 1

    def insert_directory(self, dir_id: int, path: str, parent_id: int | None) -> None:
        """
        Insert a directory node.

        Raises:
            ConstraintViolation: if the path or id is already taken or the
                parent does not exist
        """
        self._ensure_transaction()
        if parent_id is not None:
            parent = self.conn.execute(
                "SELECT 1 FROM Directories WHERE ID = ?", [parent_id]
            ).fetchone()
            if parent is None:
                raise ConstraintViolation(
                    f"Parent directory {parent_id} of {path} does not exist"
                )
        try:
            self.conn.execute(
                "INSERT INTO Directories (ID, DirPath, ParentID) VALUES (?, ?, ?)",
                [dir_id, path, parent_id],
            )
        except duckdb.ConstraintException as e:
            raise ConstraintViolation(
                f"Cannot insert directory {dir_id} ({path}): {e}"
            ) from e

    def find_directory_by_path(self, path: str) -> DirectoryNode | None:
        row = self.conn.execute(
            "SELECT ID, DirPath, ParentID FROM Directories WHERE DirPath = ?", [path]
        ).fetchone()
        if row is None:
            return None
        return DirectoryNode(id=row[0], path=row[1], parent_id=row[2])

    def list_child_directories(self, parent_id: int) -> list[DirectoryNode]:
        rows = self.conn.execute(
            "SELECT ID, DirPath, ParentID FROM Directories WHERE ParentID = ? ORDER BY ID",
            [parent_id],
        ).fetchall()
        return [DirectoryNode(id=r[0], path=r[1], parent_id=r[2]) for r in rows]

    def list_directories(self) -> list[DirectoryNode]:
        rows = self.conn.execute(
            "SELECT ID, DirPath, ParentID FROM Directories ORDER BY ID"
        ).fetchall()
        return [DirectoryNode(id=r[0], path=r[1], parent_id=r[2]) for r in rows]

    def delete_files_of_directory(self, dir_id: int) -> int:
        return self._execute_count("DELETE FROM Files WHERE DirectoryRef = ?", [dir_id])

    def delete_child_directories_of(self, parent_id: int) -> int:
        return self._execute_count(
            "DELETE FROM Directories WHERE ParentID = ?", [parent_id]
        )

    def delete_directory(self, dir_id: int) -> int:
        """
        Delete one directory row.

        Raises:
            IntegrityError: if the statement did not remove exactly one row
        """
        affected = self._execute_count("DELETE FROM Directories WHERE ID = ?", [dir_id])
        if affected != 1:
            raise IntegrityError(
                f"Deleting directory {dir_id} affected {affected} rows, expected 1"
            )
        return affected

    # -- files ------------------------------------------------------------

    def insert_file_batched(
        self, dir_id: int, name: str, size: int, hash_value: int
    ) -> None:
        """Buffer a file insert until the next ``flush_file_batch``."""
        self._pending_files.append((dir_id, name, size, hash_value))

    @property
    def pending_file_count(self) -> int:
        return len(self._pending_files)

    def flush_file_batch(self) -> int:
        """
        Send buffered file inserts to the database.

        Returns:
            Number of file rows inserted

        Raises:
            ConstraintViolation: if a buffered file references a missing directory
        """
        if not self._pending_files:
            return 0

        batch = self._pending_files
        self._pending_files = []
        self._ensure_transaction()

        dir_ids = sorted({dir_id for dir_id, _name, _size, _hash in batch})
        placeholders = ",".join(["?"] * len(dir_ids))
        found = self.conn.execute(
            f"SELECT ID FROM Directories WHERE ID IN ({placeholders})", dir_ids
        ).fetchall()
        missing = set(dir_ids) - {row[0] for row in found}
        if missing:
            raise ConstraintViolation(
                f"Files reference missing directories: {sorted(missing)}"
            )

        self.conn.executemany(
            "INSERT INTO Files (DirectoryRef, FileName, Size, NameHash) VALUES (?, ?, ?, ?)",
            batch,
        )
        return len(batch)

    def list_files_of_directory(self, dir_id: int) -> list[FileRecord]:
        rows = self.conn.execute(
            """
            SELECT ID, DirectoryRef, FileName, Size, NameHash
            FROM Files WHERE DirectoryRef = ? ORDER BY ID
            """,
            [dir_id],
        ).fetchall()
        return [
            FileRecord(id=r[0], directory_id=r[1], name=r[2], size=r[3], name_hash=r[4])
            for r in rows
        ]

    # -- queries used by reports ------------------------------------------

    def iter_duplicate_rows(
        self,
        min_size_bytes: int,
        suffixes: Sequence[str] = (),
        fetch_size: int = 1000,
    ) -> Generator[tuple, None, None]:
        """
        Stream pairs of files sharing name and size, ``f1.ID < f2.ID``.

        Yields rows of (left_dir, name, size, left_id, left_dir_id,
        right_dir, right_id, right_dir_id).
        """
        query = """
            SELECT d1.DirPath, f1.FileName, f1.Size, f1.ID, f1.DirectoryRef,
                   d2.DirPath, f2.ID, f2.DirectoryRef
            FROM Files f1
            INNER JOIN Files f2
                ON f1.Size = f2.Size AND f1.FileName = f2.FileName AND f1.ID < f2.ID
            INNER JOIN Directories d1 ON d1.ID = f1.DirectoryRef
            INNER JOIN Directories d2 ON d2.ID = f2.DirectoryRef
            WHERE f1.Size > ?
        """
        params: list[Any] = [min_size_bytes]
        if suffixes:
            query += " AND (" + " OR ".join(["suffix(f1.FileName, ?)"] * len(suffixes)) + ")"
            params.extend(suffixes)
        query += " ORDER BY f1.ID, f2.ID"

        cursor = self.conn.cursor()
        try:
            cursor.execute(query, params)
            while True:
                batch = cursor.fetchmany(fetch_size)
                if not batch:
                    break
                yield from batch
        finally:
            cursor.close()

    def locate(self, fragments: Sequence[str]) -> list[tuple[str, str]]:
        """Return (directory, name) of files whose lowercased name contains all fragments."""
        query = """
            SELECT d.DirPath, f.FileName
            FROM Files f INNER JOIN Directories d ON d.ID = f.DirectoryRef
            WHERE 1=1
        """
        params = []
        for fragment in fragments:
            query += " AND contains(lower(f.FileName), ?)"
            params.append(fragment.lower())
        query += " ORDER BY d.DirPath, f.FileName"
        return [(row[0], row[1]) for row in self.conn.execute(query, params).fetchall()]

    def directory_sizes(self, min_size_bytes: int = 0) -> list[tuple[str, int]]:
        """Return (directory, summed file size) for directories at or above the threshold."""
        rows = self.conn.execute(
            """
            SELECT d.DirPath, s.Total
            FROM (
                SELECT DirectoryRef, SUM(Size) AS Total FROM Files GROUP BY DirectoryRef
            ) s
            INNER JOIN Directories d ON d.ID = s.DirectoryRef
            WHERE s.Total >= ?
            ORDER BY s.Total DESC, d.DirPath
            """,
            [min_size_bytes],
        ).fetchall()
        return [(row[0], int(row[1])) for row in rows]

    def total_size(self) -> int:
        row = self.conn.execute("SELECT COALESCE(SUM(Size), 0) FROM Files").fetchone()
        return int(row[0]) if row else 0

    def count_files(self) -> int:
        row = self.conn.execute("SELECT COUNT(*) FROM Files").fetchone()
        return int(row[0]) if row else 0

    def count_directories(self, roots_only: bool = False) -> int:
        query = "SELECT COUNT(*) FROM Directories"
        if roots_only:
            query += " WHERE ParentID IS NULL"
        row = self.conn.execute(query).fetchone()
        return int(row[0]) if row else 0
