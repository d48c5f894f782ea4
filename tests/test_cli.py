"""
Tests for the disk_utility.cli and disk_utility.commands modules.
"""

import os
import shutil
import tempfile
from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest

from disk_utility.cli import build_parser, main
from disk_utility.commands import (
    COMMANDS,
    CommandContext,
    dispatch,
    parse_duplicates_args,
)
from disk_utility.errors import ConstraintViolation, UnknownCommand, UserInputError
from disk_utility.storage import Storage
from disk_utility.utils import MEGABYTE


class TestParser:
    """Test cases for argument parsing."""

    def test_commands_keep_their_order(self):
        """Chained commands are queued in the order given."""
        args = build_parser().parse_args(
            ["--updateDb", "/a", "/b", "--usage", "5", "--locate", "x"]
        )
        assert args.commands == [
            ("updateDb", ["/a", "/b"]),
            ("usage", ["5"]),
            ("locate", ["x"]),
        ]

    def test_command_without_arguments(self):
        args = build_parser().parse_args(["--prepareDb"])
        assert args.commands == [("prepareDb", [])]

    def test_global_options(self):
        args = build_parser().parse_args(["--db", "x.duckdb", "--log-level", "debug"])
        assert args.db == "x.duckdb"
        assert args.log_level == "DEBUG"
        assert args.commands == []

    def test_unknown_option_rejected(self):
        """Unknown commands stop the parser before anything runs."""
        with pytest.raises(SystemExit) as exc_info:
            build_parser().parse_args(["--frobnicate"])
        assert exc_info.value.code == 2

    def test_abbreviations_not_accepted(self):
        with pytest.raises(SystemExit):
            build_parser().parse_args(["--dup"])


class TestDispatch:
    """Test cases for the command table."""

    def test_table_has_all_commands(self):
        assert set(COMMANDS) == {
            "prepareDb",
            "updateDb",
            "locate",
            "duplicates",
            "usage",
            "stats",
            "help",
        }

    def test_unknown_command(self):
        with pytest.raises(UnknownCommand):
            dispatch(CommandContext(), "explode", [])

    def test_help_needs_no_storage(self, capsys):
        dispatch(CommandContext(), "help", [])
        out = capsys.readouterr().out
        for name in COMMANDS:
            assert f"--{name}" in out

    def test_update_db_requires_directory(self):
        context = CommandContext(storage=MagicMock())
        with pytest.raises(UserInputError):
            dispatch(context, "updateDb", [])

    def test_usage_rejects_non_numeric(self):
        context = CommandContext(storage=MagicMock())
        with pytest.raises(UserInputError):
            dispatch(context, "usage", ["lots"])

    def test_parse_duplicates_args(self):
        assert parse_duplicates_args([]) == (0, [])
        assert parse_duplicates_args(["2", "mp3", "avi"]) == (2 * MEGABYTE, [".mp3", ".avi"])
        assert parse_duplicates_args(["mp3"]) == (0, [".mp3"])
        assert parse_duplicates_args(["0.5"]) == (MEGABYTE // 2, [])


class TestMain:
    """End-to-end runs of the command-line entry point."""

    def setup_method(self):
        self.temp_dir = tempfile.mkdtemp()
        self.db_path = str(Path(self.temp_dir) / "cli.duckdb")
        self.data_dir = os.path.realpath(tempfile.mkdtemp())
        root = Path(self.data_dir)
        (root / "a").mkdir()
        (root / "b").mkdir()
        (root / "a" / "x.txt").write_bytes(b"0123456789")
        (root / "b" / "x.txt").write_bytes(b"0123456789")
        (root / "a" / "y.txt").write_bytes(b"01234")

    def teardown_method(self):
        shutil.rmtree(self.temp_dir, ignore_errors=True)
        shutil.rmtree(self.data_dir, ignore_errors=True)

    def test_no_command_shows_help(self, capsys):
        """Without commands the help is printed and no database is created."""
        assert main(["--db", self.db_path]) == 0
        assert "--updateDb" in capsys.readouterr().out
        assert not os.path.exists(self.db_path)

    def test_help_flag(self, capsys):
        assert main(["--help"]) == 0
        assert "--duplicates" in capsys.readouterr().out

    def test_update_then_locate(self, capsys):
        """Indexing and querying can be chained in one invocation."""
        code = main(
            ["--db", self.db_path, "--updateDb", self.data_dir, "--locate", "X.TXT"]
        )
        out = capsys.readouterr().out

        assert code == 0
        assert f"Total files in {self.data_dir}: 3. [OK]" in out
        assert os.path.join(self.data_dir, "a", "x.txt") in out
        assert os.path.join(self.data_dir, "b", "x.txt") in out
        assert "y.txt" not in out

    def test_usage_output(self, capsys):
        main(["--db", self.db_path, "--updateDb", self.data_dir])
        capsys.readouterr()

        assert main(["--db", self.db_path, "--usage"]) == 0
        out = capsys.readouterr().out
        assert os.path.join(self.data_dir, "a") in out
        assert "Query covered 100.0% out of all files." in out

    def test_stats_output(self, capsys):
        main(["--db", self.db_path, "--updateDb", self.data_dir, "--stats"])
        out = capsys.readouterr().out
        assert "Total files: 3" in out
        assert "Total directories: 3" in out

    def test_duplicates_session(self, capsys):
        """The interactive session deletes the chosen copy."""
        main(["--db", self.db_path, "--updateDb", self.data_dir])

        with patch("builtins.input", side_effect=["4"]):
            code = main(["--db", self.db_path, "--duplicates", "0", "txt"])

        assert code == 0
        copies = [
            os.path.join(self.data_dir, "a", "x.txt"),
            os.path.join(self.data_dir, "b", "x.txt"),
        ]
        assert sum(os.path.exists(copy) for copy in copies) == 1
        out = capsys.readouterr().out
        assert "File: x.txt" in out
        assert "Pairs: 1, deleted files: 1" in out

    def test_failed_command_does_not_stop_the_next(self, capsys):
        """A failing command is reported and later commands still run."""
        code = main(
            ["--db", self.db_path, "--usage", "lots", "--updateDb", self.data_dir]
        )
        assert code == 1
        with Storage(self.db_path) as storage:
            assert storage.count_files() == 3

    def test_storage_error_aborts_only_that_command(self, capsys):
        """A rejected insert rolls the run back; later commands use the same connection."""
        other_dir = os.path.realpath(tempfile.mkdtemp())
        Path(other_dir, "z.bin").write_bytes(b"z" * 20)
        real_insert = Storage.insert_directory
        calls = []

        def insert_directory(storage, dir_id, path, parent_id):
            calls.append(path)
            if len(calls) == 1:
                raise ConstraintViolation(f"Directory already mirrored: {path}")
            return real_insert(storage, dir_id, path, parent_id)

        try:
            with patch.object(
                Storage, "insert_directory", autospec=True, side_effect=insert_directory
            ):
                code = main(
                    [
                        "--db",
                        self.db_path,
                        "--updateDb",
                        self.data_dir,
                        "--updateDb",
                        other_dir,
                        "--stats",
                    ]
                )
            out = capsys.readouterr().out

            assert code == 1
            assert "Total files: 1" in out
            with Storage(self.db_path) as storage:
                assert storage.find_directory_by_path(self.data_dir) is None
                assert storage.find_directory_by_path(other_dir) is not None
                assert storage.count_directories() == 1
                assert storage.count_files() == 1
        finally:
            shutil.rmtree(other_dir, ignore_errors=True)

    def test_failed_index_run_is_repaired_by_next_run(self, capsys):
        """Rows left by a run that failed midway are replaced by the next run."""
        real_insert = Storage.insert_directory
        calls = []

        def insert_directory(storage, dir_id, path, parent_id):
            calls.append(path)
            if len(calls) == 2:
                raise ConstraintViolation(f"Directory already mirrored: {path}")
            return real_insert(storage, dir_id, path, parent_id)

        with patch.object(
            Storage, "insert_directory", autospec=True, side_effect=insert_directory
        ):
            code = main(
                [
                    "--db",
                    self.db_path,
                    "--updateDb",
                    self.data_dir,
                    "--updateDb",
                    self.data_dir,
                    "--stats",
                ]
            )
        out = capsys.readouterr().out

        assert code == 1
        assert "Total directories: 3" in out
        assert "Total files: 3" in out
        with Storage(self.db_path) as storage:
            ids = {node.id for node in storage.list_directories()}
            rows = storage.conn.execute("SELECT DirectoryRef FROM Files").fetchall()
            assert len(rows) == 3
            assert all(row[0] in ids for row in rows)

    def test_undecodable_names_do_not_stop_the_run(self, capsys):
        """Entries whose names are not UTF-8 are skipped and later commands still run."""
        root = os.fsencode(self.data_dir)
        try:
            with open(os.path.join(root, b"bad\xff.txt"), "wb") as f:
                f.write(b"data")
        except OSError:
            pytest.skip("filesystem rejects names that are not UTF-8")

        code = main(["--db", self.db_path, "--updateDb", self.data_dir, "--stats"])
        out = capsys.readouterr().out

        assert code == 0
        assert f"Total files in {self.data_dir}: 3. [OK]" in out
        assert "Total files: 3" in out

    def test_prepare_db(self, capsys):
        main(["--db", self.db_path, "--updateDb", self.data_dir])
        assert main(["--db", self.db_path, "--prepareDb"]) == 0
        with Storage(self.db_path) as storage:
            assert storage.count_directories() == 0

    @patch("disk_utility.cli.Storage")
    def test_storage_closed_on_unexpected_error(self, mock_storage_class):
        """The connection is released even when a handler blows up."""
        mock_storage = MagicMock()
        mock_storage_class.return_value = mock_storage

        with patch.dict(
            COMMANDS,
            {"stats": COMMANDS["stats"]._replace(handler=MagicMock(side_effect=RuntimeError))},
        ):
            with pytest.raises(RuntimeError):
                main(["--db", self.db_path, "--stats"])

        mock_storage.close.assert_called_once()


if __name__ == "__main__":
    pytest.main([__file__])
