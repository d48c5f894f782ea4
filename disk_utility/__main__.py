"""
Allow running the disk utility with ``python -m disk_utility``.
"""

from . import cli


def main() -> None:
    raise SystemExit(cli.main())


if __name__ == "__main__":
    main()
