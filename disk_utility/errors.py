"""
Exception hierarchy for the disk utility.
"""


class DiskUtilityError(Exception):
    """Base class for every error raised by the disk utility."""


class StorageError(DiskUtilityError):
    """Raised when the mirror database rejects or misreports an operation."""


class ConstraintViolation(StorageError):
    """An insert broke a uniqueness or reference rule of the mirror."""


class IntegrityError(StorageError):
    """A delete affected an unexpected number of rows.

    This means the mirror no longer matches what the caller believed it
    contained, usually because it was changed behind our back.
    """


class FilesystemAccessError(DiskUtilityError):
    """An entry of the real filesystem could not be read or listed."""

    def __init__(self, path: str, reason: str):
        super().__init__(f"{path}: {reason}")
        self.path = path
        self.reason = reason


class UserInputError(DiskUtilityError):
    """Malformed input from the user, either interactive or on the command line."""


class UnknownCommand(DiskUtilityError):
    def __init__(self, name: str):
        super().__init__(f"Unknown command: {name}")
        self.name = name
