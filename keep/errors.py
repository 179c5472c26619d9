"""Error types raised by the backup core.

Every failure kind has its own class so callers can tell them apart without
parsing messages. Where a builtin exception means the same thing it is mixed
in, so `except ValueError` / `except FileNotFoundError` keep working.
Plain filesystem failures are left as OSError.
"""


class KeepError(Exception):
    """Base class for every error raised by keep."""


class InvalidPathError(KeepError, ValueError):
    """Path is empty or not absolute."""


class DuplicateObjectError(KeepError):
    """Path is already tracked by the job."""


class ObjectNotFoundError(KeepError, LookupError):
    """Path is not tracked by the job."""


class MissingFileError(KeepError, FileNotFoundError):
    """A tracked file vanished before it could be stored."""


class NothingToBackUpError(KeepError):
    """Restore point requested with no tracked objects."""


class IntegrityError(KeepError):
    """A restore point's files no longer match their recorded digests."""


class OperationCancelled(KeepError):
    """Cancellation was observed between two units of work."""


class SnapshotError(KeepError):
    """Storage backend failed while writing a restore point."""


class StateFormatError(KeepError, ValueError):
    """Job-state file is malformed or a value can't be written to it."""
