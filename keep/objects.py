import os
from pathlib import Path

from keep.checksum import file_digest, is_digest
from keep.errors import InvalidPathError


def _validate_path(path):
    if path is None or str(path) == "":
        raise InvalidPathError("Path must not be empty")
    path = Path(path)
    if not path.is_absolute():
        raise InvalidPathError(f"Absolute path required: {path}")
    return path


class BackupObject:
    """A tracked file plus the digest taken when it was registered.

    The digest is an attestation frozen at construction time. It is never
    refreshed, so verify_checksum() answers "is the file still the one we
    saw?" rather than "is the file readable?".
    """

    __slots__ = ("_path", "_stored_digest")

    def __init__(self, path):
        self._path = _validate_path(path)
        self._stored_digest = file_digest(self._path)

    @classmethod
    def attested(cls, path, digest):
        """Rebuild an object from a persisted (path, digest) pair without reading the file."""
        if not is_digest(digest):
            raise InvalidPathError(f"Not a SHA-256 hex digest for {path}: {digest!r}")
        obj = cls.__new__(cls)
        obj._path = _validate_path(path)
        obj._stored_digest = digest
        return obj

    @property
    def path(self):
        return self._path

    @property
    def name(self):
        return self._path.name

    @property
    def stored_digest(self):
        return self._stored_digest

    def exists(self):
        """True if the file is present. Errors other than "not found" propagate."""
        try:
            os.stat(self._path)
        except FileNotFoundError:
            return False
        except NotADirectoryError:
            return False
        return True

    def verify_checksum(self):
        if not self.exists():
            return False
        try:
            return file_digest(self._path) == self._stored_digest
        except FileNotFoundError:
            return False  # removed between the stat and the read

    def __repr__(self):
        return f"BackupObject({str(self._path)!r}, digest={self._stored_digest[:12]})"
