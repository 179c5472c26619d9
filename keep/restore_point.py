"""Restore points and their text records.

A record is line-oriented:

    <location>
    <timestamp, integer epoch seconds>
    [<layout or "-">]           attested records only
    <K objects>
    <object line 1>
    ...

An object line is the bare path in legacy records, or "<digest> <path>" in
attested records. Legacy objects are rebuilt by hashing whatever is on disk
at load time.
"""

from datetime import datetime, timezone
from pathlib import Path

from keep.checksum import DIGEST_LENGTH
from keep.errors import InvalidPathError, StateFormatError
from keep.objects import BackupObject

NO_LAYOUT = "-"


class RestorePoint:
    """Immutable snapshot: the objects it captured, where they were stored, and when."""

    __slots__ = ("_objects", "_location", "_timestamp", "_layout")

    def __init__(self, objects, location, timestamp, layout=None):
        objects = tuple(objects)
        if not objects:
            raise InvalidPathError("A restore point needs at least one object")
        if location is None or str(location) == "":
            raise InvalidPathError("Restore point location must not be empty")
        self._objects = objects
        self._location = Path(location)
        self._timestamp = timestamp
        self._layout = layout

    @property
    def objects(self):
        return self._objects

    @property
    def location(self):
        return self._location

    @property
    def timestamp(self):
        return self._timestamp

    @property
    def layout(self):
        """Name of the storage strategy that wrote this point, or None if unknown."""
        return self._layout

    def verify_integrity(self):
        """True if every object still matches its digest. Stops at the first mismatch."""
        for obj in self._objects:
            if not obj.verify_checksum():
                return False
        return True

    def broken_objects(self):
        """Every object that fails verification, in order."""
        return [obj for obj in self._objects if not obj.verify_checksum()]

    def serialize(self, stream, attested=True):
        stream.write(f"{_check_line(str(self._location))}\n")
        stream.write(f"{int(self._timestamp.timestamp())}\n")
        if attested:
            stream.write(f"{self._layout or NO_LAYOUT}\n")
        stream.write(f"{len(self._objects)}\n")
        for obj in self._objects:
            stream.write(object_line(obj, attested) + "\n")

    @classmethod
    def deserialize(cls, stream, attested=True, shared=None):
        """Read one record. `shared` maps (path, digest) to objects already loaded, so
        the same file captured by several points is one BackupObject."""
        if shared is None:
            shared = {}
        location = read_line(stream, "restore point location")
        timestamp = datetime.fromtimestamp(read_int(stream, "restore point timestamp"), tz=timezone.utc)
        layout = None
        if attested:
            layout = read_line(stream, "restore point layout")
            if layout == NO_LAYOUT:
                layout = None
        count = read_int(stream, "restore point object count")
        if not location or count == 0:
            raise StateFormatError(f"Restore point record at {location!r} has no location or no objects")
        objects = [
            intern_object(parse_object_line(read_line(stream, "object path"), attested), shared)
            for _ in range(count)
        ]
        return cls(objects, location, timestamp, layout=layout)

    def __repr__(self):
        return (f"RestorePoint({str(self._location)!r}, {self._timestamp.isoformat()}, "
                f"{len(self._objects)} objects)")


# ------------------------------------------------------------------
# Line helpers shared with keep.state
# ------------------------------------------------------------------

def _check_line(value):
    if "\n" in value or "\r" in value:
        raise StateFormatError(f"Paths containing newlines can't be saved: {value!r}")
    return value


def object_line(obj, attested):
    path = _check_line(str(obj.path))
    if attested:
        return f"{obj.stored_digest} {path}"
    return path


def parse_object_line(line, attested):
    """Build a BackupObject from one object line.

    Legacy lines hash the file now, so a missing file raises OSError.
    """
    try:
        if not attested:
            return BackupObject(line)
        digest, sep, path = line[:DIGEST_LENGTH], line[DIGEST_LENGTH:DIGEST_LENGTH + 1], line[DIGEST_LENGTH + 1:]
        if sep != " ":
            raise StateFormatError(f"Malformed object line: {line!r}")
        return BackupObject.attested(path, digest)
    except InvalidPathError as e:
        raise StateFormatError(f"Bad object line {line!r}: {e}") from e


def intern_object(obj, shared):
    return shared.setdefault((obj.path, obj.stored_digest), obj)


def read_line(stream, what):
    line = stream.readline()
    if not line:
        raise StateFormatError(f"Unexpected end of state file reading {what}")
    return line.rstrip("\n")


def read_int(stream, what):
    line = read_line(stream, what)
    try:
        value = int(line)
    except ValueError:
        raise StateFormatError(f"Expected integer for {what}, got {line!r}")
    if value < 0:
        raise StateFormatError(f"Negative {what}: {value}")
    return value
