"""Job-state file: every tracked path plus the full restore-point history.

Two formats are read and written:

  legacy    <N> / N paths / <M> / M restore point records
  attested  "keep-state 2" header, then the same layout with "<digest> <path>"
            object lines and a layout line in each record

The attested format keeps the digests taken at registration, so tampering is
still detected after a restart. The legacy format only has paths and every
digest is recomputed from disk on load.
"""

import os
import tempfile
from pathlib import Path

from keep.errors import StateFormatError
from keep.restore_point import (
    RestorePoint,
    intern_object,
    object_line,
    parse_object_line,
    read_int,
    read_line,
)

HEADER = "keep-state 2"


def write_state(path, objects, restore_points, attested=True):
    """Write objects and restore points to path, replacing it atomically."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    # One temp file per writer, so concurrent saves never share a file.
    with tempfile.NamedTemporaryFile(
        "w", encoding="utf-8", newline="\n", dir=path.parent,
        prefix=path.name + ".", suffix=".tmp", delete=False,
    ) as f:
        tmp_path = Path(f.name)
        try:
            if attested:
                f.write(HEADER + "\n")
            f.write(f"{len(objects)}\n")
            for obj in objects:
                f.write(object_line(obj, attested) + "\n")
            f.write(f"{len(restore_points)}\n")
            for point in restore_points:
                point.serialize(f, attested=attested)
        except BaseException:
            f.close()
            tmp_path.unlink(missing_ok=True)
            raise
    try:
        os.replace(tmp_path, path)
    except BaseException:
        tmp_path.unlink(missing_ok=True)
        raise


def read_state(path):
    """Parse a state file. Returns (objects, restore_points, attested).

    Raises StateFormatError on malformed content and OSError if the file
    (or, for legacy files, a tracked file) can't be read.
    """
    shared = {}
    with open(path, "r", encoding="utf-8", newline="\n") as f:
        first = f.readline()
        attested = first.rstrip("\n") == HEADER
        if attested:
            count = read_int(f, "object count")
        else:
            count = _parse_count(first)

        objects = []
        seen = set()
        for _ in range(count):
            obj = intern_object(parse_object_line(read_line(f, "object path"), attested), shared)
            if obj.path in seen:
                raise StateFormatError(f"Duplicate tracked path in state file: {obj.path}")
            seen.add(obj.path)
            objects.append(obj)

        point_count = read_int(f, "restore point count")
        points = [RestorePoint.deserialize(f, attested=attested, shared=shared) for _ in range(point_count)]

        if f.read().strip():
            raise StateFormatError(f"Trailing data after {point_count} restore points in {path}")

    return objects, points, attested


def _parse_count(line):
    if not line:
        raise StateFormatError("State file is empty")
    try:
        value = int(line.rstrip("\n"))
    except ValueError:
        raise StateFormatError(f"Not a keep state file (first line {line.rstrip()!r})")
    if value < 0:
        raise StateFormatError(f"Negative object count: {value}")
    return value
