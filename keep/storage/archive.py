"""Archive layout: a restore point is one gzipped tarball.

    <destination>.tar.gz
        <name of object 1>
        <name of object 2>
        ...

Entries are flat, named by each object's basename. The tarball sits next to
the restore point directory rather than inside it.
"""

import shutil
import tarfile
from pathlib import Path

from keep.storage.base import StorageStrategy, require_exists

SUFFIX = ".tar.gz"
COMPRESS_LEVEL = 6


def archive_path(location):
    return Path(str(location) + SUFFIX)


class ArchiveStorage(StorageStrategy):

    name = "archive"

    def __init__(self, compresslevel=COMPRESS_LEVEL):
        self.compresslevel = compresslevel

    def store(self, objects, destination):
        path = archive_path(destination)
        path.parent.mkdir(parents=True, exist_ok=True)
        try:
            # dereference: a tracked symlink is archived as the file it points to.
            with tarfile.open(path, "w:gz", compresslevel=self.compresslevel, dereference=True) as tar:
                for obj in objects:
                    require_exists(obj)
                    tar.add(str(obj.path), arcname=obj.name, recursive=False)
        except BaseException:
            path.unlink(missing_ok=True)
            raise

    def retrieve(self, obj, location, target):
        path = archive_path(location)
        with tarfile.open(path, "r:gz") as tar:
            try:
                member = tar.getmember(obj.name)
            except KeyError:
                raise FileNotFoundError(f"{obj.name} is not in archive {path}")
            try:
                source = tar.extractfile(member)
            except KeyError:
                # Link entry whose target is not in the archive.
                raise FileNotFoundError(f"{obj.name} in archive {path} links to {member.linkname}, which is not stored")
            if source is None:
                raise FileNotFoundError(f"{obj.name} in archive {path} is not a regular file")
            with source, open(target, "wb") as out:
                shutil.copyfileobj(source, out)

    def __repr__(self):
        return f"ArchiveStorage(compresslevel={self.compresslevel})"
