import shutil
from pathlib import Path

from keep.storage.base import StorageStrategy, require_exists


class NestedStorage(StorageStrategy):
    """One directory per object: destination/<name>/<name>."""

    name = "nested"

    def store(self, objects, destination):
        destination = Path(destination)
        for obj in objects:
            require_exists(obj)
            obj_dir = destination / obj.name
            obj_dir.mkdir(parents=True, exist_ok=True)
            shutil.copy2(obj.path, obj_dir / obj.name)

    def retrieve(self, obj, location, target):
        shutil.copy2(Path(location) / obj.name / obj.name, target)


class FlatStorage(StorageStrategy):
    """Every object copied side by side into destination/."""

    name = "flat"

    def store(self, objects, destination):
        destination = Path(destination)
        destination.mkdir(parents=True, exist_ok=True)
        for obj in objects:
            require_exists(obj)
            shutil.copy2(obj.path, destination / obj.name)

    def retrieve(self, obj, location, target):
        shutil.copy2(Path(location) / obj.name, target)


class FlatOverwriteStorage(FlatStorage):
    """Flat layout that deletes an existing file before copying over it."""

    name = "flat-overwrite"

    def store(self, objects, destination):
        destination = Path(destination)
        destination.mkdir(parents=True, exist_ok=True)
        for obj in objects:
            require_exists(obj)
            dest = destination / obj.name
            if dest.exists() or dest.is_symlink():
                dest.unlink()
            shutil.copy2(obj.path, dest)
