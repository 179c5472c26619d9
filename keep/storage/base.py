from abc import ABC, abstractmethod

from keep.errors import MissingFileError


class StorageStrategy(ABC):
    """Base interface for restore point layouts.

    Implementations: NestedStorage, FlatStorage, FlatOverwriteStorage, ArchiveStorage.
    Every store() is a full copy of every object; nothing is deduplicated.
    """

    name = None

    @abstractmethod
    def store(self, objects, destination):
        """Write every object under destination.

        Raises MissingFileError if an object is gone, OSError if destination can't be written.
        """
        pass

    @abstractmethod
    def retrieve(self, obj, location, target):
        """Copy the stored bytes of obj out of a restore point at location into target."""
        pass

    def __repr__(self):
        return f"{type(self).__name__}()"


def require_exists(obj):
    if not obj.exists():
        raise MissingFileError(f"Object to back up no longer exists: {obj.path}")
