from keep.storage.archive import ArchiveStorage
from keep.storage.base import StorageStrategy
from keep.storage.local import FlatOverwriteStorage, FlatStorage, NestedStorage

STRATEGIES = {
    "nested": NestedStorage,
    "flat": FlatStorage,
    "flat-overwrite": FlatOverwriteStorage,
    "archive": ArchiveStorage,
}

DEFAULT_BACKEND = "archive"


def get_storage(name):
    if name not in STRATEGIES:
        raise ValueError(f"Unknown storage backend: {name!r}. Available: {list(STRATEGIES)}")
    return STRATEGIES[name]()


def create_storage(config=None):
    """Create a storage strategy from config.

    Config keys:
        storage_backend: "archive" (default), "flat", "flat-overwrite" or "nested"
    """
    config = config or {}
    return get_storage(config.get("storage_backend") or DEFAULT_BACKEND)


__all__ = [
    "ArchiveStorage",
    "FlatOverwriteStorage",
    "FlatStorage",
    "NestedStorage",
    "StorageStrategy",
    "create_storage",
    "get_storage",
]
