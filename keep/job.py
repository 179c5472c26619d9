import os
import shutil
import threading
from datetime import datetime
from pathlib import Path

from keep.errors import (
    DuplicateObjectError,
    IntegrityError,
    MissingFileError,
    NothingToBackUpError,
    ObjectNotFoundError,
    OperationCancelled,
    SnapshotError,
)
from keep.log import write_log
from keep.objects import BackupObject
from keep.restore_point import RestorePoint
from keep.state import read_state, write_state
from keep.storage import get_storage

POINT_PREFIX = "restore_point_"


class CancelToken:
    """Advisory cancellation flag, checked between files, never mid-copy."""

    def __init__(self):
        self._event = threading.Event()

    def cancel(self):
        self._event.set()

    @property
    def cancelled(self):
        return self._event.is_set()


class BackupJob:
    """Tracks files, writes restore points through a storage strategy, and restores them.

    The registry and the restore-point history each have their own lock.
    Only save_state() and load_state() hold both, always registry first.
    A third lock serializes save_state() so the newest snapshot is written last.
    """

    def __init__(self, storage, backup_dir, persist_digests=True, audit=True):
        if storage is None:
            raise ValueError("A storage strategy is required")
        self.storage = storage
        self.backup_dir = Path(backup_dir)
        self.persist_digests = persist_digests
        self.audit = audit

        self._objects = {}  # path -> BackupObject, insertion ordered
        self._restore_points = []
        self._objects_lock = threading.Lock()
        self._points_lock = threading.Lock()
        self._save_lock = threading.Lock()
        self._progress_callback = None
        self._cancel = CancelToken()

        self.backup_dir.mkdir(parents=True, exist_ok=True)

    # ------------------------------------------------------------------
    # Registry
    # ------------------------------------------------------------------

    def add_object(self, path):
        """Start tracking path. Its digest is taken now and never refreshed."""
        if not os.path.exists(path):
            raise FileNotFoundError(f"Path does not exist: {path}")
        obj = BackupObject(path)

        with self._objects_lock:
            if obj.path in self._objects:
                raise DuplicateObjectError(f"Already tracked: {obj.path}")
            self._objects[obj.path] = obj
        return obj

    def remove_object(self, path):
        """Stop tracking path. Restore points that captured it keep their copy."""
        key = Path(path)
        with self._objects_lock:
            if key not in self._objects:
                raise ObjectNotFoundError(f"Not tracked: {path}")
            del self._objects[key]

    def name_clashes(self, obj):
        """Other tracked objects with obj's basename. Every layout stores them in one slot."""
        with self._objects_lock:
            return [o for o in self._objects.values() if o is not obj and o.name == obj.name]

    @property
    def objects(self):
        with self._objects_lock:
            return list(self._objects.values())

    @property
    def restore_points(self):
        with self._points_lock:
            return list(self._restore_points)

    # ------------------------------------------------------------------
    # Snapshot
    # ------------------------------------------------------------------

    def create_restore_point(self):
        """Store every tracked object under a new timestamped directory.

        The registry is copied out up front; objects added or removed while
        storage runs don't affect this restore point.
        """
        with self._objects_lock:
            objects = list(self._objects.values())

        if not objects:
            raise NothingToBackUpError("Nothing to back up: no objects are tracked")

        for obj in objects:
            if not obj.exists():
                raise MissingFileError(f"Tracked file no longer exists: {obj.path}")

        timestamp = datetime.now().astimezone()
        location = self._make_point_dir(timestamp)

        try:
            self.storage.store(objects, location)
        except Exception as e:
            shutil.rmtree(location, ignore_errors=True)
            self._log({
                "event": "snapshot_failed",
                "location": str(location),
                "backend": self.storage.name,
                "error": str(e),
            })
            raise SnapshotError(f"Failed to store restore point {location}: {e}") from e

        point = RestorePoint(objects, location, timestamp, layout=self.storage.name)
        with self._points_lock:
            self._restore_points.append(point)

        self._log({
            "event": "restore_point",
            "location": str(location),
            "backend": self.storage.name,
            "objects": len(objects),
        })
        return point

    def _make_point_dir(self, timestamp):
        base = POINT_PREFIX + timestamp.strftime("%Y%m%d_%H%M%S_%f")
        candidate = self.backup_dir / base
        n = 1
        while True:
            try:
                candidate.mkdir(parents=True)
                return candidate
            except FileExistsError:
                candidate = self.backup_dir / f"{base}_{n}"
                n += 1

    # ------------------------------------------------------------------
    # Restore
    # ------------------------------------------------------------------

    def verify_backup(self, point):
        return point.verify_integrity()

    def restore(self, point, target_dir, token=None):
        """Copy every object of point into target_dir, overwriting existing files.

        Cancellation (token, or the job's own token when None) is checked
        before each file. Files already copied stay in place when it fires.
        Returns the restored paths.
        """
        if token is None:
            token = self._cancel
        if token.cancelled:
            raise OperationCancelled("Operation cancelled")

        if not point.verify_integrity():
            raise IntegrityError(f"Restore point {point.location} failed integrity check")

        target_dir = Path(target_dir)
        target_dir.mkdir(parents=True, exist_ok=True)

        storage = self._storage_for(point)
        objects = point.objects
        count = len(objects)
        restored = []

        for index, obj in enumerate(objects):
            if token.cancelled:
                self._log({
                    "event": "restore_cancelled",
                    "location": str(point.location),
                    "target": str(target_dir),
                    "restored": len(restored),
                })
                raise OperationCancelled(f"Restore cancelled after {index} of {count} files")

            self._report(index / count, f"Restoring {obj.name}")
            dest = target_dir / obj.name
            storage.retrieve(obj, point.location, dest)
            restored.append(dest)

        self._report(1.0, "Restore complete")
        self._log({
            "event": "restore",
            "location": str(point.location),
            "target": str(target_dir),
            "restored": len(restored),
        })
        return restored

    def _storage_for(self, point):
        # Points loaded from legacy state files carry no layout.
        if point.layout is None or point.layout == self.storage.name:
            return self.storage
        return get_storage(point.layout)

    def cancel_operation(self):
        self._cancel.cancel()

    def reset_cancel(self):
        """Replace a fired job token so later restores can run."""
        self._cancel = CancelToken()

    def set_progress_callback(self, callback):
        """callback(progress, message) is called on the restoring thread, progress in 0.0-1.0."""
        self._progress_callback = callback

    def _report(self, progress, message):
        if self._progress_callback:
            self._progress_callback(progress, message)

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def save_state(self, path, attested=None):
        """Write the registry and the full restore-point history to path."""
        if attested is None:
            attested = self.persist_digests

        with self._save_lock:
            with self._objects_lock:
                with self._points_lock:
                    objects = list(self._objects.values())
                    points = list(self._restore_points)
            write_state(path, objects, points, attested=attested)

        self._log({
            "event": "state_saved",
            "path": str(path),
            "objects": len(objects),
            "restore_points": len(points),
            "attested": attested,
        })

    def load_state(self, path):
        """Replace the registry and the history with the contents of path.

        The file is parsed completely first; on error the job is unchanged.
        """
        objects, points, attested = read_state(path)

        with self._objects_lock:
            with self._points_lock:
                self._objects = {obj.path: obj for obj in objects}
                self._restore_points = list(points)

        self._log({
            "event": "state_loaded",
            "path": str(path),
            "objects": len(objects),
            "restore_points": len(points),
            "attested": attested,
        })

    def _log(self, entry):
        if self.audit:
            write_log(entry)
