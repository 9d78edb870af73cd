"""
RESPONSIBILITIES
- Own the single on-disk cache artifact holding the latest scraped snapshot.
- Read the artifact back for the source loader.
- Replace the artifact atomically so a crash mid-write never corrupts the previous copy.
PROCESS OVERVIEW
1. exists()/read_bytes() -> return the raw artifact bytes or raise SourceUnavailable.
2. write_bytes() -> write <path>.tmp, fsync, then os.replace() it over the target.
3. healthcheck() -> verify the target directory is writable and the lock is free.
"""

from __future__ import annotations

import logging
import os
import threading
from contextlib import contextmanager
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterator

from songfeed.core.errors import PersistFailure, SourceUnavailable

LOGGER = logging.getLogger(__name__)

_IN_PROCESS_LOCKS: dict[Path, threading.RLock] = {}
_LOCK_REGISTRY_GUARD = threading.Lock()
_LOCK_TIMEOUT_SECONDS = 10


@dataclass(slots=True)
class PersistHealth:
    """Structured report produced by health checks."""

    writable_paths: dict[str, bool]
    locked_paths: list[str]
    issues: list[str] = field(default_factory=list)

    def is_healthy(self) -> bool:
        """Return True when no issues are observed."""

        return not self.issues and all(self.writable_paths.values())


def _acquire_inprocess_lock(path: Path) -> threading.RLock:
    with _LOCK_REGISTRY_GUARD:
        lock = _IN_PROCESS_LOCKS.get(path)
        if lock is None:
            lock = threading.RLock()
            _IN_PROCESS_LOCKS[path] = lock
        return lock


@contextmanager
def snapshot_lock(path: Path) -> Iterator[None]:
    """Serialize writers of the same cache file within this process."""

    try:
        key = path.resolve()
    except OSError:
        key = path.absolute()
    inproc = _acquire_inprocess_lock(key)
    if not inproc.acquire(timeout=_LOCK_TIMEOUT_SECONDS):
        raise PersistFailure(f"Timeout acquiring in-process lock for {path}", path=str(path))
    try:
        yield
    finally:
        inproc.release()


def _tmp_path(path: Path) -> Path:
    return path.with_name(path.name + ".tmp")


class SnapshotStore:
    """File-backed store for the scraped snapshot cache artifact."""

    def __init__(self, path: Path | str, *, logger: logging.Logger | None = None) -> None:
        self.path = Path(path).expanduser()
        self.logger = logger or LOGGER

    def exists(self) -> bool:
        """Return True when the cache artifact is a regular file.

        Raises:
            SourceUnavailable: When the filesystem refuses the lookup (EACCES, ENAMETOOLONG, EIO).
        """

        try:
            return self.path.is_file()
        except OSError as exc:
            raise SourceUnavailable(
                f"Unable to stat cache file '{self.path}': {exc}", source=str(self.path)
            ) from exc

    def read_bytes(self) -> bytes:
        """Return the raw cache artifact content."""

        try:
            with self.path.open("rb") as handle:
                return handle.read()
        except OSError as exc:
            raise SourceUnavailable(
                f"Unable to read cache file '{self.path}': {exc}", source=str(self.path)
            ) from exc

    def write_bytes(self, payload: bytes) -> Path:
        """Atomically replace the cache artifact with *payload*."""

        tmp_path = _tmp_path(self.path)
        with snapshot_lock(self.path):
            try:
                self.path.parent.mkdir(parents=True, exist_ok=True)
                with tmp_path.open("wb") as handle:
                    handle.write(payload)
                    handle.flush()
                    os.fsync(handle.fileno())
                os.replace(tmp_path, self.path)
            except OSError as exc:
                try:
                    tmp_path.unlink(missing_ok=True)
                except OSError:
                    self.logger.debug("Unable to remove temporary cache file %s", tmp_path)
                raise PersistFailure(
                    f"Unable to write cache file '{self.path}': {exc}", path=str(self.path)
                ) from exc
        self.logger.debug("Cached snapshot saved: %s (%d bytes)", self.path, len(payload))
        return self.path

    def healthcheck(self) -> PersistHealth:
        issues: list[str] = []
        writable_paths: dict[str, bool] = {}
        locked: list[str] = []

        target_dir = self.path.parent
        try:
            target_dir.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            issues.append(f"Failed to create cache directory: {exc}")
        writable = os.access(target_dir, os.W_OK | os.X_OK)
        writable_paths[str(target_dir)] = writable
        if not writable:
            issues.append(f"Cache directory is not writable: {target_dir}")
        try:
            if self.path.exists() and not os.access(self.path, os.R_OK):
                issues.append(f"Cache file is not readable: {self.path}")
        except OSError as exc:
            issues.append(f"Unable to stat cache file: {exc}")
        try:
            with snapshot_lock(self.path):
                pass
        except PersistFailure as exc:
            locked.append(str(self.path))
            issues.append(f"Lock acquisition failed: {exc}")

        return PersistHealth(writable_paths=writable_paths, locked_paths=locked, issues=issues)
