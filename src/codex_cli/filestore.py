#!/usr/bin/env python3
"""File Store - Locked, atomic JSON persistence with an mtime-keyed cache.

Writers serialize on a ``<file>.lock`` sidecar created with O_EXCL and
publish new content by renaming ``<file>.tmp`` over the target. Readers
never take the lock: the rename guarantees they see either the old or
the new complete file.
"""

import json
import os
import sys
import threading
import time
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Callable, Dict, Optional, Tuple

from .errors import InvalidShapeError, LockTimeoutError, StoreIOError
from .objectpath import validate_tree

# Constants
LOCK_SUFFIX = ".lock"
TMP_SUFFIX = ".tmp"
LOCK_STALE_SECONDS = 10.0
LOCK_MAX_RETRIES = 8
LOCK_BACKOFF_UNIT = 0.005  # seconds; attempt n sleeps 2**n units
FILE_MODE = 0o600
DIR_MODE = 0o700


def lock_path_for(path) -> Path:
    path = Path(path)
    return path.with_name(path.name + LOCK_SUFFIX)


def acquire_lock(path, max_retries: int = LOCK_MAX_RETRIES) -> None:
    """Acquire the advisory lock sidecar for path.

    A sidecar older than LOCK_STALE_SECONDS is treated as abandoned: it is
    removed and acquisition is retried at once. Otherwise the caller backs
    off exponentially.

    Args:
        path: The data file being protected
        max_retries: Number of backoff sleeps before giving up

    Raises:
        LockTimeoutError: If the lock is still held after max_retries
        OSError: If the sidecar cannot be created for any other reason

    """
    lock_path = lock_path_for(path)
    attempt = 0

    while True:
        try:
            fd = os.open(str(lock_path), os.O_CREAT | os.O_EXCL | os.O_WRONLY, FILE_MODE)
        except FileExistsError:
            try:
                age = time.time() - lock_path.stat().st_mtime
            except FileNotFoundError:
                # Released between our open and stat
                continue

            if age > LOCK_STALE_SECONDS:
                try:
                    lock_path.unlink()
                except FileNotFoundError:
                    pass
                continue

            if attempt >= max_retries:
                raise LockTimeoutError(
                    f"Unable to acquire lock on {path} after {max_retries} retries"
                )

            time.sleep((2 ** attempt) * LOCK_BACKOFF_UNIT)
            attempt += 1
            continue

        with os.fdopen(fd, "w") as f:
            f.write(str(os.getpid()))
        return


def release_lock(path) -> None:
    """Remove the lock sidecar. Releasing an absent lock is a no-op."""
    try:
        lock_path_for(path).unlink()
    except FileNotFoundError:
        pass


@contextmanager
def file_lock(path, max_retries: int = LOCK_MAX_RETRIES):
    """Hold the lock for path for the duration of the with-block.

    If the sidecar cannot be created at all (read-only directory and the
    like) the block runs unlocked. LockTimeoutError is not swallowed:
    contention aborts the operation before anything is written.
    """
    locked = False
    try:
        acquire_lock(path, max_retries)
        locked = True
    except LockTimeoutError:
        raise
    except OSError as e:
        if os.environ.get("CODEX_DEBUG"):
            print(f"[DEBUG] Lock unavailable for {path}, proceeding unlocked: {e}", file=sys.stderr)
    try:
        yield locked
    finally:
        if locked:
            release_lock(path)


def with_lock(path, fn: Callable[[], Any]) -> Any:
    """Run fn while holding the lock for path and return its result."""
    with file_lock(path):
        return fn()


def atomic_write(path, content: str, mode: int = FILE_MODE) -> None:
    """Write content to path via a temp file and rename.

    The rename is the only publish point: a crash before it leaves the
    old file intact, a crash after it leaves the new content complete.
    """
    path = Path(path)
    tmp_path = path.with_name(path.name + TMP_SUFFIX)
    try:
        fd = os.open(str(tmp_path), os.O_CREAT | os.O_TRUNC | os.O_WRONLY, mode)
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(content)
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp_path, path)
    except BaseException:
        try:
            tmp_path.unlink()
        except OSError:
            pass
        raise


def serialize(tree: Dict[str, Any], pretty: bool = True) -> str:
    """Serialize a tree with top-level keys sorted alphabetically."""
    ordered = {key: tree[key] for key in sorted(tree)}
    if pretty:
        return json.dumps(ordered, indent=2, ensure_ascii=False) + "\n"
    return json.dumps(ordered, separators=(",", ":"), ensure_ascii=False)


class TreeCache:
    """Process-wide read cache of parsed trees keyed by file path.

    An entry is only served while the file's mtime still matches the one
    recorded when it was stored.
    """

    def __init__(self):
        self._entries: Dict[Path, Tuple[int, Dict[str, Any]]] = {}
        self.lock = threading.Lock()

    def get(self, path: Path, mtime_ns: int) -> Optional[Dict[str, Any]]:
        with self.lock:
            entry = self._entries.get(Path(path))
        if entry is None or entry[0] != mtime_ns:
            return None
        return entry[1]

    def put(self, path: Path, mtime_ns: int, tree: Dict[str, Any]) -> None:
        with self.lock:
            self._entries[Path(path)] = (mtime_ns, tree)

    def invalidate(self, path: Path) -> None:
        with self.lock:
            self._entries.pop(Path(path), None)

    def clear(self) -> None:
        with self.lock:
            self._entries.clear()

    def __contains__(self, path) -> bool:
        with self.lock:
            return Path(path) in self._entries

    def __len__(self) -> int:
        with self.lock:
            return len(self._entries)


class JsonFileStore:
    """One managed JSON tree on disk (entries, aliases or confirm keys)."""

    def __init__(
        self,
        path: Path,
        cache: Optional[TreeCache] = None,
        pretty: bool = True,
        label: str = "data"
    ):
        self.path = Path(path)
        self.cache = cache if cache is not None else TreeCache()
        self.pretty = pretty
        self.label = label

    def load(self) -> Dict[str, Any]:
        """Load the tree, serving the cached copy while the mtime matches.

        Callers must treat the returned dict as read-only.

        Returns:
            The parsed tree, or {} if the file does not exist yet

        Raises:
            InvalidShapeError: If the file is not a JSON object or holds arrays
            StoreIOError: If the file exists but cannot be read

        """
        try:
            mtime_ns = self.path.stat().st_mtime_ns
        except FileNotFoundError:
            self.cache.invalidate(self.path)
            return {}
        except OSError as e:
            raise StoreIOError(f"Failed to read {self.label} from {self.path}: {e}") from e

        cached = self.cache.get(self.path, mtime_ns)
        if cached is not None:
            return cached

        try:
            with open(self.path, encoding="utf-8") as f:
                content = f.read()
        except FileNotFoundError:
            self.cache.invalidate(self.path)
            return {}
        except OSError as e:
            raise StoreIOError(f"Failed to read {self.label} from {self.path}: {e}") from e

        if not content.strip():
            tree: Dict[str, Any] = {}
        else:
            try:
                tree = json.loads(content)
            except json.JSONDecodeError as e:
                raise InvalidShapeError(
                    f"The {self.label} file {self.path} contains invalid JSON: {e}"
                ) from e
            validate_tree(tree, self.label)

        self.cache.put(self.path, mtime_ns, tree)
        return tree

    def save(self, tree: Dict[str, Any]) -> None:
        """Persist the whole tree under the lock and refresh the cache.

        The tree itself becomes the cached copy, so the caller must not
        mutate it afterwards.

        Raises:
            InvalidShapeError: If the tree holds arrays or is not a dict
            LockTimeoutError: If another writer holds the lock too long
            StoreIOError: If the write fails; the cache is left untouched

        """
        validate_tree(tree, self.label)
        content = serialize(tree, self.pretty)

        def write():
            atomic_write(self.path, content)
            return self.path.stat().st_mtime_ns

        try:
            self.path.parent.mkdir(parents=True, exist_ok=True, mode=DIR_MODE)
            mtime_ns = with_lock(self.path, write)
        except OSError as e:
            raise StoreIOError(f"Failed to save {self.label} to {self.path}: {e}") from e

        self.cache.put(self.path, mtime_ns, tree)

    def clear_cache(self) -> None:
        self.cache.invalidate(self.path)

    def exists(self) -> bool:
        return self.path.exists()
