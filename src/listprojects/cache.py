# =============================================================================
# Persistent Project Cache
# =============================================================================
"""
Deduplicated set of previously discovered projects.

Loaded once at startup to seed the selector, shared by every discovery
thread during the run, and written back once at the end.

File format (JSON, order-independent):

    {"version": 1, "paths": [{"full_path": "...", "session_name": "..."}]}
"""

import errno
import json
import os
import tempfile
import threading
import time
from enum import Enum
from pathlib import Path

import platformdirs
from loguru import logger

from listprojects.errors import CacheCorrupt, Error, ErrorType, Result
from listprojects.logging_config import APP_NAME
from listprojects.models import ProjectRecord

CACHE_FORMAT_VERSION = 1
CACHE_FILENAME = "cache.json"


class AddOutcome(Enum):
    INSERTED = "inserted"
    ALREADY_PRESENT = "already_present"


def default_cache_path() -> Path:
    """Per-user cache file, e.g. ~/.cache/listprojects/cache.json on Linux."""
    return Path(platformdirs.user_cache_dir(appname=APP_NAME)) / CACHE_FILENAME


def atomic_write_file(path: Path, content: str) -> None:
    """
    Write file atomically using temp file → fsync → rename pattern.

    Args:
        path: Target file path
        content: Content to write

    Raises:
        OSError: If write fails (including disk full - errno.ENOSPC)
    """
    path.parent.mkdir(parents=True, exist_ok=True)

    # Temp file in the same directory so the rename stays on one filesystem
    temp_fd, temp_path = tempfile.mkstemp(
        dir=path.parent,
        prefix=f".{path.name}.",
        suffix=".tmp"
    )

    try:
        with os.fdopen(temp_fd, "w") as f:
            f.write(content)
            f.flush()
            os.fsync(f.fileno())

        os.replace(temp_path, path)

    except OSError as e:
        try:
            os.unlink(temp_path)
        except OSError:
            pass

        if e.errno == errno.ENOSPC:
            raise OSError(f"Disk full - cannot write to {path}") from e
        raise


def _parse_records(data) -> list[ProjectRecord]:
    """Validate decoded JSON and build records; ValueError on bad shape."""
    if not isinstance(data, dict):
        raise ValueError("top level is not an object")
    entries = data.get("paths")
    if not isinstance(entries, list):
        raise ValueError("'paths' is missing or not a list")

    records = []
    for index, entry in enumerate(entries):
        if not isinstance(entry, dict):
            raise ValueError(f"entry {index} is not an object")
        full_path = entry.get("full_path")
        session_name = entry.get("session_name")
        if not isinstance(full_path, str) or not isinstance(session_name, str):
            raise ValueError(f"entry {index} needs string 'full_path' and 'session_name'")
        records.append(ProjectRecord(path=full_path, session_name=session_name))
    return records


class ProjectCache:
    """
    Thread-safe set of ProjectRecord keyed by path.

    A single lock guards insert, clear, snapshot and serialization, so
    discovery threads can call ``add`` without any locking of their own.
    """

    def __init__(self, path: Path, records=()):
        self.path = Path(path)
        self._lock = threading.Lock()
        self._items: dict[str, ProjectRecord] = {}
        for record in records:
            self._items.setdefault(record.path, record)

    @classmethod
    def open(cls, clear: bool = False, path: Path | None = None) -> "ProjectCache":
        """
        Load the cache from disk.

        A missing file yields an empty cache which is persisted right away,
        so a fresh store is always valid on disk. A file that cannot be
        parsed raises CacheCorrupt, unless ``clear`` is set: the contents
        would be discarded anyway.

        Args:
            clear: Start from an empty set (still written back by save())
            path: Cache file location, defaults to the per-user cache dir

        Returns:
            ProjectCache

        Raises:
            CacheCorrupt: File exists but is unreadable or malformed
        """
        cache_path = Path(path) if path is not None else default_cache_path()
        start_time = time.perf_counter()

        if not cache_path.exists():
            cache = cls(cache_path)
            logger.info(
                "Cache file missing, starting empty",
                operation="open_cache",
                status="created",
                file=str(cache_path)
            )
            result = cache._persist()
            if result.is_err():
                logger.warning(
                    "Could not create empty cache file",
                    operation="open_cache",
                    status="degraded",
                    file=str(cache_path),
                    error=result.error.message
                )
            return cache

        try:
            with open(cache_path, "r", encoding="utf-8") as f:
                records = _parse_records(json.load(f))
        except (OSError, UnicodeDecodeError, ValueError) as e:
            # json.JSONDecodeError is a ValueError
            if clear:
                logger.warning(
                    "Discarding unreadable cache file",
                    operation="open_cache",
                    status="cleared",
                    file=str(cache_path),
                    error=str(e)
                )
                return cls(cache_path)
            logger.error(
                "Cache file is corrupt",
                operation="open_cache",
                status="failed",
                file=str(cache_path),
                error=str(e),
                error_type=type(e).__name__
            )
            raise CacheCorrupt(cache_path, str(e)) from e

        cache = cls(cache_path, records)
        loaded = len(cache)
        if clear:
            cache.clear()

        duration_ms = int((time.perf_counter() - start_time) * 1000)
        logger.debug(
            "Cache loaded",
            operation="open_cache",
            status="success",
            file=str(cache_path),
            cleared=clear,
            metrics={"records_loaded": loaded, "duration_ms": duration_ms}
        )
        return cache

    def __len__(self) -> int:
        with self._lock:
            return len(self._items)

    def __contains__(self, record: ProjectRecord) -> bool:
        with self._lock:
            return record.path in self._items

    def initial_items(self) -> list[ProjectRecord]:
        """Snapshot copy, safe to iterate while discovery keeps adding."""
        with self._lock:
            return list(self._items.values())

    def add(self, record: ProjectRecord) -> AddOutcome:
        """Insert unless the path is already known. Exactly one caller per path sees INSERTED."""
        with self._lock:
            if record.path in self._items:
                return AddOutcome.ALREADY_PRESENT
            self._items[record.path] = record
            return AddOutcome.INSERTED

    def clear(self) -> None:
        with self._lock:
            self._items.clear()

    def _sorted_snapshot(self) -> list[ProjectRecord]:
        with self._lock:
            return sorted(self._items.values(), key=lambda r: r.path)

    @staticmethod
    def _dump(records: list[ProjectRecord]) -> str:
        payload = {
            "version": CACHE_FORMAT_VERSION,
            "paths": [
                {"full_path": r.path, "session_name": r.session_name}
                for r in records
            ],
        }
        return json.dumps(payload, indent=2) + "\n"

    def save(self) -> Result[int]:
        """
        Overwrite the cache file with the current set.

        Never raises: a failed save only costs the next run its warm start.

        Returns:
            Result[int]: Ok with the number of records written, or Err
        """
        result = self._persist()
        if result.is_ok():
            logger.debug(
                "Cache saved",
                operation="save_cache",
                status="success",
                file=str(self.path),
                metrics={"records_saved": result.value}
            )
        return result

    def _persist(self) -> Result[int]:
        records = self._sorted_snapshot()
        try:
            atomic_write_file(self.path, self._dump(records))
        except OSError as e:
            error_type = ErrorType.PERMISSION_ERROR if isinstance(e, PermissionError) else ErrorType.IO_ERROR
            return Result.err(Error(
                error_type=error_type,
                message="Failed to save project cache - next start will rescan",
                context={"file": str(self.path), "error": str(e)},
                original_exception=e
            ))
        return Result.ok(len(records))
