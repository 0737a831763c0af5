# =============================================================================
# Parallel Path Walker
# =============================================================================

import os
import queue
import threading
import time
from pathlib import Path
from typing import Callable

from loguru import logger

DEFAULT_MARKER = ".git"

# Dependency, build and virtualenv directories: never descended into
DEFAULT_SKIP_NAMES = frozenset({
    "node_modules",
    "bower_components",
    ".venv",
    "venv",
    "__pycache__",
    "target",
    ".tox",
    ".mypy_cache",
    ".pytest_cache",
    ".cache",
    ".direnv",
})

DEFAULT_SKIP_SUFFIXES = (".egg-info", ".dist-info", ".app")


class PathWalker:
    """
    Recursive scan of one root for project directories.

    A directory holding the marker directory (``.git`` by default) is
    reported through ``report`` and treated as a leaf. Worker threads share
    one work queue, so ``report`` must be safe to call concurrently.
    Symlinks are never followed and unreadable entries are skipped.
    """

    def __init__(
        self,
        root: Path,
        report: Callable[[Path], None],
        *,
        marker: str = DEFAULT_MARKER,
        skip_names=DEFAULT_SKIP_NAMES,
        skip_suffixes=DEFAULT_SKIP_SUFFIXES,
        workers: int = 4,
    ):
        self.root = Path(root)
        self.report = report
        self.marker = marker
        self.skip_names = frozenset(skip_names)
        self.skip_suffixes = tuple(skip_suffixes)
        self.workers = max(1, int(workers))
        self._pending: queue.Queue = queue.Queue()
        self._scanned = 0
        self._found = 0
        self._count_lock = threading.Lock()

    def should_skip(self, name: str) -> bool:
        return name in self.skip_names or name.endswith(self.skip_suffixes)

    def run(self) -> int:
        """
        Walk the whole subtree, blocking until it is exhausted.

        Returns:
            Number of directories scanned
        """
        start_time = time.perf_counter()
        self._pending.put(self.root)

        threads = [
            threading.Thread(
                target=self._work,
                name=f"walker-{self.root.name}-{i}",
                daemon=True,
            )
            for i in range(self.workers)
        ]
        for thread in threads:
            thread.start()

        self._pending.join()
        for _ in threads:
            self._pending.put(None)

        duration_ms = int((time.perf_counter() - start_time) * 1000)
        logger.debug(
            "Walk complete",
            operation="walk_root",
            status="success",
            root=str(self.root),
            metrics={
                "dirs_scanned": self._scanned,
                "projects_found": self._found,
                "duration_ms": duration_ms,
            }
        )
        return self._scanned

    def _work(self) -> None:
        while True:
            directory = self._pending.get()
            if directory is None:
                self._pending.task_done()
                return
            try:
                self._scan(directory)
            except Exception:
                # Keep the worker alive; join() would hang on a dead one
                logger.opt(exception=True).warning(
                    "Unexpected error scanning directory",
                    operation="walk_root",
                    status="skip",
                    directory=str(directory)
                )
            finally:
                self._pending.task_done()

    def _scan(self, directory: Path) -> None:
        try:
            with os.scandir(directory) as it:
                entries = list(it)
        except OSError as e:
            logger.debug(
                "Skipping unreadable directory",
                operation="walk_root",
                status="skip",
                directory=str(directory),
                error=str(e)
            )
            return

        with self._count_lock:
            self._scanned += 1

        subdirs = []
        for entry in entries:
            try:
                if not entry.is_dir(follow_symlinks=False):
                    continue
            except OSError:
                continue
            if entry.name == self.marker:
                with self._count_lock:
                    self._found += 1
                self.report(directory)
                return
            subdirs.append(entry)

        for entry in subdirs:
            if self.should_skip(entry.name):
                continue
            self._pending.put(Path(entry.path))
