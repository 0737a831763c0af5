# =============================================================================
# Discovery Pipeline (N walkers -> cache dedup -> channel)
# =============================================================================

import threading
import time
from pathlib import Path
from uuid import uuid4

from loguru import logger

from listprojects.cache import AddOutcome, ProjectCache
from listprojects.channel import ItemChannel
from listprojects.logging_config import trace_id_var
from listprojects.models import ProjectRecord, RootSpec
from listprojects.walker import DEFAULT_MARKER, DEFAULT_SKIP_NAMES, DEFAULT_SKIP_SUFFIXES, PathWalker


class DiscoveryPipeline:
    """
    Fan out one background walk per root and forward only new projects.

    Records already in the cache were delivered to the selector as seed
    items, so only records whose ``cache.add`` reports INSERTED are sent.
    A closed channel stops forwarding silently; discovery still fills the
    cache for the next run.
    """

    def __init__(
        self,
        roots: list[RootSpec],
        cache: ProjectCache,
        channel: ItemChannel,
        *,
        marker: str = DEFAULT_MARKER,
        skip_names=DEFAULT_SKIP_NAMES,
        skip_suffixes=DEFAULT_SKIP_SUFFIXES,
        workers_per_root: int = 4,
    ):
        self.roots = list(roots)
        self.cache = cache
        self.channel = channel
        self.marker = marker
        self.skip_names = skip_names
        self.skip_suffixes = skip_suffixes
        self.workers_per_root = workers_per_root
        self.threads: list[threading.Thread] = []
        self._stats_lock = threading.Lock()
        self.forwarded = 0
        self.dropped = 0

    def start(self) -> list[threading.Thread]:
        """
        Start one daemon coordinator per root and return immediately.

        Every producer is registered with the channel before this returns,
        so a consumer iterating the channel cannot see "no producers" early.
        """
        trace_id = trace_id_var.get() or str(uuid4())
        for root in self.roots:
            self.channel.register_producer()
            thread = threading.Thread(
                target=self._run_root,
                args=(root, trace_id),
                name=f"discover-{root.path.name}",
                daemon=True,
            )
            self.threads.append(thread)

        for thread in self.threads:
            thread.start()

        logger.debug(
            "Discovery started",
            operation="discovery",
            status="started",
            trace_id=trace_id,
            roots=[str(r.path) for r in self.roots]
        )
        return self.threads

    def wait(self, timeout: float | None = None) -> bool:
        """Join coordinators for at most ``timeout`` seconds overall; True if all finished."""
        deadline = None if timeout is None else time.monotonic() + timeout
        for thread in self.threads:
            remaining = None if deadline is None else max(0.0, deadline - time.monotonic())
            thread.join(remaining)
        return not any(thread.is_alive() for thread in self.threads)

    def _run_root(self, root: RootSpec, trace_id: str) -> None:
        trace_id_var.set(trace_id)
        try:
            walker = PathWalker(
                root.path,
                lambda path: self.handle_project(root, path),
                marker=self.marker,
                skip_names=self.skip_names,
                skip_suffixes=self.skip_suffixes,
                workers=self.workers_per_root,
            )
            walker.run()
        except Exception:
            logger.opt(exception=True).warning(
                "Discovery failed for root",
                operation="discovery",
                status="failed",
                root=str(root.path)
            )
        finally:
            self.channel.producer_finished()

    def handle_project(self, root: RootSpec, path: Path) -> bool:
        """
        Record one reported project; forward it if it is new.

        Returns:
            True if the record was sent to the channel
        """
        record = ProjectRecord.from_root(root, path)
        if self.cache.add(record) is AddOutcome.ALREADY_PRESENT:
            return False

        if self.channel.send(record):
            with self._stats_lock:
                self.forwarded += 1
            logger.debug(
                "New project discovered",
                operation="discovery",
                status="forwarded",
                path=record.path,
                session_name=record.session_name
            )
            return True

        # Receiver gone: keep it cached for next time, nothing else to do
        with self._stats_lock:
            self.dropped += 1
        return False
