from pathlib import Path

import pytest

from listprojects.models import ProjectRecord, SelectionResult


def make_project(base: Path, *parts: str) -> Path:
    """Create a directory holding a .git marker directory."""
    project = base.joinpath(*parts)
    (project / ".git").mkdir(parents=True)
    return project


class DrainingSelector:
    """Consumes the seed and the whole channel, then picks the first item or aborts."""

    def __init__(self, choose: bool = True):
        self.choose = choose
        self.seen: list[ProjectRecord] = []
        self.seed_count = 0

    def select(self, seed, channel):
        seed = list(seed)
        self.seed_count = len(seed)
        self.seen = seed + list(channel)
        if self.choose and self.seen:
            return SelectionResult.chosen(self.seen[0])
        return SelectionResult.abort()


class RecordingClient:
    """Stands in for TmuxClient and records every call."""

    def __init__(self, existing=()):
        self.existing = set(existing)
        self.calls: list[tuple] = []

    def exists(self, name):
        self.calls.append(("exists", name))
        return name in self.existing

    def create(self, name, working_directory):
        self.calls.append(("create", name, working_directory))
        self.existing.add(name)

    def switch(self, name):
        self.calls.append(("switch", name))

    def attach(self, name):
        self.calls.append(("attach", name))


@pytest.fixture
def dev_root(tmp_path) -> Path:
    root = tmp_path / "dev"
    root.mkdir()
    return root.resolve()
