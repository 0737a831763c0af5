# =============================================================================
# Project Records and Selection Results
# =============================================================================

import os
from dataclasses import dataclass, field
from pathlib import Path


@dataclass(frozen=True)
class RootSpec:
    """A configured directory to scan, with an optional session-name prefix."""

    path: Path
    prefix: str = ""


@dataclass(frozen=True)
class ProjectRecord:
    """
    A discovered project directory.

    Identity is the absolute path alone: two records for the same path are
    equal and hash the same even when their session names differ.
    """

    path: str
    session_name: str = field(compare=False)

    @classmethod
    def from_root(cls, root: RootSpec, project_path: Path | str) -> "ProjectRecord":
        return cls(
            path=str(project_path),
            session_name=derive_session_name(root, project_path),
        )


def derive_session_name(root: RootSpec, project_path: Path | str) -> str:
    """
    Compute the short session name of a project below a root.

    The name is the root's basename joined with the project's path relative
    to the root, behind the root's prefix.

    Example: root /Users/simon/dev, project /Users/simon/dev/foo -> dev/foo
    """
    root_path = Path(root.path)
    relative = os.path.relpath(Path(project_path), root_path)
    base = root_path.name or root_path.anchor
    if relative == os.curdir:
        name = base
    else:
        name = f"{base}/{Path(relative).as_posix()}"
    return f"{root.prefix or ''}{name}"


@dataclass(frozen=True)
class SelectionResult:
    """Outcome of the interactive stage: one chosen project, or an abort."""

    record: ProjectRecord | None = None

    @classmethod
    def chosen(cls, record: ProjectRecord) -> "SelectionResult":
        return cls(record=record)

    @classmethod
    def abort(cls) -> "SelectionResult":
        return cls(record=None)

    @property
    def aborted(self) -> bool:
        return self.record is None
