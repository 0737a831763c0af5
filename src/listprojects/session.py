# =============================================================================
# tmux Session Activation
# =============================================================================

import os
import subprocess
from enum import Enum

from loguru import logger

from listprojects.errors import SessionError
from listprojects.models import ProjectRecord

# stderr fragments tmux uses when the session (or the whole server) is absent
NOT_FOUND_MARKERS = (
    "can't find session",
    "no server running",
    "error connecting to",
)


class SessionAction(Enum):
    SWITCHED = "switched"
    CREATED_AND_SWITCHED = "created_and_switched"
    ATTACHED = "attached"
    CREATED_AND_ATTACHED = "created_and_attached"


def tmux_session_name(name: str) -> str:
    """tmux rewrites '.' and ':' in session names; do it up front so lookups match."""
    return name.replace(".", "_").replace(":", "_")


def inside_tmux_client(environ=None) -> bool:
    environ = os.environ if environ is None else environ
    return bool(environ.get("TMUX"))


class TmuxClient:
    """Thin wrapper over the tmux CLI. ``runner`` and ``execvp`` are injectable for tests."""

    def __init__(self, tmux_bin: str = "tmux", runner=subprocess.run, execvp=os.execvp):
        self.tmux_bin = tmux_bin
        self._runner = runner
        self._execvp = execvp

    def _run(self, args: list[str], operation: str) -> subprocess.CompletedProcess:
        cmd = [self.tmux_bin, *args]
        try:
            return self._runner(
                cmd,
                capture_output=True,
                text=True,
                check=False
            )
        except OSError as e:
            logger.error(
                "Could not run tmux",
                operation=operation,
                status="exec_error",
                command=cmd,
                error=str(e)
            )
            raise SessionError(f"could not run {self.tmux_bin}: {e}") from e

    def exists(self, name: str) -> bool:
        result = self._run(["has-session", "-t", f"={name}"], "tmux_exists")
        if result.returncode == 0:
            return True
        stderr = (result.stderr or "").strip()
        if any(marker in stderr.lower() for marker in NOT_FOUND_MARKERS):
            return False
        raise SessionError(
            f"tmux has-session failed for {name!r} (exit {result.returncode}): {stderr or 'no output'}"
        )

    def create(self, name: str, working_directory: str) -> None:
        result = self._run(
            ["new-session", "-d", "-s", name, "-c", working_directory],
            "tmux_create"
        )
        if result.returncode != 0:
            raise SessionError(
                f"tmux new-session failed for {name!r} (exit {result.returncode}): "
                f"{(result.stderr or '').strip() or 'no output'}"
            )

    def switch(self, name: str) -> None:
        result = self._run(["switch-client", "-t", f"={name}"], "tmux_switch")
        if result.returncode != 0:
            raise SessionError(
                f"tmux switch-client failed for {name!r} (exit {result.returncode}): "
                f"{(result.stderr or '').strip() or 'no output'}"
            )

    def attach(self, name: str) -> None:
        """Replace the current process with ``tmux attach-session``."""
        cmd = [self.tmux_bin, "attach-session", "-t", f"={name}"]
        try:
            self._execvp(self.tmux_bin, cmd)
        except OSError as e:
            raise SessionError(f"could not exec {self.tmux_bin}: {e}") from e


def activate(record: ProjectRecord, *, inside_client: bool, client: TmuxClient) -> SessionAction:
    """
    Switch to, or attach to, the tmux session for a project, creating it first if needed.

    | inside client | exists | actions             |
    |---------------|--------|---------------------|
    | yes           | yes    | switch              |
    | yes           | no     | create, switch      |
    | no            | yes    | attach              |
    | no            | no     | create, attach      |

    Another project with the same derived name shares the session; whatever
    session holds the name is the one activated.

    Args:
        record: The chosen project
        inside_client: Whether this process runs inside a tmux client, read once by the caller
        client: tmux command wrapper

    Returns:
        SessionAction describing what was done (attach normally never returns)

    Raises:
        SessionError: A tmux command failed
    """
    name = tmux_session_name(record.session_name)
    exists = client.exists(name)

    logger.info(
        "Activating session",
        operation="activate_session",
        status="started",
        session=name,
        path=record.path,
        inside_client=inside_client,
        exists=exists
    )

    if not exists:
        client.create(name, record.path)

    if inside_client:
        client.switch(name)
        return SessionAction.SWITCHED if exists else SessionAction.CREATED_AND_SWITCHED

    client.attach(name)
    return SessionAction.ATTACHED if exists else SessionAction.CREATED_AND_ATTACHED
