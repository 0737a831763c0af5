import subprocess

import pytest
from conftest import RecordingClient

from listprojects.errors import SessionError
from listprojects.models import ProjectRecord
from listprojects.session import SessionAction, TmuxClient, activate, inside_tmux_client, tmux_session_name

RECORD = ProjectRecord(path="/home/u/dev/foo", session_name="dev/foo")


@pytest.mark.parametrize(
    "inside, existing, expected_calls, action",
    [
        (True, {"dev/foo"}, [("exists", "dev/foo"), ("switch", "dev/foo")], SessionAction.SWITCHED),
        (
            True,
            set(),
            [("exists", "dev/foo"), ("create", "dev/foo", "/home/u/dev/foo"), ("switch", "dev/foo")],
            SessionAction.CREATED_AND_SWITCHED,
        ),
        (False, {"dev/foo"}, [("exists", "dev/foo"), ("attach", "dev/foo")], SessionAction.ATTACHED),
        (
            False,
            set(),
            [("exists", "dev/foo"), ("create", "dev/foo", "/home/u/dev/foo"), ("attach", "dev/foo")],
            SessionAction.CREATED_AND_ATTACHED,
        ),
    ],
)
def test_activation_transitions(inside, existing, expected_calls, action):
    client = RecordingClient(existing)
    assert activate(RECORD, inside_client=inside, client=client) is action
    assert client.calls == expected_calls


def test_session_names_are_made_tmux_safe():
    client = RecordingClient()
    record = ProjectRecord(path="/p/site.io", session_name="w:dev/site.io")

    activate(record, inside_client=True, client=client)

    assert client.calls[0] == ("exists", "w_dev/site_io")
    assert tmux_session_name("a.b:c") == "a_b_c"


def test_inside_client_reads_tmux_variable():
    assert inside_tmux_client({"TMUX": "/tmp/tmux-1000/default,123,0"})
    assert not inside_tmux_client({})
    assert not inside_tmux_client({"TMUX": ""})


class FakeRunner:
    def __init__(self, returncode=0, stderr=""):
        self.returncode = returncode
        self.stderr = stderr
        self.commands = []

    def __call__(self, cmd, **kwargs):
        self.commands.append(cmd)
        return subprocess.CompletedProcess(cmd, self.returncode, stdout="", stderr=self.stderr)


def test_exists_true_on_success():
    runner = FakeRunner(0)
    assert TmuxClient(runner=runner).exists("dev/foo")
    assert runner.commands == [["tmux", "has-session", "-t", "=dev/foo"]]


@pytest.mark.parametrize(
    "stderr",
    [
        "can't find session: dev/foo",
        "no server running on /tmp/tmux-1000/default",
        "error connecting to /tmp/tmux-1000/default (No such file or directory)",
    ],
)
def test_exists_false_only_on_not_found(stderr):
    assert TmuxClient(runner=FakeRunner(1, stderr)).exists("dev/foo") is False


def test_exists_propagates_other_failures():
    with pytest.raises(SessionError):
        TmuxClient(runner=FakeRunner(1, "server exited unexpectedly")).exists("dev/foo")


def test_create_runs_detached_in_project_dir():
    runner = FakeRunner(0)
    TmuxClient(runner=runner).create("dev/foo", "/home/u/dev/foo")
    assert runner.commands == [["tmux", "new-session", "-d", "-s", "dev/foo", "-c", "/home/u/dev/foo"]]


def test_create_failure_raises():
    with pytest.raises(SessionError):
        TmuxClient(runner=FakeRunner(1, "duplicate session: dev/foo")).create("dev/foo", "/x")


def test_switch_failure_raises():
    with pytest.raises(SessionError):
        TmuxClient(runner=FakeRunner(1, "no current client")).switch("dev/foo")


def test_missing_tmux_binary_raises():
    def runner(cmd, **kwargs):
        raise FileNotFoundError(2, "No such file or directory", cmd[0])

    with pytest.raises(SessionError):
        TmuxClient(runner=runner).exists("dev/foo")


def test_attach_replaces_process():
    calls = []
    client = TmuxClient(execvp=lambda file, args: calls.append((file, args)))

    client.attach("dev/foo")

    assert calls == [("tmux", ["tmux", "attach-session", "-t", "=dev/foo"])]
