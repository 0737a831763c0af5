import json
import os
import sys

import pytest
from conftest import DrainingSelector, RecordingClient, make_project
from loguru import logger

from listprojects.cache import ProjectCache
from listprojects.cli import build_parser, main, run
from listprojects.errors import CacheCorrupt
from listprojects.selector import FzfSelector


def parse(dev_root, tmp_path, *extra):
    return build_parser().parse_args([
        str(dev_root),
        "--config", str(tmp_path / "no-config.toml"),
        "--cache-file", str(tmp_path / "cache" / "cache.json"),
        *extra,
    ])


@pytest.mark.parametrize("inside, last_call", [(False, "attach"), (True, "switch")])
def test_single_project_end_to_end(tmp_path, dev_root, inside, last_call):
    project = make_project(dev_root, "foo")
    selector = DrainingSelector()
    client = RecordingClient()

    status = run(parse(dev_root, tmp_path), inside_client=inside, selector=selector, client=client)

    assert status == 0
    assert [r.path for r in selector.seen] == [str(project)]
    assert client.calls == [
        ("exists", "dev/foo"),
        ("create", "dev/foo", str(project)),
        (last_call, "dev/foo"),
    ]


def test_abort_makes_no_session_calls_and_saves_cache(tmp_path, dev_root):
    project = make_project(dev_root, "foo")
    client = RecordingClient()

    status = run(parse(dev_root, tmp_path), inside_client=False, selector=DrainingSelector(choose=False), client=client)

    assert status == 0
    assert client.calls == []
    saved = json.loads((tmp_path / "cache" / "cache.json").read_text())
    assert saved["paths"] == [{"full_path": str(project), "session_name": "dev/foo"}]


def test_second_run_is_seeded_from_cache(tmp_path, dev_root):
    make_project(dev_root, "foo")
    make_project(dev_root, "bar")
    run(parse(dev_root, tmp_path), inside_client=False, selector=DrainingSelector(choose=False))

    second = DrainingSelector(choose=False)
    run(parse(dev_root, tmp_path), inside_client=False, selector=second)

    assert second.seed_count == 2
    assert len(second.seen) == 2


def test_clear_flag_drops_seed(tmp_path, dev_root):
    make_project(dev_root, "foo")
    run(parse(dev_root, tmp_path), inside_client=False, selector=DrainingSelector(choose=False))

    cleared = DrainingSelector(choose=False)
    run(parse(dev_root, tmp_path, "--clear"), inside_client=False, selector=cleared)

    assert cleared.seed_count == 0
    assert len(cleared.seen) == 1


def test_corrupt_cache_is_fatal(tmp_path, dev_root):
    cache_file = tmp_path / "cache" / "cache.json"
    cache_file.parent.mkdir()
    cache_file.write_text("[oops")

    with pytest.raises(CacheCorrupt):
        run(parse(dev_root, tmp_path), inside_client=False, selector=DrainingSelector())


def test_main_reports_fatal_errors(tmp_path, capsys, monkeypatch):
    monkeypatch.setenv("HOME", str(tmp_path))
    monkeypatch.setenv("XDG_STATE_HOME", str(tmp_path / "state"))
    try:
        status = main(["--config", str(tmp_path / "missing.toml"), "--cache-file", str(tmp_path / "c.json")])
    finally:
        logger.remove()
        logger.add(sys.stderr)

    assert status == 1
    assert "listprojects: error:" in capsys.readouterr().err


def test_unsaved_cache_is_a_warning_not_a_failure(tmp_path, dev_root):
    make_project(dev_root, "foo")
    blocker = tmp_path / "not-a-dir"
    blocker.write_text("")
    args = build_parser().parse_args([
        str(dev_root),
        "--config", str(tmp_path / "no-config.toml"),
        "--cache-file", str(blocker / "cache.json"),
    ])
    warnings = []
    handler_id = logger.add(lambda message: warnings.append(message.record), level="WARNING")
    try:
        status = run(args, inside_client=False, selector=DrainingSelector(choose=False))
    finally:
        logger.remove(handler_id)

    assert status == 0
    report_warnings = [r for r in warnings if r["extra"].get("operation") == "error_report"]
    assert [r["message"] for r in report_warnings] == ["Failed to save project cache - next start will rescan"]


def test_undecodable_project_name_reaches_fzf_and_cache(tmp_path, dev_root):
    for name in (b"aaa", b"caf\xe9", b"zzz"):
        make_project(dev_root, os.fsdecode(name))
    fed = tmp_path / "fed"
    script = tmp_path / "fake-fzf"
    script.write_text(f'#!/bin/sh\ncat > "{fed}"\nexit 130\n')
    script.chmod(0o755)

    status = run(parse(dev_root, tmp_path), inside_client=False, selector=FzfSelector(command=str(script)))

    assert status == 0
    entries = [e for e in fed.read_bytes().split(b"\0") if e]
    assert sorted(e.split(b"\t", 1)[1] for e in entries) == [
        b"dev/aaa\t" + os.fsencode(dev_root / "aaa"),
        b"dev/caf\xe9\t" + os.fsencode(dev_root) + b"/caf\xe9",
        b"dev/zzz\t" + os.fsencode(dev_root / "zzz"),
    ]
    reloaded = ProjectCache.open(path=tmp_path / "cache" / "cache.json")
    assert sorted(os.fsencode(r.path) for r in reloaded.initial_items()) == sorted(
        os.fsencode(dev_root) + b"/" + name for name in (b"aaa", b"caf\xe9", b"zzz")
    )
