"""Command-line interface, driven through click's CliRunner.

Run: pytest test_cli.py
"""

import io
import json
import time
from concurrent.futures import Future

import pytest
from click.testing import CliRunner
from rich.console import Console

from keep.cli import _run_restore, main, open_job
from keep.config import KEEPCONFIG, load_config
from keep.errors import OperationCancelled


@pytest.fixture
def project(tmp_path, monkeypatch):
    root = tmp_path / "project"
    root.mkdir()
    monkeypatch.chdir(root)
    return root


@pytest.fixture
def runner():
    return CliRunner(env={"COLUMNS": "200"})


def _invoke(runner, *args):
    return runner.invoke(main, list(args), catch_exceptions=False)


def test_init_writes_config(runner, project):
    result = _invoke(runner, "init", "--backend", "flat")
    assert result.exit_code == 0
    config = json.loads((project / KEEPCONFIG).read_text())
    assert config["storage_backend"] == "flat"

    result = _invoke(runner, "init")
    assert "already exists" in result.output


def test_config_merges_defaults_and_project(project):
    (project / KEEPCONFIG).write_text(json.dumps({"storage_backend": "nested"}))
    sub = project / "deeper" / "dir"
    sub.mkdir(parents=True)
    config = load_config(sub)
    assert config["storage_backend"] == "nested"
    assert config["backup_dir"] == "backups"
    assert config["persist_digests"] is True


def test_config_rejects_invalid_json(project):
    (project / KEEPCONFIG).write_text("{not json")
    with pytest.raises(ValueError, match="Invalid JSON"):
        load_config(project)


def test_backup_and_restore_roundtrip(runner, project, make_file, tmp_path):
    _invoke(runner, "init", "--backend", "archive")
    a = make_file("a.txt", "alpha")
    b = make_file("b.txt", "beta")

    result = _invoke(runner, "add", str(a), str(b))
    assert result.exit_code == 0, result.output
    assert "Tracking" in result.output

    result = _invoke(runner, "backup")
    assert result.exit_code == 0, result.output
    assert "Restore point created" in result.output
    assert (project / ".keep" / "state").exists()

    result = _invoke(runner, "list")
    assert result.exit_code == 0
    assert "archive" in result.output

    result = _invoke(runner, "verify", "0")
    assert result.exit_code == 0
    assert "intact" in result.output

    out = tmp_path / "restored"
    result = _invoke(runner, "restore", "0", str(out))
    assert result.exit_code == 0, result.output
    assert "Restore complete: 100%" in result.output
    assert (out / "a.txt").read_text() == "alpha"
    assert (out / "b.txt").read_text() == "beta"

    job, _ = open_job()
    assert len(job.restore_points) == 1
    assert len(job.objects) == 2


def test_errors_exit_nonzero(runner, project, make_file):
    _invoke(runner, "init")
    result = _invoke(runner, "backup")
    assert result.exit_code == 1
    assert "Nothing to back up" in result.output

    a = make_file("a.txt", "alpha")
    _invoke(runner, "add", str(a))
    result = _invoke(runner, "add", str(a))
    assert result.exit_code == 1
    assert "Already tracked" in result.output

    result = _invoke(runner, "remove", "/not/tracked.txt")
    assert result.exit_code == 1

    result = _invoke(runner, "restore", "3", "out")
    assert result.exit_code == 1
    assert "No restore points" in result.output


def test_verify_lists_changed_files(runner, project, make_file):
    _invoke(runner, "init", "--backend", "flat")
    a = make_file("a.txt", "alpha")
    _invoke(runner, "add", str(a))
    _invoke(runner, "backup")
    a.write_text("tampered")

    result = _invoke(runner, "verify", "0")
    assert result.exit_code == 1
    assert "changed or missing" in result.output


def test_logs_shows_events(runner, project, make_file):
    _invoke(runner, "init", "--backend", "flat")
    _invoke(runner, "add", str(make_file("a.txt", "alpha")))
    _invoke(runner, "backup")

    result = _invoke(runner, "logs")
    assert result.exit_code == 0
    assert "restore_point" in result.output


def test_shell_session(runner, project, make_file, tmp_path):
    _invoke(runner, "init", "--backend", "nested")
    a = make_file("a.txt", "alpha")
    out = tmp_path / "out"
    commands = "\n".join([
        "help",
        f"add {a}",
        "backup",
        "list",
        "verify 0",
        f"restore 0 {out}",
        "restore 9 somewhere",
        "bogus",
        "exit",
    ]) + "\n"

    result = runner.invoke(main, [], input=commands, catch_exceptions=False)
    assert result.exit_code == 0, result.output
    assert "Restore point created" in result.output
    assert "Intact" in result.output
    assert "No such restore point" in result.output
    assert "Unknown command" in result.output
    assert (out / "a.txt").read_text() == "alpha"


def test_add_warns_on_shared_basename(runner, project, make_file):
    _invoke(runner, "init", "--backend", "flat")
    first = make_file("notes.txt", "first", subdir="one")
    second = make_file("notes.txt", "second", subdir="two")

    result = _invoke(runner, "add", str(first), str(second))
    assert result.exit_code == 0, result.output
    assert "shares its name with" in result.output
    assert len(open_job()[0].objects) == 2


def test_ctrl_c_cancels_restore_between_files(monkeypatch):
    class _SlowJob:
        def restore(self, point, target, token):
            for _ in range(100):
                if token.cancelled:
                    raise OperationCancelled("Restore cancelled after 1 of 3 files")
                time.sleep(0.05)
            return []

    original_result = Future.result
    interrupted = []

    def _result(self, timeout=None):
        if not interrupted:
            interrupted.append(True)
            raise KeyboardInterrupt
        return original_result(self, timeout)

    monkeypatch.setattr(Future, "result", _result)
    out = io.StringIO()
    console = Console(file=out)

    with pytest.raises(OperationCancelled):
        _run_restore(_SlowJob(), point=None, target="unused", console=console)
    assert "Cancelling after the current file" in out.getvalue()
