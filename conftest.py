import pytest

import keep.config
import keep.log


@pytest.fixture(autouse=True)
def _isolated_home(tmp_path, monkeypatch):
    """Keep the audit log and global config out of the real ~/.keep."""
    home = tmp_path / "home"
    monkeypatch.setattr(keep.log, "LOGS_FILE", home / ".keep" / "logs.jsonl")
    monkeypatch.setattr(keep.config, "GLOBAL_CONFIG_FILE", home / ".keep" / "config.json")
    return home


@pytest.fixture
def make_file(tmp_path):
    """Write a file under tmp_path/src and return its absolute path."""
    def _make(name, content=b"", subdir="src"):
        path = tmp_path / subdir / name
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(content if isinstance(content, bytes) else content.encode())
        return path
    return _make
