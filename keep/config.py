import json
from pathlib import Path

KEEPCONFIG = ".keepconfig"
GLOBAL_CONFIG_FILE = Path.home() / ".keep" / "config.json"

DEFAULT_CONFIG = {
    "storage_backend": "archive",
    "backup_dir": "backups",
    "state_file": ".keep/state",
    "persist_digests": True,
}


def load_global_config():
    """Load ~/.keep/config.json, the user-wide defaults."""
    if GLOBAL_CONFIG_FILE.exists():
        try:
            return json.loads(GLOBAL_CONFIG_FILE.read_text())
        except (json.JSONDecodeError, OSError):
            pass
    return {}


def find_config(start=None):
    """Walk up from start (default cwd) to find .keepconfig, like git finds .git."""
    current = Path(start) if start else Path.cwd()
    for parent in [current, *current.parents]:
        config_path = parent / KEEPCONFIG
        if config_path.exists():
            return config_path
    return None


def load_config(start=None):
    # Merge order: defaults → global config → project .keepconfig
    config = {**DEFAULT_CONFIG, **load_global_config()}

    config_path = find_config(start)
    if config_path:
        try:
            raw = json.loads(config_path.read_text())
        except json.JSONDecodeError as e:
            raise ValueError(f"Invalid JSON in {config_path}: {e}")
        if not isinstance(raw, dict):
            raise ValueError(f"{config_path} must contain a JSON object")
        config.update(raw)

    return config


def project_root(start=None):
    """Directory holding .keepconfig, or the start directory when there is none."""
    config_path = find_config(start)
    if config_path:
        return config_path.parent
    return Path(start) if start else Path.cwd()


def resolve_path(value, root):
    """Resolve a configured path; relative paths are taken from the project root."""
    path = Path(value).expanduser()
    return path if path.is_absolute() else Path(root) / path


def init_config(path=None, storage_backend=None):
    """Create a .keepconfig in the given directory."""
    target = Path(path) if path else Path.cwd()
    config_path = target / KEEPCONFIG
    global_cfg = load_global_config()
    init = {
        "storage_backend": (storage_backend or global_cfg.get("storage_backend")
                            or DEFAULT_CONFIG["storage_backend"]),
        "backup_dir": global_cfg.get("backup_dir") or DEFAULT_CONFIG["backup_dir"],
    }
    config_path.write_text(json.dumps(init, indent=2) + "\n")
    return config_path
