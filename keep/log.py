"""Backup audit logging.

Appends structured JSON entries to ~/.keep/logs.jsonl.
Each entry records one job event (restore point created, restore finished or
cancelled, state saved/loaded) with a timestamp and the paths involved.
"""

import json
from datetime import datetime
from pathlib import Path

LOGS_FILE = Path.home() / ".keep" / "logs.jsonl"


def write_log(entry):
    """Append an audit log entry."""
    LOGS_FILE.parent.mkdir(parents=True, exist_ok=True)
    entry = {"timestamp": datetime.now().isoformat(), **entry}
    with open(LOGS_FILE, "a", encoding="utf-8") as f:
        f.write(json.dumps(entry, default=str) + "\n")


def read_logs(limit=None):
    """Return logged entries oldest-first, skipping unreadable lines."""
    if not LOGS_FILE.exists():
        return []
    entries = []
    for line in LOGS_FILE.read_text(encoding="utf-8").splitlines():
        line = line.strip()
        if not line:
            continue
        try:
            entries.append(json.loads(line))
        except json.JSONDecodeError:
            continue
    return entries[-limit:] if limit else entries
