"""Root conftest: exports .env.test into the environment before chat_sync.config is imported."""
from __future__ import annotations

import os
from pathlib import Path


def _export_env_file(path: Path) -> None:
    if not path.exists():
        return
    for raw in path.read_text().splitlines():
        line = raw.strip()
        if not line or line.startswith("#") or "=" not in line:
            continue
        key, _, value = line.removeprefix("export ").partition("=")
        os.environ.setdefault(key.strip(), value.strip().strip("'\""))


_export_env_file(Path(__file__).resolve().parent / ".env.test")
