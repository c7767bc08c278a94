"""Root conftest: test environment for chat_client settings, applied before imports."""
from __future__ import annotations

import os
from pathlib import Path

# Tests never reach a real Redis, whatever the developer's shell says.
_FORCED = {"CREDENTIAL_BACKEND": "memory"}


def _read_env_file(path: Path) -> dict[str, str]:
    values: dict[str, str] = {}
    if not path.exists():
        return values
    for line in path.read_text().splitlines():
        line = line.strip()
        if not line or line.startswith("#"):
            continue
        key, _, value = line.partition("=")
        values[key.strip()] = value.strip()
    return values


for _key, _value in _read_env_file(Path(__file__).resolve().parent / ".env.test").items():
    os.environ.setdefault(_key, _value)
os.environ.update(_FORCED)
