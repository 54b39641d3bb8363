from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Iterable, Mapping


def render_env(values: Mapping[str, object], *, header: Iterable[str] = ()) -> str:
    lines = [f"# {line}" for line in header]
    for key, value in values.items():
        if value is None:
            continue
        if isinstance(value, (list, tuple)):
            text = json.dumps(list(value), ensure_ascii=False)
        elif isinstance(value, bool):
            text = "true" if value else "false"
        else:
            text = str(value)
        lines.append(f"{key}={text}")
    return "\n".join(lines) + "\n"


def read_env_content(content: str) -> dict[str, str]:
    data: dict[str, str] = {}
    for raw in content.splitlines():
        line = raw.strip()
        if not line or line.startswith("#"):
            continue
        if line.startswith("export "):
            line = line[len("export ") :].strip()
        if "=" not in line:
            continue
        key, value = line.split("=", 1)
        data[key.strip()] = value.strip()
    return data


def read_env_file(path: Path) -> dict[str, str]:
    if not path.exists():
        return {}
    return read_env_content(path.read_text(encoding="utf-8"))


def update_env_content(content: str, updates: Mapping[str, str]) -> str:
    """Replace values of existing keys in place and append missing ones."""
    pending = dict(updates)
    out: list[str] = []
    for raw in content.splitlines():
        stripped = raw.strip()
        key = stripped.split("=", 1)[0].strip() if "=" in stripped and not stripped.startswith("#") else None
        if key is not None and key in pending:
            out.append(f"{key}={pending.pop(key)}")
        else:
            out.append(raw)
    out.extend(f"{key}={value}" for key, value in pending.items())
    return "\n".join(out) + "\n"


def write_private(path: Path, content: str) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content, encoding="utf-8")
    os.chmod(path, 0o600)
    return path
