from __future__ import annotations

import os
import shlex
from dataclasses import dataclass
from pathlib import Path
from typing import Callable

from .errors import PreconditionError

OS_RELEASE_PATH = Path("/etc/os-release")
SUPPORTED_IDS = ("ubuntu", "debian")


@dataclass(frozen=True)
class OsRelease:
    id: str
    id_like: tuple[str, ...]
    pretty_name: str

    @property
    def supported(self) -> bool:
        return self.id in SUPPORTED_IDS or any(item in SUPPORTED_IDS for item in self.id_like)


def parse_os_release(content: str) -> OsRelease:
    data: dict[str, str] = {}
    for raw in content.splitlines():
        line = raw.strip()
        if not line or line.startswith("#") or "=" not in line:
            continue
        key, value = line.split("=", 1)
        try:
            parts = shlex.split(value)
        except ValueError:
            parts = [value.strip("\"'")]
        data[key.strip()] = parts[0] if len(parts) == 1 else " ".join(parts)
    os_id = data.get("ID", "").lower()
    return OsRelease(
        id=os_id,
        id_like=tuple(data.get("ID_LIKE", "").lower().split()),
        pretty_name=data.get("PRETTY_NAME") or os_id or "unknown",
    )


def read_os_release(path: Path = OS_RELEASE_PATH) -> OsRelease:
    try:
        content = path.read_text(encoding="utf-8")
    except OSError:
        raise PreconditionError(f"Cannot detect the operating system ({path} is missing).")
    return parse_os_release(content)


def require_root(geteuid: Callable[[], int] | None = None, *, script: str = "oneclick") -> None:
    euid = (geteuid or getattr(os, "geteuid", lambda: -1))()
    if euid != 0:
        raise PreconditionError("This command must be run as root.", hint=f"sudo {script}")


def require_supported_os(path: Path = OS_RELEASE_PATH) -> OsRelease:
    release = read_os_release(path)
    if not release.supported:
        raise PreconditionError(
            f"Only Ubuntu or Debian hosts are supported (detected: {release.pretty_name}).",
        )
    return release


def invoking_user(environ: dict[str, str] | None = None) -> str:
    """The login user behind sudo, used as the owner of generated service units."""
    env = os.environ if environ is None else environ
    return env.get("SUDO_USER") or env.get("USER") or "root"
