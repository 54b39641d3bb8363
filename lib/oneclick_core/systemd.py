from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path

from .errors import OneclickError
from .resources import ServiceUnitHandle
from .runner import output_of

log = logging.getLogger(__name__)

DEFAULT_UNIT_DIR = Path("/etc/systemd/system")


class ServiceManagerError(OneclickError):
    pass


@dataclass(frozen=True)
class UnitSpec:
    name: str
    description: str
    exec_start: str
    working_directory: str
    user: str | None = None
    restart: str = "on-failure"
    restart_sec: str = "5s"
    after: str = "network.target"

    @property
    def unit(self) -> str:
        return self.name if self.name.endswith(".service") else f"{self.name}.service"


def render_unit(spec: UnitSpec) -> str:
    service = [
        "Type=simple",
    ]
    if spec.user:
        service.append(f"User={spec.user}")
    service.extend(
        [
            f"WorkingDirectory={spec.working_directory}",
            f"ExecStart={spec.exec_start}",
            f"Restart={spec.restart}",
            f"RestartSec={spec.restart_sec}",
        ]
    )
    lines = [
        "[Unit]",
        f"Description={spec.description}",
        f"After={spec.after}",
        "",
        "[Service]",
        *service,
        "",
        "[Install]",
        "WantedBy=multi-user.target",
    ]
    return "\n".join(lines) + "\n"


class ServiceManager:
    """systemctl wrapper used symmetrically by install and rollback."""

    def __init__(self, runner, *, unit_dir: Path = DEFAULT_UNIT_DIR):
        self._runner = runner
        self.unit_dir = unit_dir

    def unit_path(self, name: str) -> Path:
        unit = name if name.endswith(".service") else f"{name}.service"
        return self.unit_dir / unit

    def write_unit(self, spec: UnitSpec) -> ServiceUnitHandle:
        path = self.unit_path(spec.unit)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(render_unit(spec), encoding="utf-8")
        log.info("wrote unit %s", path)
        return ServiceUnitHandle(name=spec.unit, unit_path=path)

    def daemon_reload(self) -> None:
        self._systemctl("daemon-reload")

    def enable(self, unit: str) -> None:
        self._systemctl("enable", unit)

    def start(self, unit: str) -> None:
        self._systemctl("start", unit)

    def stop(self, unit: str) -> None:
        self._systemctl("stop", unit)

    def disable(self, unit: str) -> None:
        self._systemctl("disable", unit)

    def is_active(self, unit: str) -> bool:
        return self._runner.run(["systemctl", "is-active", "--quiet", unit]).returncode == 0

    def remove(self, handle: ServiceUnitHandle) -> None:
        errors: list[str] = []
        for action in ("stop", "disable"):
            try:
                self._systemctl(action, handle.unit)
            except ServiceManagerError as exc:
                # a unit that never started cannot be stopped; keep going
                errors.append(str(exc))
        if handle.unit_path.exists():
            handle.unit_path.unlink()
        self.daemon_reload()
        if handle.unit_path.exists():
            raise ServiceManagerError(f"Unit file still present: {handle.unit_path}")
        for message in errors:
            log.debug("ignored during unit removal: %s", message)

    def _systemctl(self, *args: str) -> None:
        res = self._runner.run(["systemctl", *args])
        if res.returncode != 0:
            raise ServiceManagerError(
                f"systemctl {' '.join(args)} failed: {output_of(res) or f'exit {res.returncode}'}",
                hint="journalctl -xe --no-pager | tail -n 50",
            )
