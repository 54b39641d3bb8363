from __future__ import annotations

import json
import logging
import shlex
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Iterable

import yaml

from .errors import DependencyInstallError, OrchestratorError
from .resources import ContainerStackHandle
from .runner import output_of

log = logging.getLogger(__name__)

COMPOSE_FILENAME = "docker-compose.yml"
DEFAULT_HEALTH_TIMEOUT = 120.0
DEFAULT_HEALTH_INTERVAL = 3.0
DEFAULT_LOG_TAIL = 40


def detect_compose_command(runner) -> tuple[str, ...]:
    """Prefer the v2 plugin, fall back to the legacy docker-compose binary."""
    if runner.run(["docker", "compose", "version"]).returncode == 0:
        return ("docker", "compose")
    if runner.which("docker-compose") is not None:
        return ("docker-compose",)
    raise DependencyInstallError(
        "Docker Compose was not found (neither `docker compose` nor `docker-compose`).",
        hint="apt-get install -y docker-compose-plugin",
    )


def render_compose(compose: dict[str, Any]) -> str:
    dumped = yaml.safe_dump(compose, sort_keys=False, default_flow_style=False, allow_unicode=True)
    return dumped if dumped.endswith("\n") else dumped + "\n"


def escape_interpolation(value: str | None) -> str | None:
    """Keep a literal value (password, token) away from compose $VAR substitution."""
    if value is None:
        return None
    return value.replace("$", "$$")


def load_compose(path: Path) -> dict[str, Any]:
    data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    if not isinstance(data, dict):
        raise OrchestratorError(f"{path} is not a compose mapping.")
    return data


@dataclass(frozen=True)
class ContainerStatus:
    service: str
    state: str
    health: str

    @property
    def running(self) -> bool:
        return self.state == "running"


def parse_ps_json(raw: str) -> list[ContainerStatus]:
    """Accepts both the JSON array and the JSON-lines output of `compose ps --format json`."""
    text = (raw or "").strip()
    if not text:
        return []
    items: list[Any]
    try:
        parsed = json.loads(text)
        items = parsed if isinstance(parsed, list) else [parsed]
    except ValueError:
        items = []
        for line in text.splitlines():
            line = line.strip()
            if not line:
                continue
            try:
                items.append(json.loads(line))
            except ValueError:
                continue
    statuses: list[ContainerStatus] = []
    for item in items:
        if not isinstance(item, dict):
            continue
        statuses.append(
            ContainerStatus(
                service=str(item.get("Service") or item.get("Name") or ""),
                state=str(item.get("State") or "").lower(),
                health=str(item.get("Health") or "").lower(),
            )
        )
    return statuses


class ComposeStack:
    def __init__(
        self,
        runner,
        compose_file: Path,
        *,
        compose_cmd: Iterable[str] = ("docker", "compose"),
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._runner = runner
        self.compose_file = Path(compose_file)
        self.compose_cmd = tuple(compose_cmd)
        self._sleep = sleep
        self._clock = clock

    @property
    def project_dir(self) -> Path:
        return self.compose_file.parent

    def handle(self, *, keep_volumes: bool = False, persistent: bool = False) -> ContainerStackHandle:
        return ContainerStackHandle(
            compose_file=self.compose_file,
            compose_cmd=self.compose_cmd,
            keep_volumes=keep_volumes,
            persistent=persistent,
        )

    def command(self, *args: str) -> str:
        return " ".join(shlex.quote(part) for part in self._base() + list(args))

    def logs_hint(self) -> str:
        return self.command("logs", "-f")

    def write(self, compose: dict[str, Any]) -> Path:
        self.compose_file.parent.mkdir(parents=True, exist_ok=True)
        self.compose_file.write_text(render_compose(compose), encoding="utf-8")
        return self.compose_file

    def validate(self) -> None:
        res = self._run("config", "-q")
        if res.returncode != 0:
            raise OrchestratorError(
                f"Compose validation failed: {output_of(res) or f'exit {res.returncode}'}",
                hint=self.command("config"),
            )

    def pull(self) -> None:
        res = self._run("pull")
        if res.returncode != 0:
            raise OrchestratorError(
                "Failed to pull images. Likely causes: network/DNS issues, registry mirror or an invalid tag.\n"
                + _tail(output_of(res), 12),
                hint=self.command("pull"),
            )

    def up(self, *services: str) -> None:
        res = self._run("up", "-d", *services)
        if res.returncode != 0:
            raise OrchestratorError(
                f"Failed to start containers: {_tail(output_of(res), 12) or f'exit {res.returncode}'}",
                hint=self.logs_hint(),
            )

    def down(self, *, volumes: bool = False) -> None:
        args = ["down"]
        if volumes:
            args.extend(["--volumes", "--remove-orphans"])
        res = self._run(*args)
        if res.returncode != 0:
            raise OrchestratorError(f"Failed to stop stack: {output_of(res)}", hint=self.command(*args))

    def restart(self, *services: str) -> None:
        res = self._run("restart", *services)
        if res.returncode != 0:
            raise OrchestratorError(f"Failed to restart: {output_of(res)}", hint=self.logs_hint())

    def exec(self, service: str, *cmd: str, user: str | None = None) -> str:
        args = ["exec", "-T"]
        if user:
            args.extend(["-u", user])
        res = self._run(*args, service, *cmd)
        if res.returncode != 0:
            raise OrchestratorError(
                f"`{' '.join(cmd)}` failed in {service}: {output_of(res)}",
                hint=self.command("logs", service),
            )
        return res.stdout or ""

    def ps(self) -> list[ContainerStatus]:
        res = self._run("ps", "--all", "--format", "json")
        if res.returncode != 0:
            return []
        return parse_ps_json(res.stdout or "")

    def logs(self, *, tail: int = DEFAULT_LOG_TAIL) -> str:
        res = self._run("logs", "--no-color", "--tail", str(tail))
        return (res.stdout or "").strip() or (res.stderr or "").strip()

    def services(self) -> list[str]:
        if not self.compose_file.exists():
            return []
        data = load_compose(self.compose_file)
        services = data.get("services") or {}
        return [str(name) for name in services] if isinstance(services, dict) else []

    def wait_running(
        self,
        *,
        timeout: float = DEFAULT_HEALTH_TIMEOUT,
        interval: float = DEFAULT_HEALTH_INTERVAL,
        expected: int | None = None,
    ) -> list[ContainerStatus]:
        """Poll until every service runs and none reports an unhealthy or starting healthcheck."""
        want = expected if expected is not None else len(self.services())
        deadline = self._clock() + timeout
        statuses: list[ContainerStatus] = []
        while True:
            statuses = self.ps()
            running = [s for s in statuses if s.running]
            settled = all(s.health not in {"starting", "unhealthy"} for s in running)
            if running and len(running) >= want and settled:
                return statuses
            if self._clock() >= deadline:
                break
            self._sleep(interval)
        summary = ", ".join(f"{s.service}={s.state}{'/' + s.health if s.health else ''}" for s in statuses)
        raise OrchestratorError(
            f"Services did not become ready within {int(timeout)}s ({summary or 'no containers'}).",
            hint=self.logs_hint(),
        )

    def _base(self) -> list[str]:
        return [*self.compose_cmd, "-f", str(self.compose_file)]

    def _run(self, *args: str):
        return self._runner.run(self._base() + list(args), cwd=self.project_dir)


def _tail(text: str, limit: int) -> str:
    lines = [line for line in (text or "").splitlines() if line.strip()]
    return "\n".join(lines[-limit:])
