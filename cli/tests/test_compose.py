from __future__ import annotations

import json

import pytest
import yaml

from oneclick_core.compose import ComposeStack, detect_compose_command, parse_ps_json, render_compose
from oneclick_core.errors import DependencyInstallError, OrchestratorError


class FakeClock:
    def __init__(self) -> None:
        self.now = 0.0

    def __call__(self) -> float:
        return self.now

    def sleep(self, seconds: float) -> None:
        self.now += seconds


def _ps(*items: tuple[str, str, str]) -> str:
    return "\n".join(json.dumps({"Service": s, "State": state, "Health": health}) for s, state, health in items)


def _stack(runner, tmp_path, clock: FakeClock) -> ComposeStack:
    stack = ComposeStack(runner, tmp_path / "docker-compose.yml", sleep=clock.sleep, clock=clock)
    stack.write({"services": {"app": {"image": "nginx"}, "db": {"image": "mysql:8"}}})
    return stack


def test_parse_ps_json_accepts_array_and_lines() -> None:
    array = json.dumps([{"Service": "app", "State": "running", "Health": ""}])
    lines = _ps(("app", "running", "healthy"), ("db", "exited", ""))

    assert [s.service for s in parse_ps_json(array)] == ["app"]
    parsed = parse_ps_json(lines + "\nnot json\n")
    assert [(s.service, s.running, s.health) for s in parsed] == [("app", True, "healthy"), ("db", False, "")]
    assert parse_ps_json("") == []


def test_render_compose_keeps_key_order() -> None:
    text = render_compose({"services": {"z": {"image": "a"}, "a": {"image": "b"}}})
    assert text.index("z:") < text.index("a:")
    assert yaml.safe_load(text)["services"]["a"]["image"] == "b"


def test_detect_compose_prefers_plugin(runner) -> None:
    assert detect_compose_command(runner) == ("docker", "compose")


def test_detect_compose_falls_back_to_legacy(runner) -> None:
    runner.respond("docker compose version", returncode=1)
    runner.commands.add("docker-compose")
    assert detect_compose_command(runner) == ("docker-compose",)


def test_detect_compose_missing(runner) -> None:
    runner.respond("docker compose version", returncode=1)
    with pytest.raises(DependencyInstallError):
        detect_compose_command(runner)


def test_wait_running_returns_once_healthy(runner, tmp_path) -> None:
    clock = FakeClock()
    stack = _stack(runner, tmp_path, clock)
    runner.respond("ps --all", stdout=_ps(("app", "running", "starting"), ("db", "running", "")), times=2)
    runner.respond("ps --all", stdout=_ps(("app", "running", "healthy"), ("db", "running", "")))

    statuses = stack.wait_running(timeout=60, interval=5)

    assert all(s.running for s in statuses)
    assert clock.now == 10


def test_wait_running_times_out_with_logs_hint(runner, tmp_path) -> None:
    clock = FakeClock()
    stack = _stack(runner, tmp_path, clock)
    runner.respond("ps --all", stdout=_ps(("app", "running", ""), ("db", "restarting", "")))

    with pytest.raises(OrchestratorError, match="within 30s") as exc:
        stack.wait_running(timeout=30, interval=10)

    assert "db=restarting" in exc.value.message
    assert exc.value.hint.endswith("logs -f")


def test_up_failure_carries_output(runner, tmp_path) -> None:
    stack = _stack(runner, tmp_path, FakeClock())
    runner.respond("up -d", returncode=1, stderr="pull access denied")

    with pytest.raises(OrchestratorError, match="pull access denied"):
        stack.up()


def test_commands_run_in_project_dir(runner, tmp_path) -> None:
    stack = _stack(runner, tmp_path, FakeClock())
    stack.validate()
    stack.exec("app", "php", "occ", "status", user="www-data")

    assert runner.calls[0][-2:] == ["config", "-q"]
    assert runner.calls[1][-8:] == ["exec", "-T", "-u", "www-data", "app", "php", "occ", "status"]
    assert stack.services() == ["app", "db"]
    assert stack.handle().compose_file == tmp_path / "docker-compose.yml"
