from __future__ import annotations

import json
import subprocess
from pathlib import Path

import pytest
import typer
from typer.testing import CliRunner

from oneclick_core.engine import Workflow
from oneclick_core.errors import DependencyInstallError
from oneclick_core.host import OsRelease
from oneclick_core.resources import ContainerStackHandle, DirectoryHandle, ServiceUnitHandle
from oneclick_core.rollback import RollbackHandler
from oneclick_core.session import ProvisioningSession
from oneclick_core.systemd import ServiceManager
from oneclick_cli import config, main
from oneclick_cli.commands import deploy_cmd
from oneclick_cli.recipes import base
from oneclick_cli.recipes.base import DeployOptions, run_recipe
from oneclick_cli.recipes.gemini import GeminiAnswers, GeminiRecipe
from oneclick_cli.recipes.liteyuki import LiteyukiAnswers, LiteyukiRecipe

RUNNING = "\n".join(
    json.dumps({"Service": name, "State": "running", "Health": ""}) for name in ("gemini-balance", "mysql")
)


@pytest.fixture(autouse=True)
def _host(monkeypatch):
    monkeypatch.setattr(base, "require_root", lambda **kwargs: None)
    monkeypatch.setattr(base, "require_supported_os", lambda: OsRelease("ubuntu", ("debian",), "Ubuntu 22.04"))


def _options(tmp_path, **kwargs) -> DeployOptions:
    values = dict(
        install_dir=tmp_path / "gemini_proxy",
        assume_yes=True,
        china_mirror=False,
        public_ip="203.0.113.7",
        health_timeout=1.0,
        health_interval=0.01,
    )
    values.update(kwargs)
    return DeployOptions(**values)


def _gemini(tmp_path, runner, **kwargs) -> GeminiRecipe:
    answers = GeminiAnswers(api_keys=["key"], access_token="tok", mysql_root_password="r", mysql_password="p")
    return GeminiRecipe(_options(tmp_path, **kwargs), answers, runner=runner)


def test_gemini_deploys(runner, tmp_path) -> None:
    runner.respond("ps --all", stdout=RUNNING)

    outcome = run_recipe(_gemini(tmp_path, runner), install_signal_hook=False)

    assert outcome.exit_code == 0
    work = tmp_path / "gemini_proxy"
    assert (work / ".env").read_text(encoding="utf-8").count("API_KEYS") == 1
    assert (work / "docker-compose.yml").exists()
    assert runner.ran("up -d")


def test_gemini_start_failure_rolls_back(runner, tmp_path) -> None:
    runner.respond("up -d", returncode=1, stderr="port 8000 already allocated")

    outcome = run_recipe(_gemini(tmp_path, runner), install_signal_hook=False)

    assert outcome.exit_code == 1
    assert outcome.error.step == "start services"
    assert [type(h) for h in outcome.rollback.removed] == [ContainerStackHandle, DirectoryHandle]
    assert runner.ran("down --volumes --remove-orphans")
    assert not (tmp_path / "gemini_proxy").exists()


def test_existing_work_dir_survives_failure(runner, tmp_path) -> None:
    work = tmp_path / "gemini_proxy"
    work.mkdir()
    (work / "notes.txt").write_text("mine", encoding="utf-8")
    runner.respond("up -d", returncode=1)

    outcome = run_recipe(_gemini(tmp_path, runner), install_signal_hook=False)

    assert outcome.exit_code == 1
    assert (work / "notes.txt").exists()
    assert [type(h) for h in outcome.rollback.removed] == [ContainerStackHandle]
    assert runner.ran("down --remove-orphans")
    assert not runner.ran("--volumes")


def test_declined_data_removal_keeps_directory(runner, tmp_path) -> None:
    runner.respond("up -d", returncode=1)

    outcome = run_recipe(
        _gemini(tmp_path, runner, assume_yes=False),
        confirm=lambda message: False,
        install_signal_hook=False,
    )

    assert outcome.exit_code == 1
    kept = outcome.rollback.kept
    assert [type(h) for h in kept] == [ContainerStackHandle, DirectoryHandle]
    assert kept[1] == DirectoryHandle(tmp_path / "gemini_proxy", persistent=True)
    assert kept[0].manual_command().endswith("down --volumes --remove-orphans")
    assert not runner.ran("down --volumes")
    assert (tmp_path / "gemini_proxy").exists()


def test_rerun_over_existing_deployment_keeps_its_volumes(runner, tmp_path) -> None:
    work = tmp_path / "gemini_proxy"
    work.mkdir()
    (work / "docker-compose.yml").write_text("services: {}\n", encoding="utf-8")
    runner.respond(" pull", returncode=1, stderr="registry timeout")
    asked: list[str] = []

    def decline(message: str) -> bool:
        asked.append(message)
        return False

    outcome = run_recipe(
        _gemini(tmp_path, runner, assume_yes=False),
        confirm=decline,
        install_signal_hook=False,
    )

    assert outcome.exit_code == 1
    assert outcome.error.step == "start services"
    assert asked == []
    assert runner.ran("down --remove-orphans")
    assert not runner.ran("--volumes")
    assert (work / "docker-compose.yml").exists()


def test_missing_docker_with_skip_flag_fails_before_files(runner, tmp_path) -> None:
    runner.commands.discard("docker")

    outcome = run_recipe(_gemini(tmp_path, runner, skip_docker_install=True), install_signal_hook=False)

    assert outcome.exit_code == 1
    assert outcome.error.step == "install dependencies"
    assert outcome.rollback.empty
    assert not (tmp_path / "gemini_proxy").exists()


def test_abort_during_prompts_exits_130(runner, tmp_path, monkeypatch) -> None:
    def aborted(message, **kwargs):
        raise typer.Abort()

    monkeypatch.setattr(typer, "prompt", aborted)
    recipe = GeminiRecipe(_options(tmp_path), runner=runner)

    outcome = run_recipe(recipe, install_signal_hook=False)

    assert outcome.exit_code == 130
    assert outcome.error.step == "collect configuration"
    assert outcome.rollback.empty


def test_undetectable_public_ip_falls_back_to_prompt(runner, tmp_path, monkeypatch) -> None:
    monkeypatch.setattr(base, "resolve_public_ip", lambda endpoints, timeout: "")
    answers = iter(["", "1.2.3.4"])
    asked: list[str] = []

    def fake_prompt(message, **kwargs):
        asked.append(message)
        return next(answers)

    monkeypatch.setattr(typer, "prompt", fake_prompt)
    recipe = _gemini(tmp_path, runner, public_ip=None)

    assert recipe.resolve_server_ip() == "1.2.3.4"
    assert len(asked) == 2
    assert recipe.server_ip == "1.2.3.4"


class CloningRunner:
    """Creates the clone target so later steps can write into it."""

    def __init__(self, runner):
        self._runner = runner
        self.commands = runner.commands

    def run(self, cmd, **kwargs):
        res = self._runner.run(cmd, **kwargs)
        if list(cmd[:2]) == ["git", "clone"] and res.returncode == 0:
            clone = Path(cmd[-1])
            clone.mkdir(parents=True)
            clone.joinpath("requirements.txt").write_text("nonebot2\n", encoding="utf-8")
        return res

    def shell(self, script, **kwargs):
        return self._runner.shell(script, **kwargs)

    def which(self, name):
        return self._runner.which(name)


def test_liteyuki_service_failure_removes_unit_and_clone(runner, tmp_path, monkeypatch) -> None:
    monkeypatch.setenv("SUDO_USER", "root")
    runner.respond("systemctl start liteyukibot.service", returncode=1, stderr="failed")
    cloning = CloningRunner(runner)
    services = ServiceManager(cloning, unit_dir=tmp_path / "units")
    recipe = LiteyukiRecipe(
        _options(tmp_path, install_dir=tmp_path / "liteyuki_bot"),
        LiteyukiAnswers(superuser_qq="10001", onebot_token="", repo_url="https://example.com/bot.git"),
        runner=cloning,
        services=services,
    )

    outcome = run_recipe(recipe, install_signal_hook=False)

    assert outcome.exit_code == 1
    assert outcome.error.step == "register service"
    kinds = [type(h) for h in outcome.rollback.removed]
    assert kinds == [ServiceUnitHandle, DirectoryHandle, ContainerStackHandle, DirectoryHandle]
    assert not (tmp_path / "units" / "liteyukibot.service").exists()
    assert not (tmp_path / "liteyuki_bot").exists()
    assert runner.ran("apt-get install -y python3-venv libnss3")


class PartialCloneRunner(CloningRunner):
    """git clone dies halfway, leaving a half-written checkout."""

    def run(self, cmd, **kwargs):
        if list(cmd[:2]) == ["git", "clone"]:
            self._runner.calls.append([str(part) for part in cmd])
            Path(cmd[-1]).mkdir(parents=True)
            return subprocess.CompletedProcess(list(cmd), 128, "", "fatal: early EOF")
        return self._runner.run(cmd, **kwargs)


def test_liteyuki_failed_clone_removes_partial_checkout(runner, tmp_path, monkeypatch) -> None:
    monkeypatch.setenv("SUDO_USER", "root")
    recipe = LiteyukiRecipe(
        _options(tmp_path, install_dir=tmp_path / "liteyuki_bot"),
        LiteyukiAnswers(superuser_qq="10001", onebot_token="", repo_url="https://example.com/bot.git"),
        runner=PartialCloneRunner(runner),
        services=ServiceManager(runner, unit_dir=tmp_path / "units"),
    )
    recipe.workflow = Workflow(ProvisioningSession(), RollbackHandler(runner), install_signal_hook=False)

    with pytest.raises(DependencyInstallError, match="early EOF"):
        recipe.install_bot()

    assert not recipe.bot_dir.exists()
    assert recipe.workflow.session.created_resources == []


def test_deploy_command_exit_code(runner, tmp_path, monkeypatch) -> None:
    monkeypatch.setattr(config, "user_config_dir", lambda _: str(tmp_path / "cfg"))
    monkeypatch.setattr(deploy_cmd, "make_runner", lambda: runner)
    runner.respond("up -d", returncode=1, stderr="disk full")
    target = tmp_path / "g"

    result = CliRunner().invoke(
        main._build_app(),
        [
            "deploy",
            "gemini",
            "--install-dir",
            str(target),
            "--yes",
            "--no-china-mirror",
            "--public-ip",
            "203.0.113.7",
            "--api-key",
            "k1",
            "--access-token",
            "t",
            "--mysql-root-password",
            "r",
            "--mysql-password",
            "p",
        ],
    )

    assert result.exit_code == 1, result.output
    assert "disk full" in result.output
    assert not target.exists()


def test_deploy_default_install_dir(tmp_path, monkeypatch) -> None:
    monkeypatch.setattr(config, "user_config_dir", lambda _: str(tmp_path / "cfg"))
    monkeypatch.setenv(config.ENV_INSTALL_ROOT, str(tmp_path / "apps"))

    options = deploy_cmd.build_options("koishi", None, False, None, False, None)

    assert options.install_dir == tmp_path / "apps" / "koishi-napcat"
    assert options.china_mirror is None
