from __future__ import annotations

import pytest

from oneclick_core.errors import DependencyInstallError
from oneclick_core.packages import DOCKER_CHINA_SCRIPT, DockerInstaller, PackageInstaller, switch_system_mirror


class InstallingRunner:
    """Makes a command appear once apt-get installs its package."""

    def __init__(self, runner, provides: dict[str, str]):
        self._runner = runner
        self._provides = provides

    def run(self, cmd, **kwargs):
        res = self._runner.run(cmd, **kwargs)
        if list(cmd[:2]) == ["apt-get", "install"] and res.returncode == 0:
            for package in cmd[3:]:
                if package in self._provides:
                    self._runner.commands.add(self._provides[package])
        return res

    def shell(self, script, **kwargs):
        return self._runner.shell(script, **kwargs)

    def which(self, name):
        return self._runner.which(name)


def test_ensure_installs_only_missing(runner) -> None:
    runner.commands.discard("git")
    installer = PackageInstaller(InstallingRunner(runner, {"git": "git"}))

    installed = installer.ensure({"curl": "curl", "git": "git"})

    assert installed == ["git"]
    assert runner.calls[0] == ["apt-get", "update"]
    assert runner.calls[1] == ["apt-get", "install", "-y", "git"]


def test_ensure_fails_when_command_still_missing(runner) -> None:
    runner.commands.discard("python3")
    with pytest.raises(DependencyInstallError, match="still missing") as exc:
        PackageInstaller(runner).ensure(["python3"])
    assert exc.value.hint == "apt-get install -y python3"


def test_install_many_in_one_call(runner) -> None:
    installer = PackageInstaller(runner)
    installer.install("libnss3", "libgbm1")
    installer.install("git")

    assert runner.calls.count(["apt-get", "update"]) == 1
    assert ["apt-get", "install", "-y", "libnss3", "libgbm1"] in runner.calls


def test_install_failure_has_hint(runner) -> None:
    runner.respond("apt-get install", returncode=100, stderr="E: Unable to locate package")
    with pytest.raises(DependencyInstallError, match="Unable to locate") as exc:
        PackageInstaller(runner).install("nope", "other")
    assert exc.value.hint == "apt-get install -y nope other"


def test_docker_install_uses_china_script(runner) -> None:
    runner.commands.discard("docker")
    with pytest.raises(DependencyInstallError):
        DockerInstaller(runner).install(china_mirror=True)
    assert runner.calls[-1] == ["bash", "-c", DOCKER_CHINA_SCRIPT]


def test_docker_daemon_not_running(runner) -> None:
    runner.respond("docker info", returncode=1)
    with pytest.raises(DependencyInstallError, match="not running"):
        DockerInstaller(runner).ensure_running()


def test_switch_system_mirror_failure_is_reported(runner) -> None:
    runner.respond("linuxmirrors.cn/main.sh", returncode=1)
    assert switch_system_mirror(runner) is False
