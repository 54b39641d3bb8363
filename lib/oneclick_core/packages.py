from __future__ import annotations

import logging
from typing import Mapping, Sequence

from .errors import DependencyInstallError
from .runner import command_exists, output_of
from .systemd import ServiceManager, ServiceManagerError

log = logging.getLogger(__name__)

DOCKER_OFFICIAL_SCRIPT = "curl -fsSL https://get.docker.com | sh"
DOCKER_CHINA_SCRIPT = "bash <(curl -sSL https://linuxmirrors.cn/docker.sh)"
SYSTEM_MIRROR_CHINA_SCRIPT = "bash <(curl -sSL https://linuxmirrors.cn/main.sh)"


class PackageInstaller:
    """apt-get front end; every install is confirmed by probing the command afterwards."""

    def __init__(self, runner):
        self._runner = runner
        self._updated = False

    def missing(self, commands: Sequence[str]) -> list[str]:
        return [cmd for cmd in commands if not command_exists(self._runner, cmd)]

    def ensure(self, commands: Mapping[str, str] | Sequence[str]) -> list[str]:
        """Install packages for missing commands; returns the packages installed."""
        mapping = dict(commands) if isinstance(commands, Mapping) else {cmd: cmd for cmd in commands}
        installed: list[str] = []
        for command in self.missing(list(mapping)):
            package = mapping[command]
            self.install(package)
            if not command_exists(self._runner, command):
                raise DependencyInstallError(
                    f"`{command}` is still missing after installing {package}.",
                    hint=f"apt-get install -y {package}",
                )
            installed.append(package)
        return installed

    def install(self, *packages: str) -> None:
        if not self._updated:
            res = self._runner.run(["apt-get", "update"])
            if res.returncode != 0:
                log.warning("apt-get update failed: %s", output_of(res))
            self._updated = True
        names = " ".join(packages)
        log.info("installing %s", names)
        res = self._runner.run(["apt-get", "install", "-y", *packages])
        if res.returncode != 0:
            raise DependencyInstallError(
                f"Failed to install {names}: {output_of(res) or f'exit {res.returncode}'}",
                hint=f"apt-get install -y {names}",
            )


class DockerInstaller:
    def __init__(self, runner, *, services: ServiceManager | None = None):
        self._runner = runner
        self._services = services or ServiceManager(runner)

    def installed(self) -> bool:
        return command_exists(self._runner, "docker")

    def install(self, *, china_mirror: bool = False) -> None:
        script = DOCKER_CHINA_SCRIPT if china_mirror else DOCKER_OFFICIAL_SCRIPT
        log.info("installing docker: %s", script)
        # the mirror script is interactive, so output goes straight to the terminal
        res = self._runner.shell(script, capture=False)
        if res.returncode != 0 or not self.installed():
            raise DependencyInstallError(
                "Docker installation failed. Check the network or install Docker manually.",
                hint=script,
            )

    def ensure_running(self) -> None:
        try:
            self._services.start("docker")
            self._services.enable("docker")
        except ServiceManagerError as exc:
            raise DependencyInstallError(str(exc), hint="systemctl status docker") from exc
        if self._runner.run(["docker", "info"]).returncode != 0:
            raise DependencyInstallError("Docker daemon is not running.", hint="systemctl status docker")


def switch_system_mirror(runner) -> bool:
    """Run the linuxmirrors.cn source switcher; failure only costs download speed."""
    res = runner.shell(SYSTEM_MIRROR_CHINA_SCRIPT, capture=False)
    if res.returncode != 0:
        log.warning("system mirror switch failed (exit %s)", res.returncode)
        return False
    return True
