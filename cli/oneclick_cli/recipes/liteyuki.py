from __future__ import annotations

import os
import shutil
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any

import yaml

from oneclick_core.errors import DependencyInstallError, OrchestratorError
from oneclick_core.host import invoking_user
from oneclick_core.resources import DirectoryHandle
from oneclick_core.runner import output_of
from oneclick_core.session import Step
from oneclick_core.systemd import ServiceManager, UnitSpec
from oneclick_core.validation import qq_number

from .. import console, interactive
from .base import DeployOptions, Recipe

NAPCAT_IMAGE = "mlikiowa/napcat-docker:latest"
NAPCAT_WEBUI_PORT = 6099
BOT_PORT = 20216
OFFICIAL_REPO = "https://github.com/LiteyukiStudio/LiteyukiBot"
CHINA_REPO = "https://git.liteyuki.org/bot/app"
SERVICE_NAME = "liteyukibot"

PLAYWRIGHT_PACKAGES = (
    "python3-venv",
    "libnss3",
    "libnspr4",
    "libdbus-1-3",
    "libatk1.0-0",
    "libatk-bridge2.0-0",
    "libcups2",
    "libdrm2",
    "libxkbcommon0",
    "libxcomposite1",
    "libxdamage1",
    "libxfixes3",
    "libxrandr2",
    "libgbm1",
    "libpango-1.0-0",
    "libcairo2",
    "libasound2",
    "libatspi2.0-0",
)


class PipMirror(str, Enum):
    TSINGHUA = "tsinghua"
    ALIYUN = "aliyun"
    USTC = "ustc"
    DOUBAN = "douban"


PIP_MIRRORS = {
    PipMirror.TSINGHUA: "https://pypi.tuna.tsinghua.edu.cn/simple",
    PipMirror.ALIYUN: "https://mirrors.aliyun.com/pypi/simple/",
    PipMirror.USTC: "https://pypi.mirrors.ustc.edu.cn/simple/",
    PipMirror.DOUBAN: "http://pypi.douban.com/simple/",
}

PIP_MIRROR_TITLES = {
    PipMirror.TSINGHUA: "Tsinghua University",
    PipMirror.ALIYUN: "Alibaba Cloud",
    PipMirror.USTC: "USTC",
    PipMirror.DOUBAN: "Douban",
}


@dataclass
class LiteyukiAnswers:
    superuser_qq: str | None = None
    onebot_token: str | None = None
    repo_url: str | None = None
    pip_mirror: PipMirror | None = None


def pip_index_args(mirror: PipMirror | None) -> list[str]:
    if mirror is None:
        return []
    url = PIP_MIRRORS[mirror]
    host = url.split("://", 1)[1].split("/", 1)[0]
    return ["-i", url, "--trusted-host", host]


def build_compose(*, uid: int, gid: int) -> dict[str, Any]:
    return {
        "services": {
            "napcat": {
                "image": NAPCAT_IMAGE,
                "container_name": "napcat",
                "restart": "always",
                "network_mode": "bridge",
                "mac_address": "02:42:ac:11:00:02",
                "ports": [f"{NAPCAT_WEBUI_PORT}:6099"],
                "volumes": [
                    "./napcat_data/config:/app/napcat/config",
                    "./napcat_data/qq_data:/app/.config/QQ",
                ],
                "environment": [f"NAPCAT_UID={uid}", f"NAPCAT_GID={gid}"],
            },
        },
    }


def build_bot_config(answers: LiteyukiAnswers) -> dict[str, Any]:
    return {
        "nonebot": {
            "host": "0.0.0.0",
            "port": BOT_PORT,
            "superusers": [answers.superuser_qq],
            "nickname": ["轻雪"],
            "drivers": ["~onebot.v11"],
            "onebot_access_token": answers.onebot_token or "",
        },
        "liteyuki": {
            "log_level": "INFO",
            "auto_update": True,
        },
    }


class LiteyukiRecipe(Recipe):
    name = "liteyuki"
    title = "LiteyukiBot + NapCat"
    required_commands = {"curl": "curl", "git": "git", "python3": "python3"}
    extra_packages = PLAYWRIGHT_PACKAGES

    def __init__(
        self,
        options: DeployOptions,
        answers: LiteyukiAnswers | None = None,
        *,
        runner=None,
        services: ServiceManager | None = None,
    ):
        super().__init__(options, runner=runner)
        self.answers = answers or LiteyukiAnswers()
        self.services = services or ServiceManager(self.runner)

    @property
    def bot_dir(self) -> Path:
        return self.work_dir / "LiteyukiBot"

    def steps(self) -> list[Step]:
        steps = super().steps()
        # the bot process is started after NapCat so its websocket client has a peer
        extra = [
            Step("install bot", self.install_bot),
            Step("register service", self.register_service),
        ]
        idx = [s.name for s in steps].index("verify services")
        return steps[:idx] + extra + steps[idx:]

    def collect_configuration(self) -> None:
        a = self.answers
        self.resolve_server_ip()
        if a.superuser_qq:
            a.superuser_qq = qq_number(a.superuser_qq)
        else:
            a.superuser_qq = interactive.prompt_valid("Superuser QQ number", qq_number)
        if a.onebot_token is None:
            console.warn("A OneBot access token is strongly recommended on public hosts.")
            a.onebot_token = interactive.prompt_optional("OneBot access token (blank for none)")
        if not a.repo_url:
            a.repo_url = OFFICIAL_REPO
            if self.china_mirror:
                a.repo_url = CHINA_REPO
                if not self.options.assume_yes:
                    a.repo_url = interactive.prompt_optional(f"Clone URL (blank for {CHINA_REPO})") or CHINA_REPO
        if self.china_mirror and a.pip_mirror is None and not self.options.assume_yes:
            a.pip_mirror = interactive.select_enum("PyPI mirror for Python dependencies", PIP_MIRROR_TITLES)
        elif self.china_mirror and a.pip_mirror is None:
            a.pip_mirror = PipMirror.TSINGHUA

    def generate_files(self) -> None:
        self.create_work_dir()
        for sub in ("napcat_data/config", "napcat_data/qq_data"):
            (self.work_dir / sub).mkdir(parents=True, exist_ok=True)
        self.write_stack(build_compose(uid=os.getuid(), gid=os.getgid()))

    def install_bot(self) -> None:
        workflow = self._require_workflow()
        if self.bot_dir.exists():
            raise OrchestratorError(
                f"{self.bot_dir} already exists.",
                hint=f"mv {self.bot_dir} {self.bot_dir}.bak",
            )
        console.info(f"Cloning {self.answers.repo_url}...")
        try:
            self._check(
                ["git", "clone", "--depth=1", str(self.answers.repo_url), str(self.bot_dir)],
                "Git clone failed; check the network or the clone URL.",
            )
        except DependencyInstallError:
            # git may leave a partial checkout behind
            if self.bot_dir.exists():
                shutil.rmtree(self.bot_dir)
            raise
        workflow.register_resource(DirectoryHandle(path=self.bot_dir))

        console.info("Creating the virtual environment...")
        self._check(["python3", "-m", "venv", str(self.bot_dir / "venv")], "Failed to create the virtualenv.")
        pip = str(self.bot_dir / "venv" / "bin" / "pip")
        index = pip_index_args(self.answers.pip_mirror)
        console.info("Installing Python dependencies, this can take a while...")
        self._check([pip, "install", *index, "-r", str(self.bot_dir / "requirements.txt")], "pip install failed.")
        self._check([pip, "install", *index, "nonebot-adapter-onebot"], "pip install failed.")
        console.info("Installing Playwright browsers...")
        self._check([str(self.bot_dir / "venv" / "bin" / "playwright"), "install"], "playwright install failed.")

        config_path = self.bot_dir / "config.yml"
        config_path.write_text(
            yaml.safe_dump(build_bot_config(self.answers), sort_keys=False, allow_unicode=True),
            encoding="utf-8",
        )
        console.ok(f"Wrote {config_path}")

        user = invoking_user()
        if user != "root":
            self.runner.run(["chown", "-R", f"{user}:", str(self.bot_dir)])

    def register_service(self) -> None:
        workflow = self._require_workflow()
        bot_dir = self.bot_dir.resolve()
        spec = UnitSpec(
            name=SERVICE_NAME,
            description="LiteyukiBot Service",
            exec_start=f"{bot_dir}/venv/bin/python main.py",
            working_directory=str(bot_dir),
            user=invoking_user(),
        )
        handle = self.services.write_unit(spec)
        workflow.register_resource(handle)
        self.services.daemon_reload()
        self.services.enable(handle.unit)
        self.services.start(handle.unit)
        console.ok(f"{handle.unit} enabled and started.")

    def verify_services(self) -> None:
        super().verify_services()
        if not self.services.is_active(f"{SERVICE_NAME}.service"):
            raise OrchestratorError(
                f"{SERVICE_NAME}.service is not active.",
                hint=f"journalctl -u {SERVICE_NAME} -n 50 --no-pager",
            )
        console.ok(f"{SERVICE_NAME}.service is active.")

    def summary(self) -> None:
        ip = self.resolve_server_ip()
        token = self.answers.onebot_token or "(not set)"
        console.rule("[bold green]LiteyukiBot and NapCat are running[/]")
        console.print("[bold]1. Log in to NapCat[/]")
        console.print(f"   WebUI: http://{ip}:{NAPCAT_WEBUI_PORT}/webui (default token: napcat)")
        console.print("   Scan the QR code with the robot's QQ account and wait until it is online.")
        console.print("[bold]2. Connect NapCat to LiteyukiBot[/]")
        console.print("   Network settings -> New -> WebSocket client:")
        console.print(f"   URL: ws://{ip}:{BOT_PORT}/onebot/v11/ws")
        console.print(f"   AccessToken: {token}")
        console.rule("[bold]Bot service[/]")
        console.hint(f"systemctl status {SERVICE_NAME}")
        console.hint(f"journalctl -fu {SERVICE_NAME}")
        self.print_management()

    def _check(self, cmd: list[str], message: str) -> None:
        res = self.runner.run(cmd, capture=False)
        if res.returncode != 0:
            raise DependencyInstallError(
                f"{message} ({output_of(res) or f'exit {res.returncode}'})",
                hint=" ".join(cmd),
            )
