from __future__ import annotations

import os
import secrets
from dataclasses import dataclass
from typing import Any

from oneclick_core.compose import escape_interpolation
from oneclick_core.validation import not_empty, qq_number

from .. import console, interactive
from .base import DeployOptions, Recipe

NAPCAT_IMAGE = "mlikiowa/napcat-docker:latest"
KOISHI_IMAGE = "koishijs/koishi:latest"
MYSQL_IMAGE = "mysql:8.0"
NAPCAT_WEBUI_PORT = 6099
KOISHI_PORT = 5140
NETWORK = "bot_network"


@dataclass
class KoishiAnswers:
    robot_qq: str | None = None
    shared_token: str | None = None
    db_root_password: str | None = None


def build_compose(answers: KoishiAnswers, *, prefix: str, uid: int, gid: int) -> dict[str, Any]:
    return {
        "services": {
            "napcat": {
                "container_name": f"{prefix}-napcat",
                "image": NAPCAT_IMAGE,
                "restart": "always",
                "environment": [
                    f"NAPCAT_UID={uid}",
                    f"NAPCAT_GID={gid}",
                    "MODE=koishi",
                    f"KOISHI_TOKEN={escape_interpolation(answers.shared_token)}",
                ],
                "ports": [f"{NAPCAT_WEBUI_PORT}:6099"],
                "volumes": ["./napcat_config:/app/napcat/config", "./napcat_qq_data:/app/.config/QQ"],
                "networks": [NETWORK],
            },
            "koishi": {
                "container_name": f"{prefix}-koishi",
                "image": KOISHI_IMAGE,
                "restart": "always",
                "environment": [
                    "TZ=Asia/Shanghai",
                    "KOISHI_DATABASE_MYSQL_HOST=db",
                    "KOISHI_DATABASE_MYSQL_PORT=3306",
                    "KOISHI_DATABASE_MYSQL_USER=root",
                    f"KOISHI_DATABASE_MYSQL_PASSWORD={escape_interpolation(answers.db_root_password)}",
                    "KOISHI_DATABASE_MYSQL_DATABASE=koishi",
                ],
                "ports": [f"{KOISHI_PORT}:5140"],
                "volumes": ["./koishi_data:/koishi"],
                "networks": [NETWORK],
                "depends_on": ["db"],
            },
            "db": {
                "container_name": f"{prefix}-db",
                "image": MYSQL_IMAGE,
                "restart": "always",
                "environment": [
                    f"MYSQL_ROOT_PASSWORD={escape_interpolation(answers.db_root_password)}",
                    "MYSQL_DATABASE=koishi",
                ],
                "volumes": ["./mysql_data:/var/lib/mysql"],
                "networks": [NETWORK],
            },
        },
        "networks": {NETWORK: {"driver": "bridge"}},
    }


class KoishiRecipe(Recipe):
    name = "koishi"
    title = "Koishi + NapCat"

    def __init__(self, options: DeployOptions, answers: KoishiAnswers | None = None, *, runner=None):
        super().__init__(options, runner=runner)
        self.answers = answers or KoishiAnswers()

    def collect_configuration(self) -> None:
        a = self.answers
        if a.robot_qq:
            a.robot_qq = qq_number(a.robot_qq)
        else:
            a.robot_qq = interactive.prompt_valid("Robot QQ number (selfId)", qq_number)
        if a.shared_token is None:
            a.shared_token = interactive.prompt_optional("NapCat <-> Koishi token (blank to generate one)")
        if not a.shared_token:
            a.shared_token = secrets.token_hex(16)
            console.info("Generated a random communication token.")
        if not a.db_root_password:
            a.db_root_password = interactive.prompt_valid(
                "MySQL root password", lambda v: not_empty(v, label="Password"), secret=True
            )

    def generate_files(self) -> None:
        self.create_work_dir()
        compose = build_compose(self.answers, prefix=self.work_dir.name, uid=os.getuid(), gid=os.getgid())
        self.write_stack(compose)

    def summary(self) -> None:
        ip = self.display_ip()
        a = self.answers
        console.rule("[bold green]Koishi and NapCat are running[/]")
        console.print("[bold]1. Bring the robot online in NapCat[/]")
        console.print(f"   WebUI: http://{ip}:{NAPCAT_WEBUI_PORT}/webui (default login token: napcat)")
        console.print(f"   Scan the QR code with QQ {a.robot_qq}. NapCat connects to Koishi by itself.")
        console.print("[bold]2. Connect the robot in Koishi[/]")
        console.print(f"   Console: http://{ip}:{KOISHI_PORT}")
        console.print("   Dependencies -> Update all -> Apply, then install 'adapter-onebot' from the market.")
        console.print("   Enable adapter-onebot and add a bot:")
        console.print(f"   protocol=ws-reverse  selfId={a.robot_qq}  token={a.shared_token}")
        console.print("[bold]3. Owner permissions[/]")
        console.print("   Enable the 'auth' and 'inspect' plugins, add an admin user under auth,")
        console.print("   send 'inspect' to the robot and bind the reported platform/userId to your account.")
        self.print_management()
