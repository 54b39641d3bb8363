from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from oneclick_core.compose import escape_interpolation
from oneclick_core.envfile import render_env, write_private
from oneclick_core.validation import not_empty

from .. import console, interactive
from .base import DeployOptions, Recipe

GEMINI_IMAGE = "ghcr.io/snailyp/gemini-balance:latest"
MYSQL_IMAGE = "mysql:8"
APP_PORT = 8000
MYSQL_DATABASE = "default_db"
MYSQL_USER = "gemini"


@dataclass
class GeminiAnswers:
    api_keys: list[str] = field(default_factory=list)
    access_token: str | None = None
    mysql_root_password: str | None = None
    mysql_password: str | None = None


def build_env(answers: GeminiAnswers) -> dict[str, Any]:
    return {
        "DATABASE_TYPE": "mysql",
        "MYSQL_HOST": "gemini-balance-mysql",
        "MYSQL_PORT": 3306,
        "MYSQL_USER": MYSQL_USER,
        "MYSQL_PASSWORD": escape_interpolation(answers.mysql_password),
        "MYSQL_DATABASE": MYSQL_DATABASE,
        "API_KEYS": [escape_interpolation(key) for key in answers.api_keys],
        "ALLOWED_TOKENS": [escape_interpolation(answers.access_token)],
    }


def build_compose(answers: GeminiAnswers) -> dict[str, Any]:
    return {
        "services": {
            "gemini-balance": {
                "image": GEMINI_IMAGE,
                "container_name": "gemini-balance",
                "restart": "unless-stopped",
                "ports": [f"{APP_PORT}:8000"],
                "env_file": [".env"],
                "depends_on": {"mysql": {"condition": "service_healthy"}},
            },
            "mysql": {
                "image": MYSQL_IMAGE,
                "container_name": "gemini-balance-mysql",
                "restart": "unless-stopped",
                "environment": {
                    "MYSQL_ROOT_PASSWORD": escape_interpolation(answers.mysql_root_password),
                    "MYSQL_DATABASE": MYSQL_DATABASE,
                    "MYSQL_USER": MYSQL_USER,
                    "MYSQL_PASSWORD": escape_interpolation(answers.mysql_password),
                },
                "volumes": ["mysql_data:/var/lib/mysql"],
                "healthcheck": {
                    "test": ["CMD", "mysqladmin", "ping", "-h", "127.0.0.1"],
                    "interval": "10s",
                    "timeout": "5s",
                    "retries": 3,
                    "start_period": "30s",
                },
            },
        },
        "volumes": {"mysql_data": {}},
    }


class GeminiRecipe(Recipe):
    name = "gemini"
    title = "Gemini Balance + MySQL"

    def __init__(self, options: DeployOptions, answers: GeminiAnswers | None = None, *, runner=None):
        super().__init__(options, runner=runner)
        self.answers = answers or GeminiAnswers()

    def collect_configuration(self) -> None:
        a = self.answers
        if not a.api_keys:
            console.info("Enter your Gemini API keys, one per prompt.")
            a.api_keys = interactive.prompt_list("Gemini API key", minimum=1, secret=True)
        if not a.access_token:
            a.access_token = interactive.prompt_valid(
                "Access token for clients of this proxy",
                lambda v: not_empty(v, label="Access token"),
                secret=True,
            )
        if not a.mysql_root_password:
            a.mysql_root_password = interactive.prompt_valid(
                "MySQL root password",
                lambda v: not_empty(v, label="Password"),
                secret=True,
            )
        if not a.mysql_password:
            a.mysql_password = interactive.prompt_valid(
                f"MySQL password for user '{MYSQL_USER}'",
                lambda v: not_empty(v, label="Password"),
                secret=True,
            )
        console.ok(f"{len(a.api_keys)} API key(s) collected.")

    def generate_files(self) -> None:
        self.create_work_dir()
        env_path = write_private(
            self.work_dir / ".env",
            render_env(build_env(self.answers), header=("gemini-balance settings generated by oneclick",)),
        )
        console.ok(f"Wrote {env_path}")
        self.write_stack(build_compose(self.answers))

    def summary(self) -> None:
        ip = self.display_ip()
        console.rule("[bold green]Gemini Balance is running[/]")
        console.print(f"Admin panel: http://{ip}:{APP_PORT}")
        console.print(f"OpenAI-compatible endpoint: http://{ip}:{APP_PORT}/v1")
        console.print("Authenticate with the access token you entered.")
        self.print_management()
