from __future__ import annotations

import re
import time
import tomllib
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Iterable

import tomli_w
import yaml

from oneclick_core.compose import COMPOSE_FILENAME, ComposeStack
from oneclick_core.downloads import GITHUB_RAW, fetch_text
from oneclick_core.envfile import read_env_file, update_env_content
from oneclick_core.errors import ConfigValidationError, OrchestratorError
from oneclick_core.validation import not_empty, qq_number

from .. import console, interactive
from .base import DeployOptions, Recipe

COMPOSE_TEMPLATE = f"{GITHUB_RAW}/SengokuCola/MaiMBot/main/docker-compose.yml"
ENV_TEMPLATE = f"{GITHUB_RAW}/MaiM-with-u/MaiBot/main/template/template.env"
ADAPTER_TEMPLATE = f"{GITHUB_RAW}/MaiM-with-u/MaiBot-Napcat-Adapter/main/template/template_config.toml"
CHINA_IMAGE_PROXY = "docker.gh-proxy.com/"
DEFAULT_NICKNAME = "麦麦"
EXPECTED_CONTAINERS = 3

ENV_PATH = Path("docker-config/mmc/.env")
ADAPTER_PATH = Path("docker-config/adapters/config.toml")
BOT_CONFIG_PATH = Path("docker-config/mmc/bot_config.toml")

_AGREE_RE = re.compile(r"^[ \t]*#[ \t]*- (EULA_AGREE|PRIVACY_AGREE)=", re.MULTILINE)
_QQ_LINE_RE = re.compile(r"^(\s*)qq_account\s*=.*$", re.MULTILINE)
_NICK_LINE_RE = re.compile(r"^(\s*)nickname\s*=\s*\".*\"\s*$", re.MULTILINE)


class ApiProvider(str, Enum):
    SILICONFLOW = "siliconflow"
    DEEPSEEK = "deepseek"
    OTHER = "other"
    SKIP = "skip"


PROVIDER_TITLES = {
    ApiProvider.SILICONFLOW: "SiliconFlow (recommended, free quota) - https://siliconflow.cn",
    ApiProvider.DEEPSEEK: "DeepSeek - https://platform.deepseek.com",
    ApiProvider.OTHER: "Another OpenAI-compatible service",
    ApiProvider.SKIP: "Skip, edit the key later",
}

PROVIDER_PLACEHOLDERS = {
    ApiProvider.SILICONFLOW: "your-siliconflow-api-key",
    ApiProvider.DEEPSEEK: "your-deepseek-api-key",
    ApiProvider.OTHER: "your-api-key-here",
    ApiProvider.SKIP: "your-api-key-here",
}


def sk_key(value: str) -> str:
    text = (value or "").strip()
    if not text.startswith("sk-") or len(text) <= 3:
        raise ConfigValidationError("API keys for this provider start with 'sk-'.")
    return text


KEY_VALIDATORS: dict[ApiProvider, Callable[[str], str]] = {
    ApiProvider.SILICONFLOW: sk_key,
    ApiProvider.DEEPSEEK: sk_key,
    ApiProvider.OTHER: lambda v: not_empty(v, label="API key"),
}


@dataclass
class MaibotAnswers:
    robot_qq: str | None = None
    nickname: str | None = None
    provider: ApiProvider | None = None
    api_key: str | None = None


def enable_agreements(text: str) -> str:
    """Uncomment the EULA / privacy agreement environment lines of the upstream compose file."""
    return _AGREE_RE.sub(lambda m: f"      - {m.group(1)}=", text)


def patch_compose(text: str, *, image_proxy: str | None = None) -> dict[str, Any]:
    compose = yaml.safe_load(enable_agreements(text)) or {}
    if not isinstance(compose, dict):
        raise OrchestratorError("Downloaded docker-compose.yml is not a mapping.", hint=f"curl -fL {COMPOSE_TEMPLATE}")
    compose.pop("version", None)
    if image_proxy:
        for service in (compose.get("services") or {}).values():
            image = str(service.get("image") or "")
            if image and not image.startswith(image_proxy):
                service["image"] = f"{image_proxy}{image}"
    return compose


def patch_env(text: str, api_key: str) -> str:
    text = text.replace("HOST=127.0.0.1", "HOST=0.0.0.0")
    return text.replace("SILICONFLOW_KEY=sk-xxxxxx", f"SILICONFLOW_KEY={api_key}")


def patch_adapter(text: str) -> str:
    text = text.replace('host = "127.0.0.1"', 'host = "0.0.0.0"')
    return text.replace('host = "localhost"', 'host = "core"')


def _toml_assignment(key: str, value: Any) -> str:
    return tomli_w.dumps({key: value}).strip()


def update_bot_config(content: str, *, qq: str | None = None, nickname: str | None = None) -> str:
    """Rewrite qq_account / nickname in place, keeping comments, and check the result still parses."""
    if qq is not None:
        content = _QQ_LINE_RE.sub(lambda m: m.group(1) + _toml_assignment("qq_account", int(qq)), content, count=1)
    if nickname is not None:
        content = _NICK_LINE_RE.sub(lambda m: m.group(1) + _toml_assignment("nickname", nickname), content, count=1)
    try:
        tomllib.loads(content)
    except tomllib.TOMLDecodeError as exc:
        raise ConfigValidationError(f"bot_config.toml is not valid TOML after editing: {exc}") from exc
    return content


def read_bot_settings(content: str) -> dict[str, str]:
    data = tomllib.loads(content)
    bot = data.get("bot") if isinstance(data.get("bot"), dict) else data
    return {"qq_account": str(bot.get("qq_account", "")), "nickname": str(bot.get("nickname", ""))}


def find_projects(search_paths: Iterable[Path], *, max_depth: int = 3) -> list[Path]:
    found: set[Path] = set()
    for root in search_paths:
        if not root.is_dir():
            continue
        for depth in range(max_depth + 1):
            for env in root.glob("*/" * depth + str(ENV_PATH)):
                project = env.parent.parent.parent
                if (project / COMPOSE_FILENAME).exists():
                    found.add(project.resolve())
    return sorted(found)


class MaibotRecipe(Recipe):
    name = "maibot"
    title = "MaiBot + NapCat adapter"
    required_commands = {"curl": "curl", "python3": "python3"}

    def __init__(
        self,
        options: DeployOptions,
        answers: MaibotAnswers | None = None,
        *,
        runner=None,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
    ):
        super().__init__(options, runner=runner)
        self.answers = answers or MaibotAnswers()
        self._sleep = sleep
        self._clock = clock

    def collect_configuration(self) -> None:
        a = self.answers
        if a.robot_qq:
            a.robot_qq = qq_number(a.robot_qq)
        else:
            a.robot_qq = interactive.prompt_valid("Robot QQ number", qq_number)
        if not a.nickname:
            a.nickname = interactive.prompt_valid(
                "Bot nickname", lambda v: not_empty(v, label="Nickname"), default=DEFAULT_NICKNAME
            )
        if a.api_key:
            return
        if a.provider is None:
            a.provider = ApiProvider.SKIP if self.options.assume_yes else interactive.select_enum(
                "AI model provider", PROVIDER_TITLES
            )
        validator = KEY_VALIDATORS.get(a.provider)
        if validator is None:
            a.api_key = PROVIDER_PLACEHOLDERS[a.provider]
            console.warn("No API key configured; edit docker-config/mmc/.env later.")
            return
        key = interactive.prompt_valid(
            "API key (blank to skip)", lambda v: validator(v) if v.strip() else "", default=""
        )
        a.api_key = key or PROVIDER_PLACEHOLDERS[a.provider]

    def generate_files(self) -> None:
        self.create_work_dir()
        for sub in ("docker-config/mmc", "docker-config/adapters", "data/MaiMBot"):
            (self.work_dir / sub).mkdir(parents=True, exist_ok=True)
        (self.work_dir / "data/MaiMBot/maibot_statistics.html").touch()

        console.info("Downloading templates...")
        compose_text = fetch_text(COMPOSE_TEMPLATE)
        env_text = fetch_text(ENV_TEMPLATE)
        adapter_text = fetch_text(ADAPTER_TEMPLATE)

        (self.work_dir / ENV_PATH).write_text(patch_env(env_text, self.answers.api_key or ""), encoding="utf-8")
        (self.work_dir / ADAPTER_PATH).write_text(patch_adapter(adapter_text), encoding="utf-8")
        console.ok("Patched .env and adapter config.")
        proxy = CHINA_IMAGE_PROXY if self.china_mirror else None
        self.write_stack(patch_compose(compose_text, image_proxy=proxy))

    def start_services(self) -> None:
        stack = self._require_stacks()[0]
        console.info("First start, to let MaiBot generate its configuration...")
        stack.up()
        bot_config = self.work_dir / BOT_CONFIG_PATH
        if self._wait_for(bot_config):
            stack.down()
            try:
                updated = update_bot_config(
                    bot_config.read_text(encoding="utf-8"),
                    qq=self.answers.robot_qq,
                    nickname=self.answers.nickname,
                )
            except ConfigValidationError as exc:
                raise OrchestratorError(
                    f"Could not update the generated config: {exc.message}", hint=str(bot_config)
                ) from exc
            bot_config.write_text(updated, encoding="utf-8")
            console.ok("bot_config.toml updated.")
        else:
            console.warn(f"{bot_config} was not generated; set qq_account and nickname later.")
            console.hint("oneclick configure maibot")
            stack.down()
        super().start_services()

    def verify_services(self) -> None:
        stack = self._require_stacks()[0]
        console.info("Waiting for containers to report running...")
        try:
            statuses = stack.wait_running(
                timeout=self.options.health_timeout,
                interval=self.options.health_interval,
                expected=min(EXPECTED_CONTAINERS, len(stack.services()) or EXPECTED_CONTAINERS),
            )
        except OrchestratorError:
            self.print_recent_logs(stack)
            raise
        console.ok(f"{sum(1 for s in statuses if s.running)} container(s) running.")

    def summary(self) -> None:
        ip = self.display_ip()
        console.rule("[bold green]MaiBot is running[/]")
        console.print(f"NapCat WebUI: http://{ip}:6099/webui (default token: napcat)")
        console.print(f"Log in with QQ {self.answers.robot_qq} and add a reverse WebSocket to the adapter.")
        console.print(f"Settings live in {self.work_dir / 'docker-config'}; change them with:")
        console.hint(f"oneclick configure maibot --project-dir {self.work_dir}")
        self.print_management()

    def _wait_for(self, path: Path) -> bool:
        deadline = self._clock() + self.options.health_timeout
        while not path.exists():
            if self._clock() >= deadline:
                return False
            self._sleep(self.options.health_interval)
        return True


class MaibotProject:
    """An existing MaiBot deployment, edited in place by `oneclick configure maibot`."""

    def __init__(self, root: Path, runner, *, compose_cmd: tuple[str, ...] = ("docker", "compose")):
        self.root = root
        self.stack = ComposeStack(runner, root / COMPOSE_FILENAME, compose_cmd=compose_cmd)

    @property
    def bot_config(self) -> Path:
        return self.root / BOT_CONFIG_PATH

    @property
    def env_file(self) -> Path:
        return self.root / ENV_PATH

    def settings(self) -> dict[str, str]:
        values: dict[str, str] = {}
        if self.bot_config.exists():
            values.update(read_bot_settings(self.bot_config.read_text(encoding="utf-8")))
        key = read_env_file(self.env_file).get("SILICONFLOW_KEY", "")
        values["api_key"] = f"{key[:6]}..." if len(key) > 6 else key
        return values

    def set_bot(self, *, qq: str | None = None, nickname: str | None = None) -> None:
        if not self.bot_config.exists():
            raise OrchestratorError(
                f"{self.bot_config} does not exist yet.",
                hint=self.stack.command("up", "-d"),
            )
        if qq is not None:
            qq = qq_number(qq)
        if nickname is not None:
            nickname = not_empty(nickname, label="Nickname")
        content = update_bot_config(self.bot_config.read_text(encoding="utf-8"), qq=qq, nickname=nickname)
        self.bot_config.write_text(content, encoding="utf-8")

    def set_api_key(self, api_key: str) -> None:
        if not self.env_file.exists():
            raise OrchestratorError(f"{self.env_file} does not exist.", hint=f"ls {self.env_file.parent}")
        content = self.env_file.read_text(encoding="utf-8")
        updated = update_env_content(content, {"SILICONFLOW_KEY": not_empty(api_key, label="API key")})
        self.env_file.write_text(updated, encoding="utf-8")

    def restart(self) -> None:
        self.stack.restart()
