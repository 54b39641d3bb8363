from __future__ import annotations

from pathlib import Path

import typer

from oneclick_core.runner import LocalRunner

from ..config import load_config, resolve_install_root
from ..recipes.base import DeployOptions, Recipe, run_recipe
from ..recipes.gemini import GeminiAnswers, GeminiRecipe
from ..recipes.koishi import KoishiAnswers, KoishiRecipe
from ..recipes.liteyuki import LiteyukiAnswers, LiteyukiRecipe, PipMirror
from ..recipes.maibot import ApiProvider, MaibotAnswers, MaibotRecipe
from ..recipes.nextcloud import DeployMode, NextcloudAnswers, NextcloudRecipe
from ..recipes.pmail import DatabaseKind, MirrorChoice, MysqlSettings, PmailAnswers, PmailRecipe

app = typer.Typer(help="Deploy an application stack on this host.")

DEFAULT_DIRS = {
    "gemini": "gemini_proxy",
    "nextcloud": "data/nextcloud",
    "koishi": "koishi-napcat",
    "liteyuki": "liteyuki_bot",
    "pmail": "pmail",
    "maibot": "maibot",
}

INSTALL_DIR_OPT = typer.Option(None, "--install-dir", help="Work directory (default under the configured install root).")
YES_OPT = typer.Option(False, "--yes", "-y", help="Do not ask; use defaults and remove data on rollback.")
MIRROR_OPT = typer.Option(None, "--china-mirror/--no-china-mirror", help="Use mainland China mirrors.")
SKIP_DOCKER_OPT = typer.Option(False, "--skip-docker-install", help="Fail instead of installing Docker.")
PUBLIC_IP_OPT = typer.Option(None, "--public-ip", help="Server address for summaries (skips detection).")


def make_runner():
    return LocalRunner()


def build_options(
        name: str,
        install_dir: Path | None,
        yes: bool,
        china_mirror: bool | None,
        skip_docker_install: bool,
        public_ip: str | None,
) -> DeployOptions:
    cfg = load_config()
    target = install_dir or Path(resolve_install_root(cfg)) / DEFAULT_DIRS[name]
    return DeployOptions(
        install_dir=target,
        assume_yes=yes,
        china_mirror=cfg.use_china_mirror if china_mirror is None else china_mirror,
        skip_docker_install=skip_docker_install,
        public_ip=public_ip,
        public_ip_endpoints=tuple(cfg.public_ip_endpoints),
        public_ip_timeout=cfg.public_ip_timeout,
        health_timeout=cfg.health_timeout,
        health_interval=cfg.health_interval,
    )


def execute(recipe: Recipe) -> None:
    outcome = run_recipe(recipe)
    if outcome.exit_code:
        raise typer.Exit(code=outcome.exit_code)


@app.command("gemini")
def deploy_gemini(
        api_key: list[str] | None = typer.Option(None, "--api-key", help="Gemini API key (repeatable)."),
        access_token: str | None = typer.Option(None, "--access-token", help="Token clients use to call the proxy."),
        mysql_root_password: str | None = typer.Option(None, "--mysql-root-password"),
        mysql_password: str | None = typer.Option(None, "--mysql-password"),
        install_dir: Path | None = INSTALL_DIR_OPT,
        yes: bool = YES_OPT,
        china_mirror: bool | None = MIRROR_OPT,
        skip_docker_install: bool = SKIP_DOCKER_OPT,
        public_ip: str | None = PUBLIC_IP_OPT,
):
    """Gemini Balance load balancer with MySQL."""
    options = build_options("gemini", install_dir, yes, china_mirror, skip_docker_install, public_ip)
    answers = GeminiAnswers(
        api_keys=list(api_key or []),
        access_token=access_token,
        mysql_root_password=mysql_root_password,
        mysql_password=mysql_password,
    )
    execute(GeminiRecipe(options, answers, runner=make_runner()))


@app.command("nextcloud")
def deploy_nextcloud(
        mode: DeployMode | None = typer.Option(None, "--mode", help="basic or advanced."),
        domain: str | None = typer.Option(None, "--domain", help="Domain for advanced mode."),
        db_root_password: str | None = typer.Option(None, "--db-root-password"),
        db_password: str | None = typer.Option(None, "--db-password"),
        npm_dir: Path | None = typer.Option(None, "--npm-dir", help="Nginx Proxy Manager directory."),
        install_dir: Path | None = INSTALL_DIR_OPT,
        yes: bool = YES_OPT,
        china_mirror: bool | None = MIRROR_OPT,
        skip_docker_install: bool = SKIP_DOCKER_OPT,
        public_ip: str | None = PUBLIC_IP_OPT,
):
    """Nextcloud, single container or behind Nginx Proxy Manager with MariaDB and Redis."""
    options = build_options("nextcloud", install_dir, yes, china_mirror, skip_docker_install, public_ip)
    answers = NextcloudAnswers(
        mode=mode,
        domain=domain,
        db_root_password=db_root_password,
        db_password=db_password,
        npm_dir=npm_dir,
    )
    execute(NextcloudRecipe(options, answers, runner=make_runner()))


@app.command("koishi")
def deploy_koishi(
        qq: str | None = typer.Option(None, "--qq", help="Robot QQ number."),
        token: str | None = typer.Option(None, "--token", help="NapCat <-> Koishi token."),
        db_root_password: str | None = typer.Option(None, "--db-root-password"),
        install_dir: Path | None = INSTALL_DIR_OPT,
        yes: bool = YES_OPT,
        china_mirror: bool | None = MIRROR_OPT,
        skip_docker_install: bool = SKIP_DOCKER_OPT,
        public_ip: str | None = PUBLIC_IP_OPT,
):
    """Koishi with NapCat and MySQL."""
    options = build_options("koishi", install_dir, yes, china_mirror, skip_docker_install, public_ip)
    answers = KoishiAnswers(robot_qq=qq, shared_token=token, db_root_password=db_root_password)
    execute(KoishiRecipe(options, answers, runner=make_runner()))


@app.command("liteyuki")
def deploy_liteyuki(
        superuser: str | None = typer.Option(None, "--superuser", help="Superuser QQ number."),
        token: str | None = typer.Option(None, "--token", help="OneBot access token."),
        repo_url: str | None = typer.Option(None, "--repo-url", help="LiteyukiBot clone URL."),
        pip_mirror: PipMirror | None = typer.Option(None, "--pip-mirror", help="PyPI mirror."),
        install_dir: Path | None = INSTALL_DIR_OPT,
        yes: bool = YES_OPT,
        china_mirror: bool | None = MIRROR_OPT,
        skip_docker_install: bool = SKIP_DOCKER_OPT,
        public_ip: str | None = PUBLIC_IP_OPT,
):
    """LiteyukiBot as a systemd service with a NapCat container."""
    options = build_options("liteyuki", install_dir, yes, china_mirror, skip_docker_install, public_ip)
    answers = LiteyukiAnswers(superuser_qq=superuser, onebot_token=token, repo_url=repo_url, pip_mirror=pip_mirror)
    execute(LiteyukiRecipe(options, answers, runner=make_runner()))


@app.command("pmail")
def deploy_pmail(
        domain: str | None = typer.Option(None, "--domain", help="Mail domain."),
        web_domain: str | None = typer.Option(None, "--web-domain", help="Webmail domain (default mail.<domain>)."),
        ssl_email: str | None = typer.Option(None, "--ssl-email"),
        database: DatabaseKind | None = typer.Option(None, "--database"),
        mysql_root_password: str | None = typer.Option(None, "--mysql-root-password", help="For --database new-mysql."),
        mysql_password: str | None = typer.Option(None, "--mysql-password", help="For --database new-mysql."),
        image_mirror: MirrorChoice | None = typer.Option(None, "--image-mirror"),
        install_dir: Path | None = INSTALL_DIR_OPT,
        yes: bool = YES_OPT,
        china_mirror: bool | None = MIRROR_OPT,
        skip_docker_install: bool = SKIP_DOCKER_OPT,
        public_ip: str | None = PUBLIC_IP_OPT,
):
    """PMail personal mail server."""
    options = build_options("pmail", install_dir, yes, china_mirror, skip_docker_install, public_ip)
    mysql = None
    if database is DatabaseKind.NEW_MYSQL and mysql_root_password and mysql_password:
        mysql = MysqlSettings(root_password=mysql_root_password, password=mysql_password)
    answers = PmailAnswers(
        domain=domain,
        web_domain=web_domain,
        ssl_email=ssl_email,
        database=database,
        mysql=mysql,
        mirror=image_mirror,
    )
    execute(PmailRecipe(options, answers, runner=make_runner()))


@app.command("maibot")
def deploy_maibot(
        qq: str | None = typer.Option(None, "--qq", help="Robot QQ number."),
        nickname: str | None = typer.Option(None, "--nickname"),
        provider: ApiProvider | None = typer.Option(None, "--provider"),
        api_key: str | None = typer.Option(None, "--api-key"),
        install_dir: Path | None = INSTALL_DIR_OPT,
        yes: bool = YES_OPT,
        china_mirror: bool | None = MIRROR_OPT,
        skip_docker_install: bool = SKIP_DOCKER_OPT,
        public_ip: str | None = PUBLIC_IP_OPT,
):
    """MaiBot with the NapCat adapter."""
    options = build_options("maibot", install_dir, yes, china_mirror, skip_docker_install, public_ip)
    answers = MaibotAnswers(robot_qq=qq, nickname=nickname, provider=provider, api_key=api_key)
    execute(MaibotRecipe(options, answers, runner=make_runner()))
