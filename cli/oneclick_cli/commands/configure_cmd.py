from __future__ import annotations

from pathlib import Path

import typer
from questionary import Choice
from rich.table import Table

from oneclick_core.compose import detect_compose_command
from oneclick_core.errors import OneclickError, ProvisioningInterrupted
from oneclick_core.runner import LocalRunner

from .. import console, interactive
from ..recipes.maibot import MaibotProject, find_projects

app = typer.Typer(help="Change settings of an existing deployment.")

SEARCH_PATHS = (Path("/root"), Path("/home"), Path("/opt"))


def _pick_project(project_dir: Path | None) -> Path:
    if project_dir is not None:
        return project_dir
    candidates = find_projects([*SEARCH_PATHS, Path.cwd()])
    if not candidates:
        console.err("No MaiBot deployment found under /root, /home, /opt or the current directory.")
        console.hint("oneclick configure maibot --project-dir <path>")
        raise typer.Exit(code=1)
    if len(candidates) == 1:
        console.info(f"Using {candidates[0]}")
        return candidates[0]
    choices = [Choice(title=str(path), value=str(path)) for path in candidates]
    return Path(interactive.select_item("Which MaiBot deployment?", choices))


def _print_settings(project: MaibotProject) -> None:
    table = Table(title=f"MaiBot @ {project.root}")
    table.add_column("setting")
    table.add_column("value")
    for key, value in project.settings().items():
        table.add_row(key, value or "-")
    console.print(table)


@app.command("maibot")
def configure_maibot(
        project_dir: Path | None = typer.Option(None, "--project-dir", help="MaiBot work directory."),
        qq: str | None = typer.Option(None, "--qq", help="New robot QQ number."),
        nickname: str | None = typer.Option(None, "--nickname", help="New bot nickname."),
        api_key: str | None = typer.Option(None, "--api-key", help="New SiliconFlow API key."),
        restart: bool = typer.Option(True, "--restart/--no-restart", help="Restart containers after changes."),
        show: bool = typer.Option(False, "--show", help="Only print the current settings."),
):
    """Edit the QQ number, nickname or API key of a MaiBot deployment."""
    try:
        root = _pick_project(project_dir)
        runner = LocalRunner()
        project = MaibotProject(root, runner)
        if show:
            _print_settings(project)
            return

        if qq is None and nickname is None and api_key is None:
            qq = interactive.prompt_optional("New robot QQ number (blank to keep)") or None
            nickname = interactive.prompt_optional("New nickname (blank to keep)") or None
            api_key = interactive.prompt_optional("New API key (blank to keep)") or None
        if qq is None and nickname is None and api_key is None:
            console.info("Nothing to change.")
            return

        if qq is not None or nickname is not None:
            project.set_bot(qq=qq, nickname=nickname)
            console.ok("bot_config.toml updated.")
        if api_key is not None:
            project.set_api_key(api_key)
            console.ok(".env updated.")

        if restart:
            project = MaibotProject(root, runner, compose_cmd=detect_compose_command(runner))
            project.restart()
            console.ok("Containers restarted.")
        else:
            console.info("Restart the containers to apply the changes:")
            console.hint(project.stack.command("restart"))
    except ProvisioningInterrupted:
        console.warn("Cancelled.")
        raise typer.Exit(code=130)
    except OneclickError as e:
        console.err(str(e))
        if e.hint:
            console.hint(e.hint)
        raise typer.Exit(code=1)
