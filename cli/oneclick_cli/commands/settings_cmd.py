from __future__ import annotations

import os

import typer

from .. import console
from ..config import (
    SETTING_KEYS,
    apply_setting,
    config_path,
    default_config,
    get_setting,
    load_config,
    save_config,
)

app = typer.Typer(help="Manage local settings (~/.config/oneclick/config.toml).")


@app.command("init")
def init_settings(
        force: bool = typer.Option(False, "--force", help="Overwrite existing config."),
        install_root: str = typer.Option(
            "/root",
            "--install-root",
            prompt="Directory that holds deployments",
            help="Parent directory for deployment work dirs.",
        ),
):
    path = config_path()
    if os.path.exists(path) and not force:
        console.info(f"Config already exists: {path}")
        console.info("Use --force to overwrite.")
        return

    cfg = default_config()
    try:
        apply_setting(cfg, "install_root", install_root)
    except ValueError as exc:
        console.err(str(exc))
        raise typer.Exit(code=1)
    saved = save_config(cfg)
    console.ok(f"Config written: {saved}")


@app.command("show")
def show_settings():
    cfg = load_config()
    for key in SETTING_KEYS:
        console.console.print(f"{key}={get_setting(cfg, key)}")


@app.command("get")
def get_value(
        key: str = typer.Argument(..., help=f"Setting key ({', '.join(SETTING_KEYS)})."),
):
    cfg = load_config()
    try:
        console.console.print(get_setting(cfg, key))
    except KeyError:
        console.err(f"Unknown setting: {key}")
        raise typer.Exit(code=1)


@app.command("set")
def set_value(
        key: str = typer.Argument(..., help=f"Setting key ({', '.join(SETTING_KEYS)})."),
        value: str = typer.Argument(..., help="New value; lists are comma separated, 'ask' unsets the mirror choice."),
):
    cfg = load_config()
    try:
        apply_setting(cfg, key, value)
    except KeyError:
        console.err(f"Unknown setting: {key}")
        raise typer.Exit(code=1)
    except ValueError as exc:
        console.err(str(exc))
        raise typer.Exit(code=1)
    saved = save_config(cfg)
    console.ok(f"Settings updated: {saved}")
