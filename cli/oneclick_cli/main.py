from __future__ import annotations

import typer

from .commands import configure_cmd, deploy_cmd, doctor_cmd, settings_cmd
from .logging_ import setup_logging


def _build_app() -> typer.Typer:
    app = typer.Typer(
        name="oneclick",
        help="One-command deployment of self-hosted stacks on Debian/Ubuntu.",
        no_args_is_help=True,
    )

    app.add_typer(deploy_cmd.app, name="deploy")
    app.add_typer(configure_cmd.app, name="configure")
    app.add_typer(settings_cmd.app, name="settings")
    app.command("doctor")(doctor_cmd.doctor)

    @app.callback()
    def _main(
            verbose: bool = typer.Option(False, "-v", "--verbose", help="Verbose logs."),
    ):
        setup_logging(verbose)

    return app


app = _build_app()
