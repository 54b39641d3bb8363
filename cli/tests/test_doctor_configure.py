from __future__ import annotations

from typer.testing import CliRunner

from oneclick_core.errors import PreconditionError
from oneclick_core.host import OsRelease
from oneclick_cli import main
from oneclick_cli.commands import doctor_cmd
from oneclick_cli.recipes import maibot

BOT_CONFIG = '[bot]\nqq_account = 114514\nnickname = "麦麦"\n'


def test_collect_report_ready_host(runner, monkeypatch) -> None:
    monkeypatch.setattr(doctor_cmd, "read_os_release", lambda: OsRelease("debian", (), "Debian 12"))
    monkeypatch.setattr(doctor_cmd, "resolve_public_ip", lambda endpoints, timeout: "203.0.113.7")

    report = doctor_cmd.collect_report(runner, endpoints=(), timeout=1.0, geteuid=lambda: 0)

    assert report["root"] is True
    assert report["os_supported"] is True
    assert report["docker_running"] is True
    assert report["compose"] == "docker compose"
    assert report["public_ip"] == "203.0.113.7"


def test_collect_report_bare_host(runner, monkeypatch) -> None:
    def missing():
        raise PreconditionError("no os-release")

    runner.commands.discard("docker")
    monkeypatch.setattr(doctor_cmd, "read_os_release", missing)
    monkeypatch.setattr(doctor_cmd, "resolve_public_ip", lambda endpoints, timeout: "")

    report = doctor_cmd.collect_report(runner, endpoints=(), timeout=1.0, geteuid=lambda: 1000)

    assert report["root"] is False
    assert report["os"] is None
    assert report["compose"] is None
    assert report["public_ip"] is None


def test_configure_maibot_updates_files(tmp_path) -> None:
    bot_config = tmp_path / maibot.BOT_CONFIG_PATH
    bot_config.parent.mkdir(parents=True)
    bot_config.write_text(BOT_CONFIG, encoding="utf-8")
    env = tmp_path / maibot.ENV_PATH
    env.write_text("HOST=0.0.0.0\nSILICONFLOW_KEY=old\n", encoding="utf-8")

    result = CliRunner().invoke(
        main._build_app(),
        [
            "configure",
            "maibot",
            "--project-dir",
            str(tmp_path),
            "--qq",
            "987654321",
            "--api-key",
            "sk-new",
            "--no-restart",
        ],
    )

    assert result.exit_code == 0, result.output
    assert "qq_account = 987654321" in bot_config.read_text(encoding="utf-8")
    assert "SILICONFLOW_KEY=sk-new" in env.read_text(encoding="utf-8")


def test_configure_maibot_invalid_qq_fails(tmp_path) -> None:
    bot_config = tmp_path / maibot.BOT_CONFIG_PATH
    bot_config.parent.mkdir(parents=True)
    bot_config.write_text(BOT_CONFIG, encoding="utf-8")

    result = CliRunner().invoke(
        main._build_app(),
        ["configure", "maibot", "--project-dir", str(tmp_path), "--qq", "12", "--no-restart"],
    )

    assert result.exit_code == 1
    assert "Invalid QQ number" in result.output
    assert "114514" in bot_config.read_text(encoding="utf-8")
