from __future__ import annotations

import pytest

from oneclick_core.systemd import ServiceManager, ServiceManagerError, UnitSpec, render_unit


def _spec(**kwargs) -> UnitSpec:
    base = dict(
        name="liteyukibot",
        description="LiteyukiBot",
        exec_start="/opt/bot/venv/bin/python main.py",
        working_directory="/opt/bot",
    )
    base.update(kwargs)
    return UnitSpec(**base)


def test_render_unit_sections() -> None:
    text = render_unit(_spec(user="alice"))

    assert text.startswith("[Unit]\nDescription=LiteyukiBot\nAfter=network.target\n")
    assert "User=alice" in text
    assert "ExecStart=/opt/bot/venv/bin/python main.py" in text
    assert "Restart=on-failure" in text
    assert text.endswith("[Install]\nWantedBy=multi-user.target\n")


def test_render_unit_without_user() -> None:
    assert "User=" not in render_unit(_spec())


def test_write_unit_returns_handle(runner, tmp_path) -> None:
    manager = ServiceManager(runner, unit_dir=tmp_path)

    handle = manager.write_unit(_spec())

    assert handle.unit == "liteyukibot.service"
    assert handle.unit_path == tmp_path / "liteyukibot.service"
    assert handle.unit_path.read_text(encoding="utf-8") == render_unit(_spec())


def test_systemctl_failure_raises_with_hint(runner, tmp_path) -> None:
    runner.respond("systemctl start", returncode=1, stderr="Job failed")
    manager = ServiceManager(runner, unit_dir=tmp_path)

    with pytest.raises(ServiceManagerError, match="Job failed") as exc:
        manager.start("liteyukibot.service")

    assert "journalctl" in exc.value.hint


def test_is_active(runner, tmp_path) -> None:
    manager = ServiceManager(runner, unit_dir=tmp_path)
    assert manager.is_active("a.service")
    runner.respond("is-active --quiet b.service", returncode=3)
    assert not manager.is_active("b.service")
