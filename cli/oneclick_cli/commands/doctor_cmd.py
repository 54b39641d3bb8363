from __future__ import annotations

import os
from datetime import datetime, timezone

import typer

from oneclick_core.errors import OneclickError
from oneclick_core.host import read_os_release
from oneclick_core.public_ip import resolve_public_ip
from oneclick_core.runner import LocalRunner, command_exists, command_success

from ..config import load_config
from ..console import err, info, ok, print_json, warn


def _emit(level: str, msg: str, *, json_mode: bool) -> None:
    if json_mode:
        return
    if level == "ok":
        ok(msg)
    elif level == "warn":
        warn(msg)
    elif level == "err":
        err(msg)
    else:
        info(msg)


def collect_report(runner, *, endpoints, timeout: float, geteuid=None) -> dict[str, object]:
    """Probe the host without changing it."""
    euid = (geteuid or getattr(os, "geteuid", lambda: -1))()
    report: dict[str, object] = {
        "checked_at": datetime.now(timezone.utc).isoformat(),
        "root": euid == 0,
        "os": None,
        "os_supported": False,
        "docker": command_exists(runner, "docker"),
        "docker_running": False,
        "compose": None,
        "public_ip": None,
    }
    try:
        release = read_os_release()
    except OneclickError:
        release = None
    if release is not None:
        report["os"] = release.pretty_name
        report["os_supported"] = release.supported
    if report["docker"]:
        report["docker_running"] = command_success(runner, ["docker", "info"])
        if command_success(runner, ["docker", "compose", "version"]):
            report["compose"] = "docker compose"
        elif command_exists(runner, "docker-compose"):
            report["compose"] = "docker-compose"
    report["public_ip"] = resolve_public_ip(endpoints, timeout=timeout) or None
    return report


def doctor(
        json_output: bool = typer.Option(False, "--json", help="Output JSON only."),
) -> None:
    """Check whether this host is ready for a deployment."""
    cfg = load_config()
    report = collect_report(LocalRunner(), endpoints=cfg.public_ip_endpoints, timeout=cfg.public_ip_timeout)
    problems = 0

    if report["root"]:
        _emit("ok", "Running as root.", json_mode=json_output)
    else:
        problems += 1
        _emit("warn", "Not running as root; deployments need sudo.", json_mode=json_output)

    if report["os_supported"]:
        _emit("ok", f"Operating system: {report['os']}", json_mode=json_output)
    else:
        problems += 1
        _emit("err", f"Unsupported operating system: {report['os'] or 'unknown'}", json_mode=json_output)

    if not report["docker"]:
        _emit("info", "Docker is not installed; deployments install it.", json_mode=json_output)
    elif report["docker_running"]:
        _emit("ok", "Docker daemon is running.", json_mode=json_output)
    else:
        problems += 1
        _emit("warn", "Docker is installed but the daemon is not reachable.", json_mode=json_output)

    if report["compose"]:
        _emit("ok", f"Compose: {report['compose']}", json_mode=json_output)
    elif report["docker"]:
        problems += 1
        _emit("warn", "Docker Compose is missing.", json_mode=json_output)

    if report["public_ip"]:
        _emit("ok", f"Public IP: {report['public_ip']}", json_mode=json_output)
    else:
        _emit("warn", "Public IP could not be resolved.", json_mode=json_output)

    if json_output:
        print_json(report)
    if problems:
        raise typer.Exit(code=1)
