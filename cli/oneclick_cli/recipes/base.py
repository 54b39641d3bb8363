from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable

from rich.markup import escape

from oneclick_core.compose import (
    COMPOSE_FILENAME,
    DEFAULT_HEALTH_INTERVAL,
    DEFAULT_HEALTH_TIMEOUT,
    ComposeStack,
    detect_compose_command,
)
from oneclick_core.engine import RunOutcome, Workflow
from oneclick_core.errors import DependencyInstallError, OrchestratorError
from oneclick_core.host import require_root, require_supported_os
from oneclick_core.packages import DOCKER_OFFICIAL_SCRIPT, DockerInstaller, PackageInstaller, switch_system_mirror
from oneclick_core.public_ip import DEFAULT_ENDPOINTS, DEFAULT_TIMEOUT, PLACEHOLDER, resolve_public_ip
from oneclick_core.resources import DirectoryHandle
from oneclick_core.rollback import RollbackHandler, RollbackReport
from oneclick_core.runner import LocalRunner
from oneclick_core.session import ProvisioningSession, RunState, Step
from oneclick_core.validation import not_empty

from .. import console, interactive

log = logging.getLogger(__name__)


@dataclass
class DeployOptions:
    install_dir: Path
    assume_yes: bool = False
    china_mirror: bool | None = None
    skip_docker_install: bool = False
    public_ip: str | None = None
    public_ip_endpoints: tuple[str, ...] = DEFAULT_ENDPOINTS
    public_ip_timeout: float = DEFAULT_TIMEOUT
    health_timeout: float = DEFAULT_HEALTH_TIMEOUT
    health_interval: float = DEFAULT_HEALTH_INTERVAL


class Recipe:
    """One deployment: a fixed list of named steps sharing this object as their context."""

    name = ""
    title = ""
    required_commands: dict[str, str] = {"curl": "curl"}
    # packages without a command to probe, installed unconditionally
    extra_packages: tuple[str, ...] = ()
    # the work dir holds bind-mounted database data
    persistent_data = True

    def __init__(self, options: DeployOptions, *, runner=None):
        self.options = options
        self.runner = runner or LocalRunner()
        self.workflow: Workflow | None = None
        self.compose_cmd: tuple[str, ...] = ("docker", "compose")
        self.stacks: list[ComposeStack] = []
        self.server_ip = ""
        self.china_mirror = options.china_mirror

    @property
    def work_dir(self) -> Path:
        return self.options.install_dir

    def steps(self) -> list[Step]:
        return [
            Step("check environment", self.check_environment),
            Step("install dependencies", self.install_dependencies),
            Step("collect configuration", self.collect_configuration),
            Step("generate files", self.generate_files),
            Step("start services", self.start_services),
            Step("verify services", self.verify_services),
            Step("summary", self.summary),
        ]

    def check_environment(self) -> None:
        require_root(script=f"oneclick deploy {self.name}")
        release = require_supported_os()
        console.ok(f"Operating system: {release.pretty_name}")

    def install_dependencies(self) -> None:
        if self.china_mirror is None:
            self.china_mirror = self._ask_location()
        if self.china_mirror:
            console.info("Switching system package sources to a mainland China mirror...")
            if not switch_system_mirror(self.runner):
                console.warn("Mirror switch failed; continuing with the current sources.")

        packages = PackageInstaller(self.runner)
        installed = packages.ensure(self.required_commands)
        if self.extra_packages:
            packages.install(*self.extra_packages)
            installed.extend(self.extra_packages)
        if installed:
            console.ok(f"Installed: {', '.join(installed)}")

        docker = DockerInstaller(self.runner)
        if not docker.installed():
            if self.options.skip_docker_install:
                raise DependencyInstallError("Docker is not installed.", hint=DOCKER_OFFICIAL_SCRIPT)
            console.info("Docker not found, installing...")
            docker.install(china_mirror=bool(self.china_mirror))
            console.ok("Docker installed.")
        docker.ensure_running()
        self.compose_cmd = detect_compose_command(self.runner)
        console.ok(f"Docker and {' '.join(self.compose_cmd)} are available.")

    def collect_configuration(self) -> None:
        raise NotImplementedError

    def generate_files(self) -> None:
        raise NotImplementedError

    def start_services(self) -> None:
        stacks = self._require_stacks()
        console.info("Pulling images (the first pull may take a while)...")
        for stack in stacks:
            stack.pull()
        console.info("Starting containers...")
        for stack in stacks:
            stack.up()
        console.ok("Containers started.")

    def verify_services(self) -> None:
        console.info("Waiting for containers to report running...")
        running = 0
        for stack in self._require_stacks():
            try:
                statuses = stack.wait_running(
                    timeout=self.options.health_timeout, interval=self.options.health_interval
                )
            except OrchestratorError:
                self.print_recent_logs(stack)
                raise
            running += sum(1 for s in statuses if s.running)
        console.ok(f"{running} container(s) running.")

    def summary(self) -> None:
        raise NotImplementedError

    def create_work_dir(self) -> Path:
        workflow = self._require_workflow()
        existed = self.work_dir.exists()
        path = workflow.ensure_work_dir(self.work_dir, persistent=self.persistent_data)
        if existed:
            console.warn(f"Directory {path} already exists; generated files will be overwritten.")
        else:
            console.ok(f"Created {path}")
        return path

    def create_dir(self, path: Path, *, persistent: bool = False) -> Path:
        """Create an extra directory next to the work dir, registered for rollback when new."""
        return self._require_workflow().ensure_work_dir(path, persistent=persistent)

    def write_stack(self, compose: dict[str, Any], *, path: Path | None = None) -> ComposeStack:
        """Write a compose file and register the stack before anything starts it."""
        workflow = self._require_workflow()
        stack = ComposeStack(self.runner, path or self.work_dir / COMPOSE_FILENAME, compose_cmd=self.compose_cmd)
        reused = stack.compose_file.exists() or not self._created_this_run(stack.project_dir)
        if reused:
            log.info("%s predates this run; rollback keeps its volumes", stack.project_dir)
        stack.write(compose)
        workflow.register_resource(stack.handle(keep_volumes=reused, persistent=self.persistent_data))
        stack.validate()
        console.ok(f"Wrote {stack.compose_file}")
        self.stacks.append(stack)
        return stack

    def resolve_server_ip(self) -> str:
        if self.server_ip:
            return self.server_ip
        if self.options.public_ip:
            self.server_ip = self.options.public_ip.strip()
            return self.server_ip
        console.info("Detecting the server public IP...")
        ip = resolve_public_ip(self.options.public_ip_endpoints, timeout=self.options.public_ip_timeout)
        if ip:
            console.ok(f"Public IP: {ip}")
        else:
            console.warn("Could not detect the public IP automatically.")
            ip = interactive.prompt_valid(
                f"Server public IP (or {PLACEHOLDER})",
                lambda value: not_empty(value, label="IP address"),
            )
        self.server_ip = ip
        return ip

    def display_ip(self) -> str:
        """Best-effort address for summaries; never prompts."""
        if self.server_ip:
            return self.server_ip
        if self.options.public_ip:
            return self.options.public_ip.strip()
        ip = resolve_public_ip(self.options.public_ip_endpoints, timeout=self.options.public_ip_timeout)
        if not ip:
            console.warn("Could not detect the public IP; substitute your server address below.")
            return PLACEHOLDER
        self.server_ip = ip
        return ip

    def print_recent_logs(self, stack: ComposeStack) -> None:
        logs = stack.logs()
        if logs:
            console.rule("[bold]Recent container logs[/]")
            console.print(escape(logs))

    def print_management(self) -> None:
        console.rule("[bold]Service management[/]")
        for stack in self._require_stacks():
            self._print_stack_commands(stack)

    def _print_stack_commands(self, stack: ComposeStack) -> None:
        console.print(f"Project directory: {stack.project_dir}")
        console.print("View logs:")
        console.hint(stack.logs_hint())
        console.print("Stop services:")
        console.hint(stack.command("down"))
        console.print("Start services:")
        console.hint(stack.command("up", "-d"))
        console.print("Update images:")
        console.hint(f"{stack.command('pull')} && {stack.command('up', '-d')}")

    def _ask_location(self) -> bool:
        if self.options.assume_yes:
            return False
        return interactive.confirm_choice("Is this server located in mainland China (use mirrors)?", default=False)

    def _require_workflow(self) -> Workflow:
        if self.workflow is None:
            raise RuntimeError("Recipe is not attached to a workflow.")
        return self.workflow

    def _created_this_run(self, path: Path) -> bool:
        for handle in self._require_workflow().session.created_resources:
            if isinstance(handle, DirectoryHandle) and (handle.path == path or handle.path in path.parents):
                return True
        return False

    def _require_stacks(self) -> list[ComposeStack]:
        if not self.stacks:
            raise RuntimeError("No compose stack has been generated yet.")
        return self.stacks


def run_recipe(
    recipe: Recipe,
    *,
    confirm: Callable[[str], bool] | None = None,
    install_signal_hook: bool = True,
) -> RunOutcome:
    if confirm is None and not recipe.options.assume_yes:
        confirm = lambda message: interactive.confirm_choice(message, default=False)  # noqa: E731
    steps = recipe.steps()
    positions = {step.name: idx for idx, step in enumerate(steps, start=1)}

    def _announce(name: str) -> None:
        console.rule(f"[bold]{positions[name]}/{len(steps)} {name}[/]")

    workflow = Workflow(
        ProvisioningSession(),
        RollbackHandler(recipe.runner, confirm=confirm),
        on_step=_announce,
        install_signal_hook=install_signal_hook,
    )
    recipe.workflow = workflow
    console.rule(f"[bold]{recipe.title}[/]")
    outcome = workflow.run(steps)
    report_outcome(outcome)
    return outcome


def report_outcome(outcome: RunOutcome) -> None:
    if outcome.state is RunState.COMPLETED:
        console.ok("All steps completed.")
        return
    error = outcome.error
    if error is not None:
        if error.interrupted:
            console.warn(f"Interrupted during '{error.step}'.")
        else:
            console.err(escape(error.message))
        if error.hint:
            console.info("Next step to diagnose manually:")
            console.hint(error.hint)
    if outcome.rollback is not None:
        report_rollback(outcome.rollback)


def report_rollback(report: RollbackReport) -> None:
    console.rule("[bold]Rollback[/]")
    if report.empty:
        console.info("Nothing was created; nothing to roll back.")
        return
    for handle in report.removed:
        console.ok(f"Removed {handle.describe()}")
    for handle in report.kept:
        console.warn(f"Kept {handle.describe()}; remove it manually with:")
        console.hint(handle.manual_command())
    for failure in report.failed:
        console.err(escape(f"Could not remove {failure.handle.describe()}: {failure.error}"))
        console.hint(failure.manual_command)
