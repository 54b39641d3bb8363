from __future__ import annotations

import logging
import shutil
from dataclasses import dataclass, field
from typing import Callable

from .errors import OrchestratorError
from .resources import ContainerStackHandle, DirectoryHandle, ResourceHandle, ResourceKind, ServiceUnitHandle
from .runner import output_of
from .session import ProvisioningSession
from .systemd import ServiceManager

log = logging.getLogger(__name__)

ConfirmFn = Callable[[str], bool]


@dataclass(frozen=True)
class TeardownFailure:
    handle: ResourceHandle
    error: str
    manual_command: str


@dataclass
class RollbackReport:
    removed: list[ResourceHandle] = field(default_factory=list)
    kept: list[ResourceHandle] = field(default_factory=list)
    failed: list[TeardownFailure] = field(default_factory=list)

    @property
    def clean(self) -> bool:
        return not self.failed

    @property
    def empty(self) -> bool:
        return not (self.removed or self.kept or self.failed)


class RollbackHandler:
    """Tears down registered resources newest-first, one failure never stops the rest.

    ``confirm`` is asked before removing a directory or stack volumes flagged as
    persistent data; without it such data is removed unconditionally. Stacks that
    predate the run are brought down with their volumes left in place.
    """

    def __init__(
        self,
        runner,
        *,
        services: ServiceManager | None = None,
        confirm: ConfirmFn | None = None,
    ):
        self._runner = runner
        self._services = services or ServiceManager(runner)
        self._confirm = confirm
        self._dispatch: dict[ResourceKind, Callable[[ResourceHandle], bool]] = {
            ResourceKind.CONTAINER_STACK: self._teardown_stack,
            ResourceKind.SERVICE_UNIT: self._teardown_unit,
            ResourceKind.DIRECTORY: self._teardown_directory,
        }

    def rollback(self, session: ProvisioningSession) -> RollbackReport:
        report = RollbackReport()
        if session.completed:
            log.info("session completed; nothing to roll back")
            return report
        if not session.created_resources:
            log.info("no resources registered; nothing to roll back")
            return report

        while session.created_resources:
            handle = session.created_resources.pop()
            teardown = self._dispatch[handle.kind]
            try:
                removed = teardown(handle)
            except Exception as exc:
                log.warning("teardown of %s failed: %s", handle.describe(), exc)
                report.failed.append(
                    TeardownFailure(handle=handle, error=str(exc), manual_command=handle.manual_command())
                )
                continue
            if removed:
                log.info("removed %s", handle.describe())
                report.removed.append(handle)
            else:
                log.info("kept %s", handle.describe())
                report.kept.append(handle)
        return report

    def _teardown_stack(self, handle: ContainerStackHandle) -> bool:
        if not handle.compose_file.exists():
            log.debug("compose file %s is gone; skipping down", handle.compose_file)
            return True
        volumes = not handle.keep_volumes
        if volumes and handle.persistent and self._confirm is not None:
            volumes = self._confirm(f"Delete the data volumes of {handle.describe()}?")
        res = self._runner.run(handle.down_args(volumes=volumes), cwd=handle.project_dir)
        if res.returncode != 0:
            raise OrchestratorError(output_of(res) or f"compose down exited with {res.returncode}")
        # declined: containers are gone but the volumes are reported as kept
        return volumes or handle.keep_volumes

    def _teardown_unit(self, handle: ServiceUnitHandle) -> bool:
        self._services.remove(handle)
        return True

    def _teardown_directory(self, handle: DirectoryHandle) -> bool:
        if not handle.path.exists():
            return True
        if handle.persistent and self._confirm is not None:
            if not self._confirm(f"Delete {handle.describe()}?"):
                return False
        shutil.rmtree(handle.path)
        return True
