from __future__ import annotations

import shlex
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Union


class ResourceKind(str, Enum):
    CONTAINER_STACK = "container-stack"
    SERVICE_UNIT = "service-unit"
    DIRECTORY = "directory"


@dataclass(frozen=True)
class DirectoryHandle:
    path: Path
    # Directories holding persisted data are only removed after confirmation.
    persistent: bool = False

    kind = ResourceKind.DIRECTORY

    def describe(self) -> str:
        label = "data directory" if self.persistent else "directory"
        return f"{label} {self.path}"

    def manual_command(self) -> str:
        return f"rm -rf {shlex.quote(str(self.path))}"


@dataclass(frozen=True)
class ServiceUnitHandle:
    name: str
    unit_path: Path

    kind = ResourceKind.SERVICE_UNIT

    @property
    def unit(self) -> str:
        return self.name if self.name.endswith(".service") else f"{self.name}.service"

    def describe(self) -> str:
        return f"service unit {self.unit}"

    def manual_command(self) -> str:
        return (
            f"systemctl disable --now {shlex.quote(self.unit)} && "
            f"rm -f {shlex.quote(str(self.unit_path))} && systemctl daemon-reload"
        )


@dataclass(frozen=True)
class ContainerStackHandle:
    compose_file: Path
    compose_cmd: tuple[str, ...] = ("docker", "compose")
    # the stack predates this run, so its volumes belong to the operator
    keep_volumes: bool = False
    # volumes hold persisted data and are only removed after confirmation
    persistent: bool = False

    kind = ResourceKind.CONTAINER_STACK

    @property
    def project_dir(self) -> Path:
        return self.compose_file.parent

    def describe(self) -> str:
        return f"container stack {self.compose_file}"

    def down_args(self, *, volumes: bool | None = None) -> list[str]:
        if volumes is None:
            volumes = not self.keep_volumes
        args = [*self.compose_cmd, "-f", str(self.compose_file), "down"]
        if volumes:
            args.append("--volumes")
        args.append("--remove-orphans")
        return args

    def manual_command(self) -> str:
        return " ".join(shlex.quote(part) for part in self.down_args())


ResourceHandle = Union[DirectoryHandle, ServiceUnitHandle, ContainerStackHandle]
