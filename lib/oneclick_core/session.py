from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Callable

from .resources import ResourceHandle


class StepStatus(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


class RunState(str, Enum):
    INIT = "init"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    INTERRUPTED = "interrupted"
    ROLLING_BACK = "rolling_back"
    ABORTED = "aborted"


_TRANSITIONS: dict[RunState, set[RunState]] = {
    RunState.INIT: {RunState.RUNNING},
    RunState.RUNNING: {RunState.COMPLETED, RunState.FAILED, RunState.INTERRUPTED},
    RunState.FAILED: {RunState.ROLLING_BACK},
    RunState.INTERRUPTED: {RunState.ROLLING_BACK},
    RunState.ROLLING_BACK: {RunState.ABORTED},
    RunState.COMPLETED: set(),
    RunState.ABORTED: set(),
}


@dataclass(frozen=True)
class Step:
    name: str
    fn: Callable[[], object]


@dataclass
class StepRecord:
    name: str
    status: StepStatus = StepStatus.PENDING
    error: str | None = None


@dataclass
class ProvisioningSession:
    work_dir: Path | None = None
    steps: list[StepRecord] = field(default_factory=list)
    created_resources: list[ResourceHandle] = field(default_factory=list)
    completed: bool = False
    state: RunState = RunState.INIT

    def record(self, name: str) -> StepRecord:
        for rec in self.steps:
            if rec.name == name:
                return rec
        rec = StepRecord(name=name)
        self.steps.append(rec)
        return rec

    def plan(self, names: list[str]) -> None:
        for name in names:
            self.record(name)

    def transition(self, target: RunState) -> None:
        if target not in _TRANSITIONS[self.state]:
            raise RuntimeError(f"Invalid run state transition: {self.state.value} -> {target.value}")
        self.state = target

    @property
    def failed_step(self) -> StepRecord | None:
        for rec in self.steps:
            if rec.status is StepStatus.FAILED:
                return rec
        return None
