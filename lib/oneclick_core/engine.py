from __future__ import annotations

import logging
import signal
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Iterator, Sequence

from .errors import ProvisioningError, ProvisioningInterrupted
from .resources import DirectoryHandle, ResourceHandle
from .rollback import RollbackHandler, RollbackReport
from .session import ProvisioningSession, RunState, Step, StepStatus

log = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_FAILED = 1
EXIT_INTERRUPTED = 130

_HOOKED_SIGNALS = (signal.SIGINT, signal.SIGTERM)


@dataclass
class RunOutcome:
    state: RunState
    error: ProvisioningError | None = None
    rollback: RollbackReport | None = None

    @property
    def exit_code(self) -> int:
        if self.state is RunState.COMPLETED:
            return EXIT_OK
        if self.error is not None and self.error.interrupted:
            return EXIT_INTERRUPTED
        return EXIT_FAILED


class Workflow:
    """Runs named steps in order and rolls back registered resources on failure."""

    def __init__(
        self,
        session: ProvisioningSession,
        rollback: RollbackHandler,
        *,
        on_step: Callable[[str], None] | None = None,
        install_signal_hook: bool = True,
    ):
        self.session = session
        self._rollback = rollback
        self._on_step = on_step
        self._install_signal_hook = install_signal_hook
        self._hook_armed = False

    def register_resource(self, handle: ResourceHandle) -> ResourceHandle:
        self.session.created_resources.append(handle)
        log.debug("registered %s", handle.describe())
        return handle

    def ensure_work_dir(self, path: Path, *, persistent: bool = False) -> Path:
        """Create the work directory on first use; a pre-existing one is never registered."""
        path = Path(path)
        if self.session.work_dir is None:
            self.session.work_dir = path
        if path.exists():
            return path
        path.mkdir(parents=True)
        self.register_resource(DirectoryHandle(path=path, persistent=persistent))
        return path

    def run_step(self, name: str, fn: Callable[[], object]) -> None:
        rec = self.session.record(name)
        rec.status = StepStatus.RUNNING
        log.info("step started: %s", name)
        try:
            if self._on_step is not None:
                self._on_step(name)
            fn()
        except (Exception, KeyboardInterrupt) as exc:
            rec.status = StepStatus.FAILED
            rec.error = str(exc) or exc.__class__.__name__
            log.info("step failed: %s: %s", name, rec.error)
            raise ProvisioningError(name, exc) from exc
        rec.status = StepStatus.SUCCEEDED
        log.info("step succeeded: %s", name)

    def run(self, steps: Sequence[Step]) -> RunOutcome:
        session = self.session
        session.plan([step.name for step in steps])
        session.transition(RunState.RUNNING)
        current = steps[0].name if steps else ""
        failure: BaseException | None = None
        with self.interrupt_hook():
            try:
                for step in steps:
                    current = step.name
                    self.run_step(step.name, step.fn)
                # disarmed before completion, so a late signal cannot undo a finished run
                self._disarm()
                session.completed = True
            except (ProvisioningError, ProvisioningInterrupted, KeyboardInterrupt) as exc:
                self._disarm()
                failure = exc
            if failure is None:
                session.transition(RunState.COMPLETED)
                return RunOutcome(state=session.state)
            # a signal can land in the bookkeeping around a step, outside its own try
            if isinstance(failure, ProvisioningError):
                error = failure
            else:
                error = ProvisioningError(current, failure)
            session.transition(RunState.INTERRUPTED if error.interrupted else RunState.FAILED)
            return self._abort(error)

    def _abort(self, error: ProvisioningError) -> RunOutcome:
        self.session.transition(RunState.ROLLING_BACK)
        # the hook stays installed but disarmed, so Ctrl-C during teardown is swallowed
        report = self._rollback.rollback(self.session)
        self.session.transition(RunState.ABORTED)
        return RunOutcome(state=self.session.state, error=error, rollback=report)

    @contextmanager
    def interrupt_hook(self) -> Iterator[None]:
        if not self._install_signal_hook:
            yield
            return
        previous = {sig: signal.getsignal(sig) for sig in _HOOKED_SIGNALS}

        def _raise(signum, _frame):
            if self._hook_armed:
                # one-shot: a second signal while unwinding must not escape the rollback
                self._hook_armed = False
                raise ProvisioningInterrupted(signum)

        for sig in _HOOKED_SIGNALS:
            signal.signal(sig, _raise)
        self._hook_armed = True
        try:
            yield
        finally:
            self._hook_armed = False
            for sig, handler in previous.items():
                signal.signal(sig, handler)

    @property
    def hook_armed(self) -> bool:
        return self._hook_armed

    def _disarm(self) -> None:
        self._hook_armed = False

