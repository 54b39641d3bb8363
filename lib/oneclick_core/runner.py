from __future__ import annotations

import logging
import shlex
import shutil
import subprocess
from pathlib import Path
from typing import Sequence

log = logging.getLogger(__name__)


class LocalRunner:
    """Runs host commands; missing executables come back as exit code 127."""

    def run(
        self,
        cmd: Sequence[str],
        *,
        cwd: str | Path | None = None,
        input: str | None = None,
        timeout: float | None = None,
        capture: bool = True,
    ) -> subprocess.CompletedProcess[str]:
        args = [str(part) for part in cmd]
        log.debug("run: %s (cwd=%s)", " ".join(shlex.quote(a) for a in args), cwd or ".")
        try:
            return subprocess.run(
                args,
                cwd=str(cwd) if cwd else None,
                input=input,
                text=True,
                capture_output=capture,
                timeout=timeout,
                check=False,
            )
        except FileNotFoundError as exc:
            return subprocess.CompletedProcess(args, 127, "", str(exc))
        except subprocess.TimeoutExpired as exc:
            stderr = exc.stderr if isinstance(exc.stderr, str) else ""
            return subprocess.CompletedProcess(args, 124, "", stderr or f"timed out after {timeout}s")

    def shell(self, script: str, *, capture: bool = True) -> subprocess.CompletedProcess[str]:
        return self.run(["bash", "-c", script], capture=capture)

    def which(self, name: str) -> str | None:
        return shutil.which(name)


def command_exists(runner, name: str) -> bool:
    return runner.which(name) is not None


def command_success(runner, cmd: Sequence[str]) -> bool:
    return runner.run(cmd).returncode == 0


def output_of(res: subprocess.CompletedProcess[str]) -> str:
    return (res.stderr or "").strip() or (res.stdout or "").strip()
