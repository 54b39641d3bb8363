from __future__ import annotations

import subprocess
from dataclasses import dataclass

import pytest


@dataclass
class _Response:
    needle: str
    returncode: int
    stdout: str
    stderr: str
    times: int | None


class FakeRunner:
    """Records commands; answers them from canned responses matched by substring."""

    def __init__(self, commands=("curl", "docker", "git", "python3")):
        self.calls: list[list[str]] = []
        self.commands = set(commands)
        self._responses: list[_Response] = []

    def respond(self, needle: str, *, returncode: int = 0, stdout: str = "", stderr: str = "", times: int | None = None):
        self._responses.append(_Response(needle, returncode, stdout, stderr, times))
        return self

    def run(self, cmd, *, cwd=None, input=None, timeout=None, capture=True):
        args = [str(part) for part in cmd]
        self.calls.append(args)
        line = " ".join(args)
        for resp in self._responses:
            if resp.needle not in line or resp.times == 0:
                continue
            if resp.times is not None:
                resp.times -= 1
            return subprocess.CompletedProcess(args, resp.returncode, resp.stdout, resp.stderr)
        return subprocess.CompletedProcess(args, 0, "", "")

    def shell(self, script, *, capture=True):
        return self.run(["bash", "-c", script], capture=capture)

    def which(self, name):
        return f"/usr/bin/{name}" if name in self.commands else None

    def ran(self, needle: str) -> bool:
        return any(needle in " ".join(call) for call in self.calls)


@pytest.fixture
def runner() -> FakeRunner:
    return FakeRunner()
