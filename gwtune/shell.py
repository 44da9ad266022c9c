from __future__ import annotations

import subprocess
from dataclasses import dataclass
from typing import Callable, Sequence

from .settings import settings


@dataclass(frozen=True)
class CommandResult:
    argv: tuple[str, ...]
    returncode: int
    stdout: str = ""
    stderr: str = ""

    @property
    def ok(self) -> bool:
        return self.returncode == 0

    @property
    def detail(self) -> str:
        """Best human-readable explanation of a failure."""
        return (self.stderr or self.stdout).strip()


# Anything that runs an argv and returns a CommandResult. Tests swap in fakes.
Runner = Callable[..., CommandResult]


def run(argv: Sequence[str], timeout_s: float | None = None) -> CommandResult:
    """Run an external tool with a hard timeout.

    Never raises for the usual failure modes: a missing binary maps to 127 and
    a timeout to 124 (the coreutils `timeout` convention).
    """
    argv = tuple(str(a) for a in argv)
    timeout = settings.command_timeout_s if timeout_s is None else timeout_s
    try:
        p = subprocess.run(argv, capture_output=True, text=True, timeout=timeout, check=False)
    except FileNotFoundError:
        return CommandResult(argv, 127, "", f"command not found: {argv[0]}")
    except PermissionError as e:
        return CommandResult(argv, 126, "", f"permission denied: {e}")
    except subprocess.TimeoutExpired:
        return CommandResult(argv, 124, "", f"timed out after {timeout}s")
    return CommandResult(argv, p.returncode, p.stdout or "", p.stderr or "")
