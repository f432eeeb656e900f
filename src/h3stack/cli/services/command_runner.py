"""
External command execution.

Every tool invocation made by the pipeline (git, configure, make, the
installed binaries) goes through a ``CommandRunner``. The default
implementation wraps ``subprocess.run``; tests substitute a scripted runner.
"""

import logging
import shlex
import subprocess
import time
from dataclasses import dataclass
from pathlib import Path
from typing import List, Mapping, Optional, Protocol, Sequence, Union

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CommandResult:
    """Captured outcome of one command."""
    args: Sequence[str]
    returncode: int
    stdout: str = ""
    stderr: str = ""
    duration_s: float = 0.0

    @property
    def ok(self) -> bool:
        return self.returncode == 0

    @property
    def command_str(self) -> str:
        return " ".join(shlex.quote(str(a)) for a in self.args)

    @property
    def output(self) -> str:
        """stdout followed by stderr."""
        if self.stdout and self.stderr:
            return self.stdout.rstrip("\n") + "\n" + self.stderr
        return self.stdout or self.stderr

    def output_lines(self) -> List[str]:
        return self.output.splitlines()


class CommandRunner(Protocol):
    def run(
        self,
        args: Sequence[str],
        cwd: Optional[Path] = None,
        env: Optional[Mapping[str, str]] = None,
        timeout: Optional[float] = None,
    ) -> CommandResult:
        ...


class SubprocessRunner:
    """
    Run commands with ``subprocess.run``, capturing output as text.

    Child processes are started in their own session so that a terminal
    Ctrl-C only reaches h3stack, which then stops at the next stage boundary
    instead of killing a compile half-way.

    A missing executable is reported as exit code 127 with the OS error as
    stderr, matching what a shell would do.
    """

    def __init__(self, isolate_signals: bool = True):
        self.isolate_signals = isolate_signals

    def run(
        self,
        args: Sequence[str],
        cwd: Optional[Path] = None,
        env: Optional[Mapping[str, str]] = None,
        timeout: Optional[float] = None,
    ) -> CommandResult:
        argv: List[Union[str, Path]] = [str(a) for a in args]
        logger.debug(f"Running: {' '.join(shlex.quote(a) for a in argv)} (cwd={cwd})")
        start = time.monotonic()
        try:
            proc = subprocess.run(  # nosec B603
                argv,
                cwd=str(cwd) if cwd else None,
                env=dict(env) if env is not None else None,
                capture_output=True,
                text=True,
                errors="replace",
                timeout=timeout,
                start_new_session=self.isolate_signals,
            )
        except FileNotFoundError as e:
            return CommandResult(
                args=tuple(argv), returncode=127, stderr=f"{e}\n",
                duration_s=time.monotonic() - start,
            )
        except PermissionError as e:
            return CommandResult(
                args=tuple(argv), returncode=126, stderr=f"{e}\n",
                duration_s=time.monotonic() - start,
            )
        except subprocess.TimeoutExpired as e:
            stdout = e.stdout.decode(errors="replace") if isinstance(e.stdout, bytes) else (e.stdout or "")
            return CommandResult(
                args=tuple(argv), returncode=124, stdout=stdout,
                stderr=f"Timed out after {timeout}s\n",
                duration_s=time.monotonic() - start,
            )

        duration = time.monotonic() - start
        logger.debug(f"Exit {proc.returncode} after {duration:.1f}s")
        return CommandResult(
            args=tuple(argv),
            returncode=proc.returncode,
            stdout=proc.stdout or "",
            stderr=proc.stderr or "",
            duration_s=duration,
        )
