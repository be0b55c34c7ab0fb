"""Run external programs and capture what they say."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from pathlib import Path
from subprocess import PIPE, STDOUT, TimeoutExpired
from subprocess import run as subprocess_run

from .errors import ToolExecutionError

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class ToolResult:
    exit_code: int
    output: str

    @property
    def ok(self) -> bool:
        return self.exit_code == 0


class ToolInvoker:
    """Synchronous process runner.

    A nonzero exit code is returned, not raised; callers decide what it
    means. Only a process that cannot be started (or that exceeds the
    optional timeout) raises ToolExecutionError.
    """

    def __init__(self, timeout: float | None = None):
        self.timeout = timeout

    def run(self, executable: str | Path, args: list[str | Path]) -> ToolResult:
        argv = [str(executable)] + [str(a) for a in args]
        return self._execute(argv, shell=False, label=Path(str(executable)).name)

    def run_line(self, command_line: str) -> ToolResult:
        """Run one pre-built command line through the shell."""
        return self._execute(command_line, shell=True, label="shell")

    def _execute(self, command, shell: bool, label: str) -> ToolResult:
        log.debug("exec %s: %s", label, command)
        t0 = time.monotonic()
        try:
            proc = subprocess_run(
                command,
                shell=shell,
                stdout=PIPE,
                stderr=STDOUT,
                text=True,
                errors="replace",
                timeout=self.timeout,
            )
        except TimeoutExpired as e:
            output = e.output.decode(errors="replace") if isinstance(e.output, bytes) else (e.output or "")
            log.error("%s timed out after %.0fs", label, self.timeout)
            raise ToolExecutionError(
                f"{label} did not finish within {self.timeout:g}s and was killed",
                output=output,
            ) from e
        except OSError as e:
            log.error("%s could not be started: %s", label, e)
            raise ToolExecutionError(f"could not start {label}: {e}") from e

        elapsed = time.monotonic() - t0
        log.debug("exit %s: code=%d, duration=%.1fs", label, proc.returncode, elapsed)
        return ToolResult(proc.returncode, proc.stdout or "")
