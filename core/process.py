"""Subprocess adapter used by every inspector and check."""

from __future__ import annotations

from dataclasses import dataclass
import re
import subprocess
from typing import Protocol, Sequence

from core.logging import logger as LOGGER


_PERMISSION_PATTERN = re.compile(
    r"eperm|eacces|permission denied|operation not permitted",
    re.IGNORECASE,
)


@dataclass(frozen=True)
class CommandResult:
    """Outcome of one external command.

    A non-zero exit, a spawn failure and a timeout are all ordinary results;
    ``error`` is only set when the process could not be run to completion.
    """

    command_line: str
    exit_code: int | None
    stdout: str = ""
    stderr: str = ""
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None and self.exit_code == 0

    @property
    def output(self) -> str:
        """Trimmed stdout and stderr joined by a newline, empty parts dropped."""

        parts = [self.stdout.strip(), self.stderr.strip()]
        return "\n".join(part for part in parts if part)


class CommandRunner(Protocol):
    def __call__(
        self,
        binary: str,
        args: Sequence[str],
        timeout_s: float | None = None,
    ) -> CommandResult: ...


def run_command(
    binary: str,
    args: Sequence[str],
    timeout_s: float | None = None,
) -> CommandResult:
    """Run ``binary`` with ``args`` and capture its output without raising."""

    cmd = [binary, *args]
    command_line = " ".join(cmd)
    LOGGER.debug("$ %s", command_line)
    try:
        completed = subprocess.run(
            cmd,
            check=False,
            capture_output=True,
            text=True,
            timeout=timeout_s,
        )
    except subprocess.TimeoutExpired:
        LOGGER.debug("Command timed out after %ss: %s", timeout_s, command_line)
        return CommandResult(
            command_line=command_line,
            exit_code=None,
            error=f"timed out after {timeout_s:g}s",
        )
    except OSError as exc:
        LOGGER.debug("Command could not start: %s (%s)", command_line, exc)
        return CommandResult(command_line=command_line, exit_code=None, error=str(exc))

    LOGGER.debug("exit=%s %s", completed.returncode, command_line)
    return CommandResult(
        command_line=command_line,
        exit_code=completed.returncode,
        stdout=completed.stdout or "",
        stderr=completed.stderr or "",
    )


def short_error(result: CommandResult) -> str:
    """Return a one-line explanation of what went wrong with ``result``."""

    if result.error:
        return single_line(result.error)

    stderr = single_line(result.stderr)
    stdout = single_line(result.stdout)
    exit_code = "unknown" if result.exit_code is None else result.exit_code
    return stderr or stdout or f"exit code {exit_code}"


def single_line(text: str) -> str:
    """Collapse newlines and runs of whitespace into single spaces."""

    return " ".join(text.split())


def indicates_permission_issue(message: str) -> bool:
    return bool(_PERMISSION_PATTERN.search(message))
