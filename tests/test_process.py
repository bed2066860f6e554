"""Tests for the subprocess adapter."""

from __future__ import annotations

import sys

from core.process import CommandResult, indicates_permission_issue, run_command, short_error


def test_short_error_prefers_spawn_error() -> None:
    result = CommandResult("docker ps", None, stdout="out", stderr="err", error="No such file")
    assert short_error(result) == "No such file"


def test_short_error_falls_back_in_order() -> None:
    assert short_error(CommandResult("x", 1, stdout=" out ", stderr="  err\n")) == "err"
    assert short_error(CommandResult("x", 1, stdout=" out \n", stderr="  ")) == "out"
    assert short_error(CommandResult("x", 7)) == "exit code 7"
    assert short_error(CommandResult("x", None)) == "exit code unknown"


def test_run_command_missing_binary_does_not_raise() -> None:
    result = run_command("definitely-not-a-real-binary-ocs", ["--version"])

    assert not result.ok
    assert result.exit_code is None
    assert result.error
    assert result.command_line == "definitely-not-a-real-binary-ocs --version"


def test_run_command_captures_nonzero_exit() -> None:
    result = run_command(
        sys.executable,
        ["-c", "import sys; sys.stdout.write('partial'); sys.stderr.write('boom'); sys.exit(3)"],
    )

    assert result.exit_code == 3
    assert not result.ok
    assert result.stdout == "partial"
    assert short_error(result) == "boom"


def test_run_command_timeout_is_a_result() -> None:
    result = run_command(sys.executable, ["-c", "import time; time.sleep(5)"], timeout_s=0.2)

    assert not result.ok
    assert "timed out" in short_error(result)


def test_permission_detection() -> None:
    assert indicates_permission_issue("Got permission denied while trying to connect")
    assert indicates_permission_issue("EACCES: mkdir")
    assert indicates_permission_issue("Operation not permitted")
    assert not indicates_permission_issue("exit code 1")


def test_short_error_is_one_line() -> None:
    result = CommandResult(
        "docker compose up -d",
        1,
        stderr=" Network openclaw_internal  Creating\nError response from daemon:\n  pool overlaps\n",
    )

    assert short_error(result) == (
        "Network openclaw_internal Creating Error response from daemon: pool overlaps"
    )
