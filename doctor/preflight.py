"""Doctor-only environment and build checks."""

from __future__ import annotations

from importlib import metadata
import os
from pathlib import Path
import sys
from typing import Callable

from config.controller import VerifierSettings
from core.process import CommandRunner, short_error
from diagnostics.models import CheckResult, failed, passed, warned
from runtime import inspectors
from runtime.compose import ComposeStack
from verifier.context import RUNTIME_DIRS_WRITABLE
from verifier.diagnosis import runtime_dir_permission_pattern


DISTRIBUTION_NAME = "openclaw-secure-kit"
ENTRY_POINT_NAME = "ocs"
PACKAGE_ROOT = Path(__file__).resolve().parent.parent


def find_usable_runtime(
    cwd: Path | None = None,
    invoked_script: str | None = None,
    package_dir: Path | None = None,
    exists: Callable[[Path], bool] = os.path.exists,
) -> Path | None:
    """Return the first runnable ``ocs`` entry point, or None.

    Candidates, in order: a local checkout's command module under ``cwd``,
    the script this process was invoked through, and the installed
    package's command module.
    """

    cwd = cwd if cwd is not None else Path.cwd()
    invoked = invoked_script if invoked_script is not None else sys.argv[0]
    package = package_dir if package_dir is not None else PACKAGE_ROOT

    candidates: list[Path] = []
    for candidate in (cwd / "diagnostics" / "run.py", invoked or None, package / "diagnostics" / "run.py"):
        if not candidate:
            continue
        resolved = Path(candidate).resolve()
        if resolved not in candidates:
            candidates.append(resolved)

    for candidate in candidates:
        if exists(candidate):
            return candidate
    return None


def resolve_version(runner: CommandRunner) -> tuple[str, str]:
    """Return ``(version, commit)``, each ``unknown`` when unavailable."""

    try:
        version = metadata.version(DISTRIBUTION_NAME)
    except metadata.PackageNotFoundError:
        version = "unknown"

    result = runner("git", ["rev-parse", "--short", "HEAD"], timeout_s=10)
    commit = result.stdout.strip() if result.ok else ""
    return version, commit or "unknown"


def check_compose_valid(stack: ComposeStack) -> CheckResult:
    name = "Compose validation"
    result = stack.config()
    if result.ok:
        return passed(name, "docker compose config succeeded.")
    return failed(name, f"docker compose config failed: {short_error(result)}")


def check_runtime_dir_logs(stack: ComposeStack, settings: VerifierSettings) -> CheckResult:
    """Scan the gateway log tail for runtime-directory access denials."""

    name = RUNTIME_DIRS_WRITABLE
    service = settings.gateway_service
    tail = inspectors.log_tail(stack, service, settings.doctor_log_tail)
    if not tail.ok:
        return warned(name, f"SKIP: unable to read {service} logs ({tail.error}).")

    paths = settings.runtime_tmpfs_paths
    if runtime_dir_permission_pattern(paths).search(tail.value):
        return failed(
            name,
            f"gateway reported EACCES while creating {' or '.join(paths)}. "
            "This usually means the tmpfs overlay is missing.",
        )
    return passed(name, "No EACCES mkdir errors for canvas/cron found in recent gateway logs.")


def inspect_gateway_tmpfs(stack: ComposeStack, settings: VerifierSettings) -> str:
    """Return an ``INFO:`` or ``WARN:`` line describing the applied tmpfs mounts."""

    service = settings.gateway_service
    container = inspectors.container_id(stack, service)
    if not container.ok:
        return f"WARN: tmpfs inspect skipped: unable to get {service} container id ({container.error})"

    tmpfs = inspectors.host_tmpfs(stack, container.value)
    if not tmpfs.ok:
        return f"WARN: tmpfs inspect skipped: {tmpfs.error}"

    required = settings.runtime_tmpfs_paths
    present = sorted(tmpfs.value)
    if all(path in tmpfs.value for path in required):
        return (
            f"INFO: tmpfs configured: {', '.join(required)} "
            "(Docker stores tmpfs under HostConfig.Tmpfs; not visible in .Mounts)"
        )
    return (
        "WARN: tmpfs inspection found incomplete runtime paths in HostConfig.Tmpfs: "
        f"{', '.join(present) or '(none)'}"
    )
