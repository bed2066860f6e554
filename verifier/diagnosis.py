"""Pre-flight classification of stack health.

A broken gateway makes every runtime check fail in ways that hide the real
cause. The router looks at the gateway log tail and the container state once,
picks exactly one branch, and each branch maps to a fixed list of checks.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
import re
from typing import Sequence

from config.controller import VerifierSettings
from core.logging import logger as LOGGER
from core.process import CommandResult, short_error
from diagnostics.models import ReportDiagnostic, failed, skipped
from diagnostics.runner import Check, named_check
from runtime import inspectors
from verifier import live_checks
from verifier.context import (
    DIRECT_IP,
    DNS_FORCED,
    DOCKER_SOCKET,
    EGRESS_ALLOWED,
    EGRESS_BLOCKED,
    NON_ROOT,
    RUNTIME_DIRS_WRITABLE,
    STARTUP_CONFIG,
    TMPFS_RUNTIME,
    CheckContext,
)


MISSING_CONFIG_REASON = "gateway missing config (needs allow-unconfigured or gateway.mode=local)"


class DiagnosisBranch(str, Enum):
    RUNTIME_DIR_PERMISSION = "runtime-dir-permission"
    MISSING_CONFIG = "missing-config"
    STACK_INOPERABLE = "stack-inoperable"
    HEALTHY = "healthy"


@dataclass(frozen=True)
class RuntimeDiagnosis:
    """Observed gateway health, computed once per run."""

    missing_config: bool
    runtime_dir_permission_failure: bool
    setup_succeeded: bool
    runtime_service_running: bool
    service_name: str | None
    log_service: str | None = None
    logs: str | None = None
    log_error: str | None = None
    inoperable_reason: str | None = None


def runtime_dir_permission_pattern(paths: Sequence[str]) -> re.Pattern[str]:
    """Match access-denied log lines that mention one of the runtime paths."""

    alternatives = "|".join(re.escape(path) for path in paths)
    return re.compile(
        rf"(eacces:.*mkdir.*(?:{alternatives})|permission denied.*(?:{alternatives}))",
        re.IGNORECASE,
    )


def runtime_dir_permission_reason(settings: VerifierSettings) -> str:
    paths = settings.runtime_tmpfs_paths
    return (
        f"gateway reported EACCES while creating {' or '.join(paths)}. "
        "This usually means tmpfs overlays are missing for those runtime paths."
    )


def diagnose(
    ctx: CheckContext,
    setup: CommandResult | None,
    ensure_up: bool,
) -> RuntimeDiagnosis:
    settings = ctx.settings
    setup_succeeded = setup is None or setup.ok

    state_note = "runtime container not found"
    running = False
    if ctx.runtime_service is not None:
        container = inspectors.container_id(ctx.stack, ctx.runtime_service)
        if container.ok:
            state = inspectors.container_state(ctx.stack, container.value)
            running = state.value == "running"
            state_note = state.error or state.value or "unknown"
        else:
            state_note = container.error or state_note

    logs: str | None = None
    log_error: str | None = None
    missing_config = False
    permission_failure = False
    if ctx.gateway_service is None:
        log_error = (
            "No runtime service found. Expected one of: "
            f"{', '.join(settings.runtime_service_candidates)}"
        )
    else:
        tail = inspectors.log_tail(ctx.stack, ctx.gateway_service, settings.diagnosis_log_tail)
        if tail.ok:
            logs = tail.value or None
            text = tail.value
            missing_config = settings.missing_config_marker.lower() in text.lower()
            pattern = runtime_dir_permission_pattern(settings.runtime_tmpfs_paths)
            permission_failure = bool(pattern.search(text))
        else:
            log_error = tail.error

    if not setup_succeeded:
        reason = f"docker compose up failed: {short_error(setup)}"
    elif ctx.runtime_service is None:
        reason = (
            "No runtime service found. Expected one of: "
            f"{', '.join(settings.runtime_service_candidates)}"
        )
    elif not running:
        reason = f"Runtime stack is not running ({state_note})."
        if not ensure_up:
            reason += " Re-run without --no-up or start compose stack first."
    else:
        reason = None

    return RuntimeDiagnosis(
        missing_config=missing_config,
        runtime_dir_permission_failure=permission_failure,
        setup_succeeded=setup_succeeded,
        runtime_service_running=running,
        service_name=ctx.runtime_service,
        log_service=ctx.gateway_service,
        logs=logs,
        log_error=log_error,
        inoperable_reason=reason,
    )


def classify(diagnosis: RuntimeDiagnosis) -> DiagnosisBranch:
    """Pick exactly one branch; the permission failure wins over missing config."""

    if diagnosis.runtime_dir_permission_failure and diagnosis.service_name is not None:
        return DiagnosisBranch.RUNTIME_DIR_PERMISSION
    if diagnosis.missing_config and diagnosis.service_name is not None:
        return DiagnosisBranch.MISSING_CONFIG
    if (
        not diagnosis.setup_succeeded
        or diagnosis.service_name is None
        or not diagnosis.runtime_service_running
    ):
        return DiagnosisBranch.STACK_INOPERABLE
    return DiagnosisBranch.HEALTHY


def log_diagnostics(diagnosis: RuntimeDiagnosis, settings: VerifierSettings) -> list[ReportDiagnostic]:
    """Attach the raw log tail when a log marker drove the diagnosis."""

    service = diagnosis.log_service or settings.gateway_service
    content = diagnosis.logs or diagnosis.log_error or "No logs available."
    tail = settings.diagnosis_log_tail
    attached: list[ReportDiagnostic] = []
    if diagnosis.missing_config:
        attached.append(ReportDiagnostic(f"{service} logs (last {tail} lines)", content))
    if diagnosis.runtime_dir_permission_failure:
        attached.append(
            ReportDiagnostic(f"{service} runtime dir permission logs (last {tail} lines)", content)
        )
    return attached


def _skip_plan(ctx: CheckContext, symptom: str, reason: str) -> list[Check]:
    service = ctx.runtime_service
    plan: list[Check] = [named_check(symptom, failed, symptom, reason)]
    plan.append(named_check(NON_ROOT, skipped, NON_ROOT, reason))
    plan.append(
        named_check(
            DOCKER_SOCKET,
            live_checks.check_docker_socket,
            ctx.stack,
            ctx.compose,
            service,
            ctx.settings,
            skip_reason=reason,
        )
    )
    for name in (DNS_FORCED, EGRESS_BLOCKED, EGRESS_ALLOWED, DIRECT_IP):
        plan.append(named_check(name, skipped, name, reason))
    return plan


def plan_runtime_checks(
    branch: DiagnosisBranch,
    ctx: CheckContext,
    diagnosis: RuntimeDiagnosis,
) -> list[Check]:
    """Return the runtime-dependent checks to run for ``branch``, in order."""

    settings = ctx.settings
    if branch is DiagnosisBranch.RUNTIME_DIR_PERMISSION:
        return _skip_plan(ctx, RUNTIME_DIRS_WRITABLE, runtime_dir_permission_reason(settings))

    if branch is DiagnosisBranch.MISSING_CONFIG:
        return _skip_plan(ctx, STARTUP_CONFIG, MISSING_CONFIG_REASON)

    if branch is DiagnosisBranch.STACK_INOPERABLE:
        reason = diagnosis.inoperable_reason or "Runtime stack is not running (unknown)."
        names = (TMPFS_RUNTIME, NON_ROOT, DOCKER_SOCKET, DNS_FORCED, EGRESS_BLOCKED, EGRESS_ALLOWED, DIRECT_IP)
        return [named_check(name, failed, name, reason) for name in names]

    service = ctx.runtime_service
    allowlist = ctx.profile.allowlist
    return [
        named_check(
            TMPFS_RUNTIME,
            live_checks.check_tmpfs_runtime,
            ctx.stack,
            ctx.gateway_service or service,
            settings,
        ),
        named_check(NON_ROOT, live_checks.check_non_root, ctx.stack, service),
        named_check(
            DOCKER_SOCKET,
            live_checks.check_docker_socket,
            ctx.stack,
            ctx.compose,
            service,
            settings,
        ),
        named_check(DNS_FORCED, live_checks.check_dns_forced, ctx.stack, ctx.compose, service, settings),
        named_check(EGRESS_BLOCKED, live_checks.check_egress_blocked, ctx.stack, service, allowlist, settings),
        named_check(EGRESS_ALLOWED, live_checks.check_egress_allowed, ctx.stack, service, allowlist, settings),
        named_check(
            DIRECT_IP,
            live_checks.check_direct_ip,
            ctx.stack,
            service,
            ctx.direct_ip_policy,
            settings,
        ),
    ]


def log_branch(branch: DiagnosisBranch, diagnosis: RuntimeDiagnosis) -> None:
    if branch is DiagnosisBranch.HEALTHY:
        LOGGER.info("Runtime %s is running; running the full battery.", diagnosis.service_name)
    elif branch is DiagnosisBranch.STACK_INOPERABLE:
        LOGGER.info("Stack is not operable: %s", diagnosis.inoperable_reason)
    else:
        LOGGER.info("Gateway diagnosis: %s; runtime checks will be skipped.", branch.value)
