"""Profile verification: run the battery and write the security report."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Callable

from config.controller import VerifierSettings, load_settings
from config.profile import PolicyProfile, load_profile
from core.logging import logger as LOGGER
from core.process import CommandRunner, run_command
from diagnostics.models import CheckResult, ReportDiagnostic, ReportSummary, failed
from diagnostics.report import render_security_report, write_report
from diagnostics.runner import Check, named_check, run_checks, summarize
from runtime.artifacts import ArtifactGenerator, ExistingArtifacts
from runtime.compose import (
    ComposeStack,
    StackLocation,
    parse_compose_source,
    read_compose_source,
    read_env_file,
)
from runtime.inspectors import resolve_gateway_service, resolve_runtime_service
from verifier import checks, live_checks
from verifier.context import (
    COMPOSE_PARSES,
    FIREWALL_ENABLED,
    NO_HARDCODED_PORTS,
    PORT_EXPOSURE,
    SELECTED_PORTS,
    TMPFS_OVERLAY,
    TOKEN_EXTERNALIZED,
    TOKEN_NOT_PLACEHOLDER,
    CheckContext,
)
from verifier.diagnosis import (
    DiagnosisBranch,
    classify,
    diagnose,
    log_branch,
    log_diagnostics,
    plan_runtime_checks,
)


ProfileLoader = Callable[[str, Path | None], PolicyProfile]


@dataclass(frozen=True)
class VerifySummary:
    summary: ReportSummary
    out_dir: Path
    compose_path: Path
    report_path: Path
    branch: DiagnosisBranch
    results: list[CheckResult] = field(default_factory=list)
    diagnostics: list[ReportDiagnostic] = field(default_factory=list)

    @property
    def pass_count(self) -> int:
        return self.summary.pass_count

    @property
    def warn_count(self) -> int:
        return self.summary.warn_count

    @property
    def fail_count(self) -> int:
        return self.summary.fail_count


def static_checks(ctx: CheckContext) -> list[Check]:
    settings = ctx.settings
    return [
        named_check(TOKEN_NOT_PLACEHOLDER, checks.check_gateway_token, ctx.env, settings),
        named_check(TMPFS_OVERLAY, checks.check_tmpfs_overlay, ctx.compose, settings),
        named_check(
            TOKEN_EXTERNALIZED,
            checks.check_token_externalized,
            ctx.compose_source,
            ctx.env,
            settings,
        ),
        named_check(SELECTED_PORTS, checks.check_selected_ports, ctx.env, ctx.compose_source, settings),
        named_check(NO_HARDCODED_PORTS, checks.check_no_hardcoded_ports, ctx.compose_source, settings),
        named_check(
            PORT_EXPOSURE,
            checks.check_port_exposure,
            ctx.compose,
            ctx.runtime_service,
            ctx.profile.public_listen,
            settings,
        ),
    ]


def verify_profile(
    profile_name: str,
    output_path: Path | str,
    *,
    ensure_up: bool = True,
    regenerate_artifacts: bool = True,
    direct_ip_policy_override: str | None = None,
    settings: VerifierSettings | None = None,
    runner: CommandRunner = run_command,
    generator: ArtifactGenerator | None = None,
    profile_loader: ProfileLoader = load_profile,
    profiles_dir: Path | None = None,
    base_dir: Path | None = None,
    now: datetime | None = None,
) -> VerifySummary:
    """Verify a deployed profile and write its security report.

    Args:
        profile_name: Profile to verify.
        output_path: Report destination; rewritten in full.
        ensure_up: Issue ``docker compose up -d`` before probing.
        regenerate_artifacts: Ask the generator for artifacts (without
            auto-remediation) instead of using ``out/<profile>`` as is.
        direct_ip_policy_override: ``warn`` or ``fail`` to replace the
            profile's direct-IP policy.

    Returns:
        Counts, paths, results and attached diagnostics.

    Raises:
        ProfileError: The profile cannot be loaded.
        ArtifactError: Artifacts cannot be located or generated.
        OSError: The report cannot be written.
    """

    settings = settings if settings is not None else load_settings()
    root = base_dir if base_dir is not None else Path.cwd()
    profiles = profiles_dir if profiles_dir is not None else root / settings.profiles_dir_name
    profile = profile_loader(profile_name, profiles)
    direct_ip_policy = direct_ip_policy_override or profile.direct_ip_policy

    if regenerate_artifacts:
        generator = generator if generator is not None else ExistingArtifacts(settings, root)
        out_dir = generator.generate(
            profile_name,
            profile,
            auto_generate_secret=False,
            auto_adjust_ports=False,
        ).out_dir
    else:
        out_dir = (root / settings.out_dir_name / profile_name).resolve()

    location = StackLocation.for_out_dir(profile_name, out_dir, settings, report_path=Path(output_path))
    results: list[CheckResult] = []

    compose_source = read_compose_source(location.compose_path)
    parsed = parse_compose_source(compose_source.value) if compose_source.ok else compose_source
    if not parsed.ok:
        results.append(failed(COMPOSE_PARSES, parsed.error or "compose declaration unavailable"))
    compose = parsed.value if parsed.ok else {}

    runtime_service = resolve_runtime_service(compose, settings.runtime_service_candidates)
    stack = ComposeStack(location, settings, runner)
    setup = stack.up() if ensure_up else None

    ctx = CheckContext(
        settings=settings,
        profile=profile,
        location=location,
        stack=stack,
        compose=compose,
        compose_source=compose_source,
        env=read_env_file(location.env_path),
        runtime_service=runtime_service,
        gateway_service=resolve_gateway_service(compose, settings.gateway_service, runtime_service),
        direct_ip_policy=direct_ip_policy,
    )

    results.extend(run_checks(static_checks(ctx)))

    diagnosis = diagnose(ctx, setup, ensure_up)
    branch = classify(diagnosis)
    log_branch(branch, diagnosis)
    diagnostics = log_diagnostics(diagnosis, settings)

    results.extend(run_checks(plan_runtime_checks(branch, ctx, diagnosis)))
    results.extend(
        run_checks([named_check(FIREWALL_ENABLED, live_checks.check_firewall_enabled, stack, settings)])
    )

    report = render_security_report(profile_name, location.compose_path, results, diagnostics, now=now)
    write_report(location.report_path, report)

    summary = summarize(results)
    LOGGER.info("Verification of '%s': %s", profile_name, summary.line())
    return VerifySummary(
        summary=summary,
        out_dir=out_dir,
        compose_path=location.compose_path,
        report_path=location.report_path,
        branch=branch,
        results=list(results),
        diagnostics=list(diagnostics),
    )
