"""Doctor: pre-flight the environment, then run verification if it is sound."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path

from config.controller import VerifierSettings, load_settings
from config.profile import PolicyProfile, ProfileError, load_profile
from core.logging import logger as LOGGER
from core.process import CommandRunner, indicates_permission_issue, run_command
from diagnostics.models import CheckResult, CheckStatus, ReportDiagnostic, failed, passed, warned
from diagnostics.report import render_doctor_report, render_security_report, write_report
from diagnostics.runner import summarize
from doctor import preflight
from runtime.artifacts import ArtifactError, ArtifactGenerator, ExistingArtifacts
from runtime.compose import (
    ComposeStack,
    StackLocation,
    parse_compose_source,
    read_compose_source,
    read_env_file,
)
from verifier.checks import check_tmpfs_overlay, check_token_externalized
from verifier.context import RUNTIME_DIRS_WRITABLE
from verifier.engine import ProfileLoader, verify_profile


SECURITY_VERIFICATION = "Security verification"
PREFLIGHT_SKIP_DETAILS = "Skipped because one or more doctor preflight checks failed."


@dataclass(frozen=True)
class DoctorSummary:
    pass_count: int
    warn_count: int
    fail_count: int
    report_path: Path
    report_written: bool
    security_report_path: Path
    security_report_written: bool
    version: str
    commit: str
    requires_sudo: bool
    verbose_info: list[str] = field(default_factory=list)
    results: list[CheckResult] = field(default_factory=list)


def doctor_profile(
    profile_name: str,
    *,
    no_up: bool = False,
    direct_ip_policy_override: str | None = None,
    verbose: bool = False,
    settings: VerifierSettings | None = None,
    runner: CommandRunner = run_command,
    generator: ArtifactGenerator | None = None,
    profile_loader: ProfileLoader = load_profile,
    profiles_dir: Path | None = None,
    base_dir: Path | None = None,
    invoked_script: str | None = None,
    now: datetime | None = None,
) -> DoctorSummary:
    """Run the doctor pre-flight and, when it is clean, the verification engine.

    The doctor report is always attempted; failing to write it is recorded as
    a FAIL rather than raised. ``requires_sudo`` is set when any failure text
    looks like a permission error.
    """

    settings = settings if settings is not None else load_settings()
    root = base_dir if base_dir is not None else Path.cwd()
    profiles = profiles_dir if profiles_dir is not None else root / settings.profiles_dir_name
    generator = generator if generator is not None else ExistingArtifacts(settings, root)

    results: list[CheckResult] = []
    diagnostics: list[ReportDiagnostic] = []
    verbose_info: list[str] = []
    requires_sudo = False
    security_report_written = False
    report_written = False

    version, commit = preflight.resolve_version(runner)
    out_dir = (root / settings.out_dir_name / profile_name).resolve()

    runtime_path = preflight.find_usable_runtime(cwd=root, invoked_script=invoked_script)
    if runtime_path is not None:
        results.append(passed("Build sanity", f"ocs runtime found at {runtime_path}."))
    else:
        results.append(
            failed(
                "Build sanity",
                "No usable ocs runtime found (local checkout missing and installed runtime "
                "unavailable). Run `pip install -e .` or reinstall the package.",
            )
        )

    profile: PolicyProfile | None = None
    try:
        profile = profile_loader(profile_name, profiles)
        results.append(passed("Profile loading", f"Profile '{profile_name}' loaded and validated."))
    except ProfileError as exc:
        results.append(failed("Profile loading", str(exc)))

    if profile is not None:
        try:
            artifacts = generator.generate(
                profile_name,
                profile,
                auto_generate_secret=True,
                auto_adjust_ports=True,
            )
            out_dir = artifacts.out_dir
            results.append(passed("Artifact generation sanity", f"Generated artifacts under {out_dir}."))
        except (ArtifactError, OSError) as exc:
            message = str(exc)
            results.append(failed("Artifact generation sanity", message))
            requires_sudo = requires_sudo or indicates_permission_issue(message)
    else:
        results.append(failed("Artifact generation sanity", "Skipped because profile failed to load."))

    location = StackLocation.for_out_dir(profile_name, out_dir, settings)
    doctor_report_path = out_dir / settings.doctor_report_name
    stack = ComposeStack(location, settings, runner)

    for label, target in (
        ("out directory", location.out_dir),
        (settings.env_file_name, location.env_path),
        (settings.compose_file_name, location.compose_path),
    ):
        name = f"Required file: {label}"
        if target.exists():
            results.append(passed(name, f"{label} exists: {target}"))
        else:
            results.append(failed(name, f"{label} missing at {target}"))

    compose_source = read_compose_source(location.compose_path)
    env = read_env_file(location.env_path)
    results.append(
        check_token_externalized(compose_source, env, settings, name="Secrets externalization")
    )

    compose_check = preflight.check_compose_valid(stack)
    results.append(compose_check)
    if compose_check.status is CheckStatus.FAIL:
        requires_sudo = requires_sudo or indicates_permission_issue(compose_check.details)

    parsed = parse_compose_source(compose_source.value) if compose_source.ok else compose_source
    results.append(check_tmpfs_overlay(parsed.value if parsed.ok else {}, settings))

    if compose_check.status is CheckStatus.PASS:
        results.append(preflight.check_runtime_dir_logs(stack, settings))
        if verbose:
            line = preflight.inspect_gateway_tmpfs(stack, settings)
            verbose_info.append(line)
            diagnostics.append(ReportDiagnostic("Runtime tmpfs inspection", line))

    can_verify = all(result.status is not CheckStatus.FAIL for result in results)
    try:
        if can_verify:
            verification = verify_profile(
                profile_name,
                location.report_path,
                ensure_up=not no_up,
                regenerate_artifacts=False,
                direct_ip_policy_override=direct_ip_policy_override,
                settings=settings,
                runner=runner,
                profile_loader=profile_loader,
                profiles_dir=profiles,
                base_dir=root,
                now=now,
            )
            security_report_written = True
            counts = verification.summary.line()
            if verification.fail_count > 0:
                results.append(
                    failed(SECURITY_VERIFICATION, f"security-report.md contains failures ({counts}).")
                )
            elif verification.warn_count > 0:
                results.append(
                    warned(SECURITY_VERIFICATION, f"security-report.md contains warnings ({counts}).")
                )
            else:
                results.append(
                    passed(
                        SECURITY_VERIFICATION,
                        f"security-report.md contains only PASS checks ({verification.pass_count} PASS).",
                    )
                )
            diagnostics.extend(verification.diagnostics)
        else:
            permission_symptom = any(
                result.status is CheckStatus.FAIL and result.name == RUNTIME_DIRS_WRITABLE
                for result in results
            )
            status = CheckStatus.WARN if permission_symptom else CheckStatus.FAIL
            LOGGER.info("Doctor pre-flight failed; verification not executed.")
            results.append(
                CheckResult(
                    SECURITY_VERIFICATION,
                    status,
                    f"security-report.md not executed. {PREFLIGHT_SKIP_DETAILS}",
                )
            )
            placeholder = [CheckResult(SECURITY_VERIFICATION, status, PREFLIGHT_SKIP_DETAILS)]
            write_report(
                location.report_path,
                render_security_report(profile_name, location.compose_path, placeholder, now=now),
            )
            security_report_written = True
    except (ProfileError, ArtifactError, OSError) as exc:
        message = str(exc)
        results.append(failed(SECURITY_VERIFICATION, message))
        requires_sudo = requires_sudo or indicates_permission_issue(message)

    try:
        report = render_doctor_report(
            profile_name,
            location.compose_path,
            location.report_path,
            results,
            diagnostics,
            now=now,
        )
        write_report(doctor_report_path, report)
        report_written = True
    except OSError as exc:
        message = str(exc)
        LOGGER.error("Could not write doctor report to %s: %s", doctor_report_path, message)
        results.append(failed("Doctor report write", message))
        requires_sudo = requires_sudo or indicates_permission_issue(message)

    if any(
        result.status is not CheckStatus.PASS and indicates_permission_issue(result.details)
        for result in results
    ):
        requires_sudo = True

    summary = summarize(results)
    LOGGER.info("Doctor for '%s': %s", profile_name, summary.line())
    return DoctorSummary(
        pass_count=summary.pass_count,
        warn_count=summary.warn_count,
        fail_count=summary.fail_count,
        report_path=doctor_report_path,
        report_written=report_written,
        security_report_path=location.report_path,
        security_report_written=security_report_written,
        version=version,
        commit=commit,
        requires_sudo=requires_sudo,
        verbose_info=verbose_info,
        results=list(results),
    )
