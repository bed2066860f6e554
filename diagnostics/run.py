"""Command-line entry point for verify and doctor runs."""

from __future__ import annotations

import argparse
from pathlib import Path
import sys

from config.controller import SettingsError, load_settings
from config.profile import ProfileError
from core.logging import enable_file_logging, logger as LOGGER, set_level
from diagnostics.runner import format_results, should_exit_nonzero
from doctor.orchestrator import doctor_profile
from runtime.artifacts import ArtifactError
from verifier.engine import verify_profile


def _relative(path: Path) -> str:
    try:
        return str(path.resolve().relative_to(Path.cwd().resolve()))
    except ValueError:
        return str(path)


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse command-line arguments."""

    parser = argparse.ArgumentParser(prog="ocs", description="Verify a secured gateway deployment.")
    parser.add_argument("--log-level", default="info", help="Logging level (debug, info, warning).")
    parser.add_argument("--log-file", type=Path, default=None, help="Optional log file path.")
    parser.add_argument(
        "--config-override",
        type=Path,
        default=None,
        help="Optional YAML file overriding verifier defaults.",
    )
    commands = parser.add_subparsers(dest="command", required=True)

    verify = commands.add_parser("verify", help="Run the security battery and write a report.")
    verify.add_argument("--profile", required=True)
    verify.add_argument("--output", required=True, type=Path)
    verify.add_argument("--strict-ip-egress", action="store_true", help="Fail on direct-to-IP egress.")
    verify.add_argument("--no-up", action="store_true", help="Do not start the stack first.")

    doctor = commands.add_parser("doctor", help="Pre-flight the environment, then verify.")
    doctor.add_argument("--profile", required=True)
    doctor.add_argument("--no-up", action="store_true", help="Do not start the stack first.")
    doctor.add_argument("--strict-ip-egress", action="store_true", help="Fail on direct-to-IP egress.")
    doctor.add_argument("--verbose", action="store_true", help="Print runtime inspection details.")
    return parser.parse_args(argv)


def _run_verify(args: argparse.Namespace) -> int:
    settings = load_settings(override_file=args.config_override)
    summary = verify_profile(
        args.profile,
        args.output,
        ensure_up=not args.no_up,
        direct_ip_policy_override="fail" if args.strict_ip_egress else None,
        settings=settings,
    )
    print(format_results(summary.results))
    print(f"Wrote security report to {_relative(summary.report_path)}")
    print(f"PASS: {summary.pass_count}  WARN: {summary.warn_count}  FAIL: {summary.fail_count}")
    if should_exit_nonzero(summary.summary):
        print(f"Verification failed with {summary.fail_count} failed check(s).", file=sys.stderr)
        return 1
    return 0


def _run_doctor(args: argparse.Namespace) -> int:
    settings = load_settings(override_file=args.config_override)
    summary = doctor_profile(
        args.profile,
        no_up=args.no_up,
        direct_ip_policy_override="fail" if args.strict_ip_egress else None,
        verbose=args.verbose,
        settings=settings,
    )

    print(f"Version: {summary.version} ({summary.commit})")
    doctor_report = _relative(summary.report_path)
    security_report = _relative(summary.security_report_path)
    if summary.report_written:
        print(f"Wrote doctor report to {doctor_report}")
    else:
        print(f"Could not write doctor report to {doctor_report}")
    if summary.security_report_written:
        print(f"Wrote security report to {security_report}")
    else:
        print(f"Could not write security report to {security_report}")
    if args.verbose:
        for line in summary.verbose_info:
            print(line)
    print(f"PASS: {summary.pass_count}  WARN: {summary.warn_count}  FAIL: {summary.fail_count}")

    if summary.fail_count > 0:
        if summary.requires_sudo:
            print("Some checks require elevated privileges. Re-run with sudo.", file=sys.stderr)
        print(f"Doctor failed with {summary.fail_count} failing check(s).", file=sys.stderr)
        return 1
    return 0


def main(argv: list[str] | None = None) -> int:
    """Run the selected command and return an exit code."""

    args = parse_args(argv)
    set_level(args.log_level)
    if args.log_file is not None:
        enable_file_logging(args.log_file)

    try:
        if args.command == "verify":
            return _run_verify(args)
        return _run_doctor(args)
    except (SettingsError, ProfileError, ArtifactError) as exc:
        print(str(exc), file=sys.stderr)
        return 1
    except OSError as exc:
        LOGGER.error("Could not write report: %s", exc)
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
