"""Tests for the ``ocs`` command line."""

from __future__ import annotations

from pathlib import Path

import pytest

from config.profile import ProfileError
from diagnostics import run
from diagnostics.models import CheckStatus, ReportSummary, failed, skipped
from doctor import DoctorSummary
from verifier import DiagnosisBranch, VerifySummary


def _verify_summary(tmp_path: Path, summary: ReportSummary, results) -> VerifySummary:
    return VerifySummary(
        summary=summary,
        out_dir=tmp_path,
        compose_path=tmp_path / "docker-compose.yml",
        report_path=tmp_path / "security-report.md",
        branch=DiagnosisBranch.HEALTHY,
        results=results,
    )


def test_verify_warnings_exit_zero(monkeypatch, tmp_path, capsys) -> None:
    captured = {}

    def fake_verify(profile_name, output_path, **kwargs):
        captured.update(kwargs, profile_name=profile_name, output_path=output_path)
        return _verify_summary(tmp_path, ReportSummary(13, 1, 0), [skipped("x", "y")])

    monkeypatch.setattr(run, "verify_profile", fake_verify)

    code = run.main(["verify", "--profile", "research-only", "--output", str(tmp_path / "r.md")])

    assert code == 0
    assert captured["ensure_up"] is True
    assert captured["direct_ip_policy_override"] is None
    assert "PASS: 13  WARN: 1  FAIL: 0" in capsys.readouterr().out


def test_verify_failure_exit_one(monkeypatch, tmp_path) -> None:
    captured = {}

    def fake_verify(profile_name, output_path, **kwargs):
        captured.update(kwargs)
        return _verify_summary(tmp_path, ReportSummary(13, 0, 1), [failed("x", "y")])

    monkeypatch.setattr(run, "verify_profile", fake_verify)

    code = run.main(
        ["verify", "--profile", "p", "--output", "r.md", "--strict-ip-egress", "--no-up"]
    )

    assert code == 1
    assert captured["direct_ip_policy_override"] == "fail"
    assert captured["ensure_up"] is False


def test_profile_error_exit_one(monkeypatch, capsys) -> None:
    def fake_verify(profile_name, output_path, **kwargs):
        raise ProfileError("Profile not found: 'nope'")

    monkeypatch.setattr(run, "verify_profile", fake_verify)

    assert run.main(["verify", "--profile", "nope", "--output", "r.md"]) == 1
    assert "Profile not found" in capsys.readouterr().err


def test_doctor_sudo_hint(monkeypatch, tmp_path, capsys) -> None:
    def fake_doctor(profile_name, **kwargs):
        return DoctorSummary(
            pass_count=3,
            warn_count=0,
            fail_count=1,
            report_path=tmp_path / "doctor-report.md",
            report_written=True,
            security_report_path=tmp_path / "security-report.md",
            security_report_written=True,
            version="0.4.0",
            commit="a1b2c3d",
            requires_sudo=True,
        )

    monkeypatch.setattr(run, "doctor_profile", fake_doctor)

    assert run.main(["doctor", "--profile", "p"]) == 1
    output = capsys.readouterr()
    assert "Version: 0.4.0 (a1b2c3d)" in output.out
    assert "Re-run with sudo" in output.err


def test_subcommand_required() -> None:
    with pytest.raises(SystemExit):
        run.parse_args([])


def test_status_values_are_strings() -> None:
    assert CheckStatus.WARN == "WARN"


def test_malformed_config_override_exit_one(tmp_path, capsys) -> None:
    override = tmp_path / "override.yaml"
    override.write_text("probes: [unclosed\n", encoding="utf-8")

    code = run.main(
        ["--config-override", str(override), "verify", "--profile", "p", "--output", "r.md"]
    )

    assert code == 1
    assert "Invalid YAML" in capsys.readouterr().err


def test_missing_config_override_exit_one(tmp_path, capsys) -> None:
    code = run.main(
        [
            "--config-override",
            str(tmp_path / "missing.yaml"),
            "doctor",
            "--profile",
            "p",
        ]
    )

    assert code == 1
    assert "Config override not found" in capsys.readouterr().err
