"""Models for check results and reports."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class CheckStatus(str, Enum):
    """Status for a single check, FAIL being the most severe."""

    PASS = "PASS"
    WARN = "WARN"
    FAIL = "FAIL"


@dataclass(frozen=True)
class CheckResult:
    """Result for a single check."""

    name: str
    status: CheckStatus
    details: str


@dataclass(frozen=True)
class ReportDiagnostic:
    """Raw evidence attached to a report; never counted."""

    title: str
    content: str


@dataclass(frozen=True)
class ReportSummary:
    """Status counts for a result list."""

    pass_count: int
    warn_count: int
    fail_count: int

    @property
    def total(self) -> int:
        return self.pass_count + self.warn_count + self.fail_count

    def line(self) -> str:
        return f"{self.pass_count} PASS / {self.warn_count} WARN / {self.fail_count} FAIL"


def passed(name: str, details: str) -> CheckResult:
    return CheckResult(name=name, status=CheckStatus.PASS, details=details)


def warned(name: str, details: str) -> CheckResult:
    return CheckResult(name=name, status=CheckStatus.WARN, details=details)


def failed(name: str, details: str) -> CheckResult:
    return CheckResult(name=name, status=CheckStatus.FAIL, details=details)


def skipped(name: str, reason: str) -> CheckResult:
    """Return a WARN placeholder for a check that was not meaningful to run."""

    return CheckResult(name=name, status=CheckStatus.WARN, details=f"SKIP: {reason}")
