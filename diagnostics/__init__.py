"""Check results, runner and report helpers."""

from diagnostics.models import CheckResult, CheckStatus, ReportDiagnostic, ReportSummary
from diagnostics.runner import format_results, run_checks, should_exit_nonzero, summarize

__all__ = [
    "CheckResult",
    "CheckStatus",
    "ReportDiagnostic",
    "ReportSummary",
    "format_results",
    "run_checks",
    "should_exit_nonzero",
    "summarize",
]
