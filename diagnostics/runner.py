"""Check runner utilities."""

from __future__ import annotations

from collections.abc import Callable, Iterable

from core.logging import logger as LOGGER
from diagnostics.models import CheckResult, CheckStatus, ReportSummary


Check = Callable[[], CheckResult]


def format_results(results: Iterable[CheckResult]) -> str:
    """Return a human-friendly plain-text listing of results."""

    lines = ["Check results", "-" * 60]
    for result in results:
        lines.append(f"[{result.status.value}] {result.name}: {result.details}")
    lines.append("-" * 60)
    return "\n".join(lines)


def summarize(results: Iterable[CheckResult]) -> ReportSummary:
    """Count results by status."""

    counts = {status: 0 for status in CheckStatus}
    for result in results:
        counts[result.status] += 1
    return ReportSummary(
        pass_count=counts[CheckStatus.PASS],
        warn_count=counts[CheckStatus.WARN],
        fail_count=counts[CheckStatus.FAIL],
    )


def should_exit_nonzero(summary: ReportSummary) -> bool:
    """Only failures block; warnings are informational."""

    return summary.fail_count > 0


def run_checks(checks: Iterable[Check]) -> list[CheckResult]:
    """Run checks in order and return one result per check."""

    results: list[CheckResult] = []
    for check in checks:
        try:
            result = check()
        except Exception as exc:  # noqa: BLE001 - the battery must always complete
            name = getattr(check, "check_name", None) or getattr(check, "__name__", "unknown_check")
            LOGGER.exception("Check raised: %s", name)
            result = CheckResult(
                name=name,
                status=CheckStatus.FAIL,
                details=f"Check raised exception: {exc}",
            )
        results.append(result)
    return results


def named_check(name: str, func: Callable[..., CheckResult], *args, **kwargs) -> Check:
    """Bind ``func`` to its arguments, tagging the closure with the check name."""

    def check() -> CheckResult:
        return func(*args, **kwargs)

    check.check_name = name  # type: ignore[attr-defined]
    check.__name__ = getattr(func, "__name__", "check")
    return check
