"""Markdown rendering for security and doctor reports."""

from __future__ import annotations

from datetime import datetime, timezone
from pathlib import Path
from typing import Sequence

from core.logging import logger as LOGGER
from core.process import single_line
from diagnostics.models import CheckResult, ReportDiagnostic
from diagnostics.runner import summarize


FENCE = "```"
FENCE_ESCAPE = "'''"


def _timestamp(now: datetime | None) -> str:
    moment = now if now is not None else datetime.now(timezone.utc)
    return moment.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def render_markdown(
    title: str,
    metadata: Sequence[tuple[str, str]],
    results: Sequence[CheckResult],
    diagnostics: Sequence[ReportDiagnostic] = (),
    now: datetime | None = None,
) -> str:
    """Render a report with a fixed section order.

    Header metadata comes first, then the generation time and summary line,
    one bullet per result in execution order, and finally an optional
    Diagnostics section with each diagnostic fenced as text.
    """

    summary = summarize(results)
    lines = [f"# {title}", ""]
    lines.extend(f"- {label}: {value}" for label, value in metadata)
    lines.append(f"- Generated: {_timestamp(now)}")
    lines.append(f"- Summary: {summary.line()}")
    lines.extend(["", "## Checks"])
    lines.extend(
        f"- {result.status.value}: {single_line(result.name)} — {single_line(result.details)}"
        for result in results
    )

    if diagnostics:
        lines.extend(["", "## Diagnostics"])
        for diagnostic in diagnostics:
            content = diagnostic.content.replace(FENCE, FENCE_ESCAPE)
            lines.extend(["", f"### {diagnostic.title}", f"{FENCE}text", content or "(no logs)", FENCE])

    return "\n".join(lines) + "\n"


def render_security_report(
    profile_name: str,
    compose_path: Path | str,
    results: Sequence[CheckResult],
    diagnostics: Sequence[ReportDiagnostic] = (),
    now: datetime | None = None,
) -> str:
    return render_markdown(
        "Security Report",
        [("Profile", f"`{profile_name}`"), ("Compose", f"`{compose_path}`")],
        results,
        diagnostics,
        now=now,
    )


def render_doctor_report(
    profile_name: str,
    compose_path: Path | str,
    security_report_path: Path | str,
    results: Sequence[CheckResult],
    diagnostics: Sequence[ReportDiagnostic] = (),
    now: datetime | None = None,
) -> str:
    return render_markdown(
        "Doctor Report",
        [
            ("Profile", f"`{profile_name}`"),
            ("Compose", f"`{compose_path}`"),
            ("Security report", f"`{security_report_path}`"),
        ],
        results,
        diagnostics,
        now=now,
    )


def write_report(path: Path, content: str) -> None:
    """Truncate and rewrite ``path`` with ``content``, creating parents."""

    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content, encoding="utf-8")
    LOGGER.info("Wrote report to %s", path)
