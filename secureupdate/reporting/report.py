"""Append-only text report, one record per package.

The raw oracle response is kept verbatim between fixed markers so a report
can be replayed for audit with ``read_report``. A block line that collides
with a marker, or starts with a backslash, is written with one extra
leading backslash.
"""

from __future__ import annotations

from pathlib import Path
from typing import List, Optional

from secureupdate.core.models import ScanReport, ScanResult
from secureupdate.core.utils import utc_now

SEPARATOR = "=" * 38

RESPONSE_START = "ORACLE_RESPONSE_START"
RESPONSE_END = "ORACLE_RESPONSE_END"
REMEDIATION_START = "REMEDIATION_START"
REMEDIATION_END = "REMEDIATION_END"
RECORD_END = "RECORD_END"
MARKERS = {RESPONSE_START, RESPONSE_END, REMEDIATION_START, REMEDIATION_END, RECORD_END}

FIELDS = {
    "PACKAGE": "package",
    "SOURCE": "origin",
    "STATUS": "status",
    "VERDICT": "verdict",
    "RISK": "risk",
    "SUMMARY": "summary",
    "START_TIME": "started_at",
    "END_TIME": "ended_at",
}


def _escape(line: str) -> str:
    if line in MARKERS or line.startswith("\\"):
        return "\\" + line
    return line


def _unescape(line: str) -> str:
    return line[1:] if line.startswith("\\") else line


def _one_line(text: Optional[str]) -> str:
    return " ".join((text or "").split())


def render_record(result: ScanResult) -> str:
    lines = [
        f"PACKAGE: {result.package}",
        f"SOURCE: {result.origin}",
        f"STATUS: {result.status.value}",
        f"VERDICT: {result.verdict.value}",
        f"RISK: {result.risk.value}",
        f"SUMMARY: {_one_line(result.summary)}",
    ]
    if result.remediation:
        lines.append(REMEDIATION_START)
        lines.extend(_escape(line) for line in result.remediation.split("\n"))
        lines.append(REMEDIATION_END)
    lines.append(f"START_TIME: {result.started_at or ''}")
    lines.append(f"END_TIME: {result.ended_at or ''}")
    lines.append(RESPONSE_START)
    lines.extend(_escape(line) for line in result.raw_response.split("\n"))
    lines.append(RESPONSE_END)
    lines.append(RECORD_END)
    return "\n".join(lines) + "\n\n"


def render_summary(report: ScanReport) -> str:
    stats = report.stats
    decision = report.decision
    lines = [
        SEPARATOR,
        "SCAN SUMMARY",
        SEPARATOR,
        f"Scan completed: {report.finished_at}",
        f"Duration: {int(stats.duration_seconds) // 60}m {int(stats.duration_seconds) % 60}s",
        f"Total packages: {stats.total}",
        f"Safe packages: {stats.safe}",
        f"Warnings: {stats.warn}",
        f"Threats found: {stats.threat}",
    ]
    for risk in ("CRITICAL", "HIGH", "MEDIUM", "LOW"):
        lines.append(f"  {risk.title()}: {stats.by_risk.get(risk, 0)}")
    lines.append(f"Unknown risk: {stats.unknown}")
    lines.append(f"Failed downloads: {stats.fetch_failed}")
    lines.append(f"Gate: {'PROCEED' if decision.proceed else 'BLOCKED'}")
    for title, names in (
        ("THREAT PACKAGES", decision.threat),
        ("WARNING PACKAGES", decision.warn),
        ("FAILED DOWNLOADS", decision.fetch_failed),
    ):
        if names:
            lines.append("")
            lines.append(f"{title}:")
            lines.extend(f"  - {name}" for name in sorted(names))
    return "\n".join(lines) + "\n"


class ReportWriter:
    """Writes the report artifact incrementally; never rewrites earlier records."""

    def __init__(self, path: Path):
        self.path = Path(path)

    def _append(self, text: str) -> None:
        with self.path.open("a", encoding="utf-8", newline="") as f:
            f.write(text)

    def write_header(self, run_id: str, mode: str, total: int, parallel_jobs: int) -> None:
        self._append(
            "Package Security Scan Report\n"
            f"Generated: {utc_now()}\n"
            f"Run: {run_id}\n"
            f"Mode: {'Full System Scan' if mode == 'full' else 'Update Scan'}\n"
            f"Total Packages: {total}\n"
            f"Parallel Jobs: {parallel_jobs}\n"
            f"{SEPARATOR}\n\n"
        )

    def write_record(self, result: ScanResult) -> None:
        self._append(render_record(result))

    def write_summary(self, report: ScanReport) -> None:
        self._append(render_summary(report))

    def write_report(self, report: ScanReport) -> None:
        self.write_header(report.run_id, report.mode, len(report.results), report.parallel_jobs)
        for result in report.results:
            self.write_record(result)
        self.write_summary(report)


def parse_records(text: str) -> List[ScanResult]:
    """Replay the per-package records of a report."""
    results: List[ScanResult] = []
    fields: dict = {}
    block: Optional[str] = None
    buffer: List[str] = []
    for line in text.split("\n"):
        if line.endswith("\r") and block is None:
            line = line[:-1]
        if block is not None:
            end = RESPONSE_END if block == "raw_response" else REMEDIATION_END
            if line == end:
                fields[block] = "\n".join(buffer)
                block, buffer = None, []
            else:
                buffer.append(_unescape(line))
            continue
        if line == RESPONSE_START:
            block = "raw_response"
        elif line == REMEDIATION_START:
            block = "remediation"
        elif line == RECORD_END:
            if "package" in fields:
                for key in ("started_at", "ended_at"):
                    fields[key] = fields.get(key) or None
                results.append(ScanResult(**fields))
            fields = {}
        else:
            key, sep, value = line.partition(":")
            if sep and key in FIELDS:
                fields[FIELDS[key]] = value[1:] if value.startswith(" ") else value
    return results


def read_report(path: Path) -> List[ScanResult]:
    with Path(path).open("r", encoding="utf-8", newline="") as f:
        return parse_records(f.read())


def write_report(path: Path, report: ScanReport) -> Path:
    ReportWriter(path).write_report(report)
    return Path(path)
