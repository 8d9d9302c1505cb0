from __future__ import annotations

import logging
import time
from datetime import datetime
from typing import Dict, Iterable, List, Optional, Tuple

from secureupdate.core import gate
from secureupdate.core import inventory
from secureupdate.core import pacman
from secureupdate.core import storage
from secureupdate.core.config import RunConfig
from secureupdate.core.fetch import SourceProvider, make_provider
from secureupdate.core.models import (
    GateDecision,
    InventoryEntry,
    PackageTask,
    RiskLevel,
    ScanReport,
    ScanResult,
    ScanStats,
    ScanStatus,
)
from secureupdate.core.oracle import OracleClient, make_oracle
from secureupdate.core.scheduler import ProgressCallback, run_scans
from secureupdate.core.utils import utc_now
from secureupdate.reporting.report import write_report

logger = logging.getLogger(__name__)

RISK_DISPLAY_ORDER = {
    RiskLevel.CRITICAL: 0,
    RiskLevel.HIGH: 1,
    RiskLevel.UNKNOWN: 2,
    RiskLevel.MEDIUM: 3,
    RiskLevel.LOW: 4,
    RiskLevel.NONE: 5,
}


def _missing_result(task: PackageTask) -> ScanResult:
    return ScanResult(
        package=task.name,
        origin=task.origin,
        status=ScanStatus.FETCH_FAILED,
        summary="No scan result recorded",
    )


def _seconds(started: Optional[str], ended: Optional[str]) -> float:
    if not started or not ended:
        return 0.0
    try:
        a = datetime.fromisoformat(started.replace("Z", "+00:00"))
        b = datetime.fromisoformat(ended.replace("Z", "+00:00"))
    except ValueError:
        return 0.0
    return max((b - a).total_seconds(), 0.0)


def compute_stats(results: List[ScanResult], decision: GateDecision, duration: float) -> ScanStats:
    by_risk: Dict[str, int] = {r.value: 0 for r in RiskLevel}
    for r in results:
        if r.fetched:
            by_risk[r.risk.value] += 1
    scanned = sum(1 for r in results if r.fetched)
    per_package = [_seconds(r.started_at, r.ended_at) for r in results if r.fetched]
    return ScanStats(
        total=len(results),
        scanned=scanned,
        safe=len(decision.safe),
        warn=len(decision.warn),
        threat=len(decision.threat),
        fetch_failed=len(decision.fetch_failed),
        unknown=len(decision.unknown),
        by_risk=by_risk,
        duration_seconds=round(duration, 3),
        average_seconds=round(sum(per_package) / len(per_package), 3) if per_package else 0.0,
    )


def aggregate(
    run_id: str,
    tasks: Iterable[PackageTask],
    results: Iterable[ScanResult],
    decision: GateDecision,
    started_at: str,
    finished_at: str,
    config: RunConfig,
    duration: float = 0.0,
) -> ScanReport:
    """Assemble the run report: exactly one record per task, in task order."""
    tasks = list(tasks)
    by_name: Dict[str, ScanResult] = {}
    for result in results:
        by_name.setdefault(result.package, result)

    known = {t.name for t in tasks}
    for extra in sorted(set(by_name) - known):
        logger.warning("Dropping result for %s, which was not in the inventory", extra)

    ordered = []
    for task in tasks:
        result = by_name.get(task.name)
        if result is None:
            logger.warning("No result recorded for %s", task.name)
            result = _missing_result(task)
        ordered.append(result)

    return ScanReport(
        run_id=run_id,
        mode="full" if config.full_scan else "update",
        parallel_jobs=config.parallel_jobs,
        started_at=started_at,
        finished_at=finished_at,
        results=ordered,
        decision=decision,
        stats=compute_stats(ordered, decision, duration),
    )


def perform_scan(
    config: RunConfig,
    entries: Optional[List[InventoryEntry]] = None,
    provider: Optional[SourceProvider] = None,
    oracle: Optional[OracleClient] = None,
    on_progress: Optional[ProgressCallback] = None,
) -> Tuple[List[PackageTask], ScanReport]:
    """Inventory, scan, gate and store one run. Returns all tasks and the report."""
    if entries is None:
        entries = pacman.collect_inventory(config)
    tasks = inventory.resolve_inventory(entries, config)
    targets = inventory.scan_targets(tasks)
    logger.info("%d package(s) in inventory, %d need review", len(tasks), len(targets))

    run_id = storage.create_run_id("scan")
    started_at = utc_now()
    t0 = time.monotonic()
    results = run_scans(
        targets,
        provider or make_provider(config),
        oracle or make_oracle(config),
        config,
        on_progress=on_progress,
    )
    decision = gate.evaluate(results, config)
    report = aggregate(
        run_id,
        targets,
        results,
        decision,
        started_at,
        utc_now(),
        config,
        duration=time.monotonic() - t0,
    )

    run_dir = storage.store_report(report)
    write_report(run_dir / storage.REPORT_LOG, report)
    return tasks, report


def print_table(report: ScanReport, limit: Optional[int] = None) -> None:
    """Pretty-print the scan results in a simple table."""
    headers = ["Risk", "Package", "Source", "Status", "Verdict", "Summary"]
    results = sorted(
        report.results,
        key=lambda r: (not r.fetched, RISK_DISPLAY_ORDER.get(r.risk, 99), r.package),
    )
    if limit:
        results = results[:limit]
    rows = []
    for r in results:
        rows.append([
            r.risk.value if r.fetched else "-",
            r.package,
            r.origin,
            r.status.value,
            r.verdict.value if r.fetched else "-",
            r.summary[:60],
        ])

    col_widths = [len(h) for h in headers]
    for row in rows:
        for i, cell in enumerate(row):
            col_widths[i] = max(col_widths[i], len(str(cell)))

    def fmt_row(values):
        return " | ".join(str(v).ljust(col_widths[i]) for i, v in enumerate(values))

    print(fmt_row(headers))
    print("-+-".join("-" * w for w in col_widths))
    for row in rows:
        print(fmt_row(row))
    if limit and len(report.results) > limit:
        print(f"... {len(report.results) - limit} more, see the full report")
