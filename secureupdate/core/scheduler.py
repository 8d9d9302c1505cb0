"""Bounded-concurrency scan of every package that needs review.

Each package gets one future on a thread pool. A worker always produces a
ScanResult: fetch problems, oracle failures and unexpected errors are turned
into result data so one package can never take the batch down.
"""

from __future__ import annotations

import logging
import threading
from concurrent.futures import ThreadPoolExecutor, as_completed
from typing import Callable, Dict, Iterable, List, Optional

from secureupdate.core.config import RunConfig
from secureupdate.core.fetch import FetchError, FetchErrorKind, SourceProvider, workspace
from secureupdate.core.models import PackageTask, RiskLevel, ScanResult, ScanStatus, Verdict
from secureupdate.core.oracle import OracleClient, build_security_prompt, load_template, SECURITY_PROMPT_TEMPLATE
from secureupdate.core.parser import parse_response
from secureupdate.core.utils import utc_now

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[int, int], None]


class ResultStore:
    """Append-only results keyed by package name."""

    def __init__(self):
        self._results: Dict[str, ScanResult] = {}
        self._lock = threading.Lock()

    def put(self, result: ScanResult) -> None:
        with self._lock:
            if result.package in self._results:
                raise KeyError(f"Result for {result.package} already recorded")
            self._results[result.package] = result

    def __len__(self) -> int:
        with self._lock:
            return len(self._results)

    def snapshot(self) -> Dict[str, ScanResult]:
        with self._lock:
            return dict(self._results)


def _fetch_failure(task: PackageTask, exc: Exception, started: str) -> ScanResult:
    status = ScanStatus.FETCH_FAILED
    if isinstance(exc, FetchError) and exc.kind == FetchErrorKind.NO_DIRECTORY:
        status = ScanStatus.NO_WORKSPACE
    return ScanResult(
        package=task.name,
        origin=task.origin,
        status=status,
        summary="Failed to download build files",
        started_at=started,
        ended_at=utc_now(),
        error=str(exc),
    )


def _review_failure(task: PackageTask, exc: Exception, started: str, raw: Optional[str] = None) -> ScanResult:
    return ScanResult(
        package=task.name,
        origin=task.origin,
        status=ScanStatus.SCANNED,
        verdict=Verdict.UNKNOWN,
        risk=RiskLevel.UNKNOWN,
        summary="Security review did not complete",
        raw_response=raw if raw is not None else str(exc),
        started_at=started,
        ended_at=utc_now(),
        error=str(exc),
    )


def scan_package(
    task: PackageTask,
    provider: SourceProvider,
    oracle: OracleClient,
    config: RunConfig,
    template: str = SECURITY_PROMPT_TEMPLATE,
) -> ScanResult:
    """Review one package. Never raises."""
    started = utc_now()
    try:
        with workspace(task.name) as ws:
            try:
                pkg_dir = provider.fetch(task, ws)
            except Exception as exc:
                logger.warning("Fetch failed for %s: %s", task.name, exc)
                return _fetch_failure(task, exc, started)

            try:
                raw = oracle.analyze(pkg_dir, build_security_prompt(task, template), config.model)
            except Exception as exc:
                logger.warning("Security review failed for %s: %s", task.name, exc)
                return _review_failure(task, exc, started)
    except OSError as exc:
        logger.warning("Workspace for %s unavailable: %s", task.name, exc)
        return _fetch_failure(task, exc, started)

    try:
        parsed = parse_response(raw)
    except Exception as exc:
        logger.exception("Review of %s could not be interpreted", task.name)
        return _review_failure(task, exc, started, raw)
    if parsed.risk == RiskLevel.UNKNOWN:
        logger.info("No usable risk level in review of %s", task.name)
    return ScanResult(
        package=task.name,
        origin=task.origin,
        status=ScanStatus.SCANNED,
        verdict=parsed.verdict,
        risk=parsed.risk,
        summary=parsed.summary,
        remediation=parsed.remediation,
        raw_response=raw,
        started_at=started,
        ended_at=utc_now(),
    )


def run_scans(
    tasks: Iterable[PackageTask],
    provider: SourceProvider,
    oracle: OracleClient,
    config: RunConfig,
    on_progress: Optional[ProgressCallback] = None,
    store: Optional[ResultStore] = None,
) -> List[ScanResult]:
    """Scan every task and return one result per task, in task order."""
    tasks = list(tasks)
    store = store if store is not None else ResultStore()
    if not tasks:
        return []

    template = load_template(config.prompt_file, SECURITY_PROMPT_TEMPLATE)
    total = len(tasks)
    logger.info("Scanning %d package(s) with %d parallel job(s)", total, config.parallel_jobs)

    with ThreadPoolExecutor(max_workers=config.parallel_jobs, thread_name_prefix="scan") as pool:
        futures = {
            pool.submit(scan_package, task, provider, oracle, config, template): task for task in tasks
        }
        for future in as_completed(futures):
            task = futures[future]
            try:
                result = future.result()
            except Exception as exc:
                logger.exception("Scan worker for %s crashed", task.name)
                result = _review_failure(task, exc, utc_now())
            store.put(result)
            if on_progress:
                on_progress(len(store), total)

    results = store.snapshot()
    return [results[t.name] for t in tasks]
