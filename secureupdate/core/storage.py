from __future__ import annotations

import json
import os
import re
from datetime import datetime, timezone
from pathlib import Path
from uuid import uuid4

from secureupdate.core.models import FixExecution, FixPlan, ScanReport
from secureupdate.core.utils import ensure_dir, write_json

RUNS_DIR = Path(
    os.environ.get("SECURE_UPDATE_RUNS_DIR", "")
    or os.path.expanduser("~/.local/state/secure-update/runs")
)

REPORT_JSON = "report.json"
REPORT_LOG = "report.log"
FIX_PLAN = "fixplan.json"
FIX_EXECUTION = "fix-execution.json"
UPDATE_LOG = "update.log"

_RUN_ID_RE = re.compile(r"^[A-Za-z0-9][A-Za-z0-9._-]*$")


def create_run_id(prefix: str = "scan") -> str:
    ts = datetime.now(timezone.utc).strftime("%Y%m%d-%H%M%S")
    return f"{prefix}-{ts}-{uuid4().hex[:8]}"


def get_run_dir(run_id: str, create: bool = False) -> Path | None:
    if not _RUN_ID_RE.match(run_id):
        return None
    run_dir = RUNS_DIR / run_id
    if create:
        ensure_dir(run_dir)
    return run_dir if run_dir.exists() else None


def store_report(report: ScanReport) -> Path:
    run_dir = get_run_dir(report.run_id, create=True)
    write_json(run_dir / REPORT_JSON, report.model_dump(mode="json"))
    return run_dir


def store_fix_plan(plan: FixPlan) -> Path:
    run_dir = get_run_dir(plan.run_id, create=True)
    path = run_dir / FIX_PLAN
    write_json(path, plan.model_dump(mode="json"))
    return path


def store_fix_execution(execution: FixExecution) -> Path:
    run_dir = get_run_dir(execution.plan.run_id, create=True)
    path = run_dir / FIX_EXECUTION
    write_json(path, execution.model_dump(mode="json"))
    return path


def list_runs() -> list[dict]:
    ensure_dir(RUNS_DIR)
    items = []
    for d in sorted(RUNS_DIR.iterdir(), reverse=True):
        if not d.is_dir():
            continue
        item = {"run_id": d.name, "has_report": False, "has_fix_plan": (d / FIX_PLAN).exists()}
        meta = load_report(d.name)
        if meta:
            decision = meta.get("decision", {})
            item.update({
                "has_report": True,
                "mode": meta.get("mode"),
                "started_at": meta.get("started_at"),
                "packages": len(meta.get("results", [])),
                "threats": len(decision.get("threat", [])),
                "proceed": decision.get("proceed"),
            })
        items.append(item)
    return items


def _load_json(run_id: str, filename: str) -> dict | None:
    run_dir = get_run_dir(run_id)
    if not run_dir:
        return None
    path = run_dir / filename
    if not path.exists():
        return None
    return json.loads(path.read_text(encoding="utf-8"))


def load_report(run_id: str) -> dict | None:
    return _load_json(run_id, REPORT_JSON)


def load_fix_plan(run_id: str) -> dict | None:
    return _load_json(run_id, FIX_PLAN)


def get_report_log_path(run_id: str) -> Path | None:
    run_dir = get_run_dir(run_id)
    if not run_dir:
        return None
    return run_dir / REPORT_LOG
