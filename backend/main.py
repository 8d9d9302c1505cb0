from __future__ import annotations

from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import PlainTextResponse

from secureupdate.core import storage
from secureupdate.core.models import ScanReport
from secureupdate.reporting.sarif import convert_to_sarif

app = FastAPI(title="secure-update API", version="0.1.0")

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["GET"],
    allow_headers=["*"]
)


@app.get("/api/health")
def health():
    return {"status": "ok"}


@app.get("/api/runs")
def list_runs():
    return storage.list_runs()


@app.get("/api/runs/{run_id}")
def get_run(run_id: str):
    data = storage.load_report(run_id)
    if not data:
        raise HTTPException(status_code=404, detail="Run not found")
    return data


@app.get("/api/runs/{run_id}/report")
def get_report_log(run_id: str):
    log_path = storage.get_report_log_path(run_id)
    if not log_path or not log_path.exists():
        raise HTTPException(status_code=404, detail="Report not found")
    return PlainTextResponse(log_path.read_text(encoding="utf-8", errors="replace"))


@app.get("/api/runs/{run_id}/fixplan")
def get_fix_plan(run_id: str):
    data = storage.load_fix_plan(run_id)
    if not data:
        raise HTTPException(status_code=404, detail="Fix plan not found")
    return data


@app.get("/api/runs/{run_id}/sarif")
def get_sarif(run_id: str):
    data = storage.load_report(run_id)
    if not data:
        raise HTTPException(status_code=404, detail="Run not found")
    return convert_to_sarif(ScanReport.model_validate(data))
