import pytest
from fastapi.testclient import TestClient

from backend.main import app
from conftest import FakeOracle, FakeProvider, response
from secureupdate.core import storage
from secureupdate.core.fixplan import build_plan
from secureupdate.core.models import FixMode, InventoryEntry, Issue, IssueSeverity
from secureupdate.core.scan import perform_scan


@pytest.fixture
def client():
    return TestClient(app)


@pytest.fixture
def run_id(config, runs_dir):
    oracle = FakeOracle(responses={"shady": response("HIGH", verdict="THREAT DETECTED")})
    entries = [InventoryEntry(name="yay", repository="aur"), InventoryEntry(name="shady", repository="aur")]
    _, report = perform_scan(config, entries=entries, provider=FakeProvider(), oracle=oracle)
    return report.run_id


def test_health(client):
    assert client.get("/api/health").json() == {"status": "ok"}


def test_list_and_get_run(client, run_id):
    runs = client.get("/api/runs").json()
    assert runs[0]["run_id"] == run_id
    assert runs[0]["threats"] == 1
    assert runs[0]["proceed"] is False

    data = client.get(f"/api/runs/{run_id}").json()
    assert [r["package"] for r in data["results"]] == ["yay", "shady"]


def test_report_log(client, run_id):
    resp = client.get(f"/api/runs/{run_id}/report")
    assert resp.status_code == 200
    assert "PACKAGE: shady" in resp.text


def test_sarif(client, run_id):
    sarif = client.get(f"/api/runs/{run_id}/sarif").json()
    results = sarif["runs"][0]["results"]
    assert [r["properties"]["package_name"] for r in results] == ["shady"]


def test_fixplan(client, runs_dir):
    issue = Issue(severity=IssueSeverity.LOW, problem="orphans", fix_commands=["pacman -Rns old-lib"])
    storage.store_fix_plan(build_plan("update-1", [issue], FixMode.SKIP))
    data = client.get("/api/runs/update-1/fixplan").json()
    assert data["issues"][0]["problem"] == "orphans"


def test_unknown_run(client, runs_dir):
    assert client.get("/api/runs/nope").status_code == 404
    assert client.get("/api/runs/nope/report").status_code == 404
    assert client.get("/api/runs/nope/fixplan").status_code == 404
