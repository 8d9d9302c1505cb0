import pytest
from typer.testing import CliRunner

from conftest import FakeOracle, FakeProvider, response
from secureupdate import cli
from secureupdate.core import scan as scan_mod
from secureupdate.core.models import InventoryEntry, UpdateOutcome

runner = CliRunner()

ENTRIES = [InventoryEntry(name="yay", repository="aur"), InventoryEntry(name="shady", repository="aur")]


@pytest.fixture
def fake_scan(monkeypatch, runs_dir):
    real = scan_mod.perform_scan
    oracle = FakeOracle()

    def perform(config, on_progress=None):
        return real(config, entries=ENTRIES, provider=FakeProvider(), oracle=oracle, on_progress=on_progress)

    monkeypatch.setattr(scan_mod, "perform_scan", perform)
    return oracle


def test_scan_exits_non_zero_when_blocked(fake_scan):
    fake_scan.responses["shady"] = response("CRITICAL", verdict="THREAT DETECTED", summary="steals tokens")
    result = runner.invoke(cli.app, ["scan"])
    assert result.exit_code == 1
    assert "SECURITY THREATS DETECTED" in result.output
    assert "steals tokens" in result.output


def test_update_blocked_never_runs_update(fake_scan, monkeypatch):
    fake_scan.responses["shady"] = response("HIGH", verdict="THREAT DETECTED")
    called = []
    monkeypatch.setattr(cli, "apply_update", lambda *a, **kw: called.append(a))
    result = runner.invoke(cli.app, ["update", "--yes"])
    assert result.exit_code == 1
    assert called == []
    assert "Update blocked" in result.output


def test_update_proceeds_when_clean(fake_scan, monkeypatch):
    called = []

    def fake_apply(packages, config, log_file=None):
        called.append(list(packages))
        return UpdateOutcome(exit_code=0, log="", packages=list(packages))

    monkeypatch.setattr(cli, "apply_update", fake_apply)
    result = runner.invoke(cli.app, ["update", "--yes", "--no-post-update"])
    assert result.exit_code == 0
    assert called == [["yay", "shady"]]


def test_invalid_config_exits_two(fake_scan):
    result = runner.invoke(cli.app, ["scan", "--parallel", "0"])
    assert result.exit_code == 2


def test_prompt_file_option_reaches_config(monkeypatch, runs_dir, tmp_path):
    seen = []
    real = scan_mod.perform_scan

    def perform(config, on_progress=None):
        seen.append(config.prompt_file)
        return real(config, entries=[], provider=FakeProvider(), oracle=FakeOracle(), on_progress=on_progress)

    monkeypatch.setattr(scan_mod, "perform_scan", perform)
    path = tmp_path / "prompt.txt"
    result = runner.invoke(cli.app, ["scan", "--prompt-file", str(path)])
    assert result.exit_code == 0
    assert seen == [path]
