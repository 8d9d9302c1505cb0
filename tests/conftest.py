from pathlib import Path

import pytest

from secureupdate.core import storage
from secureupdate.core.config import RunConfig
from secureupdate.core.fetch import FetchError


def response(risk: str, verdict: str = "SAFE", summary: str = "ok") -> str:
    return f"VERDICT: {verdict}\nRISK: {risk}\nSUMMARY: {summary}\nDETAILS:\nnothing notable\n"


class FakeProvider:
    """Writes a PKGBUILD per package; names in ``failures`` raise FetchError."""

    def __init__(self, failures=None):
        self.failures = failures or {}

    def fetch(self, task, dest: Path) -> Path:
        kind = self.failures.get(task.name)
        if kind is not None:
            raise FetchError(kind, f"cannot fetch {task.name}")
        pkg_dir = dest / task.name
        pkg_dir.mkdir()
        (pkg_dir / "PKGBUILD").write_text(f"pkgname={task.name}\n", encoding="utf-8")
        return pkg_dir


class FakeOracle:
    """Answers with a canned response keyed by the reviewed directory name."""

    def __init__(self, responses=None, default=None):
        self.responses = responses or {}
        self.default = default or response("NONE")
        self.calls = []

    def analyze(self, directory: Path, prompt: str, model: str) -> str:
        self.calls.append((directory.name, model))
        value = self.responses.get(directory.name, self.default)
        if isinstance(value, Exception):
            raise value
        return value


@pytest.fixture
def config():
    return RunConfig(parallel_jobs=4, auto_fix_delay=0)


@pytest.fixture
def runs_dir(tmp_path, monkeypatch):
    path = tmp_path / "runs"
    monkeypatch.setattr(storage, "RUNS_DIR", path)
    return path

