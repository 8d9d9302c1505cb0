import json

import pytest

from secureupdate.core import storage
from secureupdate.core.fixplan import apply_issue, build_plan, execute_plan
from secureupdate.core.models import FixMode, FixStatus, HealthSnapshot, Issue, IssueSeverity
from secureupdate.core.postupdate import extract_issues


class RecordingRunner:
    def __init__(self, failing=()):
        self.failing = set(failing)
        self.commands = []

    def __call__(self, command, timeout):
        self.commands.append(command)
        if command in self.failing:
            return 1, f"{command}: failed\n"
        return 0, f"{command}: ok\n"


class FakeCollector:
    def __init__(self):
        self.snapshots = 0

    def health_snapshot(self):
        self.snapshots += 1
        return HealthSnapshot(failed_service_count=0, pending_config_conflict_count=1)


def issues():
    return [
        Issue(severity=IssueSeverity.HIGH, problem="sshd failed", fix_commands=["systemctl restart sshd"]),
        Issue(
            severity=IssueSeverity.MEDIUM,
            problem="pacnew pending",
            fix_commands=["cp /etc/a.pacnew /etc/a", "rm /etc/a.pacnew"],
        ),
    ]


def test_skip_mode_runs_nothing_and_keeps_plan(runs_dir):
    text = (
        "SEVERITY: HIGH\nPROBLEM: sshd failed\nIMPACT: no remote login\n"
        "FIX_COMMANDS:\nsystemctl restart sshd\nEND_ISSUE\n"
    )
    plan = build_plan("update-1", extract_issues(text), FixMode.SKIP)
    path = storage.store_fix_plan(plan)
    runner = RecordingRunner()
    collector = FakeCollector()

    execution = execute_plan(plan, collector=collector, runner=runner)

    assert runner.commands == []
    assert collector.snapshots == 0
    assert execution.outcomes == []
    assert execution.health is None
    stored = json.loads(path.read_text())
    assert stored["issues"][0]["fix_commands"] == ["systemctl restart sshd"]
    assert storage.load_fix_plan("update-1")["mode"] == "skip"


def test_auto_mode_waits_then_applies_everything():
    waited = []
    runner = RecordingRunner()
    collector = FakeCollector()
    plan = build_plan("update-1", issues(), FixMode.AUTO)

    execution = execute_plan(plan, collector=collector, runner=runner, delay=7, sleep=waited.append)

    assert waited == [7]
    assert runner.commands == ["systemctl restart sshd", "cp /etc/a.pacnew /etc/a", "rm /etc/a.pacnew"]
    assert [o.status for o in execution.outcomes] == [FixStatus.APPLIED, FixStatus.APPLIED]
    assert execution.health.pending_config_conflict_count == 1
    assert collector.snapshots == 1


def test_failed_issue_stops_its_commands_but_not_the_next_issue():
    runner = RecordingRunner(failing={"systemctl restart sshd", "cp /etc/a.pacnew /etc/a"})
    plan = build_plan("update-1", issues(), FixMode.AUTO)

    execution = execute_plan(plan, runner=runner, delay=0, sleep=lambda s: None)

    assert [o.status for o in execution.outcomes] == [FixStatus.FAILED, FixStatus.FAILED]
    assert "rm /etc/a.pacnew" not in runner.commands
    assert execution.outcomes[1].exit_code == 1
    assert execution.outcomes[1].commands_run == ["cp /etc/a.pacnew /etc/a"]


def test_auto_mode_cancelled_during_delay():
    def interrupted(seconds):
        raise KeyboardInterrupt

    runner = RecordingRunner()
    collector = FakeCollector()
    plan = build_plan("update-1", issues(), FixMode.AUTO)

    execution = execute_plan(plan, collector=collector, runner=runner, sleep=interrupted)

    assert execution.cancelled is True
    assert runner.commands == []
    assert collector.snapshots == 0
    assert all(o.status == FixStatus.CANCELLED for o in execution.outcomes)


def test_manual_mode_asks_per_issue():
    asked = []

    def confirm(index, issue):
        asked.append(issue.problem)
        return index == 1

    runner = RecordingRunner()
    plan = build_plan("update-1", issues(), FixMode.MANUAL)
    execution = execute_plan(plan, collector=FakeCollector(), runner=runner, confirm=confirm)

    assert asked == ["sshd failed", "pacnew pending"]
    assert [o.status for o in execution.outcomes] == [FixStatus.DECLINED, FixStatus.APPLIED]
    assert runner.commands == ["cp /etc/a.pacnew /etc/a", "rm /etc/a.pacnew"]
    assert execution.health is not None


def test_manual_mode_needs_confirm():
    with pytest.raises(ValueError):
        execute_plan(build_plan("update-1", issues(), FixMode.MANUAL), runner=RecordingRunner())


def test_apply_issue_collects_output():
    outcome = apply_issue(0, issues()[1], RecordingRunner(), timeout=5)
    assert outcome.status == FixStatus.APPLIED
    assert outcome.exit_code == 0
    assert outcome.output == "cp /etc/a.pacnew /etc/a: ok\nrm /etc/a.pacnew: ok\n"
