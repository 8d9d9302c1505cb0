"""Fix plan building and execution (auto, manual or skip)."""

from __future__ import annotations

import logging
import time
from typing import Callable, Iterable, List, Optional, Tuple

from secureupdate.core.models import (
    FixExecution,
    FixMode,
    FixOutcome,
    FixPlan,
    FixStatus,
    Issue,
)
from secureupdate.core.system_state import StateCollector
from secureupdate.core.utils import CommandError, run_cmd, utc_now

logger = logging.getLogger(__name__)

CommandRunner = Callable[[str, int], Tuple[int, str]]
Confirm = Callable[[int, Issue], bool]


def shell_runner(command: str, timeout: int) -> Tuple[int, str]:
    try:
        cp = run_cmd(["bash", "-c", command], timeout=timeout, check=False)
    except (CommandError, FileNotFoundError) as exc:
        return 124, str(exc)
    return cp.returncode, cp.stdout


def build_plan(run_id: str, issues: Iterable[Issue], mode: FixMode) -> FixPlan:
    return FixPlan(run_id=run_id, mode=FixMode(mode), issues=list(issues), created_at=utc_now())


def apply_issue(index: int, issue: Issue, runner: CommandRunner, timeout: int) -> FixOutcome:
    """Run an issue's commands in order, stopping at the first failure."""
    commands_run: List[str] = []
    output: List[str] = []
    for command in issue.fix_commands:
        commands_run.append(command)
        code, out = runner(command, timeout)
        output.append(out)
        if code != 0:
            logger.error("Fix for %r failed on %r (exit %s)", issue.problem, command, code)
            return FixOutcome(
                index=index,
                problem=issue.problem,
                status=FixStatus.FAILED,
                commands_run=commands_run,
                exit_code=code,
                output="".join(output),
            )
    logger.info("Fix for %r applied", issue.problem)
    return FixOutcome(
        index=index,
        problem=issue.problem,
        status=FixStatus.APPLIED,
        commands_run=commands_run,
        exit_code=0,
        output="".join(output),
    )


def execute_plan(
    plan: FixPlan,
    collector: Optional[StateCollector] = None,
    runner: CommandRunner = shell_runner,
    confirm: Optional[Confirm] = None,
    delay: int = 10,
    sleep: Callable[[float], None] = time.sleep,
    timeout: int = 600,
) -> FixExecution:
    """Execute a fix plan according to its mode.

    auto waits ``delay`` seconds first; a KeyboardInterrupt during that wait
    cancels the whole plan. manual asks ``confirm`` before each issue. skip
    runs nothing and does not re-check system health.
    """
    if plan.mode == FixMode.SKIP:
        logger.info("Fix mode is skip, %d issue(s) left for manual review", len(plan.issues))
        return FixExecution(plan=plan)

    if plan.mode == FixMode.MANUAL and confirm is None:
        raise ValueError("manual fix mode needs a confirm callback")

    if plan.mode == FixMode.AUTO and plan.issues:
        logger.warning("Applying %d fix(es) automatically in %d seconds", len(plan.issues), delay)
        try:
            sleep(delay)
        except KeyboardInterrupt:
            logger.warning("Automatic fixes cancelled")
            outcomes = [
                FixOutcome(index=i, problem=issue.problem, status=FixStatus.CANCELLED)
                for i, issue in enumerate(plan.issues)
            ]
            return FixExecution(plan=plan, outcomes=outcomes, cancelled=True)

    outcomes: List[FixOutcome] = []
    for index, issue in enumerate(plan.issues):
        if plan.mode == FixMode.MANUAL and not confirm(index, issue):
            logger.info("Fix for %r declined", issue.problem)
            outcomes.append(FixOutcome(index=index, problem=issue.problem, status=FixStatus.DECLINED))
            continue
        outcomes.append(apply_issue(index, issue, runner, timeout))

    health = collector.health_snapshot() if collector is not None else None
    return FixExecution(plan=plan, outcomes=outcomes, health=health)
