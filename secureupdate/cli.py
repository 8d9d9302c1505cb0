from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Optional

import typer

from secureupdate.core import scan as scan_mod
from secureupdate.core import storage
from secureupdate.core.config import ConfigError, RunConfig, load_config
from secureupdate.core.fixplan import build_plan, execute_plan
from secureupdate.core.models import FixMode, FixStatus, Issue, ScanReport, UnknownRiskPolicy, UpdateOutcome
from secureupdate.core.oracle import OracleError, make_oracle
from secureupdate.core.postupdate import analyze_post_update, extract_issues, summarize_issues
from secureupdate.core.system_state import ArchStateCollector
from secureupdate.core.update import apply_update
from secureupdate.core.utils import CommandError
from secureupdate.reporting.report import read_report
from secureupdate.reporting.sarif import export_sarif_report

app = typer.Typer(help="Security review gate for community package updates")


@app.callback()
def main(verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging")):
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def _config(**overrides) -> RunConfig:
    try:
        return load_config(**overrides)
    except ConfigError as exc:
        typer.echo(str(exc), err=True)
        raise typer.Exit(code=2)


def _progress(completed: int, total: int) -> None:
    percent = completed * 100 // total if total else 100
    typer.echo(f"\rProgress: {completed}/{total} ({percent}%)", nl=False, err=True)
    if completed == total:
        typer.echo("", err=True)


def _run_scan(config: RunConfig) -> ScanReport:
    try:
        tasks, report = scan_mod.perform_scan(config, on_progress=_progress)
    except CommandError as exc:
        typer.echo(str(exc), err=True)
        raise typer.Exit(code=1)
    trusted = len(tasks) - len(report.results)
    typer.echo(f"{len(tasks)} package(s) found: {trusted} trusted, {len(report.results)} reviewed")
    return report


def _print_decision(report: ScanReport, limit: int) -> None:
    decision = report.decision
    stats = report.stats
    typer.echo(
        f"\nSafe: {stats.safe}  Warnings: {stats.warn}  Threats: {stats.threat}  "
        f"Unknown risk: {stats.unknown}  Failed downloads: {stats.fetch_failed}"
    )
    typer.echo(f"Duration: {stats.duration_seconds:.0f}s, parallel jobs: {report.parallel_jobs}")
    by_name = {r.package: r for r in report.results}
    if decision.warn:
        typer.echo("\nWarnings (update allowed):")
        for name in sorted(decision.warn)[:limit or None]:
            typer.echo(f"  {name} [{by_name[name].risk.value}] {by_name[name].summary}")
    if decision.fetch_failed:
        typer.echo("\nNot reviewed (download failed):")
        for name in sorted(decision.fetch_failed)[:limit or None]:
            typer.echo(f"  {name}")
    if decision.threat:
        typer.echo("\nSECURITY THREATS DETECTED:")
        for name in sorted(decision.threat):
            r = by_name[name]
            typer.echo(f"\nPackage: {name} ({r.origin})")
            typer.echo(f"Risk: {r.risk.value}")
            typer.echo(f"Summary: {r.summary or '(none)'}")
            if r.remediation:
                typer.echo(f"Remediation:\n{r.remediation}")
    log_path = storage.get_report_log_path(report.run_id)
    if log_path:
        typer.echo(f"\nFull report saved to: {log_path}")


@app.command()
def scan(
    format: str = typer.Option("table", "--format", help="Output format: table, json, or sarif"),
    output: Optional[str] = typer.Option(None, "--output", help="Output file path (for json/sarif formats)"),
    full_scan: bool = typer.Option(False, "--full-scan", help="Review all installed community packages"),
    parallel: Optional[int] = typer.Option(None, "--parallel", help="Concurrent reviews"),
    model: Optional[str] = typer.Option(None, "--model", help="Model used for the security review"),
    scan_official: Optional[bool] = typer.Option(None, "--scan-official/--no-scan-official", help="Also review official repository packages"),
    unknown_risk: Optional[UnknownRiskPolicy] = typer.Option(None, "--unknown-risk", help="Gate action for unparseable reviews"),
    prompt_file: Optional[Path] = typer.Option(None, "--prompt-file", help="Security review prompt template"),
    limit: Optional[int] = typer.Option(None, "--limit", help="Rows to display"),
):
    """Review packages and report the gate decision without updating."""
    config = _config(
        full_scan=full_scan,
        parallel_jobs=parallel,
        model=model,
        scan_official=scan_official,
        unknown_risk_policy=unknown_risk,
        prompt_file=prompt_file,
        display_limit=limit,
    )
    report = _run_scan(config)

    if format == "json":
        output_data = report.model_dump(mode="json")
        if output:
            Path(output).write_text(json.dumps(output_data, indent=2))
            typer.echo(f"JSON report saved to: {output}")
        else:
            typer.echo(json.dumps(output_data, indent=2))
    elif format == "sarif":
        output_path = Path(output or f"results-{report.run_id}.sarif")
        export_sarif_report(report, output_path)
        typer.echo(f"SARIF report saved to: {output_path}")
    else:
        if format != "table":
            typer.echo(f"Warning: Unknown format '{format}', using table format")
        scan_mod.print_table(report, limit=config.display_limit)
        _print_decision(report, config.display_limit)

    if not report.decision.proceed:
        raise typer.Exit(code=1)


def _describe_issue(index: int, issue: Issue) -> None:
    typer.echo(f"\n[{index + 1}] {issue.severity.value}: {issue.problem}")
    if issue.impact:
        typer.echo(f"    Impact: {issue.impact}")
    for command in issue.fix_commands:
        typer.echo(f"    $ {command}")


def _confirm_issue(index: int, issue: Issue) -> bool:
    _describe_issue(index, issue)
    return typer.confirm("    Apply this fix?", default=False)


def _post_update(run_id: str, update: UpdateOutcome, config: RunConfig) -> None:
    collector = ArchStateCollector()
    state = collector.collect()
    typer.echo(
        f"\nSystem state: {state.failed_service_count} failed service(s), "
        f"{state.pending_config_conflict_count} pending config file(s)"
    )
    try:
        response = analyze_post_update(update, state, make_oracle(config), config)
    except OracleError as exc:
        typer.echo(f"Post-update analysis failed: {exc}", err=True)
        return

    run_dir = storage.get_run_dir(run_id, create=True)
    (run_dir / "post-update-response.txt").write_text(response, encoding="utf-8")
    issues = extract_issues(response)
    plan = build_plan(run_id, issues, config.fix_mode)
    plan_path = storage.store_fix_plan(plan)

    if not issues:
        typer.echo("No post-update issues found.")
        return
    counts = ", ".join(f"{n} {sev.lower()}" for sev, n in summarize_issues(issues).items() if n)
    typer.echo(f"\n{len(issues)} post-update issue(s): {counts}")
    typer.echo(f"Fix plan saved to: {plan_path}")

    if plan.mode == FixMode.SKIP:
        for i, issue in enumerate(issues):
            _describe_issue(i, issue)
        return
    if plan.mode == FixMode.AUTO:
        for i, issue in enumerate(issues):
            _describe_issue(i, issue)
        typer.echo(f"\nApplying fixes in {config.auto_fix_delay}s, press Ctrl+C to cancel...")

    execution = execute_plan(
        plan,
        collector=collector,
        confirm=_confirm_issue,
        delay=config.auto_fix_delay,
        timeout=config.fix_command_timeout,
    )
    storage.store_fix_execution(execution)
    if execution.cancelled:
        typer.echo("Fixes cancelled, nothing was changed.")
        return
    for outcome in execution.outcomes:
        mark = "ok" if outcome.status == FixStatus.APPLIED else outcome.status.value
        typer.echo(f"  [{mark}] {outcome.problem}")
    if execution.health:
        typer.echo(
            f"\nAfter fixes: {execution.health.failed_service_count} failed service(s), "
            f"{execution.health.pending_config_conflict_count} pending config file(s)"
        )


@app.command()
def update(
    full_scan: bool = typer.Option(False, "--full-scan", help="Review all installed community packages"),
    skip_scan: bool = typer.Option(False, "--skip-scan", help="Update without a security review"),
    parallel: Optional[int] = typer.Option(None, "--parallel", help="Concurrent reviews"),
    model: Optional[str] = typer.Option(None, "--model", help="Model used for the security review"),
    post_model: Optional[str] = typer.Option(None, "--post-model", help="Model used for the post-update analysis"),
    scan_official: Optional[bool] = typer.Option(None, "--scan-official/--no-scan-official", help="Also review official repository packages"),
    post_update: Optional[bool] = typer.Option(None, "--post-update/--no-post-update", help="Analyse the system after updating"),
    fix_mode: Optional[FixMode] = typer.Option(None, "--fix-mode", help="auto, manual or skip"),
    unknown_risk: Optional[UnknownRiskPolicy] = typer.Option(None, "--unknown-risk", help="Gate action for unparseable reviews"),
    prompt_file: Optional[Path] = typer.Option(None, "--prompt-file", help="Security review prompt template"),
    limit: Optional[int] = typer.Option(None, "--limit", help="Rows to display"),
    yes: bool = typer.Option(False, "--yes", "-y", help="Do not ask before updating"),
):
    """Review pending updates, update if the gate passes, then check for breakage."""
    config = _config(
        full_scan=full_scan,
        skip_scan=skip_scan,
        parallel_jobs=parallel,
        model=model,
        post_update_model=post_model,
        scan_official=scan_official,
        post_update=post_update,
        fix_mode=fix_mode,
        unknown_risk_policy=unknown_risk,
        prompt_file=prompt_file,
        display_limit=limit,
    )

    packages: list[str] = []
    if config.skip_scan:
        typer.echo("Security review skipped.")
        run_id = storage.create_run_id("update")
    else:
        report = _run_scan(config)
        scan_mod.print_table(report, limit=config.display_limit)
        _print_decision(report, config.display_limit)
        if not report.decision.proceed:
            typer.echo("\nUpdate blocked. The package database was not modified.", err=True)
            raise typer.Exit(code=1)
        run_id = report.run_id
        packages = [r.package for r in report.results]

    if not yes and not typer.confirm("\nProceed with updates?", default=False):
        typer.echo("Update cancelled.")
        return

    run_dir = storage.get_run_dir(run_id, create=True)
    try:
        outcome = apply_update(packages, config, log_file=run_dir / storage.UPDATE_LOG)
    except CommandError as exc:
        typer.echo(str(exc), err=True)
        raise typer.Exit(code=1)
    typer.echo(f"Update finished with exit code {outcome.exit_code}")

    if config.post_update:
        _post_update(run_id, outcome, config)


@app.command("post-update")
def post_update_cmd(
    log: Optional[Path] = typer.Option(None, "--log", help="Update log to include in the analysis"),
    post_model: Optional[str] = typer.Option(None, "--post-model", help="Model used for the analysis"),
    fix_mode: Optional[FixMode] = typer.Option(None, "--fix-mode", help="auto, manual or skip"),
):
    """Analyse the current system for update breakage and build a fix plan."""
    config = _config(post_update_model=post_model, fix_mode=fix_mode)
    text = log.read_text(encoding="utf-8", errors="replace") if log else ""
    _post_update(storage.create_run_id("post-update"), UpdateOutcome(exit_code=0, log=text), config)


@app.command()
def report(
    run_id: str = typer.Argument(..., help="Run id (see the runs directory)"),
    raw: bool = typer.Option(False, "--raw", help="Print the stored review responses"),
):
    """Replay a stored scan report."""
    log_path = storage.get_report_log_path(run_id)
    if not log_path or not log_path.exists():
        typer.echo(f"No report for {run_id}", err=True)
        raise typer.Exit(code=1)
    for r in read_report(log_path):
        typer.echo(f"{r.package} ({r.origin}): {r.status.value} {r.verdict.value} {r.risk.value} {r.summary}")
        if raw and r.raw_response:
            typer.echo(r.raw_response)
            typer.echo("")


if __name__ == "__main__":
    app()
