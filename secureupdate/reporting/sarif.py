"""SARIF (Static Analysis Results Interchange Format) export functionality.

Converts scan reports into SARIF 2.1.0 so review findings can be uploaded to
code-scanning dashboards alongside other security tooling.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Dict, List

from secureupdate.core.models import Action, GateDecision, RiskLevel, ScanReport, ScanResult

TOOL_NAME = "secure-update"

# SARIF severity level mapping
SARIF_LEVEL_MAP = {
    Action.BLOCK: "error",
    Action.WARN: "warning",
    Action.ALLOW: "note",
}

# SARIF security severity mapping (for GitHub integration)
SECURITY_SEVERITY_MAP = {
    RiskLevel.CRITICAL: "9.5",
    RiskLevel.HIGH: "8.0",
    RiskLevel.MEDIUM: "5.0",
    RiskLevel.LOW: "2.0",
    RiskLevel.NONE: "0.0",
    RiskLevel.UNKNOWN: "7.0",
}


def _rule_id(risk: RiskLevel) -> str:
    return f"PKG-REVIEW-{risk.value}"


def _create_sarif_rule(risk: RiskLevel) -> Dict[str, Any]:
    """Create a SARIF rule definition for one risk level."""
    if risk == RiskLevel.UNKNOWN:
        text = "The security review did not produce a usable risk level."
    else:
        text = f"The security review rated this package's build files {risk.value} risk."
    return {
        "id": _rule_id(risk),
        "name": f"PackageReview/{risk.value.title()}",
        "shortDescription": {"text": f"Package review: {risk.value} risk"},
        "fullDescription": {"text": text},
        "help": {
            "text": text + " Inspect the build recipe before installing or updating.",
        },
        "properties": {
            "security-severity": SECURITY_SEVERITY_MAP[risk],
            "precision": "medium",
            "tags": ["security", "supply-chain"],
        },
    }


def _recorded_action(name: str, decision: GateDecision) -> Action:
    """Gate action as recorded in the report's decision."""
    if name in decision.threat:
        return Action.BLOCK
    if name in decision.warn:
        return Action.WARN
    return Action.ALLOW


def _create_sarif_result(result: ScanResult, rule_index: int, report: ScanReport) -> Dict[str, Any]:
    """Create a SARIF result for a reviewed package."""
    action = _recorded_action(result.package, report.decision)
    message = f"{result.package} ({result.origin}): {result.summary or 'no summary provided'}"
    if result.remediation:
        message += f"\nRemediation: {result.remediation}"
    return {
        "ruleId": _rule_id(result.risk),
        "ruleIndex": rule_index,
        "level": SARIF_LEVEL_MAP[action],
        "message": {"text": message},
        "locations": [
            {
                "physicalLocation": {
                    "artifactLocation": {"uri": f"{result.origin}/{result.package}/PKGBUILD"},
                },
                "logicalLocations": [
                    {
                        "name": result.package,
                        "fullyQualifiedName": f"package:{result.origin}/{result.package}",
                        "kind": "package",
                    }
                ],
            }
        ],
        "properties": {
            "package_name": result.package,
            "origin": result.origin,
            "verdict": result.verdict.value,
            "risk": result.risk.value,
            "gate": action.value,
            "unknown_risk": result.package in report.decision.unknown,
        },
    }


def convert_to_sarif(report: ScanReport, tool_version: str = "0.1.0") -> Dict[str, Any]:
    """Convert a scan report to SARIF 2.1.0. Only reviewed packages above NONE risk become results."""
    rules: Dict[str, Dict[str, Any]] = {}
    rule_index_map: Dict[str, int] = {}
    results: List[Dict[str, Any]] = []

    for result in report.results:
        if not result.fetched or result.risk == RiskLevel.NONE:
            continue
        rule_id = _rule_id(result.risk)
        if rule_id not in rules:
            rules[rule_id] = _create_sarif_rule(result.risk)
            rule_index_map[rule_id] = len(rule_index_map)
        results.append(_create_sarif_result(result, rule_index_map[rule_id], report))

    return {
        "version": "2.1.0",
        "$schema": "https://raw.githubusercontent.com/oasis-tcs/sarif-spec/master/Schemata/sarif-schema-2.1.0.json",
        "runs": [
            {
                "tool": {
                    "driver": {
                        "name": TOOL_NAME,
                        "version": tool_version,
                        "shortDescription": {"text": "Security review gate for community package updates"},
                        "rules": list(rules.values()),
                    }
                },
                "invocation": {
                    "executionSuccessful": True,
                    "startTimeUtc": report.started_at,
                    "endTimeUtc": report.finished_at,
                },
                "results": results,
                "properties": {
                    "run_id": report.run_id,
                    "mode": report.mode,
                    "total_packages": report.stats.total,
                    "fetch_failed": sorted(report.decision.fetch_failed),
                    "proceed": report.decision.proceed,
                },
            }
        ],
    }


def export_sarif_report(report: ScanReport, output_path: Path,
                        tool_version: str = "0.1.0", pretty: bool = True) -> None:
    """Export a scan report as SARIF to file."""
    sarif_data = convert_to_sarif(report, tool_version)
    with open(output_path, "w", encoding="utf-8") as f:
        if pretty:
            json.dump(sarif_data, f, indent=2, ensure_ascii=False)
        else:
            json.dump(sarif_data, f, separators=(",", ":"), ensure_ascii=False)
