from __future__ import annotations

from typing import Iterable

from secureupdate.core.config import RunConfig
from secureupdate.core.models import (
    Action,
    GateDecision,
    RiskLevel,
    ScanResult,
    UnknownRiskPolicy,
)

RISK_ACTIONS = {
    RiskLevel.NONE: Action.ALLOW,
    RiskLevel.LOW: Action.ALLOW,
    RiskLevel.MEDIUM: Action.WARN,
    RiskLevel.HIGH: Action.BLOCK,
    RiskLevel.CRITICAL: Action.BLOCK,
}

UNKNOWN_ACTIONS = {
    UnknownRiskPolicy.BLOCK: Action.BLOCK,
    UnknownRiskPolicy.WARN: Action.WARN,
    UnknownRiskPolicy.ALLOW: Action.ALLOW,
}


def risk_action(risk: RiskLevel, unknown_policy: UnknownRiskPolicy = UnknownRiskPolicy.BLOCK) -> Action:
    if risk == RiskLevel.UNKNOWN:
        return UNKNOWN_ACTIONS[unknown_policy]
    return RISK_ACTIONS[risk]


def classify(result: ScanResult, unknown_policy: UnknownRiskPolicy = UnknownRiskPolicy.BLOCK) -> Action | None:
    """Action for a scanned result; None when the package was never reviewed."""
    if not result.fetched:
        return None
    return risk_action(result.risk, unknown_policy)


def evaluate(results: Iterable[ScanResult], config: RunConfig) -> GateDecision:
    """Fold all scan results into the proceed/block decision."""
    buckets = {Action.ALLOW: set(), Action.WARN: set(), Action.BLOCK: set()}
    fetch_failed = set()
    unknown = set()
    for result in results:
        action = classify(result, config.unknown_risk_policy)
        if action is None:
            fetch_failed.add(result.package)
            continue
        if result.risk == RiskLevel.UNKNOWN:
            unknown.add(result.package)
        buckets[action].add(result.package)

    threat = frozenset(buckets[Action.BLOCK])
    return GateDecision(
        safe=frozenset(buckets[Action.ALLOW]),
        warn=frozenset(buckets[Action.WARN]),
        threat=threat,
        fetch_failed=frozenset(fetch_failed),
        unknown=frozenset(unknown),
        proceed=not threat,
    )
