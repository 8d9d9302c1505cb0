import pytest

from secureupdate.core.config import RunConfig
from secureupdate.core.gate import classify, evaluate, risk_action
from secureupdate.core.models import (
    Action,
    RiskLevel,
    ScanResult,
    ScanStatus,
    UnknownRiskPolicy,
    Verdict,
)


def scanned(name: str, risk: RiskLevel, verdict: Verdict = Verdict.SAFE) -> ScanResult:
    return ScanResult(package=name, origin="aur", status=ScanStatus.SCANNED, verdict=verdict, risk=risk)


def failed(name: str, status: ScanStatus = ScanStatus.FETCH_FAILED) -> ScanResult:
    return ScanResult(package=name, origin="aur", status=status)


@pytest.mark.parametrize(
    "risk, action",
    [
        (RiskLevel.NONE, Action.ALLOW),
        (RiskLevel.LOW, Action.ALLOW),
        (RiskLevel.MEDIUM, Action.WARN),
        (RiskLevel.HIGH, Action.BLOCK),
        (RiskLevel.CRITICAL, Action.BLOCK),
    ],
)
def test_risk_action_mapping(risk, action):
    assert risk_action(risk) == action


def test_scenario_low_medium_none_proceeds_with_warning():
    results = [scanned("P1", RiskLevel.LOW), scanned("P2", RiskLevel.MEDIUM), scanned("P3", RiskLevel.NONE)]
    decision = evaluate(results, RunConfig())
    assert decision.proceed is True
    assert decision.warn == {"P2"}
    assert decision.threat == set()
    assert decision.safe == {"P1", "P3"}


def test_scenario_high_blocks():
    results = [scanned("P1", RiskLevel.HIGH, Verdict.THREAT_DETECTED), scanned("P2", RiskLevel.LOW)]
    decision = evaluate(results, RunConfig())
    assert decision.proceed is False
    assert decision.threat == {"P1"}
    assert decision.safe == {"P2"}


def test_scenario_fetch_failure_is_listed_but_does_not_block():
    results = [failed("P1"), scanned("P2", RiskLevel.NONE)]
    decision = evaluate(results, RunConfig())
    assert decision.proceed is True
    assert decision.fetch_failed == {"P1"}
    assert "P1" not in decision.safe
    assert decision.threat == set()


def test_no_directory_counts_as_fetch_failure():
    decision = evaluate([failed("P1", ScanStatus.NO_WORKSPACE)], RunConfig())
    assert decision.fetch_failed == {"P1"}
    assert classify(failed("P1")) is None


def test_unknown_risk_blocks_by_default():
    decision = evaluate([scanned("P1", RiskLevel.UNKNOWN)], RunConfig())
    assert decision.proceed is False
    assert decision.unknown == {"P1"}
    assert decision.threat == {"P1"}


@pytest.mark.parametrize(
    "policy, bucket",
    [(UnknownRiskPolicy.WARN, "warn"), (UnknownRiskPolicy.ALLOW, "safe")],
)
def test_unknown_risk_policy_is_configurable(policy, bucket):
    decision = evaluate([scanned("P1", RiskLevel.UNKNOWN)], RunConfig(unknown_risk_policy=policy))
    assert decision.proceed is True
    assert decision.unknown == {"P1"}
    assert getattr(decision, bucket) == {"P1"}


def test_proceed_iff_high_or_critical_present():
    risks = [RiskLevel.NONE, RiskLevel.LOW, RiskLevel.MEDIUM, RiskLevel.HIGH, RiskLevel.CRITICAL]
    for a in risks:
        for b in risks:
            decision = evaluate([scanned("a", a), scanned("b", b)], RunConfig())
            blocked = {a, b} & {RiskLevel.HIGH, RiskLevel.CRITICAL}
            assert decision.proceed is (not blocked)


def test_empty_results_proceed():
    decision = evaluate([], RunConfig())
    assert decision.proceed is True
