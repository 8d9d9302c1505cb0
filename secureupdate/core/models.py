from __future__ import annotations

from enum import Enum
from typing import Dict, FrozenSet, List, Tuple

from pydantic import BaseModel, ConfigDict


class OriginTier(str, Enum):
    TRUSTED = "trusted"
    SCAN_REQUIRED = "scan_required"
    OFFICIAL_OPT_IN = "official_opt_in"


class ScanStatus(str, Enum):
    FETCH_FAILED = "FAILED_DOWNLOAD"
    NO_WORKSPACE = "FAILED_NO_DIR"
    SCANNED = "SCANNED"


class Verdict(str, Enum):
    SAFE = "SAFE"
    THREAT_DETECTED = "THREAT DETECTED"
    UNKNOWN = "UNKNOWN"


class RiskLevel(str, Enum):
    NONE = "NONE"
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    CRITICAL = "CRITICAL"
    UNKNOWN = "UNKNOWN"


class Action(str, Enum):
    ALLOW = "allow"
    WARN = "warn"
    BLOCK = "block"


class UnknownRiskPolicy(str, Enum):
    BLOCK = "block"
    WARN = "warn"
    ALLOW = "allow"


class FixMode(str, Enum):
    AUTO = "auto"
    MANUAL = "manual"
    SKIP = "skip"


class IssueSeverity(str, Enum):
    CRITICAL = "CRITICAL"
    HIGH = "HIGH"
    MEDIUM = "MEDIUM"
    LOW = "LOW"


class FixStatus(str, Enum):
    APPLIED = "applied"
    FAILED = "failed"
    DECLINED = "declined"
    CANCELLED = "cancelled"


class InventoryEntry(BaseModel):
    name: str
    repository: str
    version: str | None = None
    new_version: str | None = None


class PackageTask(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    origin: str
    tier: OriginTier
    source_variants: Tuple[str, ...] = ()


class ScanResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    package: str
    origin: str
    status: ScanStatus
    verdict: Verdict = Verdict.UNKNOWN
    risk: RiskLevel = RiskLevel.UNKNOWN
    summary: str = ""
    remediation: str | None = None
    raw_response: str = ""
    started_at: str | None = None
    ended_at: str | None = None
    error: str | None = None

    @property
    def fetched(self) -> bool:
        return self.status == ScanStatus.SCANNED


class GateDecision(BaseModel):
    model_config = ConfigDict(frozen=True)

    safe: FrozenSet[str] = frozenset()
    warn: FrozenSet[str] = frozenset()
    threat: FrozenSet[str] = frozenset()
    fetch_failed: FrozenSet[str] = frozenset()
    unknown: FrozenSet[str] = frozenset()
    proceed: bool = True


class ScanStats(BaseModel):
    total: int
    scanned: int
    safe: int
    warn: int
    threat: int
    fetch_failed: int
    unknown: int
    by_risk: Dict[str, int]
    duration_seconds: float
    average_seconds: float


class ScanReport(BaseModel):
    run_id: str
    mode: str
    parallel_jobs: int
    started_at: str
    finished_at: str
    results: List[ScanResult]
    decision: GateDecision
    stats: ScanStats


class Issue(BaseModel):
    severity: IssueSeverity
    problem: str
    impact: str = ""
    fix_commands: List[str]


class FixPlan(BaseModel):
    run_id: str
    mode: FixMode
    issues: List[Issue]
    created_at: str


class FixOutcome(BaseModel):
    index: int
    problem: str
    status: FixStatus
    commands_run: List[str] = []
    exit_code: int | None = None
    output: str = ""


class HealthSnapshot(BaseModel):
    failed_service_count: int
    pending_config_conflict_count: int


class SystemState(BaseModel):
    failed_service_count: int = 0
    pending_config_conflict_count: int = 0
    broken_dependency_summary: str = ""
    orphaned_packages: List[str] = []
    recent_kernel_log: str = ""


class FixExecution(BaseModel):
    plan: FixPlan
    outcomes: List[FixOutcome] = []
    health: HealthSnapshot | None = None
    cancelled: bool = False


class UpdateOutcome(BaseModel):
    exit_code: int
    log: str
    packages: List[str] = []
