from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .config import RuleLogic, as_utc


class ComplianceFramework(str, Enum):
    GDPR = "GDPR"
    SOX = "SOX"
    ISO27001 = "ISO27001"
    DSGVO = "DSGVO"
    CUSTOM = "custom"


class ComplianceCategory(str, Enum):
    DATA_RETENTION = "data_retention"
    ACCESS_CONTROL = "access_control"
    PROCESS_COMPLIANCE = "process_compliance"
    AUDIT_TRAIL = "audit_trail"
    DATA_PROTECTION = "data_protection"
    SEGREGATION_OF_DUTIES = "segregation_of_duties"
    APPROVAL_WORKFLOWS = "approval_workflows"


class Severity(str, Enum):
    CRITICAL = "critical"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


# Lower sorts first (most severe first).
SEVERITY_RANK: Dict[Severity, int] = {
    Severity.CRITICAL: 0,
    Severity.HIGH: 1,
    Severity.MEDIUM: 2,
    Severity.LOW: 3,
}


class CheckFrequency(str, Enum):
    HOURLY = "hourly"
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"


FindingType = Literal["pass", "fail", "warning", "info"]


class ComplianceRule(BaseModel):
    id: str
    organization_id: str = ""
    name: str
    description: str = ""
    framework: ComplianceFramework
    category: ComplianceCategory
    severity: Severity = Severity.MEDIUM
    is_active: bool = True
    check_frequency: CheckFrequency = CheckFrequency.DAILY
    last_checked_at: Optional[datetime] = None
    pass_count: int = 0
    fail_count: int = 0
    rule_logic: RuleLogic

    @field_validator("last_checked_at", mode="after")
    @classmethod
    def _assume_utc(cls, value: Optional[datetime]) -> Optional[datetime]:
        return as_utc(value)

    @property
    def is_passing(self) -> bool:
        # Historical majority, not the last result.
        return self.pass_count > self.fail_count


class EvaluationFinding(BaseModel):
    model_config = ConfigDict(frozen=True)

    type: FindingType
    entity: str
    entity_id: Optional[str] = None
    description: str
    remediation: Optional[str] = None


class EvaluationOutcome(BaseModel):
    """What a type evaluator or custom evaluator reports for one rule."""

    passed: bool
    findings: List[EvaluationFinding] = Field(default_factory=list)
    message: str = ""
    # Set when the check could not run; the rule evaluator then skips statistics.
    error: Optional[str] = None


class WorkflowExecution(BaseModel):
    id: str
    name: str
    completed_steps: List[str] = Field(default_factory=list)
    approvers: List[str] = Field(default_factory=list)
    duration_hours: float = 0


class RuleResultDetails(BaseModel):
    message: str = ""
    findings: List[EvaluationFinding] = Field(default_factory=list)
    evidence_ids: List[str] = Field(default_factory=list)
    exceptions: List[str] = Field(default_factory=list)


class RuleEvaluationResult(BaseModel):
    rule_id: str
    rule_name: str
    passed: bool
    framework: ComplianceFramework
    category: ComplianceCategory
    severity: Severity
    evaluated_at: datetime
    details: RuleResultDetails = Field(default_factory=RuleResultDetails)
    execution_time_ms: float = 0

    # Set when evaluation raised; such results never touch statistics.
    error: Optional[str] = None
    statistics_recorded: bool = False


class BatchEvaluationResult(BaseModel):
    organization_id: str
    evaluated_at: datetime
    total_rules: int = 0
    passed_rules: int = 0
    failed_rules: int = 0
    skipped_rules: int = 0
    results: List[RuleEvaluationResult] = Field(default_factory=list)
    execution_time_ms: float = 0


class GroupTotals(BaseModel):
    total: int = 0
    passing: int = 0


class ComplianceSummary(BaseModel):
    total_rules: int = 0
    active_rules: int = 0
    passing_rules: int = 0
    failing_rules: int = 0
    compliance_score: int = 100
    by_framework: Dict[ComplianceFramework, GroupTotals] = Field(default_factory=dict)
    by_category: Dict[ComplianceCategory, GroupTotals] = Field(default_factory=dict)
