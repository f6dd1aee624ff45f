"""Contracts for the collaborators the engine reads from and writes to.

Implementations live outside the engine (see `pipelines`).
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional, Protocol, Sequence

from .models import (
    CheckFrequency,
    ComplianceCategory,
    ComplianceFramework,
    ComplianceRule,
    WorkflowExecution,
)


@dataclass(frozen=True)
class RuleFilters:
    framework: Optional[ComplianceFramework] = None
    category: Optional[ComplianceCategory] = None
    frequency: Optional[CheckFrequency] = None
    rule_ids: Optional[frozenset[str]] = None

    def matches(self, rule: ComplianceRule) -> bool:
        if self.framework is not None and rule.framework != self.framework:
            return False
        if self.category is not None and rule.category != self.category:
            return False
        if self.frequency is not None and rule.check_frequency != self.frequency:
            return False
        if self.rule_ids is not None and rule.id not in self.rule_ids:
            return False
        return True


class RuleRepository(Protocol):
    def find_rules(self, organization_id: str) -> List[ComplianceRule]:
        """Return every rule of the organization, active or not."""
        ...

    def find_active_rules(self, organization_id: str, filters: RuleFilters) -> List[ComplianceRule]:
        ...

    def find_due_rules(self, organization_id: str, now: datetime) -> List[ComplianceRule]:
        """Active rules never checked, or whose check interval elapsed before `now`."""
        ...

    def increment_statistics(self, rule_id: str, passed: bool, checked_at: datetime) -> None:
        """Atomically bump pass_count or fail_count and set last_checked_at."""
        ...


class MetricsSource(Protocol):
    def get_metric_value(self, metric_name: str, organization_id: str) -> float:
        ...


class PatternSource(Protocol):
    def search_for_pattern(self, pattern: str, scope: str, organization_id: str) -> bool:
        ...


class WorkflowSource(Protocol):
    def get_recent_workflow_executions(self, organization_id: str) -> Sequence[WorkflowExecution]:
        ...
