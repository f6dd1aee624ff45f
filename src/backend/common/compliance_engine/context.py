from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Dict, Iterable, List, Optional

from .config import RuleException
from .models import CheckFrequency, ComplianceRule


FREQUENCY_INTERVALS: Dict[CheckFrequency, timedelta] = {
    CheckFrequency.HOURLY: timedelta(hours=1),
    CheckFrequency.DAILY: timedelta(hours=24),
    CheckFrequency.WEEKLY: timedelta(days=7),
    CheckFrequency.MONTHLY: timedelta(days=30),
}


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class RuleEvaluationContext:
    organization_id: str
    evaluation_time: datetime = field(default_factory=utcnow)
    dry_run: bool = False
    # Restricts entity-level checks (e.g. workflow executions) to these ids.
    entity_scope: Optional[frozenset[str]] = None

    def in_scope(self, entity_id: str) -> bool:
        return self.entity_scope is None or entity_id in self.entity_scope


def active_exceptions(exceptions: Iterable[RuleException], at: datetime) -> List[RuleException]:
    return [exc for exc in exceptions if exc.is_active(at)]


def is_rule_due(rule: ComplianceRule, now: datetime) -> bool:
    if not rule.is_active:
        return False
    if rule.last_checked_at is None:
        return True
    return rule.last_checked_at < now - FREQUENCY_INTERVALS[rule.check_frequency]
